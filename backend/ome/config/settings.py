"""
Application settings loaded from environment variables.

Settings are grouped per collaborator:
- KeycloakSettings: identity provider base URL, realm, client credentials, validation toggles
- DatabaseSettings: async SQLAlchemy URL, either DATABASE_URL or the connection
  template from config/database.yml with DB_* values substituted at startup
- FrontendSettings: frontend base URL and cookie/session options

Usage:
    from ome.config.settings import get_settings

    settings = get_settings()
    settings.keycloak.realm_url
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import List, Optional
from urllib.parse import quote

import yaml

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_TEMPLATE = "postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class KeycloakSettings:
    """Identity provider configuration."""

    base_url: Optional[str]
    realm: Optional[str]
    client_id: Optional[str]
    client_secret: Optional[str] = field(default=None, repr=False)
    validate_issuer: bool = True
    validate_audience: bool = True
    http_timeout_seconds: float = 10.0

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.realm and self.client_id)

    @property
    def realm_url(self) -> str:
        return f"{(self.base_url or '').rstrip('/')}/realms/{self.realm}"

    @property
    def missing(self) -> List[str]:
        names = {
            "KEYCLOAK_BASE_URL": self.base_url,
            "KEYCLOAK_REALM": self.realm,
            "KEYCLOAK_CLIENT_ID": self.client_id,
        }
        return [name for name, value in names.items() if not value]


@dataclass(frozen=True)
class DatabaseSettings:
    """Database configuration. url is None when nothing is configured."""

    url: Optional[str] = field(default=None, repr=False)
    ssl_ca_path: Optional[str] = None
    echo: bool = False

    @property
    def is_configured(self) -> bool:
        return bool(self.url)


@dataclass(frozen=True)
class FrontendSettings:
    """Frontend redirect target, CORS and cookie options."""

    base_url: Optional[str]
    cors_origins: List[str]
    session_secret_key: str = field(repr=False, default="change-me")
    cookie_secure: bool = True
    cookie_max_age_seconds: Optional[int] = None

    @property
    def cookie_samesite(self) -> str:
        """SameSite=None is only honoured by browsers on Secure cookies."""
        return "none" if self.cookie_secure else "lax"


@dataclass(frozen=True)
class AppSettings:
    keycloak: KeycloakSettings
    database: DatabaseSettings
    frontend: FrontendSettings
    env: str = "local"
    log_level: str = "INFO"


def normalize_database_url(database_url: str) -> str:
    """
    Normalize a database URL for the async engine.

    Handles Render/Heroku style postgres:// URLs and plain postgresql:// URLs by
    selecting the asyncpg driver.
    """
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


def _resolve_template_path(config_path: Optional[str] = None) -> Optional[Path]:
    if config_path:
        return Path(config_path)

    candidates = [
        Path(__file__).parent.parent.parent.parent / "config" / "database.yml",
        Path(os.getcwd()) / "config" / "database.yml",
        Path(os.getcwd()) / ".." / "config" / "database.yml",
    ]
    for candidate in candidates:
        resolved = candidate.resolve()
        if resolved.exists():
            return resolved
    return None


def load_connection_template(config_path: Optional[str] = None) -> str:
    """Load url_template from config/database.yml, falling back to the default template."""
    path = _resolve_template_path(config_path)
    if path is None:
        return DEFAULT_DATABASE_TEMPLATE

    with open(path, "r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    template = raw.get("url_template")
    if not template:
        logger.warning("database.yml has no url_template, using default", extra={"path": str(path)})
        return DEFAULT_DATABASE_TEMPLATE
    return template


def build_database_url(template: Optional[str] = None) -> Optional[str]:
    """
    Build the database URL.

    DATABASE_URL wins when set. Otherwise the connection template is filled
    with DB_HOST, DB_PORT, DB_NAME, DB_USER and DB_PASSWORD; returns None if
    DB_HOST or DB_NAME is missing.
    """
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        return normalize_database_url(database_url)

    host = os.getenv("DB_HOST")
    name = os.getenv("DB_NAME")
    if not host or not name:
        return None

    values = {
        "host": host,
        "port": os.getenv("DB_PORT", "5432"),
        "name": quote(name, safe=""),
        "user": quote(os.getenv("DB_USER", ""), safe=""),
        "password": quote(os.getenv("DB_PASSWORD", ""), safe=""),
    }
    try:
        return (template or load_connection_template()).format(**values)
    except KeyError as e:
        raise ValueError(f"Unknown placeholder in database url_template: {e}")


def load_settings() -> AppSettings:
    """Read all settings from the environment."""
    keycloak = KeycloakSettings(
        base_url=os.getenv("KEYCLOAK_BASE_URL"),
        realm=os.getenv("KEYCLOAK_REALM"),
        client_id=os.getenv("KEYCLOAK_CLIENT_ID"),
        client_secret=os.getenv("KEYCLOAK_CLIENT_SECRET"),
        validate_issuer=_env_bool("KEYCLOAK_VALIDATE_ISSUER", True),
        validate_audience=_env_bool("KEYCLOAK_VALIDATE_AUDIENCE", True),
        http_timeout_seconds=float(os.getenv("KEYCLOAK_HTTP_TIMEOUT_SECONDS", "10")),
    )

    database = DatabaseSettings(
        url=build_database_url(),
        ssl_ca_path=os.getenv("DB_SSL_CA_PATH") or None,
        echo=_env_bool("DB_ECHO", False),
    )

    max_age = os.getenv("AUTH_COOKIE_MAX_AGE_SECONDS")
    frontend = FrontendSettings(
        base_url=os.getenv("FRONTEND_BASE_URL"),
        cors_origins=[
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
            if origin.strip()
        ],
        session_secret_key=os.getenv("SESSION_SECRET_KEY", "change-me"),
        cookie_secure=_env_bool("AUTH_COOKIE_SECURE", True),
        cookie_max_age_seconds=int(max_age) if max_age else None,
    )

    return AppSettings(
        keycloak=keycloak,
        database=database,
        frontend=frontend,
        env=os.getenv("ENV", "local"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


_settings: Optional[AppSettings] = None
_settings_lock = Lock()


def get_settings() -> AppSettings:
    """Get the cached settings singleton."""
    global _settings

    with _settings_lock:
        if _settings is None:
            _settings = load_settings()
        return _settings


def reset_settings() -> None:
    """Drop the cached settings (tests and config reloads)."""
    global _settings

    with _settings_lock:
        _settings = None
