"""
Root test configuration and fixtures.

Provides:
- RSA signing key, JWKS and a token factory for Keycloak-shaped JWTs
- FakeIdentityProvider: httpx.MockTransport handler standing in for the realm
- Async SQLite database (aiosqlite, one file per test) with all tables created
- Seeded tenants and a request context factory
- The FastAPI app wired with test collaborators, and an httpx client for it
"""

import json
import os
import time
import uuid
from typing import Callable, List, Optional
from urllib.parse import parse_qsl

import httpx
import jwt
import pytest
import pytest_asyncio
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Set test environment
os.environ.setdefault("ENV", "test")

from ome.auth.context import RequestSecurityContext
from ome.auth.keycloak_client import KeycloakClient
from ome.config.settings import AppSettings, DatabaseSettings, FrontendSettings, KeycloakSettings
from ome.database.session import get_db_session
from ome.db_base import Base
from ome.events.dispatcher import EventDispatcher
from ome.events.handlers import register_default_handlers
from ome.models import Tenant
from ome.platform.tenant_context import RequestContext, TenantResolver
from ome.platform.tenant_directory import TenantDirectory
from ome.repositories.tenant_repository import TenantRepository
from ome.services.realtime import TenantEventBroadcaster

KEYCLOAK_BASE_URL = "https://sso.ome.test"
REALM = "ome"
CLIENT_ID = "ome-web"
ISSUER = f"{KEYCLOAK_BASE_URL}/realms/{REALM}"
KEY_ID = "test-key"
FRONTEND_URL = "https://app.ome.test"

TENANT_A = uuid.UUID("11111111-1111-4111-8111-111111111111")
TENANT_B = uuid.UUID("22222222-2222-4222-8222-222222222222")

# Upper bound for awaiting a queued realtime message
RECEIVE_TIMEOUT = 2.0


# =============================================================================
# Tokens
# =============================================================================

@pytest.fixture(scope="session")
def rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def jwks(rsa_private_key):
    jwk = json.loads(RSAAlgorithm.to_jwk(rsa_private_key.public_key()))
    jwk.update({"kid": KEY_ID, "alg": "RS256", "use": "sig"})
    return {"keys": [jwk]}


@pytest.fixture
def make_token(rsa_private_key) -> Callable[..., str]:
    """
    Factory for signed access tokens.

    Keyword arguments override claims; passing None removes a claim.
    """

    def _make(expires_in: int = 300, key=None, kid: str = KEY_ID, **overrides) -> str:
        now = int(time.time())
        claims = {
            "sub": "kc-user-1",
            "iss": ISSUER,
            "aud": CLIENT_ID,
            "iat": now,
            "exp": now + expires_in,
            "preferred_username": "jdoe",
            "email": "jdoe@acme.test",
            "tenant_id": str(TENANT_A),
            "roles": ["OmeAdmin"],
            "groups": ["/customers/acme-corp"],
        }
        claims.update(overrides)
        claims = {name: value for name, value in claims.items() if value is not None}
        return jwt.encode(claims, key or rsa_private_key, algorithm="RS256", headers={"kid": kid})

    return _make


# =============================================================================
# Identity provider
# =============================================================================

class FakeIdentityProvider:
    """
    Routes Keycloak realm endpoints for httpx.MockTransport.

    token_response / logout_response may be an httpx.Response or a callable
    taking the request. Set jwks_available=False to simulate an outage.
    """

    def __init__(self, jwks: dict):
        self.jwks = jwks
        self.jwks_available = True
        self.token_response = httpx.Response(400, json={"error": "invalid_grant"})
        self.logout_response = httpx.Response(204)
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/certs"):
            if not self.jwks_available:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json=self.jwks)
        if path.endswith("/token"):
            return self._answer(self.token_response, request)
        if path.endswith("/logout"):
            return self._answer(self.logout_response, request)
        return httpx.Response(404)

    @staticmethod
    def _answer(response, request: httpx.Request) -> httpx.Response:
        return response(request) if callable(response) else response

    def requests_to(self, suffix: str) -> List[httpx.Request]:
        return [request for request in self.requests if request.url.path.endswith(suffix)]

    @staticmethod
    def form(request: httpx.Request) -> dict:
        return dict(parse_qsl(request.content.decode()))


@pytest.fixture
def keycloak_settings() -> KeycloakSettings:
    return KeycloakSettings(
        base_url=KEYCLOAK_BASE_URL,
        realm=REALM,
        client_id=CLIENT_ID,
        client_secret="s3cret",
    )


@pytest.fixture
def fake_idp(jwks) -> FakeIdentityProvider:
    return FakeIdentityProvider(jwks)


@pytest_asyncio.fixture
async def keycloak(keycloak_settings, fake_idp):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_idp.handler))
    client = KeycloakClient(keycloak_settings, http_client=http_client)
    yield client
    await http_client.aclose()


# =============================================================================
# Database
# =============================================================================

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Async SQLite engine with all tables created. One database file per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ome-test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_context() -> Callable[..., RequestContext]:
    """Factory for an authenticated request context pinned to a tenant."""

    def _make(
        tenant_id: Optional[uuid.UUID] = TENANT_A,
        user_id: Optional[str] = "admin-1",
        roles=("OmeAdmin",),
    ) -> RequestContext:
        security = RequestSecurityContext(
            user_id=user_id,
            roles=roles,
            tenant_id=tenant_id,
            authenticated=user_id is not None,
        )
        return RequestContext(security, TenantResolver.fixed(tenant_id))

    return _make


@pytest_asyncio.fixture
async def tenants(session_factory):
    """Seed Acme (active), Globex (active) and an inactive tenant."""
    async with session_factory() as session:
        repo = TenantRepository(session, RequestContext.system())
        acme = await repo.add(Tenant(
            id=TENANT_A,
            name="acme-corp",
            display_name="Acme Corp",
            keycloak_group_id="grp-acme",
            is_active=True,
            connection_string="postgresql://acme:secret@db/acme",
        ))
        globex = await repo.add(Tenant(
            id=TENANT_B,
            name="globex",
            display_name="Globex",
            keycloak_group_id="grp-globex",
            is_active=True,
        ))
        dormant = await repo.add(Tenant(
            name="dormant",
            display_name="Dormant Ltd",
            keycloak_group_id="grp-dormant",
            is_active=False,
        ))
        await session.commit()
    return {"acme": acme, "globex": globex, "dormant": dormant}


# =============================================================================
# Application
# =============================================================================

@pytest.fixture
def app_settings(keycloak_settings) -> AppSettings:
    return AppSettings(
        keycloak=keycloak_settings,
        database=DatabaseSettings(url="sqlite+aiosqlite://"),
        frontend=FrontendSettings(
            base_url=FRONTEND_URL,
            cors_origins=[FRONTEND_URL],
            session_secret_key="test-session-secret",
            cookie_secure=True,
        ),
        env="test",
    )


@pytest.fixture
def broadcaster() -> TenantEventBroadcaster:
    return TenantEventBroadcaster()


@pytest.fixture
def dispatcher(broadcaster) -> EventDispatcher:
    dispatcher = EventDispatcher()
    register_default_handlers(dispatcher, broadcaster)
    return dispatcher


@pytest.fixture
def app(app_settings, keycloak, session_factory, dispatcher, broadcaster):
    """
    Application with test collaborators on app.state.

    The lifespan is not run (the httpx ASGI transport does not send lifespan
    events), so the collaborators it would build are attached here.
    """
    from main import create_app

    application = create_app(app_settings)
    application.state.keycloak = keycloak
    application.state.dispatcher = dispatcher
    application.state.broadcaster = broadcaster
    application.state.tenant_directory = TenantDirectory(session_factory)

    async def _test_session():
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_db_session] = _test_session
    return application


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="https://testserver") as client:
        yield client
