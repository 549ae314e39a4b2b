"""
FastAPI application entry point for the Ome identity backend.

Authentication is attached to every request by AuthenticationMiddleware.
Routes decide via RBAC dependencies whether anonymous callers are allowed.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from ome.api.routes import auth, health, realtime, tenants, users
from ome.auth.keycloak_client import KeycloakClient
from ome.auth.middleware import AuthenticationMiddleware
from ome.config.settings import AppSettings, get_settings
from ome.database.session import dispose_engine, get_session_factory
from ome.events.dispatcher import EventDispatcher
from ome.events.handlers import register_default_handlers
from ome.platform.errors import register_exception_handlers
from ome.platform.logging import install_tenant_filter
from ome.platform.tenant_directory import TenantDirectory
from ome.services.realtime import TenantEventBroadcaster

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - [%(tenant_id)s] %(message)s'
)
install_tenant_filter()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings: AppSettings = app.state.settings
    logging.getLogger().setLevel(settings.log_level)
    logger.info("Starting Ome API", extra={"env": settings.env})

    # Keycloak is optional: without it every caller is anonymous and
    # /auth/* endpoints return 503.
    app.state.keycloak = None
    if settings.keycloak.is_configured:
        app.state.keycloak = KeycloakClient(settings.keycloak)
        logger.info("Keycloak authentication configured", extra={"realm_url": settings.keycloak.realm_url})
    else:
        logger.warning(
            f"Keycloak authentication not configured (missing: {settings.keycloak.missing}). "
            "All requests are anonymous and /auth endpoints will return 503."
        )

    app.state.tenant_directory = None
    if settings.database.is_configured:
        app.state.tenant_directory = TenantDirectory(get_session_factory())
        logger.info("Database configured")
    else:
        logger.error(
            "Database not configured. Set DATABASE_URL or DB_HOST/DB_NAME. "
            "Database-backed endpoints will return 503."
        )

    app.state.broadcaster = TenantEventBroadcaster()
    app.state.dispatcher = EventDispatcher()
    register_default_handlers(app.state.dispatcher, app.state.broadcaster)

    yield

    # Shutdown
    logger.info("Shutting down Ome API")
    if app.state.keycloak is not None:
        await app.state.keycloak.aclose()
    await dispose_engine()


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="Ome API",
        description="Multi-tenant identity backend with Keycloak authentication",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Order matters: the last middleware added runs first. CORS and the
    # session cookie wrap the authentication middleware.
    app.middleware("http")(AuthenticationMiddleware())
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.frontend.session_secret_key,
        same_site="lax",
        https_only=settings.frontend.cookie_secure,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.frontend.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Include health route (no authentication required)
    app.include_router(health.router)

    # Browser login flow
    app.include_router(auth.router)

    # Tenant user management (requires authentication, mutations require admin role)
    app.include_router(users.router)
    app.include_router(tenants.router)

    # Realtime user events (authenticates on the WebSocket handshake)
    app.include_router(realtime.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)
