"""
Shared FastAPI dependencies for application collaborators.

Process-wide collaborators live on app.state and are created in the app
lifespan (see backend/main.py):
- app.state.keycloak: KeycloakClient, or None when not configured
- app.state.dispatcher: EventDispatcher with handlers registered
- app.state.broadcaster: TenantEventBroadcaster
- app.state.tenant_directory: TenantDirectory
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ome.auth.keycloak_client import KeycloakClient
from ome.config.settings import AppSettings, get_settings
from ome.database.session import get_db_session
from ome.events.dispatcher import EventDispatcher
from ome.platform.errors import ServiceUnavailableError
from ome.platform.tenant_context import RequestContext, get_request_context
from ome.platform.tenant_directory import TenantDirectory
from ome.repositories.tenant_repository import TenantRepository
from ome.services.user_service import UserService


def get_keycloak(request: Request) -> KeycloakClient:
    keycloak = getattr(request.app.state, "keycloak", None)
    if keycloak is None:
        raise ServiceUnavailableError("Authentication service not configured")
    return keycloak


def get_dispatcher(request: Request) -> EventDispatcher:
    return request.app.state.dispatcher


def get_tenant_directory(request: Request) -> TenantDirectory:
    directory = getattr(request.app.state, "tenant_directory", None)
    if directory is None:
        raise ServiceUnavailableError("Database not configured")
    return directory


def get_tenant_repository(
    session: AsyncSession = Depends(get_db_session),
    context: RequestContext = Depends(get_request_context),
) -> TenantRepository:
    return TenantRepository(session, context)


def get_user_service(
    session: AsyncSession = Depends(get_db_session),
    context: RequestContext = Depends(get_request_context),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
) -> UserService:
    return UserService(session, context, dispatcher)


def get_app_settings(request: Request) -> AppSettings:
    return getattr(request.app.state, "settings", None) or get_settings()
