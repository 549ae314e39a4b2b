from ome.api.dependencies.services import (
    get_app_settings,
    get_dispatcher,
    get_keycloak,
    get_tenant_directory,
    get_tenant_repository,
    get_user_service,
)

__all__ = [
    "get_app_settings",
    "get_dispatcher",
    "get_keycloak",
    "get_tenant_directory",
    "get_tenant_repository",
    "get_user_service",
]
