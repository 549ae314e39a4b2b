"""Health check endpoint (no authentication)."""

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request):
    state = request.app.state
    return {
        "status": "ok",
        "auth_configured": getattr(state, "keycloak", None) is not None,
        "database_configured": getattr(state, "tenant_directory", None) is not None,
    }
