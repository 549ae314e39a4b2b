"""
Browser login flow against Keycloak (authorization code flow).

Endpoints:
- GET  /auth/login?redirectUri=   -> redirect to the Keycloak authorization URL
- GET  /auth/callback?code=&state= -> exchange code, set auth cookies, redirect to the frontend
- GET  /auth/logout?redirectUri=  -> revoke refresh token, clear cookies and session
- POST /auth/refresh              -> new access token from the refresh_token cookie

State and the requested redirect are kept in the server-side session
(SessionMiddleware). Tokens live only in HttpOnly cookies.
"""

import logging
import secrets
from typing import Optional
from urllib.parse import quote_plus

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from ome.api.dependencies import get_app_settings, get_keycloak
from ome.auth.exceptions import ExchangeFailed, MalformedToken
from ome.auth.jwt import tenant_from_groups
from ome.auth.keycloak_client import KeycloakClient
from ome.auth.middleware import ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE, TENANT_COOKIE
from ome.config.settings import AppSettings
from ome.platform.errors import AuthenticationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

SESSION_STATE_KEY = "oauth_state"
SESSION_REDIRECT_KEY = "redirect_uri"
DASHBOARD_PATH = "/dashboard"
AUTH_COOKIES = (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE, TENANT_COOKIE)


class InvalidStateError(Exception):
    """Raised when the callback state does not match the session."""


# --- Response Models ---


class RefreshResponse(BaseModel):
    success: bool
    expires_in: int


# --- Helpers ---


def _frontend_base(request: Request, settings: AppSettings) -> str:
    base = settings.frontend.base_url or f"{request.url.scheme}://{request.url.netloc}"
    return base.rstrip("/")


def _error_redirect(frontend: str, message: str) -> RedirectResponse:
    return RedirectResponse(
        f"{frontend}/auth/error?message={quote_plus(message)}",
        status_code=status.HTTP_302_FOUND,
    )


def _callback_url(request: Request) -> str:
    return str(request.url_for("auth_callback"))


def resolve_post_login_path(stored_redirect: Optional[str], tenant: str) -> str:
    """
    Pick the frontend path after login.

    /dashboard (or nothing) goes to the tenant dashboard; a /dashboard... path
    that does not mention the tenant is rewritten to the tenant dashboard;
    any other relative path is kept. Absolute URLs are not followed.
    """
    if not stored_redirect or stored_redirect == DASHBOARD_PATH:
        return f"{DASHBOARD_PATH}/{tenant}"
    if not stored_redirect.startswith("/") or stored_redirect.startswith("//"):
        return f"{DASHBOARD_PATH}/{tenant}"
    if stored_redirect.startswith(DASHBOARD_PATH) and tenant not in stored_redirect:
        return f"{DASHBOARD_PATH}/{tenant}"
    return stored_redirect


def _set_auth_cookie(response: Response, name: str, value: str, settings: AppSettings) -> None:
    response.set_cookie(
        name,
        value,
        max_age=settings.frontend.cookie_max_age_seconds,
        httponly=True,
        secure=settings.frontend.cookie_secure,
        samesite=settings.frontend.cookie_samesite,
        path="/",
    )


def _clear_auth_cookies(response: Response, settings: AppSettings) -> None:
    for name in AUTH_COOKIES:
        response.delete_cookie(
            name,
            path="/",
            httponly=True,
            secure=settings.frontend.cookie_secure,
            samesite=settings.frontend.cookie_samesite,
        )


# --- Endpoints ---


@router.get("/login")
async def login(
    request: Request,
    redirect_uri: Optional[str] = Query(None, alias="redirectUri"),
    keycloak: KeycloakClient = Depends(get_keycloak),
):
    """Start the authorization code flow."""
    state = secrets.token_urlsafe(32)
    request.session[SESSION_STATE_KEY] = state
    request.session[SESSION_REDIRECT_KEY] = redirect_uri or ""

    url = keycloak.build_authorization_url(_callback_url(request), state)
    return RedirectResponse(url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


@router.get("/callback", name="auth_callback")
async def callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    keycloak: KeycloakClient = Depends(get_keycloak),
    settings: AppSettings = Depends(get_app_settings),
):
    """
    Finish the authorization code flow.

    Missing groups claim -> /auth/error?message=No+group+found, no cookies set.
    Any other failure -> /auth/error?message=Authentication+failed.
    """
    frontend = _frontend_base(request, settings)

    try:
        stored_state = request.session.pop(SESSION_STATE_KEY, None)
        if stored_state and not secrets.compare_digest(stored_state, state or ""):
            raise InvalidStateError("OAuth state mismatch")
        if not code:
            raise ExchangeFailed(status.HTTP_400_BAD_REQUEST, "Authorization code missing")

        tokens = await keycloak.exchange_code(code, _callback_url(request))
        claims = keycloak.claims(tokens.access_token)

        if not claims.get("groups"):
            logger.warning("Login without groups claim", extra={"user_id": claims.get("sub")})
            return _error_redirect(frontend, "No group found")

        tenant = tenant_from_groups(claims)
        if not tenant:
            logger.warning("Login without company group", extra={"user_id": claims.get("sub")})
            return _error_redirect(frontend, "No company group assigned")

        path = resolve_post_login_path(request.session.pop(SESSION_REDIRECT_KEY, None), tenant)
        response = RedirectResponse(f"{frontend}{path}", status_code=status.HTTP_302_FOUND)
        _set_auth_cookie(response, ACCESS_TOKEN_COOKIE, tokens.access_token, settings)
        if tokens.refresh_token:
            _set_auth_cookie(response, REFRESH_TOKEN_COOKIE, tokens.refresh_token, settings)
        _set_auth_cookie(response, TENANT_COOKIE, tenant, settings)

        logger.info("Login completed", extra={"user_id": claims.get("sub"), "tenant": tenant})
        return response

    except Exception as e:
        logger.error(
            "Authentication callback failed",
            extra={"error_type": type(e).__name__, "error": str(e)},
        )
        return _error_redirect(frontend, "Authentication failed")


@router.get("/logout")
async def logout(
    request: Request,
    redirect_uri: Optional[str] = Query(None, alias="redirectUri"),
    settings: AppSettings = Depends(get_app_settings),
):
    """
    Log out: revoke the refresh token, clear auth cookies and session.

    Idempotent: without cookies or session it still clears and redirects.
    """
    frontend = _frontend_base(request, settings)
    keycloak: Optional[KeycloakClient] = getattr(request.app.state, "keycloak", None)

    try:
        refresh_token = request.cookies.get(REFRESH_TOKEN_COOKIE)
        if refresh_token and keycloak is not None:
            await keycloak.revoke(refresh_token)
        request.session.clear()

        target = redirect_uri if redirect_uri and redirect_uri.startswith("/") and not redirect_uri.startswith("//") else "/"
        response = RedirectResponse(f"{frontend}{target}", status_code=status.HTTP_302_FOUND)
    except Exception as e:
        logger.error("Logout failed", extra={"error_type": type(e).__name__, "error": str(e)})
        response = _error_redirect(frontend, "Logout failed")

    _clear_auth_cookies(response, settings)
    return response


@router.post("/refresh", response_model=RefreshResponse)
async def refresh(
    request: Request,
    response: Response,
    keycloak: KeycloakClient = Depends(get_keycloak),
    settings: AppSettings = Depends(get_app_settings),
):
    """
    Refresh the access token from the refresh_token cookie.

    Returns 401 if there is no refresh token or Keycloak rejects it.
    """
    refresh_token = request.cookies.get(REFRESH_TOKEN_COOKIE)
    if not refresh_token:
        raise AuthenticationError("No refresh token")

    try:
        access_token = await keycloak.refresh_token(refresh_token)
        info = keycloak.token_info(access_token)
    except (ExchangeFailed, MalformedToken):
        raise AuthenticationError("Token refresh failed")

    _set_auth_cookie(response, ACCESS_TOKEN_COOKIE, access_token, settings)
    return RefreshResponse(success=True, expires_in=info.expires_in)
