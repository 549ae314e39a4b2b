"""
Authentication module for Keycloak-based authentication.

This module provides:
- Authorization code flow and token refresh/revocation against Keycloak
- JWT validation using the realm JWKS
- Claim extraction into a per-request security context
- HTTP middleware that attaches the request context

SECURITY NOTES:
- Keycloak is the ONLY authentication authority
- NO custom tokens are issued by this application
- Tokens are kept in HttpOnly cookies, never in response bodies
"""

from ome.auth.context import RequestSecurityContext
from ome.auth.exceptions import (
    ExchangeFailed,
    KeycloakError,
    KeycloakNotConfigured,
    MalformedToken,
    UpstreamUnavailable,
)
from ome.auth.keycloak_client import KeycloakClient, TokenPair

__all__ = [
    "RequestSecurityContext",
    "KeycloakClient",
    "TokenPair",
    "KeycloakError",
    "KeycloakNotConfigured",
    "ExchangeFailed",
    "MalformedToken",
    "UpstreamUnavailable",
]
