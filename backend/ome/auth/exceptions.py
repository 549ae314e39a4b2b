"""
Exceptions raised by the identity provider client.

Transport code maps these to stable error codes; the message text is for logs
and is never returned to clients verbatim.
"""

from typing import Optional


class KeycloakError(Exception):
    """Base exception for identity provider errors."""

    def __init__(self, message: str, error_code: str = "keycloak_error"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class UpstreamUnavailable(KeycloakError):
    """Raised when the identity provider cannot be reached (network error, timeout)."""

    def __init__(self, message: str = "Identity provider unavailable"):
        super().__init__(message, error_code="upstream_unavailable")


class ExchangeFailed(KeycloakError):
    """Raised when the identity provider answers a token request with a non-success status."""

    def __init__(self, status_code: int, message: Optional[str] = None):
        super().__init__(
            message or f"Token request rejected with status {status_code}",
            error_code="exchange_failed",
        )
        self.status_code = status_code


class MalformedToken(KeycloakError):
    """Raised when a token cannot be decoded at all."""

    def __init__(self, message: str = "Token could not be decoded"):
        super().__init__(message, error_code="malformed_token")


class KeycloakNotConfigured(KeycloakError):
    """Raised when the identity provider settings are incomplete."""

    def __init__(self, missing: list):
        super().__init__(
            f"Identity provider not configured, missing: {', '.join(missing)}",
            error_code="config_error",
        )
        self.missing = missing
