"""
Keycloak client: bridge to the realm's OpenID Connect endpoints.

This module handles:
- Authorization URL construction (authorization code flow)
- Code exchange and token refresh (form-encoded POSTs to the token endpoint)
- Logout / refresh token revocation
- JWKS fetching and token validation (signature, issuer, audience, expiry)
- Decode-only claim extraction (token_info)

validate() and token_info() are deliberately separate: callers that already
trust a token (it was validated earlier in the same pipeline) call token_info()
alone and skip the JWKS round-trip.

SECURITY:
- Keycloak is the ONLY authentication authority
- validate() never raises on a bad token; False means "forbid access"
- Tokens and client secrets are never logged
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote, urlencode

import httpx
import jwt
from jwt.exceptions import PyJWKSetError

from ome.auth.exceptions import ExchangeFailed, KeycloakNotConfigured, UpstreamUnavailable
from ome.auth.jwt import TokenInfo, decode_unverified, token_info_from_claims
from ome.config.settings import KeycloakSettings

logger = logging.getLogger(__name__)

SCOPE = "openid profile email"
SIGNING_ALGORITHMS = ["RS256", "RS384", "RS512"]


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: Optional[str]
    expires_in: Optional[int] = None


class KeycloakClient:
    """
    Async client for one Keycloak realm.

    Usage:
        client = KeycloakClient(settings.keycloak)
        url = client.build_authorization_url(redirect_uri, state)
        tokens = await client.exchange_code(code, redirect_uri)
        if await client.validate(tokens.access_token):
            info = client.token_info(tokens.access_token)
    """

    # JWKS cache duration in seconds
    JWKS_CACHE_DURATION = 3600  # 1 hour

    # Clock skew tolerance in seconds (for exp validation)
    CLOCK_SKEW_SECONDS = 30

    def __init__(
        self,
        settings: KeycloakSettings,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not settings.is_configured:
            raise KeycloakNotConfigured(settings.missing)

        self._settings = settings
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)

        self._jwks: Optional[jwt.PyJWKSet] = None
        self._jwks_fetched_at: float = 0

        logger.info(
            "Initialized KeycloakClient",
            extra={"realm_url": self.realm_url, "client_id": settings.client_id},
        )

    @property
    def realm_url(self) -> str:
        return self._settings.realm_url

    @property
    def issuer(self) -> str:
        return self.realm_url

    @property
    def client_id(self) -> str:
        return self._settings.client_id

    @property
    def _openid_url(self) -> str:
        return f"{self.realm_url}/protocol/openid-connect"

    @property
    def token_url(self) -> str:
        return f"{self._openid_url}/token"

    @property
    def logout_url(self) -> str:
        return f"{self._openid_url}/logout"

    @property
    def jwks_url(self) -> str:
        return f"{self._openid_url}/certs"

    def _client_credentials(self) -> Dict[str, str]:
        credentials = {"client_id": self._settings.client_id}
        if self._settings.client_secret:
            credentials["client_secret"] = self._settings.client_secret
        return credentials

    def build_authorization_url(self, redirect_uri: str, state: str) -> str:
        """
        Build the authorization endpoint URL for the code flow.

        Every value is percent-encoded; spaces in the scope become %20.
        """
        params = {
            "response_type": "code",
            "client_id": self._settings.client_id,
            "redirect_uri": redirect_uri,
            "state": state,
            "scope": SCOPE,
        }
        return f"{self._openid_url}/auth?{urlencode(params, quote_via=quote, safe='')}"

    async def _post_token_endpoint(self, form: Dict[str, str], grant_type: str) -> Dict[str, Any]:
        try:
            response = await self._http.post(self.token_url, data=form)
        except httpx.RequestError as e:
            logger.error(
                "Token endpoint request error",
                extra={"grant_type": grant_type, "error": str(e)},
            )
            raise UpstreamUnavailable(f"Token endpoint unreachable: {type(e).__name__}")

        if not response.is_success:
            logger.warning(
                "Token endpoint rejected request",
                extra={"grant_type": grant_type, "status_code": response.status_code},
            )
            raise ExchangeFailed(response.status_code)

        try:
            payload = response.json()
        except ValueError:
            raise ExchangeFailed(response.status_code, "Token response is not JSON")

        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise ExchangeFailed(response.status_code, "Token response missing access_token")
        return payload

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenPair:
        """
        Exchange an authorization code for tokens.

        Raises:
            ExchangeFailed: Non-2xx response from the token endpoint
            UpstreamUnavailable: Network error or timeout
        """
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            **self._client_credentials(),
        }
        payload = await self._post_token_endpoint(form, "authorization_code")

        logger.info("Authorization code exchanged", extra={"client_id": self.client_id})
        return TokenPair(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_in=payload.get("expires_in"),
        )

    async def refresh_token(self, refresh_token: str) -> str:
        """
        Get a new access token using a refresh token.

        Raises:
            ExchangeFailed: Non-2xx response from the token endpoint
            UpstreamUnavailable: Network error or timeout
        """
        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            **self._client_credentials(),
        }
        payload = await self._post_token_endpoint(form, "refresh_token")
        return payload["access_token"]

    async def revoke(self, refresh_token: str) -> None:
        """
        End the Keycloak session for a refresh token.

        Never raises: logout must complete for the client even if the identity
        provider cannot be reached. Cancellation still propagates.
        """
        form = {"refresh_token": refresh_token, **self._client_credentials()}
        try:
            response = await self._http.post(self.logout_url, data=form)
            if not response.is_success:
                logger.warning(
                    "Logout endpoint rejected revocation",
                    extra={"status_code": response.status_code},
                )
        except Exception as e:
            logger.warning("Failed to revoke refresh token", extra={"error": str(e)})

    async def _get_jwks(self, force: bool = False) -> jwt.PyJWKSet:
        now = time.monotonic()
        if (
            force
            or self._jwks is None
            or now - self._jwks_fetched_at > self.JWKS_CACHE_DURATION
        ):
            response = await self._http.get(self.jwks_url)
            response.raise_for_status()
            self._jwks = jwt.PyJWKSet.from_dict(response.json())
            self._jwks_fetched_at = now
            logger.debug("Refreshed JWKS", extra={"jwks_url": self.jwks_url})
        return self._jwks

    async def _signing_key(self, kid: Optional[str]) -> jwt.PyJWK:
        jwks = await self._get_jwks()
        for refreshed in (False, True):
            if refreshed:
                # Unknown kid: keys may have rotated since the last fetch
                jwks = await self._get_jwks(force=True)
            for key in jwks.keys:
                if kid is None or key.key_id == kid:
                    return key
        raise PyJWKSetError(f"No signing key for kid {kid}")

    async def validate(self, token: str) -> bool:
        """
        Verify a token's signature, issuer, audience and expiry.

        Returns False on any failure, including failure to fetch the JWKS.
        """
        if not token:
            return False

        try:
            header = jwt.get_unverified_header(token)
            signing_key = await self._signing_key(header.get("kid"))
            jwt.decode(
                token,
                signing_key.key,
                algorithms=SIGNING_ALGORITHMS,
                issuer=self.issuer if self._settings.validate_issuer else None,
                audience=self.client_id if self._settings.validate_audience else None,
                options={
                    "verify_signature": True,
                    "verify_exp": True,
                    "verify_iss": self._settings.validate_issuer,
                    "verify_aud": self._settings.validate_audience,
                    "require": ["exp"],
                },
                leeway=self.CLOCK_SKEW_SECONDS,
            )
            return True

        except jwt.ExpiredSignatureError:
            logger.info("Token has expired")
        except jwt.InvalidIssuerError:
            logger.warning("Invalid token issuer")
        except jwt.InvalidAudienceError:
            logger.warning("Invalid token audience")
        except jwt.InvalidTokenError as e:
            logger.warning("Invalid token", extra={"error": str(e)})
        except PyJWKSetError as e:
            logger.warning("No usable signing key", extra={"error": str(e)})
        except httpx.HTTPError as e:
            logger.error("Failed to fetch JWKS", extra={"jwks_url": self.jwks_url, "error": str(e)})
        except Exception as e:
            logger.error("Unexpected validation error", extra={"error": str(e)})
        return False

    def token_info(self, token: str) -> TokenInfo:
        """
        Decode claims without verifying the token.

        Raises:
            MalformedToken: If the token cannot be decoded
        """
        return token_info_from_claims(decode_unverified(token))

    def claims(self, token: str) -> Dict[str, Any]:
        """Decode-only access to the raw claims (groups, custom claims)."""
        return decode_unverified(token)

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()
