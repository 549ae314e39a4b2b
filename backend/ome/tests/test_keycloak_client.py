"""
Tests for the Keycloak client.

Covers authorization URL construction, code exchange, refresh, revocation
and token validation (signature, issuer, audience, expiry, JWKS outages).
"""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from ome.auth.exceptions import ExchangeFailed, KeycloakNotConfigured, MalformedToken, UpstreamUnavailable
from ome.auth.keycloak_client import KeycloakClient
from ome.config.settings import KeycloakSettings
from ome.tests.conftest import CLIENT_ID, ISSUER, TENANT_A


def _token_response(access_token: str, refresh_token: str = "refresh-1") -> httpx.Response:
    return httpx.Response(
        200,
        json={"access_token": access_token, "refresh_token": refresh_token, "expires_in": 300},
    )


class TestConfiguration:
    """Client construction and endpoint URLs."""

    def test_missing_settings_raise(self):
        """An incomplete configuration is rejected with the missing variable names."""
        settings = KeycloakSettings(base_url="https://sso.ome.test", realm=None, client_id="")

        with pytest.raises(KeycloakNotConfigured) as exc_info:
            KeycloakClient(settings)

        assert exc_info.value.missing == ["KEYCLOAK_REALM", "KEYCLOAK_CLIENT_ID"]

    @pytest.mark.asyncio
    async def test_endpoint_urls(self, keycloak):
        """Endpoints hang off the realm's openid-connect path."""
        assert keycloak.issuer == ISSUER
        assert keycloak.token_url == f"{ISSUER}/protocol/openid-connect/token"
        assert keycloak.logout_url == f"{ISSUER}/protocol/openid-connect/logout"
        assert keycloak.jwks_url == f"{ISSUER}/protocol/openid-connect/certs"


class TestAuthorizationUrl:
    """Authorization URL for the code flow."""

    @pytest.mark.asyncio
    async def test_contains_code_flow_parameters(self, keycloak):
        """The URL carries response_type, client_id, redirect_uri, state and scope."""
        url = keycloak.build_authorization_url("https://api.ome.test/auth/callback", "state-123")

        parsed = urlparse(url)
        params = parse_qs(parsed.query)
        assert url.startswith(f"{ISSUER}/protocol/openid-connect/auth?")
        assert params["response_type"] == ["code"]
        assert params["client_id"] == [CLIENT_ID]
        assert params["redirect_uri"] == ["https://api.ome.test/auth/callback"]
        assert params["state"] == ["state-123"]
        assert params["scope"] == ["openid profile email"]

    @pytest.mark.asyncio
    async def test_values_are_percent_encoded(self, keycloak):
        """Spaces become %20 and reserved characters in the redirect are escaped."""
        url = keycloak.build_authorization_url("https://api.ome.test/auth/callback?x=1&y=2", "a b")

        assert "scope=openid%20profile%20email" in url
        assert "state=a%20b" in url
        assert "redirect_uri=https%3A%2F%2Fapi.ome.test%2Fauth%2Fcallback%3Fx%3D1%26y%3D2" in url
        assert "+" not in url


class TestExchangeCode:
    """Authorization code exchange."""

    @pytest.mark.asyncio
    async def test_exchange_returns_token_pair(self, keycloak, fake_idp, make_token):
        """A 200 response yields the access and refresh tokens."""
        access_token = make_token()
        fake_idp.token_response = _token_response(access_token)

        tokens = await keycloak.exchange_code("auth-code", "https://api.ome.test/auth/callback")

        assert tokens.access_token == access_token
        assert tokens.refresh_token == "refresh-1"
        assert tokens.expires_in == 300

        form = fake_idp.form(fake_idp.requests_to("/token")[0])
        assert form == {
            "grant_type": "authorization_code",
            "code": "auth-code",
            "redirect_uri": "https://api.ome.test/auth/callback",
            "client_id": CLIENT_ID,
            "client_secret": "s3cret",
        }

    @pytest.mark.asyncio
    async def test_non_success_status_raises_exchange_failed(self, keycloak, fake_idp):
        """A 400 from the token endpoint is an ExchangeFailed carrying the status."""
        fake_idp.token_response = httpx.Response(400, json={"error": "invalid_grant"})

        with pytest.raises(ExchangeFailed) as exc_info:
            await keycloak.exchange_code("bad-code", "https://api.ome.test/auth/callback")

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_response_without_access_token_raises(self, keycloak, fake_idp):
        """A 200 without access_token is not a usable response."""
        fake_idp.token_response = httpx.Response(200, json={"token_type": "Bearer"})

        with pytest.raises(ExchangeFailed):
            await keycloak.exchange_code("code", "https://api.ome.test/auth/callback")

    @pytest.mark.asyncio
    async def test_network_error_raises_upstream_unavailable(self, keycloak, fake_idp):
        """Connection failures surface as UpstreamUnavailable, not ExchangeFailed."""

        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        fake_idp.token_response = refuse

        with pytest.raises(UpstreamUnavailable):
            await keycloak.exchange_code("code", "https://api.ome.test/auth/callback")


class TestRefreshAndRevoke:
    """Refresh token grant and logout."""

    @pytest.mark.asyncio
    async def test_refresh_returns_new_access_token(self, keycloak, fake_idp, make_token):
        """The refresh grant posts the refresh token and returns the new access token."""
        new_token = make_token()
        fake_idp.token_response = _token_response(new_token)

        assert await keycloak.refresh_token("refresh-1") == new_token

        form = fake_idp.form(fake_idp.requests_to("/token")[0])
        assert form["grant_type"] == "refresh_token"
        assert form["refresh_token"] == "refresh-1"

    @pytest.mark.asyncio
    async def test_refresh_rejected_raises(self, keycloak, fake_idp):
        """An expired refresh token is rejected with ExchangeFailed."""
        fake_idp.token_response = httpx.Response(400, json={"error": "invalid_grant"})

        with pytest.raises(ExchangeFailed):
            await keycloak.refresh_token("expired")

    @pytest.mark.asyncio
    async def test_revoke_posts_to_logout_endpoint(self, keycloak, fake_idp):
        """Revocation posts the refresh token with the client credentials."""
        await keycloak.revoke("refresh-1")

        form = fake_idp.form(fake_idp.requests_to("/logout")[0])
        assert form["refresh_token"] == "refresh-1"
        assert form["client_id"] == CLIENT_ID

    @pytest.mark.asyncio
    async def test_revoke_never_raises(self, keycloak, fake_idp):
        """Logout completes even when the identity provider is down."""

        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        fake_idp.logout_response = refuse

        await keycloak.revoke("refresh-1")

    @pytest.mark.asyncio
    async def test_revoke_tolerates_error_status(self, keycloak, fake_idp):
        """A non-success logout answer is logged, not raised."""
        fake_idp.logout_response = httpx.Response(500)

        await keycloak.revoke("refresh-1")


class TestValidate:
    """Token validation against the JWKS."""

    @pytest.mark.asyncio
    async def test_valid_token(self, keycloak, make_token):
        """A correctly signed, unexpired token with the right iss/aud validates."""
        assert await keycloak.validate(make_token()) is True

    @pytest.mark.asyncio
    async def test_expired_token(self, keycloak, make_token):
        """An expired token is rejected (beyond the clock skew tolerance)."""
        assert await keycloak.validate(make_token(expires_in=-120)) is False

    @pytest.mark.asyncio
    async def test_wrong_issuer(self, keycloak, make_token):
        """A token from another realm is rejected."""
        assert await keycloak.validate(make_token(iss="https://sso.ome.test/realms/other")) is False

    @pytest.mark.asyncio
    async def test_wrong_audience(self, keycloak, make_token):
        """A token minted for another client is rejected."""
        assert await keycloak.validate(make_token(aud="other-client")) is False

    @pytest.mark.asyncio
    async def test_issuer_check_can_be_disabled(self, fake_idp, make_token):
        """With issuer validation off, a foreign issuer is accepted."""
        settings = KeycloakSettings(
            base_url="https://sso.ome.test",
            realm="ome",
            client_id=CLIENT_ID,
            validate_issuer=False,
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(fake_idp.handler)) as http:
            client = KeycloakClient(settings, http_client=http)
            assert await client.validate(make_token(iss="https://elsewhere.test")) is True

    @pytest.mark.asyncio
    async def test_wrong_signing_key(self, keycloak, make_token):
        """A token signed by an unknown key is rejected."""
        other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        assert await keycloak.validate(make_token(key=other_key)) is False

    @pytest.mark.asyncio
    async def test_unknown_kid_refetches_jwks_once(self, keycloak, fake_idp, make_token):
        """An unknown kid forces one JWKS refresh before failing."""
        assert await keycloak.validate(make_token(kid="rotated-key")) is False
        assert len(fake_idp.requests_to("/certs")) == 2

    @pytest.mark.asyncio
    async def test_jwks_is_cached(self, keycloak, fake_idp, make_token):
        """The key set is fetched once for repeated validations."""
        await keycloak.validate(make_token())
        await keycloak.validate(make_token())

        assert len(fake_idp.requests_to("/certs")) == 1

    @pytest.mark.asyncio
    async def test_unreachable_jwks(self, keycloak, fake_idp, make_token):
        """A JWKS outage means False, never an exception."""
        fake_idp.jwks_available = False

        assert await keycloak.validate(make_token()) is False

    @pytest.mark.asyncio
    async def test_garbage_and_empty_tokens(self, keycloak):
        """Non-JWT input is rejected."""
        assert await keycloak.validate("not-a-jwt") is False
        assert await keycloak.validate("") is False


class TestTokenInfo:
    """Decode-only claim extraction."""

    @pytest.mark.asyncio
    async def test_token_info_reads_claims(self, keycloak, make_token):
        """token_info exposes the identity claims without verification."""
        info = keycloak.token_info(make_token(roles=["OmeAdmin", "OmeTrainee"]))

        assert info.user_id == "kc-user-1"
        assert info.username == "jdoe"
        assert info.email == "jdoe@acme.test"
        assert info.tenant_uuid == TENANT_A
        assert info.roles == ["OmeAdmin", "OmeTrainee"]
        assert not info.is_expired
        assert 0 < info.expires_in <= 300

    @pytest.mark.asyncio
    async def test_token_info_accepts_bearer_prefix(self, keycloak, make_token):
        """A leading 'Bearer ' is stripped."""
        assert keycloak.token_info(f"Bearer {make_token()}").user_id == "kc-user-1"

    @pytest.mark.asyncio
    async def test_malformed_token_raises(self, keycloak):
        """An undecodable token raises MalformedToken."""
        with pytest.raises(MalformedToken):
            keycloak.token_info("definitely.not.jwt")
