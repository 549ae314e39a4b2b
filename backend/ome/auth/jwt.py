"""
JWT claims handling for Keycloak-issued tokens.

This module provides:
- TokenInfo: the transient view of a bearer token's claims
- Claim extraction (tenant claim, roles, groups path)
- build_identity(): TokenInfo -> RequestSecurityContext

IMPORTANT: Keycloak is the authentication authority.
This module does NOT issue or verify tokens. Signature checks live in
KeycloakClient.validate(); everything here is decode-only.

JWT Claims Used:
- sub: Keycloak user id
- preferred_username, email
- exp: Expiration timestamp
- tenant_id (or legacy tenantId): tenant UUID
- roles (or legacy role): string or list; realm_access.roles is merged in
- groups: "/parentGroup/<tenant>" paths
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import jwt

from ome.auth.context import RequestSecurityContext
from ome.auth.exceptions import MalformedToken

logger = logging.getLogger(__name__)

TENANT_CLAIMS = ("tenant_id", "tenantId")
ROLE_CLAIMS = ("roles", "role")


@dataclass(frozen=True)
class TokenInfo:
    """Decoded (not verified) token claims."""

    user_id: Optional[str]
    username: Optional[str]
    email: Optional[str]
    tenant_id: Optional[str]
    expires_at: Optional[datetime]
    roles: List[str] = field(default_factory=list)

    @property
    def tenant_uuid(self) -> Optional[uuid.UUID]:
        return parse_uuid(self.tenant_id)

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return datetime.now(timezone.utc) >= self.expires_at

    @property
    def expires_in(self) -> int:
        """Seconds until expiry, never negative."""
        if self.expires_at is None:
            return 0
        remaining = (self.expires_at - datetime.now(timezone.utc)).total_seconds()
        return max(0, int(remaining))


def parse_uuid(value: Any) -> Optional[uuid.UUID]:
    if value is None or value == "":
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def decode_unverified(token: str) -> Dict[str, Any]:
    """
    Decode a JWT payload without verifying the signature.

    Raises:
        MalformedToken: If the token is not a decodable JWT
    """
    if not token:
        raise MalformedToken("Token is required")
    if token.startswith("Bearer "):
        token = token[7:]
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        raise MalformedToken(f"Token could not be decoded: {e}")
    if not isinstance(claims, dict):
        raise MalformedToken("Token payload is not an object")
    return claims


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None]
    return []


def extract_tenant_claim(claims: Dict[str, Any]) -> Optional[str]:
    for name in TENANT_CLAIMS:
        value = claims.get(name)
        if value:
            return str(value)
    return None


def extract_roles(claims: Dict[str, Any]) -> List[str]:
    """Collect role strings verbatim, deduplicated in claim order."""
    roles: List[str] = []
    candidates = []
    for name in ROLE_CLAIMS:
        candidates.extend(_as_list(claims.get(name)))
    realm_access = claims.get("realm_access")
    if isinstance(realm_access, dict):
        candidates.extend(_as_list(realm_access.get("roles")))

    for role in candidates:
        if role and role not in roles:
            roles.append(role)
    return roles


def token_info_from_claims(claims: Dict[str, Any]) -> TokenInfo:
    exp = claims.get("exp")
    expires_at = None
    if isinstance(exp, (int, float)):
        expires_at = datetime.fromtimestamp(exp, tz=timezone.utc)

    return TokenInfo(
        user_id=claims.get("sub"),
        username=claims.get("preferred_username"),
        email=claims.get("email"),
        tenant_id=extract_tenant_claim(claims),
        expires_at=expires_at,
        roles=extract_roles(claims),
    )


def tenant_from_groups(claims: Dict[str, Any]) -> Optional[str]:
    """
    Extract the tenant identifier from the groups claim.

    Groups look like "/parentGroup/acme-corp"; the segment after the final "/"
    is the tenant. When the claim is a list, the first entry is used.
    Returns None when the claim is missing or the last segment is empty;
    callers must deny or redirect rather than continue without a tenant.
    """
    groups = _as_list(claims.get("groups"))
    if not groups:
        return None
    tenant = groups[0].rsplit("/", 1)[-1].strip()
    return tenant or None


def build_identity(
    token_info: TokenInfo,
    groups_tenant: Optional[str] = None,
) -> RequestSecurityContext:
    """
    Build the request identity from decoded claims.

    Role strings are copied verbatim; they are only compared against RoleType
    at authorization time.
    """
    return RequestSecurityContext(
        user_id=token_info.user_id,
        username=token_info.username,
        email=token_info.email,
        roles=token_info.roles,
        tenant_id=token_info.tenant_uuid,
        tenant_key=groups_tenant,
        authenticated=token_info.user_id is not None,
    )
