"""
Tests for claim extraction and the request security context.
"""

import uuid

import pytest

from ome.auth.context import RequestSecurityContext
from ome.auth.jwt import (
    build_identity,
    extract_roles,
    extract_tenant_claim,
    tenant_from_groups,
    token_info_from_claims,
)
from ome.constants.permissions import USER_ADMIN_ROLES, RoleType, parse_role, parse_roles


class TestClaimExtraction:
    """Claims -> TokenInfo."""

    def test_tenant_claim_prefers_tenant_id(self):
        assert extract_tenant_claim({"tenant_id": "a", "tenantId": "b"}) == "a"
        assert extract_tenant_claim({"tenantId": "b"}) == "b"
        assert extract_tenant_claim({}) is None

    def test_roles_from_every_claim_shape(self):
        """roles, legacy role and realm_access.roles are merged without duplicates."""
        claims = {
            "roles": ["OmeAdmin", "OmeTrainee"],
            "role": "OmeAdmin",
            "realm_access": {"roles": ["offline_access", "OmeTechnician"]},
        }

        assert extract_roles(claims) == ["OmeAdmin", "OmeTrainee", "offline_access", "OmeTechnician"]

    def test_single_string_role(self):
        assert extract_roles({"role": "OmeTrainee"}) == ["OmeTrainee"]

    def test_missing_exp_means_no_expiry(self):
        info = token_info_from_claims({"sub": "u1"})

        assert info.expires_at is None
        assert info.is_expired is False
        assert info.expires_in == 0

    def test_non_uuid_tenant_claim(self):
        """A tenant claim that is not a UUID is kept as text but has no UUID form."""
        info = token_info_from_claims({"sub": "u1", "tenant_id": "acme"})

        assert info.tenant_id == "acme"
        assert info.tenant_uuid is None


class TestTenantFromGroups:
    """Tenant identifier from the groups path."""

    def test_last_segment_of_first_group(self):
        assert tenant_from_groups({"groups": ["/customers/acme-corp", "/customers/globex"]}) == "acme-corp"

    def test_string_claim(self):
        assert tenant_from_groups({"groups": "/customers/acme-corp"}) == "acme-corp"

    def test_group_without_parent(self):
        assert tenant_from_groups({"groups": ["acme-corp"]}) == "acme-corp"

    def test_missing_or_empty(self):
        assert tenant_from_groups({}) is None
        assert tenant_from_groups({"groups": []}) is None
        assert tenant_from_groups({"groups": ["/customers/"]}) is None


class TestBuildIdentity:
    """TokenInfo -> RequestSecurityContext."""

    def test_identity_from_token(self):
        tenant_id = uuid.uuid4()
        info = token_info_from_claims({
            "sub": "u1",
            "preferred_username": "jdoe",
            "email": "jdoe@acme.test",
            "tenant_id": str(tenant_id),
            "roles": ["OmeAdmin", "Unknown"],
        })

        security = build_identity(info, "acme-corp")

        assert security.is_authenticated
        assert security.user_id == "u1"
        assert security.tenant_id == tenant_id
        assert security.tenant_key == "acme-corp"
        # Unknown role strings are carried verbatim
        assert security.roles == frozenset({"OmeAdmin", "Unknown"})

    def test_no_subject_is_anonymous(self):
        security = build_identity(token_info_from_claims({"roles": ["OmeAdmin"]}))

        assert not security.is_authenticated


class TestRequestSecurityContext:
    """Role checks and the manual override path."""

    def test_anonymous(self):
        security = RequestSecurityContext.anonymous()

        assert not security.is_authenticated
        assert security.user_id is None
        assert security.roles == frozenset()

    def test_is_in_role_exact_match(self):
        """Role names are matched exactly; case variants never match."""
        security = RequestSecurityContext(user_id="u1", roles=["omeadmin", "OmeTrainee"], authenticated=True)

        assert security.is_in_role(RoleType.OME_TRAINEE)
        assert security.is_in_role("OmeTrainee")
        assert not security.is_in_role(RoleType.OME_ADMIN)
        assert not security.is_in_role("omeadmin")

    def test_unknown_role_grants_nothing(self):
        """A string that is not a known role is never matched, even when present."""
        security = RequestSecurityContext(user_id="u1", roles=["SuperGod"], authenticated=True)

        assert "SuperGod" in security.roles
        assert not security.is_in_role("SuperGod")

    def test_manual_user_id_authenticates(self):
        security = RequestSecurityContext.anonymous()
        security.set_user_id("ws-user")

        assert security.is_authenticated
        assert security.user_id == "ws-user"

    def test_manual_user_id_wins_over_principal(self):
        security = RequestSecurityContext(user_id="principal", authenticated=True)
        security.set_user_id("manual")

        assert security.user_id == "manual"

    def test_empty_manual_user_id_rejected(self):
        with pytest.raises(ValueError):
            RequestSecurityContext.anonymous().set_user_id("")

    def test_roles_are_union_of_principal_and_manual(self):
        security = RequestSecurityContext(user_id="u1", roles=["OmeTrainee"], authenticated=True)
        security.add_role(RoleType.OME_SUPER_USER)

        assert security.roles == frozenset({"OmeTrainee", "OmeSuperUser"})
        assert security.has_any_role(USER_ADMIN_ROLES)

    def test_contexts_do_not_share_state(self):
        first = RequestSecurityContext.anonymous()
        second = RequestSecurityContext.anonymous()
        first.add_role(RoleType.OME_ADMIN)

        assert second.roles == frozenset()

    def test_manual_role_without_user_matches_nothing(self):
        """A role added before any user id is set does not make the caller a member."""
        security = RequestSecurityContext.anonymous()
        security.add_role(RoleType.OME_ADMIN)

        assert not security.is_authenticated
        assert "OmeAdmin" in security.roles
        assert not security.is_in_role(RoleType.OME_ADMIN)

        security.set_user_id("ws-user")
        assert security.is_in_role(RoleType.OME_ADMIN)


class TestRoleParsing:
    """String -> RoleType."""

    def test_parse_role(self):
        assert parse_role("OmeTechnicianManager") is RoleType.OME_TECHNICIAN_MANAGER

    def test_parse_role_unknown_raises(self):
        with pytest.raises(ValueError):
            parse_role("OMEADMIN")

    def test_parse_roles_drops_unknown_and_duplicates(self):
        assert parse_roles(["OmeAdmin", "nope", "OmeAdmin", "OmeTrainee"]) == [
            RoleType.OME_ADMIN,
            RoleType.OME_TRAINEE,
        ]
