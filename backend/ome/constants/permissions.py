"""
Canonical role names for the backend.

IMPORTANT: This is the single source of truth for role names.
All role checks MUST reference these constants.

Roles are defined in Keycloak and copied verbatim from the token claims.
There is no mapping table: a role string from the token either equals one of
the RoleType values or it never matches any check. Unknown strings are kept
on the identity but grant nothing.
"""

import logging
from enum import Enum
from typing import FrozenSet, Iterable, List

logger = logging.getLogger(__name__)


class RoleType(str, Enum):
    """
    Closed enumeration of roles known to the application.

    Keep in sync with the Keycloak realm role configuration.
    """
    OME_ADMIN = "OmeAdmin"
    OME_DEPUTY_ADMIN = "OmeDeputyAdmin"
    OME_OFFICE_WORKER = "OmeOfficeWorker"
    OME_SUPER_USER = "OmeSuperUser"
    OME_TECH_USER = "OmeTechUser"
    OME_TECHNICIAN = "OmeTechnician"
    OME_TECHNICIAN_MANAGER = "OmeTechnicianManager"
    OME_TRAINEE = "OmeTrainee"


# Roles allowed to manage users and subscribe to user events
USER_ADMIN_ROLES: FrozenSet[RoleType] = frozenset({
    RoleType.OME_ADMIN,
    RoleType.OME_SUPER_USER,
})

_ROLE_VALUES = {role.value: role for role in RoleType}


def is_known_role(name: str) -> bool:
    """Check whether a role string is one of the RoleType values (case-sensitive)."""
    return name in _ROLE_VALUES


def parse_role(name: str) -> RoleType:
    """
    Parse a role string into RoleType.

    Raises:
        ValueError: If the string is not a known role
    """
    try:
        return _ROLE_VALUES[name]
    except KeyError:
        raise ValueError(f"Unknown role: {name}")


def parse_roles(names: Iterable[str]) -> List[RoleType]:
    """
    Parse role strings, dropping unknown ones.

    Order is preserved and duplicates removed.
    """
    parsed: List[RoleType] = []
    for name in names:
        role = _ROLE_VALUES.get(name)
        if role is None:
            logger.info("Ignoring unknown role", extra={"role": name})
            continue
        if role not in parsed:
            parsed.append(role)
    return parsed
