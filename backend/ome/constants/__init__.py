from ome.constants.permissions import USER_ADMIN_ROLES, RoleType, parse_role, parse_roles

__all__ = ["RoleType", "USER_ADMIN_ROLES", "parse_role", "parse_roles"]
