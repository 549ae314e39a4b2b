"""
User model for the multi-tenant backend.

User is a local, tenant-scoped record for an identity managed by Keycloak.

CRITICAL SECURITY:
- NO PASSWORDS are stored locally - Keycloak is the source of truth for auth
- keycloak_id is globally unique
- username and email are unique per tenant among rows that are not deleted
"""

from sqlalchemy import Boolean, Column, ForeignKey, Index, String, UniqueConstraint, text
from sqlalchemy.orm import relationship

from ome.constants.permissions import RoleType
from ome.db_base import Base
from ome.models.base import GUID, TenantScopedMixin


class User(Base, TenantScopedMixin):
    """Local user record for a Keycloak identity."""

    __tablename__ = "users"

    keycloak_id = Column(
        String(100),
        nullable=False,
        comment="Keycloak subject id (globally unique)"
    )

    username = Column(String(100), nullable=False)
    email = Column(String(256), nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)

    # No delete-orphan cascade: removed roles are soft-deleted like every other row.
    roles = relationship(
        "UserRole",
        back_populates="user",
        cascade="save-update, merge",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("keycloak_id", name="uq_users_keycloak_id"),
        # Partial indexes: soft-deleted rows must not block re-creating a username or email.
        Index(
            "uq_users_tenant_username",
            "tenant_id",
            "username",
            unique=True,
            sqlite_where=text("is_deleted = 0"),
            postgresql_where=text("is_deleted = false"),
        ),
        Index(
            "uq_users_tenant_email",
            "tenant_id",
            "email",
            unique=True,
            sqlite_where=text("is_deleted = 0"),
            postgresql_where=text("is_deleted = false"),
        ),
    )

    @property
    def active_roles(self) -> list["UserRole"]:
        return [role for role in self.roles if not role.is_deleted]

    @property
    def role_names(self) -> list[str]:
        return [role.role_name for role in self.active_roles]

    def add_role(self, role: RoleType) -> None:
        """Add a role if the user does not already have it."""
        if role.value not in self.role_names:
            self.roles.append(UserRole(role_name=role.value, tenant_id=self.tenant_id))

    def remove_role(self, role: RoleType) -> None:
        for existing in self.active_roles:
            if existing.role_name == role.value:
                existing.is_deleted = True

    def replace_roles(self, roles: list[RoleType]) -> None:
        """Soft-delete roles not in ``roles`` and add the missing ones."""
        wanted = {role.value for role in roles}
        for existing in self.active_roles:
            if existing.role_name not in wanted:
                existing.is_deleted = True
        for role in roles:
            self.add_role(role)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username}, tenant_id={self.tenant_id})>"


class UserRole(Base, TenantScopedMixin):
    """A role granted to a user inside one tenant."""

    __tablename__ = "user_roles"

    user_id = Column(
        GUID(),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    role_name = Column(String(50), nullable=False)

    user = relationship("User", back_populates="roles")

    def __repr__(self) -> str:
        return f"<UserRole(user_id={self.user_id}, role_name={self.role_name})>"
