"""
Permission, Role and UserRole models for the fixed three-tier RBAC.

- Roles are the closed set Owner(3) > Admin(2) > Viewer(1)
- Permissions are (action, resource) pairs, widened by the `manage` and `all` wildcards
- Users hold any number of active role assignments, optionally scoped to an organization
"""
import enum
from sqlalchemy import (
    String, ForeignKey, Table, Column, Text, Integer, Boolean,
    UniqueConstraint, Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin, generate_ulid


class RoleName(str, enum.Enum):
    OWNER = "owner"
    ADMIN = "admin"
    VIEWER = "viewer"


class PermissionAction(str, enum.Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    MANAGE = "manage"  # Subsumes the four CRUD actions


class PermissionResource(str, enum.Enum):
    TASK = "task"
    USER = "user"
    ORGANIZATION = "organization"
    AUDIT_LOG = "audit_log"
    ALL = "all"  # Subsumes every resource


# ============================================================================
# Association Tables for Many-to-Many Relationships
# ============================================================================

role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", String(26), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", String(26), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)


# ============================================================================
# Core Models
# ============================================================================

class Permission(Base, TimestampMixin):
    """
    A capability on a resource.

    Examples:
    - action=read, resource=task
    - action=manage, resource=user (create/read/update/delete users)
    - action=manage, resource=all (everything)
    """
    __tablename__ = "permissions"
    __table_args__ = (
        UniqueConstraint("action", "resource", name="uq_permissions_action_resource"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    action: Mapped[PermissionAction] = mapped_column(SQLEnum(PermissionAction), nullable=False, index=True)
    resource: Mapped[PermissionResource] = mapped_column(SQLEnum(PermissionResource), nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    roles: Mapped[list["Role"]] = relationship(
        "Role",
        secondary=role_permissions,
        back_populates="permissions",
        lazy="selectin"
    )

    @property
    def identifier(self) -> str:
        return f"{self.action.value}:{self.resource.value}"

    def __repr__(self) -> str:
        return f"<Permission(id={self.id}, identifier={self.identifier})>"


class Role(Base, TimestampMixin):
    """
    One of the three fixed roles with its integer level.
    """
    __tablename__ = "roles"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[RoleName] = mapped_column(SQLEnum(RoleName), unique=True, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Higher level = more authority (Owner: 3, Admin: 2, Viewer: 1)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    permissions: Mapped[list["Permission"]] = relationship(
        "Permission",
        secondary=role_permissions,
        back_populates="roles",
        lazy="selectin"
    )

    def has_higher_or_equal_level(self, other: "Role") -> bool:
        return self.level >= other.level

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name.value!r}, level={self.level})>"


class UserRole(Base, TimestampMixin):
    """
    Role assignment for a user.

    `organization_id` optionally scopes the grant to one organization;
    null means the grant applies in any context of the user.
    Deactivated assignments are kept (is_active=False) rather than deleted.
    """
    __tablename__ = "user_roles"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    user_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    role_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    organization_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    user: Mapped["User"] = relationship("User", back_populates="user_roles")  # type: ignore
    role: Mapped["Role"] = relationship("Role", lazy="selectin")

    def __repr__(self) -> str:
        return (
            f"<UserRole(id={self.id}, user_id={self.user_id}, role_id={self.role_id}, "
            f"org_id={self.organization_id}, active={self.is_active})>"
        )
