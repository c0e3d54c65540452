"""
User model with ULID primary keys.
"""
import enum
from sqlalchemy import String, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin, generate_ulid


class UserStatus(str, enum.Enum):
    """Account status."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class User(Base, TimestampMixin):
    """
    User belonging to exactly one home organization.

    Credentials live with the external authentication collaborator; this
    table only holds the profile and the home organization used by the
    authorization core.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    status: Mapped[UserStatus] = mapped_column(
        SQLEnum(UserStatus),
        default=UserStatus.ACTIVE,
        nullable=False
    )

    # Home organization
    organization_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organizations.id"),
        nullable=False,
        index=True
    )

    # Relationships
    user_roles: Mapped[list["UserRole"]] = relationship(  # type: ignore
        "UserRole",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @property
    def role_names(self) -> list[str]:
        """Names of the roles held through active assignments."""
        return sorted({user_role.role.name.value for user_role in self.user_roles if user_role.is_active})

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r}, org_id={self.organization_id})>"
