"""
Organization model for the task management backend.

Organizations form a strictly two-level tree: a root (parent) organization
may own child organizations, and a child may not own further children.
The depth rule is enforced at creation time in
app.features.organizations.hierarchy.validate_parent.
"""
from sqlalchemy import String, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin, generate_ulid


class Organization(Base, TimestampMixin):
    """
    Organization owning users and tasks.

    `level` is derived from `parent_id` and never stored.
    """
    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Null for a root organization
    parent_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("organizations.id"),
        nullable=True,
        index=True
    )

    # Relationships
    parent: Mapped["Organization | None"] = relationship(
        "Organization",
        remote_side="Organization.id",
        back_populates="children",
        lazy="selectin"
    )

    children: Mapped[list["Organization"]] = relationship(
        "Organization",
        back_populates="parent",
        lazy="selectin"
    )

    @property
    def level(self) -> int:
        return 1 if self.parent_id is None else 2

    def is_child_of(self, organization_id: str) -> bool:
        return self.parent_id == organization_id

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name!r}, parent_id={self.parent_id})>"
