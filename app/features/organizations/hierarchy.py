"""
Organization hierarchy resolver.

Organizations form a two-level tree. `validate_parent` is the creation-time
depth check; the lookups below rely on it and never walk more than one hop.
"""
from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, ConflictError, HierarchyViolationError
from app.features.organizations.models import Organization
from app.features.permissions.models import UserRole
from app.features.users.models import User
from app.features.tasks.models import Task
from app.utils import get_logger


log = get_logger(__name__)


async def get_parent_id(db: AsyncSession, organization_id: str) -> str | None:
    """Parent of an organization, None for a root. Raises NotFoundError for an unknown id."""
    result = await db.execute(
        select(Organization.id, Organization.parent_id).where(Organization.id == organization_id)
    )
    row = result.one_or_none()
    if row is None:
        raise NotFoundError("Organization not found")
    return row.parent_id


async def get_child_ids(db: AsyncSession, organization_id: str) -> set[str]:
    """Direct children of an organization. Empty for a child or an unknown id."""
    result = await db.execute(
        select(Organization.id).where(Organization.parent_id == organization_id)
    )
    return set(result.scalars().all())


async def get_level(db: AsyncSession, organization_id: str) -> int:
    parent_id = await get_parent_id(db, organization_id)
    return 1 if parent_id is None else 2


async def validate_parent(db: AsyncSession, parent_id: str) -> Organization:
    """
    Check that `parent_id` may own a new child organization.

    Must be called before the new Organization is added to the session.

    Raises:
        NotFoundError: parent does not exist
        HierarchyViolationError: parent is itself a child organization
    """
    parent = await db.get(Organization, parent_id)
    if parent is None:
        raise NotFoundError("Parent organization not found")

    if parent.parent_id is not None:
        log.info(f"Rejected third-level organization under {parent_id}")
        raise HierarchyViolationError()

    return parent


async def ensure_deletable(db: AsyncSession, organization: Organization) -> None:
    """
    Referential guard run before deleting an organization.

    Raises:
        ConflictError: the organization still has users, child organizations or tasks
    """
    checks = (
        (User, User.organization_id, "Cannot delete organization with existing users"),
        (Organization, Organization.parent_id, "Cannot delete organization with child organizations"),
        (Task, Task.organization_id, "Cannot delete organization with existing tasks"),
    )
    for model, column, message in checks:
        count = await db.scalar(
            select(func.count()).select_from(model).where(column == organization.id)
        )
        if count:
            raise ConflictError(message)


async def delete_scoped_assignments(db: AsyncSession, organization: Organization) -> int:
    """Remove role assignments scoped to an organization that is being deleted. Does not commit."""
    result = await db.execute(
        delete(UserRole).where(UserRole.organization_id == organization.id)
    )
    if result.rowcount:
        log.info(f"Removed {result.rowcount} role assignments scoped to organization {organization.id}")
    return result.rowcount
