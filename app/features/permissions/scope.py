"""
Scope filter for listing queries.

Every list endpoint restricts rows to the organizations returned by
`accessible_organization_ids`, applied through `scope_clause`.
"""
from typing import Collection
from sqlalchemy import false
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.organizations.hierarchy import get_child_ids
from app.features.permissions.dependencies import can_access_organization, get_active_roles
from app.features.permissions.models import RoleName
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


async def accessible_organization_ids(db: AsyncSession, principal_id: str) -> set[str]:
    """
    Organization ids a principal may list.

    The home organization, plus its reachable direct children when the
    principal holds an active Owner role. Empty when the principal cannot
    be resolved.
    """
    user = await db.get(User, principal_id, populate_existing=True)
    if user is None:
        log.debug(f"Unresolvable principal {principal_id} - empty scope")
        return set()

    organization_ids = {user.organization_id}

    roles = await get_active_roles(db, principal_id, user.organization_id)
    if any(role.name == RoleName.OWNER for role in roles):
        for child_id in await get_child_ids(db, user.organization_id):
            if await can_access_organization(db, principal_id, child_id):
                organization_ids.add(child_id)

    return organization_ids


def scope_clause(column, organization_ids: Collection[str]):
    """`column IN (...)`, or an always-false clause for an empty scope."""
    if not organization_ids:
        return false()
    return column.in_(organization_ids)
