"""
Tests for the listing scope filter.
"""
from sqlalchemy import select

from app.features.permissions.dependencies import remove_role
from app.features.permissions.models import RoleName
from app.features.permissions.scope import accessible_organization_ids, scope_clause
from app.features.tasks.models import Task
from tests.utils import create_task


async def test_parent_owner_sees_children(db, world):
    ids = await accessible_organization_ids(db, world.owner_acme.id)
    assert ids == {world.acme.id, world.eng.id, world.ops.id}


async def test_admin_and_viewer_see_home_only(db, world):
    assert await accessible_organization_ids(db, world.admin_acme.id) == {world.acme.id}
    assert await accessible_organization_ids(db, world.viewer_acme.id) == {world.acme.id}


async def test_child_owner_sees_own_organization(db, world):
    assert await accessible_organization_ids(db, world.owner_eng.id) == {world.eng.id}


async def test_unknown_principal_has_empty_scope(db, world):
    assert await accessible_organization_ids(db, "01ZZZZZZZZZZZZZZZZZZZZZZZZ") == set()


async def test_owner_without_active_role_loses_children(db, world):
    await remove_role(db, world.owner_acme.id, RoleName.OWNER)
    assert await accessible_organization_ids(db, world.owner_acme.id) == {world.acme.id}


async def test_scope_clause_filters_rows(db, world):
    await create_task(db, world.acme, world.owner_acme, "acme task")
    await create_task(db, world.eng, world.owner_acme, "eng task")
    await create_task(db, world.globex, world.owner_globex, "globex task")

    ids = await accessible_organization_ids(db, world.owner_acme.id)
    result = await db.execute(select(Task.title).where(scope_clause(Task.organization_id, ids)))
    assert set(result.scalars().all()) == {"acme task", "eng task"}


async def test_empty_scope_matches_nothing(db, world):
    await create_task(db, world.acme, world.owner_acme)
    result = await db.execute(select(Task).where(scope_clause(Task.organization_id, set())))
    assert result.scalars().all() == []
