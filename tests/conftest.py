"""
Shared fixtures: a throwaway SQLite database per test, a seeded two-level
organization tree with users in every role, and an HTTP client bound to it.
"""
from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from app.core.database.engine import build_engine, build_session_factory, get_db, init_db
from app.core.database.seed import SeedConfig, seed_database
from app.features.organizations.models import Organization
from app.features.permissions.models import RoleName
from app.main import app
from tests.utils import create_organization, create_user


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def world(db):
    """
    Acme (root) with children Acme-Eng and Acme-Ops, plus an unrelated root Globex.
    """
    await seed_database(db, SeedConfig(organization_name="Acme", users=[]))
    acme = (await db.execute(select(Organization).where(Organization.name == "Acme"))).scalar_one()
    eng = await create_organization(db, "Acme-Eng", parent=acme)
    ops = await create_organization(db, "Acme-Ops", parent=acme)
    globex = await create_organization(db, "Globex")

    return SimpleNamespace(
        acme=acme,
        eng=eng,
        ops=ops,
        globex=globex,
        owner_acme=await create_user(db, "owner@example.com", acme, RoleName.OWNER),
        admin_acme=await create_user(db, "admin@example.com", acme, RoleName.ADMIN),
        viewer_acme=await create_user(db, "viewer@example.com", acme, RoleName.VIEWER),
        admin_eng=await create_user(db, "admin.eng@example.com", eng, RoleName.ADMIN),
        viewer_eng=await create_user(db, "viewer.eng@example.com", eng, RoleName.VIEWER),
        owner_eng=await create_user(db, "owner.eng@example.com", eng, RoleName.OWNER),
        owner_globex=await create_user(db, "owner@globex.example.com", globex, RoleName.OWNER),
        no_role=await create_user(db, "nobody@example.com", acme),
    )


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
