"""
Explicit, idempotent initialization of roles, permissions and demo data.

Never run by the application itself. Invoke it once per database:

    uv run python -m scripts.seed_data

Every step is an upsert, so running it again creates nothing new.
"""
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.organizations.models import Organization
from app.features.permissions.catalog import (
    PERMISSION_CATALOG,
    ROLE_LEVELS,
    ROLE_DISPLAY_NAMES,
    default_role_permissions,
)
from app.features.permissions.models import Permission, Role, RoleName, UserRole
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


class SeedUser(BaseModel):
    email: EmailStr
    first_name: str
    last_name: str
    role: RoleName


def _demo_users() -> list[SeedUser]:
    return [
        SeedUser(email="owner@example.com", first_name="Owner", last_name="User", role=RoleName.OWNER),
        SeedUser(email="admin@example.com", first_name="Admin", last_name="User", role=RoleName.ADMIN),
        SeedUser(email="viewer@example.com", first_name="Viewer", last_name="User", role=RoleName.VIEWER),
    ]


class SeedConfig(BaseModel):
    """What to seed besides the fixed roles and permission catalog."""
    organization_name: str = "Default Organization"
    organization_description: str | None = "Default organization for initial setup"
    users: list[SeedUser] = Field(default_factory=_demo_users)


class SeedSummary(BaseModel):
    """Rows created by one run. All zero when the database was already seeded."""
    roles_created: int = 0
    permissions_created: int = 0
    role_permissions_added: int = 0
    organizations_created: int = 0
    users_created: int = 0
    role_assignments_created: int = 0


async def seed_roles(db: AsyncSession, summary: SeedSummary) -> dict[RoleName, Role]:
    log.info("Creating default roles...")
    roles: dict[RoleName, Role] = {}

    for role_name, level in ROLE_LEVELS.items():
        display_name, description = ROLE_DISPLAY_NAMES[role_name]

        result = await db.execute(select(Role).where(Role.name == role_name))
        role = result.scalars().first()

        if role is None:
            role = Role(
                name=role_name,
                display_name=display_name,
                description=description,
                level=level,
                permissions=[],
            )
            db.add(role)
            summary.roles_created += 1
            log.info(f"Created role: {role_name.value}")
        else:
            # Levels are fixed; correct drift
            role.level = level

        roles[role_name] = role

    await db.flush()
    return roles


async def seed_permissions(db: AsyncSession, summary: SeedSummary) -> dict[tuple, Permission]:
    log.info("Creating permission catalog...")
    permissions_map: dict[tuple, Permission] = {}

    for action, resource, display_name, description in PERMISSION_CATALOG:
        result = await db.execute(
            select(Permission).where(Permission.action == action, Permission.resource == resource)
        )
        permission = result.scalars().first()

        if permission is None:
            permission = Permission(
                action=action,
                resource=resource,
                display_name=display_name,
                description=description,
            )
            db.add(permission)
            summary.permissions_created += 1
            log.info(f"Created permission: {action.value}:{resource.value}")
        else:
            log.debug(f"Permission '{action.value}:{resource.value}' already exists, skipping")

        permissions_map[(action, resource)] = permission

    await db.flush()
    return permissions_map


async def seed_role_permissions(
    db: AsyncSession,
    roles: dict[RoleName, Role],
    permissions_map: dict[tuple, Permission],
    summary: SeedSummary
) -> None:
    """Add each role's default permissions that it does not hold yet."""
    for role_name, role in roles.items():
        held = {(p.action, p.resource) for p in role.permissions}
        for pair in sorted(default_role_permissions(role_name) - held):
            role.permissions.append(permissions_map[pair])
            summary.role_permissions_added += 1

    await db.flush()


async def seed_organization(db: AsyncSession, config: SeedConfig, summary: SeedSummary) -> Organization:
    result = await db.execute(select(Organization).where(Organization.name == config.organization_name))
    organization = result.scalars().first()

    if organization is None:
        organization = Organization(name=config.organization_name, description=config.organization_description)
        db.add(organization)
        await db.flush()
        summary.organizations_created += 1
        log.info(f"Created default organization: {organization.id}")

    return organization


async def seed_users(
    db: AsyncSession,
    config: SeedConfig,
    organization: Organization,
    roles: dict[RoleName, Role],
    summary: SeedSummary
) -> None:
    for seed_user in config.users:
        result = await db.execute(select(User).where(User.email == seed_user.email))
        user = result.scalars().first()

        if user is None:
            user = User(
                email=seed_user.email,
                first_name=seed_user.first_name,
                last_name=seed_user.last_name,
                organization_id=organization.id,
            )
            db.add(user)
            await db.flush()
            summary.users_created += 1
            log.info(f"Created {seed_user.role.value} user: {seed_user.email}")

        role = roles[seed_user.role]
        result = await db.execute(
            select(UserRole).where(
                UserRole.user_id == user.id,
                UserRole.role_id == role.id,
                UserRole.organization_id == user.organization_id,
            )
        )
        user_role = result.scalars().first()

        if user_role is None:
            db.add(UserRole(user_id=user.id, role=role, organization_id=user.organization_id, is_active=True))
            summary.role_assignments_created += 1
        elif not user_role.is_active:
            user_role.is_active = True

    await db.flush()


async def seed_database(db: AsyncSession, config: SeedConfig | None = None) -> SeedSummary:
    """
    Seed roles, the permission catalog, default role permissions, the
    default organization and the configured users, in that order.

    Commits once at the end; rolls back everything on failure.
    """
    config = config or SeedConfig()
    summary = SeedSummary()

    try:
        roles = await seed_roles(db, summary)
        permissions_map = await seed_permissions(db, summary)
        await seed_role_permissions(db, roles, permissions_map, summary)
        organization = await seed_organization(db, config, summary)
        await seed_users(db, config, organization, roles, summary)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    log.info(f"Seeding finished: {summary.model_dump()}")
    return summary
