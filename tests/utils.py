"""
Helpers for building organizations, users and tasks in tests.
"""
from sqlalchemy import select, func

from app.features.audit.models import AuditLog
from app.features.organizations.models import Organization
from app.features.permissions.dependencies import assign_role
from app.features.tasks.models import Task
from app.features.users.auth import Principal, issue_identity_token
from app.features.users.models import User


async def create_organization(db, name, parent=None):
    organization = Organization(name=name, parent_id=parent.id if parent else None)
    db.add(organization)
    await db.commit()
    return organization


async def create_user(db, email, organization, role=None, scoped=True):
    """Create a user in `organization`, optionally with an org-scoped (or global) role."""
    user = User(
        email=email,
        first_name=email.split("@")[0].title(),
        last_name="Test",
        organization_id=organization.id,
    )
    db.add(user)
    await db.commit()
    if role is not None:
        await assign_role(db, user.id, role, organization.id if scoped else None)
    return user


async def create_task(db, organization, creator, title="Task"):
    task = Task(title=title, organization_id=organization.id, created_by_id=creator.id)
    db.add(task)
    await db.commit()
    return task


async def count_audit_rows(db, **criteria) -> int:
    stmt = select(func.count()).select_from(AuditLog)
    for column, value in criteria.items():
        stmt = stmt.where(getattr(AuditLog, column) == value)
    return await db.scalar(stmt)


def principal_for(user, roles=()) -> Principal:
    return Principal(
        subject_id=user.id,
        organization_id=user.organization_id,
        email=user.email,
        roles=set(roles),
    )


def auth_headers(user) -> dict[str, str]:
    token = issue_identity_token(user.id, user.organization_id)
    return {"Authorization": f"Bearer {token}"}
