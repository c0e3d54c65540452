"""
Organization feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.exceptions import ConflictError
from app.features.audit.models import AuditAction
from app.features.organizations.models import Organization
from app.features.organizations.schemas import (
    OrganizationCreate,
    OrganizationUpdate,
    OrganizationResponse,
    OrganizationPublic,
    OrganizationHierarchy,
)
from app.features.organizations.dependencies import get_organization_by_id
from app.features.organizations.hierarchy import (
    validate_parent,
    ensure_deletable,
    delete_scoped_assignments,
    get_level,
)
from app.features.permissions.dependencies import authorize, enforce, record_decision, require_permission
from app.features.permissions.models import RoleName, PermissionAction, PermissionResource
from app.features.permissions.schemas import AccessDecision
from app.features.permissions.scope import accessible_organization_ids, scope_clause
from app.features.users.auth import Principal
from app.features.users.dependencies import get_current_principal
from app.utils import get_logger


log = get_logger(__name__)

router = APIRouter(tags=["organizations"])


async def _ensure_unique_name(db: AsyncSession, name: str, exclude_id: str | None = None) -> None:
    stmt = select(Organization.id).where(Organization.name == name)
    if exclude_id:
        stmt = stmt.where(Organization.id != exclude_id)
    if await db.scalar(stmt) is not None:
        raise ConflictError("Organization with this name already exists")


@router.get("/", response_model=list[OrganizationResponse])
async def list_organizations(
    request: Request,
    principal: Annotated[Principal, Depends(get_current_principal)],
    decision: Annotated[AccessDecision, Depends(require_permission(
        PermissionAction.READ, PermissionResource.ORGANIZATION, roles=[RoleName.OWNER, RoleName.ADMIN]
    ))],
    db: Annotated[AsyncSession, Depends(get_db)],
    skip: int = 0,
    limit: int = 50
):
    """List the organizations the caller can reach (owners and admins)."""
    organization_ids = await accessible_organization_ids(db, principal.subject_id)
    result = await db.execute(
        select(Organization)
        .where(scope_clause(Organization.id, organization_ids))
        .order_by(Organization.name)
        .offset(skip)
        .limit(limit)
    )
    organizations = result.scalars().all()

    await record_decision(db, decision, AuditAction.READ, request, details={"count": len(organizations)})
    return organizations


@router.post("/", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
async def create_organization(
    org_data: OrganizationCreate,
    request: Request,
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a root organization, or a child of a reachable root organization (owner only)."""
    decision = await authorize(
        db,
        principal,
        PermissionAction.CREATE,
        PermissionResource.ORGANIZATION,
        target_organization_id=org_data.parent_id,
        required_roles=[RoleName.OWNER],
    )
    await enforce(db, decision, request)

    # Depth check runs before the new row exists
    if org_data.parent_id:
        await validate_parent(db, org_data.parent_id)
    await _ensure_unique_name(db, org_data.name)

    new_org = Organization(**org_data.model_dump())
    db.add(new_org)
    await db.commit()
    await db.refresh(new_org)

    log.info(f"Organization {new_org.id} created by {principal.subject_id} (parent={new_org.parent_id})")
    await record_decision(
        db, decision, AuditAction.CREATE, request,
        resource_id=new_org.id,
        details={"name": new_org.name, "parent_id": new_org.parent_id},
    )
    return new_org


@router.get("/{organization_id}", response_model=OrganizationResponse)
async def get_organization(
    request: Request,
    organization: Annotated[Organization, Depends(get_organization_by_id)],
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get organization by ID."""
    decision = await authorize(
        db, principal, PermissionAction.READ, PermissionResource.ORGANIZATION,
        target_organization_id=organization.id,
    )
    await enforce(db, decision, request, resource_id=organization.id)

    await record_decision(db, decision, AuditAction.READ, request, resource_id=organization.id)
    return organization


@router.get("/{organization_id}/hierarchy", response_model=OrganizationHierarchy)
async def get_organization_hierarchy(
    request: Request,
    organization: Annotated[Organization, Depends(get_organization_by_id)],
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get an organization with its parent, direct children and level."""
    decision = await authorize(
        db, principal, PermissionAction.READ, PermissionResource.ORGANIZATION,
        target_organization_id=organization.id,
    )
    await enforce(db, decision, request, resource_id=organization.id)

    parent = await db.get(Organization, organization.parent_id) if organization.parent_id else None
    result = await db.execute(
        select(Organization)
        .where(Organization.parent_id == organization.id)
        .order_by(Organization.name)
    )
    children = result.scalars().all()

    await record_decision(db, decision, AuditAction.READ, request, resource_id=organization.id)
    return OrganizationHierarchy(
        organization=OrganizationResponse.model_validate(organization),
        level=await get_level(db, organization.id),
        parent=OrganizationPublic.model_validate(parent) if parent else None,
        children=[OrganizationPublic.model_validate(child) for child in children],
    )


@router.patch("/{organization_id}", response_model=OrganizationResponse)
async def update_organization(
    update_data: OrganizationUpdate,
    request: Request,
    organization: Annotated[Organization, Depends(get_organization_by_id)],
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update organization information (owner only)."""
    decision = await authorize(
        db, principal, PermissionAction.UPDATE, PermissionResource.ORGANIZATION,
        target_organization_id=organization.id,
        required_roles=[RoleName.OWNER],
    )
    await enforce(db, decision, request, resource_id=organization.id)

    # Update only provided fields
    update_dict = update_data.model_dump(exclude_unset=True)
    if update_dict.get("name") and update_dict["name"] != organization.name:
        await _ensure_unique_name(db, update_dict["name"], exclude_id=organization.id)

    for field, value in update_dict.items():
        setattr(organization, field, value)

    await db.commit()
    await db.refresh(organization)

    await record_decision(
        db, decision, AuditAction.UPDATE, request,
        resource_id=organization.id,
        details={"changes": update_dict},
    )
    return organization


@router.delete("/{organization_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_organization(
    request: Request,
    organization: Annotated[Organization, Depends(get_organization_by_id)],
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete an organization without users, child organizations or tasks (owner only)."""
    decision = await authorize(
        db, principal, PermissionAction.DELETE, PermissionResource.ORGANIZATION,
        target_organization_id=organization.id,
        required_roles=[RoleName.OWNER],
    )
    await enforce(db, decision, request, resource_id=organization.id)

    await ensure_deletable(db, organization)

    organization_id, name = organization.id, organization.name
    removed_assignments = await delete_scoped_assignments(db, organization)
    await db.delete(organization)
    await db.commit()

    log.info(f"Organization {organization_id} deleted by {principal.subject_id}")
    await record_decision(
        db, decision, AuditAction.DELETE, request,
        resource_id=organization_id,
        details={"name": name, "removed_assignments": removed_assignments},
    )
