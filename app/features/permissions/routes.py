"""
Permission API routes.

Read-only views of the permission catalog and the fixed roles, plus an
audited permission check for the caller.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.exceptions import PermissionDeniedError
from app.features.audit.models import AuditAction
from app.features.users.auth import Principal
from app.features.users.dependencies import get_current_principal
from app.features.permissions.models import Permission, Role, PermissionAction, PermissionResource
from app.features.permissions.schemas import (
    PermissionResponse,
    RoleWithPermissions,
    PermissionCheckRequest,
    PermissionCheckResponse,
)
from app.features.permissions.dependencies import authorize, enforce, record_decision
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Catalog Routes
# ============================================================================

@router.get("/", response_model=List[PermissionResponse])
async def list_permissions(
    resource: Optional[PermissionResource] = None,
    action: Optional[PermissionAction] = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """List the permission catalog with optional filtering."""
    stmt = select(Permission)

    if resource:
        stmt = stmt.where(Permission.resource == resource)
    if action:
        stmt = stmt.where(Permission.action == action)

    stmt = stmt.order_by(Permission.resource, Permission.action)
    result = await db.execute(stmt)
    return result.scalars().all()


@router.get("/roles", response_model=List[RoleWithPermissions])
async def list_roles(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """List the roles, highest level first, with their permissions."""
    result = await db.execute(select(Role).order_by(Role.level.desc()))
    return result.scalars().all()


# ============================================================================
# Permission Check Routes
# ============================================================================

@router.post("/check", response_model=PermissionCheckResponse)
async def check_permission(
    check_request: PermissionCheckRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Check if the current user has a specific permission. The verdict is audited either way."""
    decision = await authorize(
        db,
        principal,
        check_request.action,
        check_request.resource,
        target_organization_id=check_request.organization_id,
    )

    try:
        await enforce(db, decision, request)
    except PermissionDeniedError:
        return PermissionCheckResponse(has_permission=False, reason=decision.reason)

    await record_decision(db, decision, AuditAction.READ, request, details={"check": decision.context})
    return PermissionCheckResponse(has_permission=True)
