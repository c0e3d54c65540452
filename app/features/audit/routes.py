"""
Audit log routes (owners and admins only).
"""
import math
from datetime import date
from typing import Annotated
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db
from app.features.audit.dependencies import query_audit_logs, export_audit_logs
from app.features.audit.models import AuditAction
from app.features.audit.schemas import AuditLogFilters, AuditLogListResponse, AuditLogResponse
from app.features.permissions.dependencies import record_decision, require_permission
from app.features.permissions.models import RoleName, PermissionAction, PermissionResource
from app.features.permissions.schemas import AccessDecision
from app.features.permissions.scope import accessible_organization_ids
from app.features.users.auth import Principal
from app.features.users.dependencies import get_current_principal


router = APIRouter(tags=["audit-log"])

require_audit_read = require_permission(
    PermissionAction.READ, PermissionResource.AUDIT_LOG, roles=[RoleName.OWNER, RoleName.ADMIN]
)


@router.get("/", response_model=AuditLogListResponse)
async def list_audit_logs(
    request: Request,
    filters: Annotated[AuditLogFilters, Depends()],
    principal: Annotated[Principal, Depends(get_current_principal)],
    decision: Annotated[AccessDecision, Depends(require_audit_read)],
    db: Annotated[AsyncSession, Depends(get_db)],
    page: int = Query(1, ge=1),
    page_size: int = Query(config.AUDIT_PAGE_SIZE, ge=1, le=500)
):
    """Newest-first audit logs of the organizations the caller can reach."""
    organization_ids = await accessible_organization_ids(db, principal.subject_id)
    logs, total = await query_audit_logs(db, organization_ids, filters, page=page, page_size=page_size)

    await record_decision(
        db, decision, AuditAction.READ, request,
        details={"filters": filters.model_dump(exclude_none=True), "page": page, "count": len(logs)},
    )
    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(entry) for entry in logs],
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total else 0,
    )


@router.get("/export")
async def export_audit_log_csv(
    request: Request,
    filters: Annotated[AuditLogFilters, Depends()],
    principal: Annotated[Principal, Depends(get_current_principal)],
    decision: Annotated[AccessDecision, Depends(require_audit_read)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Download matching audit logs as CSV."""
    organization_ids = await accessible_organization_ids(db, principal.subject_id)
    content, count = await export_audit_logs(db, organization_ids, filters)

    await record_decision(
        db, decision, AuditAction.READ, request,
        details={"action": "export", "count": count},
    )
    filename = f"audit-logs-{date.today().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
