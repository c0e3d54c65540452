"""
Audit recorder.

Append-only writes of access decisions and mutating actions, plus the
scoped read and CSV export paths used by the audit-log routes.
"""
import csv
import io
from datetime import datetime, timezone
from typing import Any, Collection, Dict, Optional
from fastapi import Request
from fastapi.encoders import jsonable_encoder
from sqlalchemy import select, func, false
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.exceptions import StorageFailureError
from app.features.audit.models import AuditLog, AuditAction
from app.features.audit.schemas import AuditLogFilters
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)

CSV_HEADER = ["Date", "Action", "Resource", "User", "Email", "IP Address", "Status", "Error"]


def request_metadata(request: Optional[Request]) -> tuple[Optional[str], Optional[str]]:
    """Client IP address and User-Agent of a request, if any."""
    if request is None:
        return None, None

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None

    return ip_address, request.headers.get("User-Agent")


async def record_audit(
    db: AsyncSession,
    action: AuditAction,
    resource: str,
    user_id: Optional[str] = None,
    organization_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    resource_id: Optional[str] = None,
    success: bool = True,
    error_message: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None
) -> AuditLog:
    """
    Create an audit log entry and commit it.

    Args:
        db: Database session
        action: Action performed
        resource: Resource type (e.g., "task", "organization", "auth")
        user_id: User performing the action
        organization_id: Organization context
        details: Additional details, JSON-encoded before storage
        resource_id: ID of the resource
        success: Whether the action was allowed and completed
        error_message: Denial reason or failure message
        ip_address: Client IP address
        user_agent: Client user agent

    Returns:
        Created AuditLog object

    Raises:
        StorageFailureError: the write could not be committed
    """
    audit_log = AuditLog(
        action=action,
        resource=resource,
        resource_id=resource_id,
        user_id=user_id,
        organization_id=organization_id,
        details=jsonable_encoder(details) if details is not None else None,
        success=success,
        error_message=error_message,
        ip_address=ip_address,
        user_agent=user_agent[:255] if user_agent else None,
    )

    db.add(audit_log)
    try:
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        log.exception(f"Failed to write audit log {action.value} on {resource} for user {user_id}")
        raise StorageFailureError("Failed to write audit log")

    log.info(
        f"Audit: user={user_id} action={action.value} resource={resource} "
        f"resource_id={resource_id} success={success}"
    )
    return audit_log


def _as_utc(value: datetime) -> datetime:
    # Naive bounds are UTC; created_at is stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _filtered(stmt, organization_ids: Collection[str], filters: AuditLogFilters):
    if not organization_ids:
        return stmt.where(false())

    stmt = stmt.where(AuditLog.organization_id.in_(organization_ids))

    if filters.user_id:
        stmt = stmt.where(AuditLog.user_id == filters.user_id)
    if filters.resource:
        stmt = stmt.where(AuditLog.resource == filters.resource)
    if filters.action:
        stmt = stmt.where(AuditLog.action == filters.action)
    if filters.start_date:
        stmt = stmt.where(AuditLog.created_at >= _as_utc(filters.start_date))
    if filters.end_date:
        stmt = stmt.where(AuditLog.created_at <= _as_utc(filters.end_date))

    return stmt


async def query_audit_logs(
    db: AsyncSession,
    organization_ids: Collection[str],
    filters: AuditLogFilters,
    page: int = 1,
    page_size: int = config.AUDIT_PAGE_SIZE
) -> tuple[list[AuditLog], int]:
    """
    Newest-first page of audit logs within the given organizations.

    Pagination is applied after filtering; the total counts every match.
    """
    total = await db.scalar(
        _filtered(select(func.count()).select_from(AuditLog), organization_ids, filters)
    )

    stmt = (
        _filtered(select(AuditLog), organization_ids, filters)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all()), total or 0


async def export_audit_logs(
    db: AsyncSession,
    organization_ids: Collection[str],
    filters: AuditLogFilters,
    limit: int = config.AUDIT_EXPORT_LIMIT
) -> tuple[str, int]:
    """
    Serialize matching audit logs to CSV, newest first, at most `limit` rows.

    Returns the CSV text and the number of data rows written.
    """
    stmt = (
        _filtered(select(AuditLog, User).select_from(AuditLog), organization_ids, filters)
        .outerjoin(User, User.id == AuditLog.user_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
    )
    result = await db.execute(stmt)
    rows = result.all()

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)

    for audit_log, user in rows:
        writer.writerow([
            audit_log.created_at.isoformat(),
            audit_log.action.value,
            audit_log.resource,
            user.full_name if user else "Unknown",
            user.email if user else "Unknown",
            audit_log.ip_address or "Unknown",
            "Success" if audit_log.success else "Failed",
            audit_log.error_message or "",
        ])

    return buffer.getvalue(), len(rows)
