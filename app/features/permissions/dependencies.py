"""
Authorization engine and FastAPI dependencies for RBAC.

Implements:
- Permission checking across every active role assignment of a principal
- Organization reachability (own organization, or a direct child of it)
- Role assignment and removal
- AccessDecision evaluation and the single audit wrapper around it
"""
from typing import Annotated, Any, Dict, Iterable, Optional
from fastapi import Depends, Request
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.database.engine import get_db
from app.core.exceptions import NotFoundError, ConflictError, PermissionDeniedError
from app.features.audit.dependencies import record_audit, request_metadata
from app.features.audit.models import AuditLog, AuditAction
from app.features.organizations.models import Organization
from app.features.permissions.catalog import permission_grants, role_hierarchy_grants
from app.features.permissions.models import (
    Role,
    RoleName,
    UserRole,
    PermissionAction,
    PermissionResource,
)
from app.features.permissions.schemas import AccessDecision
from app.features.users.auth import Principal
from app.features.users.dependencies import get_current_principal
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


# ============================================================================
# Role Assignments
# ============================================================================

def _active_assignments(user_id: str, organization_id: Optional[str] = None):
    stmt = (
        select(UserRole)
        .options(selectinload(UserRole.role).selectinload(Role.permissions))
        .where(UserRole.user_id == user_id, UserRole.is_active == True)  # noqa: E712
        .execution_options(populate_existing=True)
    )
    if organization_id:
        stmt = stmt.where(
            or_(UserRole.organization_id.is_(None), UserRole.organization_id == organization_id)
        )
    return stmt


async def get_active_roles(
    db: AsyncSession,
    user_id: str,
    organization_id: Optional[str] = None
) -> list[Role]:
    """
    Roles of all active assignments of a user.

    With `organization_id`, only global assignments and those scoped to
    that organization count.
    """
    result = await db.execute(_active_assignments(user_id, organization_id))
    return [user_role.role for user_role in result.scalars().all()]


async def _get_role(db: AsyncSession, role_name: RoleName | str) -> Role:
    try:
        role_name = RoleName(role_name)
    except ValueError:
        raise ConflictError(f"Unknown role: {role_name}")

    result = await db.execute(select(Role).where(Role.name == role_name))
    role = result.scalar_one_or_none()
    if role is None:
        raise ConflictError(f"Unknown role: {role_name.value}")
    return role


async def assign_role(
    db: AsyncSession,
    user_id: str,
    role_name: RoleName | str,
    organization_id: Optional[str] = None
) -> UserRole:
    """
    Give a user a role, globally or scoped to one organization.

    Re-activates a matching inactive assignment instead of adding a duplicate.

    Raises:
        ConflictError: the role does not exist
        NotFoundError: the user or the scoping organization does not exist
    """
    role = await _get_role(db, role_name)

    if await db.get(User, user_id) is None:
        raise NotFoundError("User not found")
    if organization_id and await db.get(Organization, organization_id) is None:
        raise NotFoundError("Organization not found")

    scope = (
        UserRole.organization_id.is_(None)
        if organization_id is None
        else UserRole.organization_id == organization_id
    )
    result = await db.execute(
        select(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role.id, scope)
    )
    user_role = result.scalars().first()

    if user_role is None:
        user_role = UserRole(user_id=user_id, role=role, organization_id=organization_id, is_active=True)
        db.add(user_role)
    else:
        user_role.is_active = True

    await db.commit()
    log.info(f"Assigned role {role.name.value} to user {user_id} (org={organization_id})")
    return user_role


async def remove_role(
    db: AsyncSession,
    user_id: str,
    role_name: RoleName | str,
    organization_id: Optional[str] = None
) -> int:
    """
    Deactivate a user's assignments of a role.

    Without `organization_id` every assignment of that role is deactivated.
    Returns the number of assignments that were active.
    """
    role = await _get_role(db, role_name)

    stmt = select(UserRole).where(
        UserRole.user_id == user_id,
        UserRole.role_id == role.id,
        UserRole.is_active == True  # noqa: E712
    )
    if organization_id:
        stmt = stmt.where(UserRole.organization_id == organization_id)

    result = await db.execute(stmt)
    user_roles = result.scalars().all()
    for user_role in user_roles:
        user_role.is_active = False

    await db.commit()
    log.info(f"Removed role {role.name.value} from user {user_id} ({len(user_roles)} assignments)")
    return len(user_roles)


# ============================================================================
# Permission Checking Functions
# ============================================================================

async def has_permission(
    db: AsyncSession,
    principal_id: str,
    action: PermissionAction,
    resource: PermissionResource,
    organization_id: Optional[str] = None
) -> bool:
    """
    Check if a principal may perform an action on a resource.

    Grants are additive across active assignments. Each role grants through
    an explicit permission row (widened by `manage` and `all`) or through
    the role hierarchy override. Unknown or inactive principals and
    principals without active roles are denied.

    Args:
        db: Database session
        principal_id: User ID
        action: Requested action
        resource: Requested resource
        organization_id: Context organization filtering org-scoped assignments

    Returns:
        True if any active role grants the request
    """
    user = await db.get(User, principal_id, populate_existing=True)
    if user is None or not user.is_active:
        log.debug(f"Unknown or inactive principal {principal_id} - denied {action.value} on {resource.value}")
        return False

    for role in await get_active_roles(db, principal_id, organization_id):
        if any(
            permission_grants(permission.action, permission.resource, action, resource)
            for permission in role.permissions
        ):
            log.debug(f"User {principal_id} granted {action.value} on {resource.value} via {role.name.value} permissions")
            return True

        if role_hierarchy_grants(role.name, action, resource):
            log.debug(f"User {principal_id} granted {action.value} on {resource.value} via {role.name.value} hierarchy")
            return True

    log.debug(f"User {principal_id} denied {action.value} on {resource.value} in org {organization_id}")
    return False


async def can_access_organization(
    db: AsyncSession,
    principal_id: str,
    target_organization_id: str
) -> bool:
    """
    Organization reachability, independent of role.

    A principal reaches its own organization and the direct children of it.
    Siblings and parents are never reachable.
    """
    user = await db.get(User, principal_id, populate_existing=True)
    if user is None:
        return False

    if user.organization_id == target_organization_id:
        return True

    parent_id = await db.scalar(
        select(Organization.parent_id).where(Organization.id == target_organization_id)
    )
    return parent_id is not None and parent_id == user.organization_id


# ============================================================================
# Access Decisions
# ============================================================================

async def authorize(
    db: AsyncSession,
    principal: Principal,
    action: PermissionAction,
    resource: PermissionResource,
    target_organization_id: Optional[str] = None,
    required_roles: Optional[Iterable[RoleName]] = None
) -> AccessDecision:
    """
    Evaluate a request into an AccessDecision.

    Order: role gate, organization reachability, then the permission check
    in the principal's home organization. The first failing step decides.
    The role gate reads the roles that count in the home organization from
    storage; assignments scoped to other organizations never satisfy it.
    """
    required_roles = tuple(required_roles or ())
    required = sorted(role.value for role in required_roles)
    context: Dict[str, Any] = {
        "action": action.value,
        "resource": resource.value,
        "target_organization_id": target_organization_id,
    }
    if required:
        context["required_roles"] = required

    def decide(granted: bool, reason: Optional[str] = None) -> AccessDecision:
        if reason:
            context["reason"] = reason
        return AccessDecision(
            granted=granted,
            action=action,
            resource=resource,
            principal_id=principal.subject_id,
            organization_id=principal.organization_id,
            target_organization_id=target_organization_id,
            reason=reason,
            context=context,
        )

    if required:
        held = {role.name for role in await get_active_roles(db, principal.subject_id, principal.organization_id)}
        if not held.intersection(required_roles):
            return decide(False, f"Requires one of roles: {', '.join(required)}")

    if target_organization_id and not await can_access_organization(
        db, principal.subject_id, target_organization_id
    ):
        return decide(False, f"Cannot access organization {target_organization_id}")

    if not await has_permission(db, principal.subject_id, action, resource, principal.organization_id):
        return decide(False, f"Insufficient permissions to {action.value} {resource.value}")

    return decide(True)


async def enforce(
    db: AsyncSession,
    decision: AccessDecision,
    request: Optional[Request] = None,
    resource_id: Optional[str] = None
) -> AccessDecision:
    """
    Audit and raise a denied decision; pass a granted one through.

    This is the only place PermissionDeniedError is raised, so every denial
    leaves exactly one access_denied audit row.
    """
    if decision.granted:
        return decision

    ip_address, user_agent = request_metadata(request)
    await record_audit(
        db,
        AuditAction.ACCESS_DENIED,
        decision.resource.value,
        user_id=decision.principal_id,
        organization_id=decision.organization_id,
        details=decision.context,
        resource_id=resource_id,
        success=False,
        error_message=decision.reason,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    raise PermissionDeniedError(decision.reason or "Permission denied")


async def record_decision(
    db: AsyncSession,
    decision: AccessDecision,
    audit_action: AuditAction,
    request: Optional[Request] = None,
    resource_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """Audit a granted decision once the operation it gated has completed."""
    ip_address, user_agent = request_metadata(request)
    return await record_audit(
        db,
        audit_action,
        decision.resource.value,
        user_id=decision.principal_id,
        organization_id=decision.organization_id,
        details=details if details is not None else decision.context,
        resource_id=resource_id,
        success=True,
        ip_address=ip_address,
        user_agent=user_agent,
    )


async def deny(
    db: AsyncSession,
    principal: Principal,
    action: PermissionAction,
    resource: PermissionResource,
    reason: str,
    request: Optional[Request] = None,
    resource_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> None:
    """
    Deny a request that failed a rule outside the engine (e.g. a cross-organization assignee).

    Always raises PermissionDeniedError through `enforce`.
    """
    decision = AccessDecision(
        granted=False,
        action=action,
        resource=resource,
        principal_id=principal.subject_id,
        organization_id=principal.organization_id,
        reason=reason,
        context={"action": action.value, "resource": resource.value, "reason": reason, **(context or {})},
    )
    await enforce(db, decision, request, resource_id)


# ============================================================================
# FastAPI Dependencies
# ============================================================================

def require_permission(
    action: PermissionAction,
    resource: PermissionResource,
    roles: Optional[Iterable[RoleName]] = None
):
    """
    FastAPI dependency to require a permission in the caller's home organization.

    Usage:
        @router.get("/audit-log")
        async def list_audit_logs(
            decision: AccessDecision = Depends(require_permission(
                PermissionAction.READ, PermissionResource.AUDIT_LOG, roles=[RoleName.OWNER, RoleName.ADMIN]
            ))
        ):
            # Caller may read audit logs; audit the read with record_decision
            pass

    Returns:
        Dependency function that returns the granted AccessDecision

    Raises:
        PermissionDeniedError: 403 after auditing the denial
    """
    required_roles = tuple(roles) if roles else None

    async def permission_dependency(
        request: Request,
        db: Annotated[AsyncSession, Depends(get_db)],
        principal: Annotated[Principal, Depends(get_current_principal)]
    ) -> AccessDecision:
        decision = await authorize(db, principal, action, resource, required_roles=required_roles)
        return await enforce(db, decision, request)

    return permission_dependency
