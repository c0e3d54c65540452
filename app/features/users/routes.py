"""
User feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.exceptions import NotFoundError, ConflictError
from app.features.audit.models import AuditAction
from app.features.users.auth import Principal
from app.features.users.dependencies import get_current_principal
from app.features.users.models import User
from app.features.users.schemas import UserCreate, UserUpdate, UserResponse
from app.features.permissions.dependencies import (
    authorize,
    enforce,
    deny,
    record_decision,
    require_permission,
    assign_role,
    remove_role,
    can_access_organization,
)
from app.features.permissions.models import RoleName, PermissionAction, PermissionResource
from app.features.permissions.schemas import AccessDecision, AssignRoleToUser, UserRoleResponse
from app.features.permissions.scope import accessible_organization_ids, scope_clause


router = APIRouter(tags=["users"])


async def _load_user(db: AsyncSession, user_id: str) -> User:
    """Fetch a user with fresh role assignments or raise 404."""
    result = await db.execute(
        select(User)
        .where(User.id == user_id)
        .execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()

    if user is None:
        raise NotFoundError("User not found")

    return user


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get current authenticated user's profile."""
    return await _load_user(db, principal.subject_id)


@router.get("/", response_model=list[UserResponse])
async def list_users(
    request: Request,
    principal: Annotated[Principal, Depends(get_current_principal)],
    decision: Annotated[AccessDecision, Depends(require_permission(
        PermissionAction.READ, PermissionResource.USER, roles=[RoleName.OWNER, RoleName.ADMIN]
    ))],
    db: Annotated[AsyncSession, Depends(get_db)],
    skip: int = 0,
    limit: int = 50
):
    """List users of the organizations the caller can reach (owners and admins)."""
    organization_ids = await accessible_organization_ids(db, principal.subject_id)
    result = await db.execute(
        select(User)
        .where(scope_clause(User.organization_id, organization_ids))
        .order_by(User.email)
        .offset(skip)
        .limit(limit)
    )
    users = result.scalars().all()

    await record_decision(db, decision, AuditAction.READ, request, details={"count": len(users)})
    return users


@router.get("/{user_id}", response_model=UserResponse)
async def get_user_by_id(
    user_id: str,
    request: Request,
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get a user in a reachable organization (owners and admins)."""
    user = await _load_user(db, user_id)

    decision = await authorize(
        db, principal, PermissionAction.READ, PermissionResource.USER,
        target_organization_id=user.organization_id,
        required_roles=[RoleName.OWNER, RoleName.ADMIN],
    )
    await enforce(db, decision, request, resource_id=user.id)

    await record_decision(db, decision, AuditAction.READ, request, resource_id=user.id)
    return user


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    request: Request,
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a user in a reachable organization, optionally with an initial role."""
    organization_id = user_data.organization_id or principal.organization_id

    decision = await authorize(
        db, principal, PermissionAction.CREATE, PermissionResource.USER,
        target_organization_id=organization_id,
    )
    await enforce(db, decision, request)

    # Granting a role is user management, reserved for owners
    if user_data.role is not None:
        await enforce(db, await authorize(
            db, principal, PermissionAction.MANAGE, PermissionResource.USER,
            target_organization_id=organization_id,
        ), request)

    existing = await db.scalar(select(User.id).where(User.email == user_data.email))
    if existing is not None:
        raise ConflictError("User with this email already exists")

    new_user = User(
        email=user_data.email,
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        organization_id=organization_id,
    )
    db.add(new_user)
    # Committed together with the role assignment or the audit row
    await db.flush()

    if user_data.role is not None:
        await assign_role(db, new_user.id, user_data.role, organization_id)

    await record_decision(
        db, decision, AuditAction.CREATE, request,
        resource_id=new_user.id,
        details={"email": new_user.email, "organization_id": organization_id, "role": user_data.role},
    )
    return await _load_user(db, new_user.id)


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    update_data: UserUpdate,
    request: Request,
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update a user's profile or status."""
    user = await _load_user(db, user_id)

    decision = await authorize(
        db, principal, PermissionAction.UPDATE, PermissionResource.USER,
        target_organization_id=user.organization_id,
    )
    await enforce(db, decision, request, resource_id=user.id)

    # Update only provided fields
    update_dict = update_data.model_dump(exclude_unset=True)
    for field, value in update_dict.items():
        setattr(user, field, value)

    await db.commit()

    await record_decision(
        db, decision, AuditAction.UPDATE, request,
        resource_id=user.id,
        details={"changes": update_dict},
    )
    return await _load_user(db, user.id)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: str,
    request: Request,
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete a user together with their role assignments."""
    user = await _load_user(db, user_id)

    decision = await authorize(
        db, principal, PermissionAction.DELETE, PermissionResource.USER,
        target_organization_id=user.organization_id,
    )
    await enforce(db, decision, request, resource_id=user.id)

    # Prevent self-deletion
    if user.id == principal.subject_id:
        raise ConflictError("Cannot delete your own account")

    email = user.email
    await db.delete(user)
    await db.commit()

    await record_decision(
        db, decision, AuditAction.DELETE, request,
        resource_id=user_id,
        details={"email": email},
    )


# Role management routes (owners only, via manage:user)
@router.post("/{user_id}/roles", response_model=UserRoleResponse, status_code=status.HTTP_201_CREATED)
async def assign_user_role(
    user_id: str,
    assignment: AssignRoleToUser,
    request: Request,
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Assign a role to a user, globally or scoped to a reachable organization."""
    user = await _load_user(db, user_id)

    decision = await authorize(
        db, principal, PermissionAction.MANAGE, PermissionResource.USER,
        target_organization_id=user.organization_id,
    )
    await enforce(db, decision, request, resource_id=user.id)

    if assignment.organization_id and not await can_access_organization(
        db, principal.subject_id, assignment.organization_id
    ):
        await deny(
            db, principal, PermissionAction.MANAGE, PermissionResource.USER,
            f"Cannot assign roles in organization {assignment.organization_id}",
            request=request,
            resource_id=user.id,
            context={"target_organization_id": assignment.organization_id},
        )

    user_role = await assign_role(db, user.id, assignment.role, assignment.organization_id)

    await record_decision(
        db, decision, AuditAction.UPDATE, request,
        resource_id=user.id,
        details={"assigned_role": assignment.role, "organization_id": assignment.organization_id},
    )
    return user_role


@router.delete("/{user_id}/roles/{role_name}")
async def remove_user_role(
    user_id: str,
    role_name: RoleName,
    request: Request,
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[AsyncSession, Depends(get_db)],
    organization_id: str | None = None
):
    """Deactivate a user's assignments of a role, optionally only those scoped to one organization."""
    user = await _load_user(db, user_id)

    decision = await authorize(
        db, principal, PermissionAction.MANAGE, PermissionResource.USER,
        target_organization_id=user.organization_id,
    )
    await enforce(db, decision, request, resource_id=user.id)

    removed = await remove_role(db, user.id, role_name, organization_id)

    await record_decision(
        db, decision, AuditAction.UPDATE, request,
        resource_id=user.id,
        details={"removed_role": role_name, "organization_id": organization_id, "count": removed},
    )
    return {"message": "Role removed successfully", "removed": removed}
