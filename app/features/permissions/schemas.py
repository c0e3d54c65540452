"""
Pydantic schemas for permission management.

Request and response models for permissions, roles, role assignments,
permission checks and the engine's access decision.
"""
from datetime import datetime
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, ConfigDict

from app.features.permissions.models import RoleName, PermissionAction, PermissionResource


# ============================================================================
# Permission Schemas
# ============================================================================

class PermissionResponse(BaseModel):
    """Schema for permission response."""
    id: str
    action: PermissionAction
    resource: PermissionResource
    identifier: str
    display_name: str
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Role Schemas
# ============================================================================

class RoleResponse(BaseModel):
    """Schema for role response."""
    id: str
    name: RoleName
    display_name: str
    description: Optional[str] = None
    level: int

    model_config = ConfigDict(from_attributes=True)


class RoleWithPermissions(RoleResponse):
    """Schema for role with permissions."""
    permissions: List[PermissionResponse] = []

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Assignment Schemas
# ============================================================================

class AssignRoleToUser(BaseModel):
    """Schema for assigning a role to a user, optionally scoped to an organization."""
    role: RoleName = Field(..., description="Role name")
    organization_id: Optional[str] = Field(None, description="Organization ID (null for a global assignment)")


class UserRoleResponse(BaseModel):
    id: str
    user_id: str
    organization_id: Optional[str] = None
    is_active: bool
    role: RoleResponse
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Permission Check Schemas
# ============================================================================

class PermissionCheckRequest(BaseModel):
    """Schema for checking if the caller has a permission."""
    action: PermissionAction = Field(..., description="Action")
    resource: PermissionResource = Field(..., description="Resource type")
    organization_id: Optional[str] = Field(None, description="Target organization (home organization if not provided)")


class PermissionCheckResponse(BaseModel):
    """Schema for permission check response."""
    has_permission: bool
    reason: Optional[str] = None


# ============================================================================
# Access Decision
# ============================================================================

class AccessDecision(BaseModel):
    """
    Verdict returned by app.features.permissions.dependencies.authorize.

    Callers never raise PermissionDeniedError themselves; they hand the
    decision to `enforce`, which audits a denial before raising it.
    """
    granted: bool
    action: PermissionAction
    resource: PermissionResource
    principal_id: Optional[str] = None
    organization_id: Optional[str] = None
    target_organization_id: Optional[str] = None
    reason: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
