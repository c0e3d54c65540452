"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field

from app.features.users.models import UserStatus
from app.features.permissions.models import RoleName


class UserBase(BaseModel):
    """Base user schema with common fields."""
    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)


class UserCreate(UserBase):
    """Schema for creating a new user."""
    organization_id: str | None = Field(None, description="Home organization (caller's organization if not provided)")
    role: RoleName | None = Field(None, description="Initial role, scoped to the home organization")


class UserUpdate(BaseModel):
    """Schema for updating user information."""
    first_name: str | None = Field(None, min_length=1, max_length=100)
    last_name: str | None = Field(None, min_length=1, max_length=100)
    status: UserStatus | None = None


class UserResponse(UserBase):
    """Schema for user responses."""
    id: str
    full_name: str
    status: UserStatus
    organization_id: str
    role_names: list[str] = []
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserPublic(BaseModel):
    """Public user information (limited fields)."""
    id: str
    email: EmailStr
    full_name: str

    model_config = {"from_attributes": True}
