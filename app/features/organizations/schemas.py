"""
Pydantic schemas for organization-related requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, Field, field_validator


class OrganizationBase(BaseModel):
    """Base organization schema."""
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)


class OrganizationCreate(OrganizationBase):
    """Schema for creating a new organization (owner only)."""
    parent_id: str | None = Field(None, description="Parent organization ID; omit to create a root organization")

    @field_validator("parent_id")
    @classmethod
    def blank_parent_is_root(cls, v: str | None) -> str | None:
        """Treat an empty parent ID as no parent."""
        if v is not None and not v.strip():
            return None
        return v


class OrganizationUpdate(BaseModel):
    """Schema for updating organization information. The parent cannot be changed."""
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)


class OrganizationResponse(OrganizationBase):
    """Schema for organization responses."""
    id: str
    parent_id: str | None = None
    level: int = Field(..., description="1 for a root organization, 2 for a child")
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrganizationPublic(BaseModel):
    """Public organization information (limited fields)."""
    id: str
    name: str

    model_config = {"from_attributes": True}


class OrganizationHierarchy(BaseModel):
    """An organization with its parent and direct children."""
    organization: OrganizationResponse
    level: int
    parent: OrganizationPublic | None = None
    children: list[OrganizationPublic] = Field(default_factory=list)
