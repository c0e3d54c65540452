"""
Pydantic schemas for audit log queries and responses.
"""
from datetime import datetime
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, ConfigDict

from app.features.audit.models import AuditAction


class AuditLogFilters(BaseModel):
    """Filters shared by the paginated listing and the CSV export."""
    user_id: Optional[str] = Field(None, description="Actor user ID")
    resource: Optional[str] = Field(None, description="Resource type (e.g., 'task', 'user')")
    action: Optional[AuditAction] = None
    start_date: Optional[datetime] = Field(None, description="Inclusive lower bound on created_at")
    end_date: Optional[datetime] = Field(None, description="Inclusive upper bound on created_at")


class AuditLogResponse(BaseModel):
    """Schema for audit log response."""
    id: str
    action: AuditAction
    resource: str
    resource_id: Optional[str]
    user_id: Optional[str]
    organization_id: Optional[str]
    details: Optional[Dict[str, Any]]
    success: bool
    error_message: Optional[str]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditLogListResponse(BaseModel):
    """Schema for paginated audit log list."""
    items: List[AuditLogResponse]
    total: int
    page: int
    page_size: int
    pages: int
