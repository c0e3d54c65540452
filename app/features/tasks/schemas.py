"""
Pydantic schemas for task requests and responses.
"""
import enum
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict

from app.features.tasks.models import TaskStatus, TaskPriority, TaskCategory


class TaskSortField(str, enum.Enum):
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    DUE_DATE = "due_date"
    PRIORITY = "priority"
    STATUS = "status"
    TITLE = "title"
    ORDER = "order"


class SortOrder(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"


class TaskBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    category: TaskCategory = TaskCategory.WORK
    due_date: Optional[datetime] = None
    assignee_id: Optional[str] = None
    order: int = Field(0, ge=0)


class TaskCreate(TaskBase):
    """Schema for creating a task."""
    organization_id: Optional[str] = Field(None, description="Owning organization (caller's organization if not provided)")


class TaskUpdate(BaseModel):
    """Schema for updating a task. Only provided fields change."""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    category: Optional[TaskCategory] = None
    due_date: Optional[datetime] = None
    assignee_id: Optional[str] = None
    order: Optional[int] = Field(None, ge=0)


class TaskResponse(TaskBase):
    id: str
    organization_id: str
    created_by_id: str
    completed_at: Optional[datetime] = None
    is_overdue: bool
    is_completed: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TaskListResponse(BaseModel):
    tasks: List[TaskResponse]
    total: int
    page: int
    limit: int


class TaskReorderRequest(BaseModel):
    """Task IDs in their new order; position in the list becomes `order`."""
    task_ids: List[str] = Field(..., min_length=1)


class TaskReorderResponse(BaseModel):
    success: bool
    updated: int
