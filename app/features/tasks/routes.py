"""
Task feature routes.

Every route is gated by the authorization engine: the caller needs the task
permission in their home organization and must be able to reach the task's
organization.
"""
from datetime import datetime, timezone
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.exceptions import NotFoundError
from app.features.audit.models import AuditAction
from app.features.permissions.dependencies import (
    authorize,
    enforce,
    deny,
    record_decision,
    require_permission,
    can_access_organization,
)
from app.features.permissions.models import PermissionAction, PermissionResource
from app.features.permissions.schemas import AccessDecision
from app.features.permissions.scope import accessible_organization_ids, scope_clause
from app.features.tasks.dependencies import get_task_by_id
from app.features.tasks.models import Task, TaskStatus, TaskPriority, TaskCategory
from app.features.tasks.schemas import (
    TaskCreate,
    TaskUpdate,
    TaskResponse,
    TaskListResponse,
    TaskReorderRequest,
    TaskReorderResponse,
    TaskSortField,
    SortOrder,
)
from app.features.users.auth import Principal
from app.features.users.dependencies import get_current_principal
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)

router = APIRouter(tags=["tasks"])


async def _validate_assignee(
    db: AsyncSession,
    principal: Principal,
    assignee_id: str,
    action: PermissionAction,
    request: Request,
    task_id: Optional[str] = None
) -> None:
    """The assignee must exist and belong to an organization the caller can reach."""
    assignee = await db.get(User, assignee_id)
    if assignee is None:
        raise NotFoundError("Assignee not found")

    if not await can_access_organization(db, principal.subject_id, assignee.organization_id):
        await deny(
            db, principal, action, PermissionResource.TASK,
            "Cannot assign task to user from different organization",
            request=request,
            resource_id=task_id,
            context={"assignee_id": assignee_id},
        )


@router.post("/", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate,
    request: Request,
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a task in the caller's organization or a reachable child organization."""
    organization_id = task_data.organization_id or principal.organization_id

    decision = await authorize(
        db, principal, PermissionAction.CREATE, PermissionResource.TASK,
        target_organization_id=organization_id,
    )
    await enforce(db, decision, request)

    if task_data.assignee_id:
        await _validate_assignee(db, principal, task_data.assignee_id, PermissionAction.CREATE, request)

    new_task = Task(
        **task_data.model_dump(exclude={"organization_id"}),
        organization_id=organization_id,
        created_by_id=principal.subject_id,
    )
    if new_task.status == TaskStatus.DONE:
        new_task.completed_at = datetime.now(timezone.utc)

    db.add(new_task)
    await db.commit()
    await db.refresh(new_task)

    await record_decision(
        db, decision, AuditAction.CREATE, request,
        resource_id=new_task.id,
        details={"title": new_task.title, "assignee_id": new_task.assignee_id},
    )
    return new_task


@router.get("/", response_model=TaskListResponse)
async def list_tasks(
    request: Request,
    principal: Annotated[Principal, Depends(get_current_principal)],
    decision: Annotated[AccessDecision, Depends(require_permission(PermissionAction.READ, PermissionResource.TASK))],
    db: Annotated[AsyncSession, Depends(get_db)],
    status_filter: Optional[TaskStatus] = Query(None, alias="status"),
    priority: Optional[TaskPriority] = None,
    category: Optional[TaskCategory] = None,
    assignee_id: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: TaskSortField = TaskSortField.CREATED_AT,
    sort_order: SortOrder = SortOrder.DESC,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100)
):
    """List tasks of every organization the caller can reach, with filters, sorting and paging."""
    organization_ids = await accessible_organization_ids(db, principal.subject_id)

    query = select(Task).where(scope_clause(Task.organization_id, organization_ids))

    if status_filter:
        query = query.where(Task.status == status_filter)
    if priority:
        query = query.where(Task.priority == priority)
    if category:
        query = query.where(Task.category == category)
    if assignee_id:
        query = query.where(Task.assignee_id == assignee_id)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    sort_column = getattr(Task, sort_by.value)
    query = (
        query
        .order_by(sort_column.asc() if sort_order == SortOrder.ASC else sort_column.desc(), Task.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await db.execute(query)
    tasks = result.scalars().all()

    await record_decision(
        db, decision, AuditAction.READ, request,
        details={
            "query": dict(request.query_params),
            "count": len(tasks),
        },
    )
    return TaskListResponse(
        tasks=[TaskResponse.model_validate(task) for task in tasks],
        total=total or 0,
        page=page,
        limit=limit,
    )


@router.post("/reorder", response_model=TaskReorderResponse)
async def reorder_tasks(
    reorder: TaskReorderRequest,
    request: Request,
    principal: Annotated[Principal, Depends(get_current_principal)],
    decision: Annotated[AccessDecision, Depends(require_permission(PermissionAction.UPDATE, PermissionResource.TASK))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Set each task's order to its position in the list.

    Unknown tasks and tasks in unreachable organizations are skipped.
    """
    updated = 0
    for position, task_id in enumerate(reorder.task_ids):
        task = await db.get(Task, task_id)
        if task is None:
            continue
        if not await can_access_organization(db, principal.subject_id, task.organization_id):
            continue

        task.order = position
        updated += 1

    await db.commit()

    await record_decision(
        db, decision, AuditAction.UPDATE, request,
        details={"action": "reorder", "task_count": updated},
    )
    return TaskReorderResponse(success=True, updated=updated)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    request: Request,
    task: Annotated[Task, Depends(get_task_by_id)],
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get a task by ID."""
    decision = await authorize(
        db, principal, PermissionAction.READ, PermissionResource.TASK,
        target_organization_id=task.organization_id,
    )
    await enforce(db, decision, request, resource_id=task.id)

    await record_decision(db, decision, AuditAction.READ, request, resource_id=task.id)
    return task


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(
    update_data: TaskUpdate,
    request: Request,
    task: Annotated[Task, Depends(get_task_by_id)],
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update a task. Moving to or from `done` maintains `completed_at`."""
    decision = await authorize(
        db, principal, PermissionAction.UPDATE, PermissionResource.TASK,
        target_organization_id=task.organization_id,
    )
    await enforce(db, decision, request, resource_id=task.id)

    update_dict = update_data.model_dump(exclude_unset=True)

    new_assignee = update_dict.get("assignee_id")
    if new_assignee and new_assignee != task.assignee_id:
        await _validate_assignee(db, principal, new_assignee, PermissionAction.UPDATE, request, task.id)

    was_completed = task.status == TaskStatus.DONE
    new_status = update_dict.get("status")
    is_being_completed = new_status == TaskStatus.DONE and not was_completed
    is_being_uncompleted = new_status is not None and new_status != TaskStatus.DONE and was_completed

    for field, value in update_dict.items():
        setattr(task, field, value)

    if is_being_completed:
        task.completed_at = datetime.now(timezone.utc)
    elif is_being_uncompleted:
        task.completed_at = None

    await db.commit()
    await db.refresh(task)

    await record_decision(
        db, decision, AuditAction.UPDATE, request,
        resource_id=task.id,
        details={
            "changes": update_dict,
            "was_completed": was_completed,
            "is_being_completed": is_being_completed,
            "is_being_uncompleted": is_being_uncompleted,
        },
    )
    return task


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    request: Request,
    task: Annotated[Task, Depends(get_task_by_id)],
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete a task."""
    decision = await authorize(
        db, principal, PermissionAction.DELETE, PermissionResource.TASK,
        target_organization_id=task.organization_id,
    )
    await enforce(db, decision, request, resource_id=task.id)

    task_id, title = task.id, task.title
    await db.delete(task)
    await db.commit()

    await record_decision(
        db, decision, AuditAction.DELETE, request,
        resource_id=task_id,
        details={"title": title},
    )
