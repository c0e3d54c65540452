"""
Task-related dependency injection functions.
"""
from typing import Annotated
from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.exceptions import NotFoundError
from app.features.tasks.models import Task


async def get_task_by_id(
    task_id: str,
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Task:
    """Get task by ID or raise 404."""
    result = await db.execute(select(Task).where(Task.id == task_id))
    task = result.scalar_one_or_none()

    if task is None:
        raise NotFoundError("Task not found")

    return task
