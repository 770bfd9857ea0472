import asyncio
import logging
from datetime import timedelta
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from api.dependencies import get_current_user, get_gateway, get_task_store
from api.metrics import LLM_FALLBACK_TOTAL, TASKS_CREATED_TOTAL
from assistant.gateway import ReasoningGateway
from campus_planner.analytics import period_start, task_analytics
from campus_planner.models import (
    Category,
    Priority,
    TaskCreate,
    TaskStatus,
    TaskUpdate,
    User,
    utcnow,
)
from scoring.priority import with_ai_priority
from storage.task_store import TaskQuery, TaskStore

router = APIRouter(prefix="/tasks", tags=["tasks"])
logger = logging.getLogger(__name__)

DEFAULT_DEADLINE_DAYS = 7


class FromTextIn(BaseModel):
    text: str = Field(..., min_length=1)


class CompleteIn(BaseModel):
    actual_duration: Optional[int] = Field(None, ge=0)


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail="Task not found")


@router.get("")
async def list_tasks(
    status: Optional[TaskStatus] = None,
    category: Optional[Category] = None,
    priority: Optional[Priority] = None,
    sort_by: Literal["deadline", "priority", "created"] = "deadline",
    user: User = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
) -> dict:
    found = await tasks.list(
        user.id,
        TaskQuery(status=status, category=category, priority=priority, sort_by=sort_by),
    )
    now = utcnow()
    return {"tasks": [with_ai_priority(t, now) for t in found]}


@router.post("", status_code=201)
async def create_task(
    payload: TaskCreate,
    user: User = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
) -> dict:
    task = await tasks.create(user.id, payload)
    TASKS_CREATED_TOTAL.labels(source="manual").inc()
    return {"message": "Task created successfully", "task": with_ai_priority(task)}


@router.post("/from-text", status_code=201)
async def create_task_from_text(
    payload: FromTextIn,
    user: User = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
    gateway: ReasoningGateway = Depends(get_gateway),
) -> dict:
    text = payload.text.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Text input is required")

    parsed, used_fallback = await asyncio.to_thread(gateway.parse_task, text, user.profile())
    if used_fallback:
        LLM_FALLBACK_TOTAL.labels(capability="parse_task").inc()

    now = utcnow()
    data = TaskCreate(
        title=parsed.title,
        description=parsed.description,
        category=parsed.category,
        priority=parsed.priority,
        difficulty=parsed.difficulty,
        estimated_duration=parsed.estimated_duration,
        deadline=parsed.deadline or now + timedelta(days=DEFAULT_DEADLINE_DAYS),
        subject=parsed.subject,
        location=parsed.location,
        tags=parsed.tags,
    )
    task = await tasks.create(user.id, data, ai_generated=True)
    TASKS_CREATED_TOTAL.labels(source="text").inc()
    return {
        "message": "Task created from text successfully",
        "task": with_ai_priority(task, now),
        "original_text": text,
        "parsed_by": "fallback" if used_fallback else "model",
    }


@router.get("/analytics/overview")
async def analytics_overview(
    period: Literal["day", "week", "month", "year"] = "week",
    user: User = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
) -> dict:
    now = utcnow()
    found = await tasks.list(user.id, TaskQuery(created_from=period_start(period, now)))
    return {"period": period, "analytics": task_analytics(found, now)}


@router.get("/upcoming/deadlines")
async def upcoming_deadlines(
    days: int = Query(7, ge=1, le=365),
    user: User = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
) -> dict:
    now = utcnow()
    found = await tasks.list(
        user.id,
        TaskQuery(
            deadline_from=now,
            deadline_to=now + timedelta(days=days),
            exclude_statuses=("completed", "cancelled"),
        ),
    )
    return {"tasks": [with_ai_priority(t, now) for t in found]}


@router.get("/{task_id}")
async def get_task(
    task_id: str,
    user: User = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
) -> dict:
    task = await tasks.get(user.id, task_id)
    if task is None:
        raise _not_found()
    return {"task": with_ai_priority(task)}


@router.put("/{task_id}")
async def update_task(
    task_id: str,
    payload: TaskUpdate,
    user: User = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
) -> dict:
    changes = payload.model_dump(exclude_unset=True)
    task = await tasks.update(user.id, task_id, changes)
    if task is None:
        raise _not_found()
    return {"message": "Task updated successfully", "task": with_ai_priority(task)}


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    user: User = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
) -> dict:
    if not await tasks.delete(user.id, task_id):
        raise _not_found()
    return {"message": "Task deleted successfully"}


@router.post("/{task_id}/start")
async def start_task(
    task_id: str,
    user: User = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
) -> dict:
    task = await tasks.start(user.id, task_id)
    if task is None:
        raise _not_found()
    return {"message": "Task started successfully", "task": with_ai_priority(task)}


@router.post("/{task_id}/complete")
async def complete_task(
    task_id: str,
    payload: Optional[CompleteIn] = None,
    user: User = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
) -> dict:
    actual = payload.actual_duration if payload else None
    task = await tasks.complete(user.id, task_id, actual_duration=actual)
    if task is None:
        raise _not_found()
    return {"message": "Task completed successfully", "task": with_ai_priority(task)}
