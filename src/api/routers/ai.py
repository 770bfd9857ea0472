import asyncio
import logging
from datetime import datetime, timedelta
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from api.dependencies import (
    get_current_user,
    get_gateway,
    get_schedule_store,
    get_task_store,
)
from api.metrics import LLM_FALLBACK_TOTAL
from assistant.gateway import ReasoningGateway, ReasoningUnavailableError
from campus_planner.models import OPEN_STATUSES, Difficulty, User, ensure_utc, utcnow
from scheduling.scheduler import local_date, working_window
from scoring.priority import with_ai_priority
from storage.schedule_store import ScheduleQuery, ScheduleStore
from storage.task_store import TaskQuery, TaskStore

router = APIRouter(prefix="/ai", tags=["ai"])
logger = logging.getLogger(__name__)

RECOMMENDATION_DAYS = {"day": 1, "week": 7, "month": 30}


class TextIn(BaseModel):
    text: str = Field(..., min_length=1)


class OptimizeIn(BaseModel):
    start_date: datetime
    end_date: datetime
    task_ids: Optional[List[str]] = None


class ChatIn(BaseModel):
    message: str = Field(..., min_length=1)
    context: Optional[str] = None


class BreakdownIn(BaseModel):
    task_id: str


class AnnouncementsIn(BaseModel):
    announcements: List[str] = Field(..., min_length=1)


def _unavailable(e: ReasoningUnavailableError) -> HTTPException:
    return HTTPException(status_code=500, detail=str(e))


@router.post("/parse-input")
async def parse_input(
    payload: TextIn,
    user: User = Depends(get_current_user),
    gateway: ReasoningGateway = Depends(get_gateway),
) -> dict:
    parsed, used_fallback = await asyncio.to_thread(
        gateway.parse_task, payload.text.strip(), user.profile()
    )
    if used_fallback:
        LLM_FALLBACK_TOTAL.labels(capability="parse_task").inc()
    return {
        "message": "Text parsed successfully",
        "parsed_task": parsed,
        "parsed_by": "fallback" if used_fallback else "model",
    }


@router.post("/optimize-schedule")
async def optimize_schedule(
    payload: OptimizeIn,
    user: User = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
    schedule: ScheduleStore = Depends(get_schedule_store),
    gateway: ReasoningGateway = Depends(get_gateway),
) -> dict:
    start, end = ensure_utc(payload.start_date), ensure_utc(payload.end_date)
    if end <= start:
        raise HTTPException(status_code=400, detail="End date must be after start date")

    if payload.task_ids is not None:
        wanted = set(payload.task_ids)
        candidates = [t for t in await tasks.list(user.id) if t.id in wanted]
    else:
        candidates = await tasks.list(
            user.id, TaskQuery(deadline_from=start, deadline_to=end)
        )
    candidates = [t for t in candidates if t.status in OPEN_STATUSES]

    # plans the working hours of the first day in range, from start_date on
    day = local_date(start, user.preferences)
    window_start, window_end = working_window(day, user.preferences)
    existing = await schedule.list(
        user.id,
        ScheduleQuery(
            start=min(start, window_start),
            end=max(end, window_end),
            overlapping=True,
            active_only=True,
        ),
    )
    result = await asyncio.to_thread(
        gateway.optimize_schedule,
        candidates,
        existing,
        user.preferences,
        day=day,
        not_before=start,
    )
    if result.source == "fallback" and candidates:
        LLM_FALLBACK_TOTAL.labels(capability="optimize_schedule").inc()

    return {
        "message": "Schedule optimized successfully",
        "optimized_schedule": result.assignments,
        "source": result.source,
        "unscheduled": result.unscheduled,
        "tasks": candidates,
        "existing_schedule": existing,
    }


@router.get("/recommendations")
async def recommendations(
    period: Literal["day", "week", "month"] = "week",
    user: User = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
    schedule: ScheduleStore = Depends(get_schedule_store),
    gateway: ReasoningGateway = Depends(get_gateway),
) -> dict:
    now = utcnow()
    end = now + timedelta(days=RECOMMENDATION_DAYS[period])
    current = await tasks.list(user.id, TaskQuery(deadline_from=now, deadline_to=end))
    entries = await schedule.list(
        user.id, ScheduleQuery(start=now, end=end, active_only=True)
    )
    result = await asyncio.to_thread(gateway.recommendations, current, entries)
    return {"message": "Recommendations generated successfully", "recommendations": result}


@router.get("/priority-suggestions")
async def priority_suggestions(
    user: User = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
) -> dict:
    now = utcnow()
    open_tasks = await tasks.list(
        user.id, TaskQuery(exclude_statuses=("completed", "cancelled"))
    )
    scored = sorted(
        (with_ai_priority(t, now) for t in open_tasks),
        key=lambda t: t.ai_priority,
        reverse=True,
    )
    return {
        "message": "Priority suggestions generated successfully",
        "tasks": [
            {**t.model_dump(mode="json"), "time_remaining_s": t.time_remaining_s(now)}
            for t in scored
        ],
    }


@router.post("/breakdown-task")
async def breakdown_task(
    payload: BreakdownIn,
    user: User = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
    gateway: ReasoningGateway = Depends(get_gateway),
) -> dict:
    task = await tasks.get(user.id, payload.task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    try:
        subtasks = await asyncio.to_thread(gateway.breakdown_task, task)
    except ReasoningUnavailableError as e:
        raise _unavailable(e)
    return {
        "message": "Task breakdown generated successfully",
        "original_task": task,
        "subtasks": subtasks,
    }


@router.get("/study-strategies")
async def study_strategies(
    subject: str = Query(..., min_length=1),
    exam_date: str = Query(..., min_length=1),
    difficulty: Difficulty = "medium",
    user: User = Depends(get_current_user),
    gateway: ReasoningGateway = Depends(get_gateway),
) -> dict:
    try:
        strategy = await asyncio.to_thread(
            gateway.study_strategy, subject, exam_date, difficulty
        )
    except ReasoningUnavailableError as e:
        raise _unavailable(e)
    return {"message": "Study strategy generated successfully", "study_strategy": strategy}


@router.post("/analyze-announcements")
async def analyze_announcements(
    payload: AnnouncementsIn,
    user: User = Depends(get_current_user),
    gateway: ReasoningGateway = Depends(get_gateway),
) -> dict:
    analysis = await asyncio.to_thread(gateway.analyze_announcements, payload.announcements)
    return {"message": "Announcements analyzed successfully", "analysis": analysis}


@router.post("/chat")
async def chat(
    payload: ChatIn,
    user: User = Depends(get_current_user),
    gateway: ReasoningGateway = Depends(get_gateway),
) -> dict:
    profile = user.profile()
    try:
        reply = await asyncio.to_thread(gateway.chat, payload.message, payload.context, profile)
    except ReasoningUnavailableError as e:
        raise _unavailable(e)
    return {
        "message": "AI response generated successfully",
        "response": reply,
        "context": {
            "name": profile.name,
            "university": profile.university,
            "course": profile.course,
            "year": profile.year,
        },
    }
