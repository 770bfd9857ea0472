import asyncio
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from api.dependencies import (
    get_current_user,
    get_gateway,
    get_schedule_store,
    get_task_store,
)
from api.metrics import LLM_FALLBACK_TOTAL
from assistant.gateway import ReasoningGateway
from campus_planner.analytics import week_start, weekly_overview
from campus_planner.models import (
    OPEN_STATUSES,
    ScheduleEntryCreate,
    ScheduleEntryUpdate,
    ScheduleType,
    User,
    ensure_utc,
    utcnow,
)
from scheduling.scheduler import local_date, local_day_bounds
from storage.schedule_store import ScheduleQuery, ScheduleStore
from storage.task_store import TaskQuery, TaskStore

router = APIRouter(prefix="/schedule", tags=["schedule"])
logger = logging.getLogger(__name__)


class TimetableIn(BaseModel):
    timetable: List[ScheduleEntryCreate]


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail="Schedule item not found")


def _require_range(start: Optional[datetime], end: Optional[datetime]):
    if start is None or end is None:
        raise HTTPException(status_code=400, detail="Start date and end date are required")
    start, end = ensure_utc(start), ensure_utc(end)
    if end <= start:
        raise HTTPException(status_code=400, detail="End date must be after start date")
    return start, end


@router.get("")
async def list_schedule(
    type: Optional[ScheduleType] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    user: User = Depends(get_current_user),
    schedule: ScheduleStore = Depends(get_schedule_store),
) -> dict:
    entries = await schedule.list(
        user.id,
        ScheduleQuery(
            type=type,
            start=ensure_utc(start_date),
            end=ensure_utc(end_date),
            active_only=True,
        ),
    )
    return {"schedules": entries}


@router.post("", status_code=201)
async def create_entry(
    payload: ScheduleEntryCreate,
    user: User = Depends(get_current_user),
    schedule: ScheduleStore = Depends(get_schedule_store),
) -> dict:
    entry = await schedule.create(user.id, payload)
    return {"message": "Schedule item created successfully", "schedule": entry}


@router.get("/optimized/daily")
async def optimized_daily(
    day: Optional[date] = Query(None, alias="date"),
    user: User = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
    schedule: ScheduleStore = Depends(get_schedule_store),
    gateway: ReasoningGateway = Depends(get_gateway),
) -> dict:
    day = day or local_date(utcnow(), user.preferences)
    start, end = local_day_bounds(day, user.preferences)

    due = [
        t
        for t in await tasks.list(user.id, TaskQuery(deadline_from=start, deadline_to=end))
        if t.status in OPEN_STATUSES
    ]
    existing = await schedule.list(
        user.id, ScheduleQuery(start=start, end=end, overlapping=True, active_only=True)
    )
    result = await asyncio.to_thread(
        gateway.optimize_schedule, due, existing, user.preferences, day
    )
    if result.source == "fallback" and due:
        LLM_FALLBACK_TOTAL.labels(capability="optimize_schedule").inc()

    return {
        "date": day,
        "optimized_schedule": result.assignments,
        "source": result.source,
        "unscheduled": result.unscheduled,
        "tasks": due,
        "existing_schedule": existing,
    }


@router.get("/available-slots")
async def available_slots(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    duration: int = Query(60, gt=0),
    user: User = Depends(get_current_user),
    schedule: ScheduleStore = Depends(get_schedule_store),
) -> dict:
    start, end = _require_range(start_date, end_date)
    slots = await schedule.find_available_slots(user.id, start, end, duration)
    return {"available_slots": slots}


@router.get("/conflicts")
async def conflicts(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    user: User = Depends(get_current_user),
    schedule: ScheduleStore = Depends(get_schedule_store),
) -> dict:
    start, end = _require_range(start_date, end_date)
    return {"conflicts": await schedule.find_conflicts(user.id, start, end)}


@router.post("/import-timetable", status_code=201)
async def import_timetable(
    payload: TimetableIn,
    user: User = Depends(get_current_user),
    schedule: ScheduleStore = Depends(get_schedule_store),
) -> dict:
    items = [item.model_copy(update={"type": "timetable"}) for item in payload.timetable]
    created = await schedule.create_many(user.id, items)
    return {"message": "Timetable imported successfully", "count": len(created)}


@router.get("/weekly/overview")
async def weekly(
    week_of: Optional[date] = None,
    user: User = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
    schedule: ScheduleStore = Depends(get_schedule_store),
) -> dict:
    anchor = (
        datetime.combine(week_of, time.min, tzinfo=timezone.utc) if week_of else utcnow()
    )
    start = week_start(anchor)
    end = start + timedelta(days=7)
    entries = await schedule.list(
        user.id, ScheduleQuery(start=start, end=end, overlapping=True, active_only=True)
    )
    due = await tasks.list(user.id, TaskQuery(deadline_from=start, deadline_to=end))
    return {
        "week_start": start,
        "weekly_data": weekly_overview(start, entries, [t for t in due if t.deadline < end]),
    }


@router.get("/{entry_id}")
async def get_entry(
    entry_id: str,
    user: User = Depends(get_current_user),
    schedule: ScheduleStore = Depends(get_schedule_store),
) -> dict:
    entry = await schedule.get(user.id, entry_id)
    if entry is None:
        raise _not_found()
    return {"schedule": entry}


@router.put("/{entry_id}")
async def update_entry(
    entry_id: str,
    payload: ScheduleEntryUpdate,
    user: User = Depends(get_current_user),
    schedule: ScheduleStore = Depends(get_schedule_store),
) -> dict:
    entry = await schedule.update(user.id, entry_id, payload.model_dump(exclude_unset=True))
    if entry is None:
        raise _not_found()
    return {"message": "Schedule item updated successfully", "schedule": entry}


@router.delete("/{entry_id}")
async def delete_entry(
    entry_id: str,
    user: User = Depends(get_current_user),
    schedule: ScheduleStore = Depends(get_schedule_store),
) -> dict:
    if not await schedule.delete(user.id, entry_id):
        raise _not_found()
    return {"message": "Schedule item deleted successfully"}
