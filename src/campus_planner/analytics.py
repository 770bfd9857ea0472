from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, Sequence

from campus_planner.models import ScheduleEntry, Task

PERIOD_DAYS = {"day": 1, "week": 7, "month": 30, "year": 365}


def period_start(period: str, now: datetime) -> datetime:
    return now - timedelta(days=PERIOD_DAYS[period])


def week_start(now: datetime) -> datetime:
    """Midnight of the Sunday starting the week containing ``now``."""
    days_since_sunday = (now.weekday() + 1) % 7
    start = now - timedelta(days=days_since_sunday)
    return start.replace(hour=0, minute=0, second=0, microsecond=0)


def task_analytics(tasks: Sequence[Task], now: datetime) -> Dict[str, Any]:
    timed = [t.actual_duration for t in tasks if t.status == "completed" and t.actual_duration]
    return {
        "total": len(tasks),
        "completed": sum(1 for t in tasks if t.status == "completed"),
        "in_progress": sum(1 for t in tasks if t.status == "in_progress"),
        "pending": sum(1 for t in tasks if t.status == "pending"),
        "cancelled": sum(1 for t in tasks if t.status == "cancelled"),
        "overdue": sum(1 for t in tasks if t.is_overdue(now)),
        "categories": dict(Counter(t.category for t in tasks)),
        "priorities": dict(Counter(t.priority for t in tasks)),
        "average_completion_time": sum(timed) / len(timed) if timed else 0,
    }


def weekly_overview(
    start: datetime, entries: Sequence[ScheduleEntry], tasks: Sequence[Task]
) -> Dict[str, Dict[str, Any]]:
    """Schedule entries and task deadlines grouped by calendar day (UTC)."""
    overview: Dict[str, Dict[str, Any]] = {}
    for offset in range(7):
        day = (start + timedelta(days=offset)).date()
        overview[day.isoformat()] = {
            "date": day,
            "schedules": [e for e in entries if e.start_time.date() == day],
            "tasks": [t for t in tasks if t.deadline.date() == day],
        }
    return overview
