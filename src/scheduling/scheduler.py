"""
Local day planning: working-hours windows in the user's timezone and the
greedy fallback scheduler used when the model's plan is missing or invalid.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from campus_planner.models import (
    OPEN_STATUSES,
    Assignment,
    ScheduleEntry,
    Task,
    UserPreferences,
    ensure_utc,
    utcnow,
)
from scheduling.slots import busy_intervals
from scoring.priority import priority_score

logger = logging.getLogger(__name__)

FALLBACK_REASONING = "Fallback scheduling based on priority"


def _parse_hhmm(value: str) -> time:
    h, m = map(int, value.split(":"))
    return time(h, m)


def _zone(name: str):
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{name}', using UTC")
        return timezone.utc


def working_window(day: date, preferences: UserPreferences) -> Tuple[datetime, datetime]:
    """The day's working-hours window as UTC datetimes."""
    tz = _zone(preferences.timezone)
    start = datetime.combine(day, _parse_hhmm(preferences.working_hours.start), tzinfo=tz)
    end = datetime.combine(day, _parse_hhmm(preferences.working_hours.end), tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def local_date(moment: datetime, preferences: UserPreferences) -> date:
    return moment.astimezone(_zone(preferences.timezone)).date()


def local_day_bounds(day: date, preferences: UserPreferences) -> Tuple[datetime, datetime]:
    """Local midnight to the next local midnight, as UTC datetimes."""
    tz = _zone(preferences.timezone)
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def planning_window(
    day: date, preferences: UserPreferences, not_before: Optional[datetime] = None
) -> Tuple[datetime, datetime]:
    """The working-hours window, starting no earlier than ``not_before``."""
    start, end = working_window(day, preferences)
    if not_before is not None:
        start = max(start, ensure_utc(not_before))
    return start, end


class FallbackScheduler:
    """
    Greedy local scheduler used when the remote model cannot plan the day.

    Tasks are laid out one after another in descending priority score,
    separated by the user's break, inside the working-hours window and around
    existing schedule entries. A task that no longer fits is left out.
    ``not_before`` moves the start of the window later, never earlier.
    """

    def schedule(
        self,
        tasks: Sequence[Task],
        existing: Iterable[ScheduleEntry],
        preferences: UserPreferences,
        day: Optional[date] = None,
        now: Optional[datetime] = None,
        not_before: Optional[datetime] = None,
    ) -> List[Assignment]:
        now = now or utcnow()
        day = day or local_date(now, preferences)

        open_tasks = [t for t in tasks if t.status in OPEN_STATUSES]
        if not open_tasks:
            return []

        # sorted() is stable: equal scores keep input order
        ranked = sorted(open_tasks, key=lambda t: -priority_score(t, now))

        window_start, window_end = planning_window(day, preferences, not_before)
        busy = busy_intervals(existing)
        gap = timedelta(minutes=preferences.break_duration)

        assignments: List[Assignment] = []
        cursor = window_start
        for task in ranked:
            duration = timedelta(minutes=task.estimated_duration)
            start = self._first_fit(cursor, duration, busy)
            end = start + duration
            if end > window_end:
                logger.info(
                    f"Task {task.id} ({task.estimated_duration} min) does not fit before "
                    f"{window_end.isoformat()}, leaving it unscheduled"
                )
                continue
            assignments.append(
                Assignment(
                    task_id=task.id,
                    title=task.title,
                    start_time=start,
                    end_time=end,
                    reasoning=FALLBACK_REASONING,
                )
            )
            cursor = end + gap

        return assignments

    @staticmethod
    def _first_fit(
        cursor: datetime,
        duration: timedelta,
        busy: List[Tuple[datetime, datetime]],
    ) -> datetime:
        start = cursor
        for busy_start, busy_end in busy:
            if busy_end <= start:
                continue
            if start + duration <= busy_start:
                break
            start = max(start, busy_end)
        return start


def unscheduled_tasks(tasks: Sequence[Task], assignments: Sequence[Assignment]) -> List[Task]:
    placed = {a.task_id for a in assignments}
    return [t for t in tasks if t.status in OPEN_STATUSES and t.id not in placed]
