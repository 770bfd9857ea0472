"""Interval helpers over schedule entries: pairwise conflicts and free gaps."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Tuple

from campus_planner.models import AvailableSlot, ScheduleConflict, ScheduleEntry


def intervals_overlap(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    """Half-open [start, end) overlap test; touching intervals do not overlap."""
    return a_start < b_end and a_end > b_start


def find_conflicts(entries: Iterable[ScheduleEntry]) -> List[ScheduleConflict]:
    ordered = sorted(entries, key=lambda e: e.start_time)
    conflicts: List[ScheduleConflict] = []
    for i, first in enumerate(ordered):
        for second in ordered[i + 1 :]:
            if not first.conflicts_with(second):
                continue
            overlap = min(first.end_time, second.end_time) - max(
                first.start_time, second.start_time
            )
            conflicts.append(
                ScheduleConflict(
                    first=first,
                    second=second,
                    conflict_minutes=overlap.total_seconds() / 60,
                )
            )
    return conflicts


def busy_intervals(
    entries: Iterable[ScheduleEntry],
) -> List[Tuple[datetime, datetime]]:
    return sorted(
        (e.start_time, e.end_time) for e in entries if e.is_active
    )


def find_available_slots(
    entries: Iterable[ScheduleEntry],
    window_start: datetime,
    window_end: datetime,
    min_duration_min: float,
) -> List[AvailableSlot]:
    """
    Gaps of at least ``min_duration_min`` inside [window_start, window_end)
    that no active entry covers.

    Entries are scanned in start order; every gap before an entry, between
    two entries and after the last one is reported when long enough.
    """
    slots: List[AvailableSlot] = []
    cursor = window_start

    def _emit(start: datetime, end: datetime) -> None:
        minutes = (end - start).total_seconds() / 60
        if minutes >= min_duration_min:
            slots.append(AvailableSlot(start_time=start, end_time=end, duration=minutes))

    for start, end in busy_intervals(entries):
        if start >= window_end:
            break
        if cursor < start:
            _emit(cursor, start)
        cursor = max(cursor, end)

    if cursor < window_end:
        _emit(cursor, window_end)

    return slots
