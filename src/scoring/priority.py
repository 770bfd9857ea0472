"""
Heuristic urgency score used to rank tasks for display and scheduling.

The score is the sum of four point buckets clamped to [0, 100]:
time left until the deadline, category, difficulty and the user-assigned
priority.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from campus_planner.models import Task, ensure_utc, utcnow

CATEGORY_POINTS = {
    "exam": 35,
    "assignment": 30,
    "project": 25,
    "internship": 25,
    "lab": 20,
    "academic": 20,
    "other": 15,
    "attendance": 15,
    "personal": 10,
}
DEFAULT_CATEGORY_POINTS = 15

DIFFICULTY_POINTS = {"hard": 20, "medium": 10, "easy": 5}
DEFAULT_DIFFICULTY_POINTS = 10

PRIORITY_POINTS = {"urgent": 30, "high": 20, "medium": 10, "low": 5}
DEFAULT_PRIORITY_POINTS = 10

# (max hours left, points); anything beyond the last bound gets FAR_DEADLINE_POINTS
TIME_BUCKETS = ((24, 40), (72, 30), (168, 20))
FAR_DEADLINE_POINTS = 10


def time_points(deadline: datetime, now: datetime) -> int:
    hours_left = (ensure_utc(deadline) - ensure_utc(now)).total_seconds() / 3600
    for bound, points in TIME_BUCKETS:
        if hours_left <= bound:
            return points
    return FAR_DEADLINE_POINTS


def priority_score(task: Task, now: Optional[datetime] = None) -> int:
    """Urgency score in [0, 100]; past deadlines land in the closest time bucket."""
    now = now or utcnow()
    score = time_points(task.deadline, now)
    score += CATEGORY_POINTS.get(task.category, DEFAULT_CATEGORY_POINTS)
    score += DIFFICULTY_POINTS.get(task.difficulty, DEFAULT_DIFFICULTY_POINTS)
    score += PRIORITY_POINTS.get(task.priority, DEFAULT_PRIORITY_POINTS)
    return min(100, max(0, score))


def with_ai_priority(task: Task, now: Optional[datetime] = None) -> Task:
    return task.model_copy(update={"ai_priority": priority_score(task, now)})
