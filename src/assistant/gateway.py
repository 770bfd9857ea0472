"""
Reasoning gateway: every call into the hosted language model goes through here.

Capabilities that have a local fallback (task parsing, schedule optimization)
never raise. Recommendations and announcement analysis degrade to empty
results. Chat, task breakdown and study strategies surface failures as
ReasoningUnavailableError.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import TypeAdapter

from campus_planner.models import (
    Assignment,
    ScheduleEntry,
    Task,
    UserPreferences,
    UserProfile,
    ensure_utc,
    utcnow,
)
from extraction.task_parser import TaskParser
from llm.llm_client import LLMClient
from llm.schemas import (
    AnnouncementAnalysis,
    ParsedTask,
    ProposedAssignment,
    Recommendation,
    StudyStrategy,
    Subtask,
)
from scheduling.scheduler import (
    FallbackScheduler,
    local_date,
    planning_window,
    unscheduled_tasks,
)
from scheduling.slots import intervals_overlap

logger = logging.getLogger(__name__)

JSON_SYSTEM = (
    "You are a planning assistant for college students. "
    "Reply with valid JSON only, no prose."
)
CHAT_SYSTEM = (
    "You are an assistant for a college student task management system. "
    "Give concise, practical advice on task management, study strategies, "
    "time management and academic success."
)

_proposals = TypeAdapter(List[ProposedAssignment])
_recommendations = TypeAdapter(List[Recommendation])
_subtasks = TypeAdapter(List[Subtask])


class ReasoningUnavailableError(RuntimeError):
    pass


@dataclass
class OptimizationResult:
    assignments: List[Assignment]
    source: str  # "model" or "fallback"
    unscheduled: List[str] = field(default_factory=list)


def _task_brief(task: Task) -> Dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "category": task.category,
        "priority": task.priority,
        "difficulty": task.difficulty,
        "estimated_duration": task.estimated_duration,
        "deadline": task.deadline.isoformat(),
        "status": task.status,
        "dependencies": task.dependencies,
    }


def _entry_brief(entry: ScheduleEntry) -> Dict[str, Any]:
    return {
        "title": entry.title,
        "type": entry.type,
        "start_time": entry.start_time.isoformat(),
        "end_time": entry.end_time.isoformat(),
        "location": entry.location,
    }


def _dumps(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


class ReasoningGateway:

    def __init__(
        self,
        llm_client: LLMClient,
        scheduler: FallbackScheduler,
        parser: Optional[TaskParser] = None,
    ):
        self.llm = llm_client
        self.scheduler = scheduler
        self.parser = parser or TaskParser(llm_client=llm_client)

    # -- (a) free text -> task -------------------------------------------------

    def parse_task(
        self, text: str, profile: Optional[UserProfile] = None
    ) -> Tuple[ParsedTask, bool]:
        return self.parser.parse(text, profile)

    # -- (b) schedule optimization --------------------------------------------

    def optimize_schedule(
        self,
        tasks: Sequence[Task],
        existing: Sequence[ScheduleEntry],
        preferences: UserPreferences,
        day: Optional[date] = None,
        now: Optional[datetime] = None,
        not_before: Optional[datetime] = None,
    ) -> OptimizationResult:
        now = now or utcnow()
        if not tasks:
            return OptimizationResult(assignments=[], source="fallback")

        day = day or local_date(now, preferences)
        window = planning_window(day, preferences, not_before)
        prompt = (
            "Optimize the following task schedule for a college student.\n\n"
            f"Tasks:\n{_dumps([_task_brief(t) for t in tasks])}\n\n"
            f"Current schedule:\n{_dumps([_entry_brief(e) for e in existing])}\n\n"
            f"User preferences:\n- Working hours: {preferences.working_hours.start} - "
            f"{preferences.working_hours.end} ({preferences.timezone})\n"
            f"- Study session duration: {preferences.study_session} minutes\n"
            f"- Break duration: {preferences.break_duration} minutes\n\n"
            f"Plan only between {window[0].isoformat()} and {window[1].isoformat()}. "
            "Schedule each task at most once. Prioritize urgent and high-priority "
            "tasks, respect dependencies, fit within free time, include breaks, "
            "balance the workload and account for difficulty and duration.\n"
            "Return a JSON array of objects with keys task_id, scheduled_start_time, "
            "scheduled_end_time (ISO 8601) and reasoning."
        )
        try:
            raw = self.llm.complete_json(JSON_SYSTEM, prompt, temperature=0.2)
            assignments = self._accept_proposals(raw, tasks, existing, window)
            return OptimizationResult(assignments=assignments, source="model")
        except Exception as e:
            logger.warning(f"Schedule optimization fell back to greedy scheduling: {e}")

        assignments = self.scheduler.schedule(
            tasks, existing, preferences, day=day, now=now, not_before=not_before
        )
        return OptimizationResult(
            assignments=assignments,
            source="fallback",
            unscheduled=[t.id for t in unscheduled_tasks(tasks, assignments)],
        )

    @staticmethod
    def _accept_proposals(
        raw: Any,
        tasks: Sequence[Task],
        existing: Sequence[ScheduleEntry],
        window: Tuple[datetime, datetime],
    ) -> List[Assignment]:
        proposals = _proposals.validate_python(raw)
        if not proposals:
            raise ValueError("model proposed no assignments")

        by_id = {t.id: t for t in tasks}
        window_start, window_end = window
        accepted: Dict[str, Assignment] = {}
        for p in proposals:
            task = by_id.get(p.task_id)
            if task is None:
                raise ValueError(f"model referenced unknown task {p.task_id}")
            if task.id in accepted:
                raise ValueError(f"task {p.task_id} proposed more than once")
            start = ensure_utc(p.scheduled_start_time)
            end = ensure_utc(p.scheduled_end_time)
            if end <= start:
                raise ValueError(f"empty interval proposed for task {p.task_id}")
            if start < window_start or end > window_end:
                raise ValueError(f"task {p.task_id} proposed outside working hours")
            for entry in existing:
                if entry.is_active and intervals_overlap(start, end, entry.start_time, entry.end_time):
                    raise ValueError(f"task {p.task_id} overlaps '{entry.title}'")
            for other in accepted.values():
                if intervals_overlap(start, end, other.start_time, other.end_time):
                    raise ValueError(f"task {p.task_id} overlaps task {other.task_id}")
            accepted[task.id] = Assignment(
                task_id=task.id,
                title=task.title,
                start_time=start,
                end_time=end,
                reasoning=p.reasoning,
            )
        return sorted(accepted.values(), key=lambda a: a.start_time)

    # -- (c) recommendations ----------------------------------------------------

    def recommendations(
        self,
        tasks: Sequence[Task],
        schedule: Sequence[ScheduleEntry],
        academic_calendar: Optional[Dict[str, Any]] = None,
    ) -> List[Recommendation]:
        calendar = academic_calendar or {"exams": [], "holidays": [], "important_dates": []}
        prompt = (
            "Based on the following information, give recommendations for a college student.\n\n"
            f"Current tasks:\n{_dumps([_task_brief(t) for t in tasks])}\n\n"
            f"Schedule:\n{_dumps([_entry_brief(e) for e in schedule])}\n\n"
            f"Academic calendar:\n{_dumps(calendar)}\n\n"
            "Suggest missing tasks, tasks worth breaking down, time management "
            "improvements, study strategies for upcoming exams and preparation for "
            "future deadlines.\nReturn a JSON array of recommendations with keys type "
            "(missing_task|breakdown|optimization|study_strategy|preparation), title, "
            "description, priority (low|medium|high), suggested_tasks."
        )
        try:
            raw = self.llm.complete_json(JSON_SYSTEM, prompt, temperature=0.4)
            return _recommendations.validate_python(raw)
        except Exception as e:
            logger.warning(f"Recommendations unavailable: {e}")
            return []

    # -- (d) chat -----------------------------------------------------------------

    def chat(
        self,
        message: str,
        context: Optional[str] = None,
        profile: Optional[UserProfile] = None,
    ) -> str:
        parts = []
        if profile is not None:
            parts.append(
                f"Student context:\n- Name: {profile.name}\n- University: {profile.university}\n"
                f"- Course: {profile.course}\n- Year: {profile.year}"
            )
        if context:
            parts.append(f"Additional context: {context}")
        parts.append(f"Student message: {message}")
        try:
            return self.llm.complete(CHAT_SYSTEM, "\n\n".join(parts), temperature=0.7).strip()
        except Exception as e:
            logger.error(f"Chat request failed: {e}")
            raise ReasoningUnavailableError("assistant is unavailable") from e

    # -- supplementary capabilities -------------------------------------------------

    def breakdown_task(self, task: Task) -> List[Subtask]:
        prompt = (
            "Break down the following task into smaller, manageable subtasks.\n\n"
            f"Task: {task.title}\nDescription: {task.description or 'No description'}\n"
            f"Category: {task.category}\nDifficulty: {task.difficulty}\n"
            f"Estimated duration: {task.estimated_duration} minutes\n"
            f"Deadline: {task.deadline.isoformat()}\n\n"
            "Return a JSON array of subtasks with keys title, description, "
            "estimated_duration (minutes), priority (low|medium|high) and "
            "dependencies (titles of prerequisite subtasks)."
        )
        try:
            return _subtasks.validate_python(
                self.llm.complete_json(JSON_SYSTEM, prompt, temperature=0.3)
            )
        except Exception as e:
            logger.error(f"Task breakdown failed for {task.id}: {e}")
            raise ReasoningUnavailableError("task breakdown is unavailable") from e

    def study_strategy(
        self,
        subject: str,
        exam_date: str,
        difficulty: str = "medium",
        now: Optional[datetime] = None,
    ) -> StudyStrategy:
        now = now or utcnow()
        prompt = (
            "Generate a personalized study strategy for a college student.\n\n"
            f"Subject: {subject}\nExam date: {exam_date}\nDifficulty: {difficulty}\n"
            f"Current date: {now.isoformat()}\n\n"
            "Return a JSON object with keys strategy, timeline (list of objects with "
            "phase, duration, focus, tasks), tips and resources."
        )
        try:
            return StudyStrategy.model_validate(
                self.llm.complete_json(JSON_SYSTEM, prompt, temperature=0.4)
            )
        except Exception as e:
            logger.error(f"Study strategy failed for {subject}: {e}")
            raise ReasoningUnavailableError("study strategy is unavailable") from e

    def analyze_announcements(self, announcements: Sequence[str]) -> AnnouncementAnalysis:
        prompt = (
            "Analyze the following academic announcements and extract actionable items.\n\n"
            f"Announcements:\n{_dumps(list(announcements))}\n\n"
            "Return a JSON object with keys deadlines (date, description), actions "
            "(action, priority), schedule_changes (change, date), new_tasks (title, "
            "deadline, category) and reminders (strings)."
        )
        try:
            return AnnouncementAnalysis.model_validate(
                self.llm.complete_json(JSON_SYSTEM, prompt, temperature=0.3)
            )
        except Exception as e:
            logger.warning(f"Announcement analysis unavailable: {e}")
            return AnnouncementAnalysis()

