from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


Category = Literal[
    "academic",
    "assignment",
    "lab",
    "exam",
    "project",
    "internship",
    "attendance",
    "personal",
    "other",
]
Priority = Literal["low", "medium", "high", "urgent"]
Difficulty = Literal["easy", "medium", "hard"]
TaskStatus = Literal["pending", "in_progress", "completed", "cancelled"]

ScheduleType = Literal["timetable", "holiday", "exam", "lab", "event"]
RecurringPattern = Literal["daily", "weekly", "monthly"]

CATEGORIES = (
    "academic",
    "assignment",
    "lab",
    "exam",
    "project",
    "internship",
    "attendance",
    "personal",
    "other",
)
PRIORITIES = ("low", "medium", "high", "urgent")
DIFFICULTIES = ("easy", "medium", "hard")

# Allowed status moves; re-writing the current status is always accepted.
STATUS_TRANSITIONS: Dict[str, frozenset] = {
    "pending": frozenset({"in_progress", "completed", "cancelled"}),
    "in_progress": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}

OPEN_STATUSES = ("pending", "in_progress")


class InvalidTransitionError(ValueError):
    def __init__(self, current: str, requested: str):
        super().__init__(f"cannot move task from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested


class DependencyError(ValueError):
    pass


class DependencyCycleError(DependencyError):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are taken to be UTC; aware ones are converted."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def check_transition(current: str, requested: str) -> None:
    if current == requested:
        return
    if requested not in STATUS_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current, requested)


class TaskNote(BaseModel):
    content: str
    created_at: datetime = Field(default_factory=utcnow)


class Attachment(BaseModel):
    name: str
    url: str
    type: Optional[str] = None


class _TaskFields(BaseModel):
    @field_validator(
        "deadline", "start_time", "end_time", check_fields=False
    )
    @classmethod
    def _aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @field_validator("tags", check_fields=False)
    @classmethod
    def _strip_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        return [t.strip() for t in v if t and t.strip()]


class TaskCreate(_TaskFields):
    title: str = Field(..., min_length=1)
    description: str = ""
    category: Category
    priority: Priority = "medium"
    difficulty: Difficulty = "medium"
    estimated_duration: int = Field(..., gt=0)
    deadline: datetime
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    progress: int = Field(0, ge=0, le=100)
    tags: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)
    location: Optional[str] = None
    subject: Optional[str] = None
    instructor: Optional[str] = None
    notes: List[TaskNote] = Field(default_factory=list)
    attachments: List[Attachment] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("title must not be blank")
        return v2


class TaskUpdate(_TaskFields):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    category: Optional[Category] = None
    priority: Optional[Priority] = None
    difficulty: Optional[Difficulty] = None
    estimated_duration: Optional[int] = Field(None, gt=0)
    actual_duration: Optional[int] = Field(None, ge=0)
    deadline: Optional[datetime] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: Optional[TaskStatus] = None
    progress: Optional[int] = Field(None, ge=0, le=100)
    tags: Optional[List[str]] = None
    dependencies: Optional[List[str]] = None
    location: Optional[str] = None
    subject: Optional[str] = None
    instructor: Optional[str] = None
    notes: Optional[List[TaskNote]] = None
    attachments: Optional[List[Attachment]] = None


class Task(TaskCreate):
    id: str = Field(default_factory=new_id)
    user_id: str
    status: TaskStatus = "pending"
    actual_duration: Optional[int] = None
    ai_generated: bool = False
    ai_priority: Optional[int] = Field(None, ge=0, le=100)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return self.deadline < now and self.status in OPEN_STATUSES

    def time_remaining_s(self, now: Optional[datetime] = None) -> float:
        now = now or utcnow()
        return max(0.0, (self.deadline - now).total_seconds())


class ScheduleMetadata(BaseModel):
    room: Optional[str] = None
    building: Optional[str] = None
    capacity: Optional[int] = None
    equipment: List[str] = Field(default_factory=list)
    google_event_id: Optional[str] = None
    html_link: Optional[str] = None


class _ScheduleFields(BaseModel):
    @field_validator(
        "start_time", "end_time", "recurring_end_date", check_fields=False
    )
    @classmethod
    def _aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class ScheduleEntryCreate(_ScheduleFields):
    type: ScheduleType
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    subject: Optional[str] = None
    instructor: Optional[str] = None
    location: Optional[str] = None
    start_time: datetime
    end_time: datetime
    day_of_week: Optional[int] = Field(None, ge=0, le=6)
    is_recurring: bool = False
    recurring_pattern: RecurringPattern = "weekly"
    recurring_end_date: Optional[datetime] = None
    color: str = "#3B82F6"
    is_active: bool = True
    metadata: ScheduleMetadata = Field(default_factory=ScheduleMetadata)


class ScheduleEntryUpdate(_ScheduleFields):
    type: Optional[ScheduleType] = None
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    subject: Optional[str] = None
    instructor: Optional[str] = None
    location: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    day_of_week: Optional[int] = Field(None, ge=0, le=6)
    is_recurring: Optional[bool] = None
    recurring_pattern: Optional[RecurringPattern] = None
    recurring_end_date: Optional[datetime] = None
    color: Optional[str] = None
    is_active: Optional[bool] = None
    metadata: Optional[ScheduleMetadata] = None


class ScheduleEntry(ScheduleEntryCreate):
    id: str = Field(default_factory=new_id)
    user_id: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def duration_minutes(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / 60


class WorkingHours(BaseModel):
    start: str = Field("09:00", pattern=r"^\d{2}:\d{2}$")
    end: str = Field("18:00", pattern=r"^\d{2}:\d{2}$")


class NotificationPreferences(BaseModel):
    email: bool = True
    push: bool = True
    reminder_time: int = Field(30, gt=0)  # minutes before deadline


class UserPreferences(BaseModel):
    timezone: str = "UTC"
    working_hours: WorkingHours = Field(default_factory=WorkingHours)
    break_duration: int = Field(15, ge=0)
    study_session: int = Field(45, gt=0)
    notifications: NotificationPreferences = Field(
        default_factory=NotificationPreferences
    )


class UserProfile(BaseModel):
    id: str
    name: str
    email: str
    university: str
    course: str
    year: int
    preferences: UserPreferences = Field(default_factory=UserPreferences)


class User(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1)
    email: str
    password_hash: str
    university: str
    course: str
    year: int = Field(..., ge=1, le=5)
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    def profile(self) -> UserProfile:
        return UserProfile(
            id=self.id,
            name=self.name,
            email=self.email,
            university=self.university,
            course=self.course,
            year=self.year,
            preferences=self.preferences,
        )


class Assignment(BaseModel):
    task_id: str
    title: str
    start_time: datetime
    end_time: datetime
    reasoning: str = ""


class AvailableSlot(BaseModel):
    start_time: datetime
    end_time: datetime
    duration: float  # minutes


class ScheduleConflict(BaseModel):
    first: ScheduleEntry
    second: ScheduleEntry
    conflict_minutes: float
