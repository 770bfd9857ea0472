from __future__ import annotations
from datetime import datetime
from typing import Optional, List, Literal
from pydantic import BaseModel, Field

from campus_planner.models import Category, Difficulty, Priority

class ParsedTask(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    category: Category = "other"
    priority: Priority = "medium"
    difficulty: Difficulty = "medium"
    estimated_duration: int = Field(default=60, ge=15, le=480)
    deadline: Optional[datetime] = None
    subject: Optional[str] = None
    location: Optional[str] = None
    tags: List[str] = Field(default_factory=list, max_length=10)

class ProposedAssignment(BaseModel):
    task_id: str
    scheduled_start_time: datetime
    scheduled_end_time: datetime
    reasoning: str = ""

class Recommendation(BaseModel):
    type: Literal["missing_task", "breakdown", "optimization", "study_strategy", "preparation"] = "optimization"
    title: str
    description: str = ""
    priority: Literal["low", "medium", "high"] = "medium"
    suggested_tasks: List[str] = Field(default_factory=list)

class Subtask(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    estimated_duration: int = Field(default=30, gt=0)
    priority: Literal["low", "medium", "high"] = "medium"
    dependencies: List[str] = Field(default_factory=list)

class StudyPhase(BaseModel):
    phase: str
    duration: str = ""
    focus: str = ""
    tasks: List[str] = Field(default_factory=list)

class StudyStrategy(BaseModel):
    strategy: str
    timeline: List[StudyPhase] = Field(default_factory=list)
    tips: List[str] = Field(default_factory=list)
    resources: List[str] = Field(default_factory=list)

class AnnouncedDeadline(BaseModel):
    date: Optional[datetime] = None
    description: str

class AnnouncedAction(BaseModel):
    action: str
    priority: Literal["low", "medium", "high"] = "medium"

class ScheduleChange(BaseModel):
    change: str
    date: Optional[str] = None

class AnnouncedTask(BaseModel):
    title: str
    deadline: Optional[datetime] = None
    category: str = "other"

class AnnouncementAnalysis(BaseModel):
    deadlines: List[AnnouncedDeadline] = Field(default_factory=list)
    actions: List[AnnouncedAction] = Field(default_factory=list)
    schedule_changes: List[ScheduleChange] = Field(default_factory=list)
    new_tasks: List[AnnouncedTask] = Field(default_factory=list)
    reminders: List[str] = Field(default_factory=list)
