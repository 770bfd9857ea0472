from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from campus_planner.models import (
    Task,
    TaskCreate,
    check_transition,
    utcnow,
)
from scheduling.dependencies import validate_dependencies
from storage.db import Database

logger = logging.getLogger(__name__)

PRIORITY_RANK = {"low": 0, "medium": 1, "high": 2, "urgent": 3}
SORT_KEYS = ("deadline", "priority", "created")

_JSON_COLUMNS = ("tags", "dependencies", "notes", "attachments")
_COLUMNS = (
    "id", "user_id", "title", "description", "category", "priority", "difficulty",
    "estimated_duration", "actual_duration", "deadline", "start_time", "end_time",
    "status", "progress", "tags", "dependencies", "location", "subject", "instructor",
    "ai_generated", "ai_priority", "notes", "attachments", "created_at", "updated_at",
)


@dataclass
class TaskQuery:
    status: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[str] = None
    deadline_from: Optional[datetime] = None
    deadline_to: Optional[datetime] = None
    created_from: Optional[datetime] = None
    exclude_statuses: Tuple[str, ...] = ()
    sort_by: str = "deadline"


class TaskStore(ABC):
    """
    Owner-scoped task persistence.

    Concrete stores implement the raw reads and writes; status transition and
    dependency checks live here so every backend enforces them the same way.
    """

    @abstractmethod
    async def get(self, owner_id: str, task_id: str) -> Optional[Task]:
        raise NotImplementedError

    @abstractmethod
    async def list(self, owner_id: str, query: Optional[TaskQuery] = None) -> List[Task]:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, owner_id: str, task_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def dependency_graph(self, owner_id: str) -> Dict[str, List[str]]:
        """Task id -> ids it depends on, for every task of the owner."""
        raise NotImplementedError

    @abstractmethod
    async def _insert(self, task: Task) -> Task:
        raise NotImplementedError

    @abstractmethod
    async def _save(self, task: Task) -> Task:
        raise NotImplementedError

    async def create(
        self, owner_id: str, data: TaskCreate, ai_generated: bool = False
    ) -> Task:
        task = Task(user_id=owner_id, ai_generated=ai_generated, **data.model_dump())
        if task.dependencies:
            graph = await self.dependency_graph(owner_id)
            task.dependencies = validate_dependencies(task.id, task.dependencies, graph)
        created = await self._insert(task)
        logger.info(f"Created task {created.id} for user {owner_id}")
        return created

    async def update(
        self, owner_id: str, task_id: str, changes: Dict[str, Any]
    ) -> Optional[Task]:
        """
        Apply a partial update. Returns None when the task does not exist for
        this owner; raises InvalidTransitionError / DependencyError on bad input.
        """
        task = await self.get(owner_id, task_id)
        if task is None:
            return None

        if changes.get("status") is not None:
            check_transition(task.status, changes["status"])
        if changes.get("dependencies") is not None:
            graph = await self.dependency_graph(owner_id)
            changes["dependencies"] = validate_dependencies(
                task_id, changes["dependencies"], graph
            )

        data = task.model_dump()
        data.update(changes)
        data["id"] = task.id
        data["user_id"] = task.user_id
        data["updated_at"] = utcnow()
        return await self._save(Task.model_validate(data))

    async def start(
        self, owner_id: str, task_id: str, now: Optional[datetime] = None
    ) -> Optional[Task]:
        task = await self.get(owner_id, task_id)
        if task is None or task.status == "in_progress":
            return task
        return await self.update(
            owner_id,
            task_id,
            {"status": "in_progress", "start_time": now or utcnow()},
        )

    async def complete(
        self,
        owner_id: str,
        task_id: str,
        actual_duration: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Task]:
        task = await self.get(owner_id, task_id)
        if task is None:
            return None
        changes: Dict[str, Any] = {}
        if task.status != "completed":
            changes.update(status="completed", end_time=now or utcnow(), progress=100)
        if actual_duration is not None:
            changes["actual_duration"] = actual_duration
        if not changes:
            return task
        return await self.update(owner_id, task_id, changes)


def _matches(task: Task, query: TaskQuery) -> bool:
    if query.status and task.status != query.status:
        return False
    if query.category and task.category != query.category:
        return False
    if query.priority and task.priority != query.priority:
        return False
    if query.exclude_statuses and task.status in query.exclude_statuses:
        return False
    if query.deadline_from and task.deadline < query.deadline_from:
        return False
    if query.deadline_to and task.deadline > query.deadline_to:
        return False
    if query.created_from and task.created_at < query.created_from:
        return False
    return True


def sort_tasks(tasks: List[Task], sort_by: str) -> List[Task]:
    if sort_by == "priority":
        return sorted(tasks, key=lambda t: (-PRIORITY_RANK[t.priority], t.deadline))
    if sort_by == "created":
        return sorted(tasks, key=lambda t: t.created_at, reverse=True)
    return sorted(tasks, key=lambda t: t.deadline)


class InMemoryTaskStore(TaskStore):
    """Process-local store used when no DATABASE_URL is configured."""

    def __init__(self):
        self._tasks: Dict[str, Task] = {}

    async def get(self, owner_id: str, task_id: str) -> Optional[Task]:
        task = self._tasks.get(task_id)
        if task is None or task.user_id != owner_id:
            return None
        return task.model_copy(deep=True)

    async def list(self, owner_id: str, query: Optional[TaskQuery] = None) -> List[Task]:
        query = query or TaskQuery()
        found = [
            t.model_copy(deep=True)
            for t in self._tasks.values()
            if t.user_id == owner_id and _matches(t, query)
        ]
        return sort_tasks(found, query.sort_by)

    async def delete(self, owner_id: str, task_id: str) -> bool:
        task = self._tasks.get(task_id)
        if task is None or task.user_id != owner_id:
            return False
        del self._tasks[task_id]
        for other in self._tasks.values():
            if other.user_id == owner_id and task_id in other.dependencies:
                other.dependencies = [d for d in other.dependencies if d != task_id]
        return True

    async def dependency_graph(self, owner_id: str) -> Dict[str, List[str]]:
        return {
            t.id: list(t.dependencies)
            for t in self._tasks.values()
            if t.user_id == owner_id
        }

    async def _insert(self, task: Task) -> Task:
        self._tasks[task.id] = task.model_copy(deep=True)
        return task

    async def _save(self, task: Task) -> Task:
        self._tasks[task.id] = task.model_copy(deep=True)
        return task


class PostgresTaskStore(TaskStore):

    def __init__(self, db: Database):
        self.db = db

    @staticmethod
    def _from_record(record) -> Task:
        data = dict(record)
        for column in _JSON_COLUMNS:
            if isinstance(data.get(column), str):
                data[column] = json.loads(data[column])
        return Task.model_validate(data)

    @staticmethod
    def _values(task: Task) -> list:
        data = task.model_dump(mode="python")
        values = []
        for column in _COLUMNS:
            value = data[column]
            if column in _JSON_COLUMNS:
                value = json.dumps(value, default=str)
            values.append(value)
        return values

    async def get(self, owner_id: str, task_id: str) -> Optional[Task]:
        record = await self.db.fetchrow(
            "SELECT * FROM tasks WHERE id = $1 AND user_id = $2", task_id, owner_id
        )
        return self._from_record(record) if record else None

    async def list(self, owner_id: str, query: Optional[TaskQuery] = None) -> List[Task]:
        query = query or TaskQuery()
        clauses = ["user_id = $1"]
        args: list = [owner_id]

        def _add(sql: str, value: Any) -> None:
            args.append(value)
            clauses.append(sql.format(n=len(args)))

        if query.status:
            _add("status = ${n}", query.status)
        if query.category:
            _add("category = ${n}", query.category)
        if query.priority:
            _add("priority = ${n}", query.priority)
        if query.exclude_statuses:
            _add("NOT (status = ANY(${n}::text[]))", list(query.exclude_statuses))
        if query.deadline_from:
            _add("deadline >= ${n}", query.deadline_from)
        if query.deadline_to:
            _add("deadline <= ${n}", query.deadline_to)
        if query.created_from:
            _add("created_at >= ${n}", query.created_from)

        if query.sort_by == "priority":
            order = (
                "CASE priority WHEN 'urgent' THEN 3 WHEN 'high' THEN 2 "
                "WHEN 'medium' THEN 1 ELSE 0 END DESC, deadline ASC"
            )
        elif query.sort_by == "created":
            order = "created_at DESC"
        else:
            order = "deadline ASC"

        records = await self.db.fetch(
            f"SELECT * FROM tasks WHERE {' AND '.join(clauses)} ORDER BY {order}", *args
        )
        return [self._from_record(r) for r in records]

    async def delete(self, owner_id: str, task_id: str) -> bool:
        async with self.db.connection() as conn:
            async with conn.transaction():
                status = await conn.execute(
                    "DELETE FROM tasks WHERE id = $1 AND user_id = $2", task_id, owner_id
                )
                if status == "DELETE 0":
                    return False
                # drop dangling references from the owner's other tasks
                await conn.execute(
                    "UPDATE tasks SET dependencies = dependencies - $2::text "
                    "WHERE user_id = $1 AND dependencies ? $2::text",
                    owner_id,
                    task_id,
                )
        return True

    async def dependency_graph(self, owner_id: str) -> Dict[str, List[str]]:
        records = await self.db.fetch(
            "SELECT id, dependencies FROM tasks WHERE user_id = $1", owner_id
        )
        graph: Dict[str, List[str]] = {}
        for r in records:
            deps = r["dependencies"]
            graph[r["id"]] = json.loads(deps) if isinstance(deps, str) else list(deps or [])
        return graph

    async def _insert(self, task: Task) -> Task:
        placeholders = ", ".join(f"${i}" for i in range(1, len(_COLUMNS) + 1))
        await self.db.execute(
            f"INSERT INTO tasks ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
            *self._values(task),
        )
        return task

    async def _save(self, task: Task) -> Task:
        # id and user_id are $1/$2 and identify the row
        assignments = ", ".join(
            f"{column} = ${i}" for i, column in enumerate(_COLUMNS, start=1) if i > 2
        )
        await self.db.execute(
            f"UPDATE tasks SET {assignments} WHERE id = $1 AND user_id = $2",
            *self._values(task),
        )
        return task
