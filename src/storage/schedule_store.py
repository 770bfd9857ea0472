from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from campus_planner.models import (
    AvailableSlot,
    ScheduleConflict,
    ScheduleEntry,
    ScheduleEntryCreate,
    utcnow,
)
from scheduling import slots
from storage.db import Database

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id", "user_id", "type", "title", "description", "subject", "instructor",
    "location", "start_time", "end_time", "day_of_week", "is_recurring",
    "recurring_pattern", "recurring_end_date", "color", "is_active", "metadata",
    "created_at", "updated_at",
)


@dataclass
class ScheduleQuery:
    """
    ``overlapping`` selects entries that intersect [start, end); otherwise only
    entries lying entirely inside the range match.
    """

    type: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    overlapping: bool = False
    active_only: bool = False


def _matches(entry: ScheduleEntry, query: ScheduleQuery) -> bool:
    if query.type and entry.type != query.type:
        return False
    if query.active_only and not entry.is_active:
        return False
    if query.overlapping:
        if query.start and entry.end_time <= query.start:
            return False
        if query.end and entry.start_time >= query.end:
            return False
    else:
        if query.start and entry.start_time < query.start:
            return False
        if query.end and entry.end_time > query.end:
            return False
    return True


class ScheduleStore(ABC):

    @abstractmethod
    async def get(self, owner_id: str, entry_id: str) -> Optional[ScheduleEntry]:
        raise NotImplementedError

    @abstractmethod
    async def list(
        self, owner_id: str, query: Optional[ScheduleQuery] = None
    ) -> List[ScheduleEntry]:
        """Entries ordered by start time."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, owner_id: str, entry_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def _insert_many(self, entries: List[ScheduleEntry]) -> List[ScheduleEntry]:
        raise NotImplementedError

    @abstractmethod
    async def _save(self, entry: ScheduleEntry) -> ScheduleEntry:
        raise NotImplementedError

    async def create(self, owner_id: str, data: ScheduleEntryCreate) -> ScheduleEntry:
        created = await self.create_many(owner_id, [data])
        return created[0]

    async def create_many(
        self, owner_id: str, items: Sequence[ScheduleEntryCreate]
    ) -> List[ScheduleEntry]:
        entries = [ScheduleEntry(user_id=owner_id, **item.model_dump()) for item in items]
        if not entries:
            return []
        created = await self._insert_many(entries)
        logger.info(f"Created {len(created)} schedule entries for user {owner_id}")
        return created

    async def update(
        self, owner_id: str, entry_id: str, changes: Dict[str, Any]
    ) -> Optional[ScheduleEntry]:
        entry = await self.get(owner_id, entry_id)
        if entry is None:
            return None
        data = entry.model_dump()
        data.update(changes)
        data["id"] = entry.id
        data["user_id"] = entry.user_id
        data["updated_at"] = utcnow()
        return await self._save(ScheduleEntry.model_validate(data))

    async def find_by_google_event(
        self, owner_id: str, event_ids: Sequence[str]
    ) -> set:
        """Google event ids among ``event_ids`` that were already imported."""
        wanted = set(event_ids)
        found = set()
        for entry in await self.list(owner_id):
            event_id = entry.metadata.google_event_id
            if event_id and event_id in wanted:
                found.add(event_id)
        return found

    async def find_conflicts(
        self, owner_id: str, start: datetime, end: datetime
    ) -> List[ScheduleConflict]:
        entries = await self.list(
            owner_id,
            ScheduleQuery(start=start, end=end, overlapping=True, active_only=True),
        )
        return slots.find_conflicts(entries)

    async def find_available_slots(
        self, owner_id: str, start: datetime, end: datetime, min_duration_min: float
    ) -> List[AvailableSlot]:
        entries = await self.list(
            owner_id,
            ScheduleQuery(start=start, end=end, overlapping=True, active_only=True),
        )
        return slots.find_available_slots(entries, start, end, min_duration_min)


class InMemoryScheduleStore(ScheduleStore):

    def __init__(self):
        self._entries: Dict[str, ScheduleEntry] = {}

    async def get(self, owner_id: str, entry_id: str) -> Optional[ScheduleEntry]:
        entry = self._entries.get(entry_id)
        if entry is None or entry.user_id != owner_id:
            return None
        return entry.model_copy(deep=True)

    async def list(
        self, owner_id: str, query: Optional[ScheduleQuery] = None
    ) -> List[ScheduleEntry]:
        query = query or ScheduleQuery()
        found = [
            e.model_copy(deep=True)
            for e in self._entries.values()
            if e.user_id == owner_id and _matches(e, query)
        ]
        return sorted(found, key=lambda e: e.start_time)

    async def delete(self, owner_id: str, entry_id: str) -> bool:
        entry = self._entries.get(entry_id)
        if entry is None or entry.user_id != owner_id:
            return False
        del self._entries[entry_id]
        return True

    async def _insert_many(self, entries: List[ScheduleEntry]) -> List[ScheduleEntry]:
        for entry in entries:
            self._entries[entry.id] = entry.model_copy(deep=True)
        return entries

    async def _save(self, entry: ScheduleEntry) -> ScheduleEntry:
        self._entries[entry.id] = entry.model_copy(deep=True)
        return entry


class PostgresScheduleStore(ScheduleStore):

    def __init__(self, db: Database):
        self.db = db

    @staticmethod
    def _from_record(record) -> ScheduleEntry:
        data = dict(record)
        if isinstance(data.get("metadata"), str):
            data["metadata"] = json.loads(data["metadata"])
        return ScheduleEntry.model_validate(data)

    @staticmethod
    def _values(entry: ScheduleEntry) -> list:
        data = entry.model_dump(mode="python")
        data["metadata"] = json.dumps(data["metadata"])
        return [data[column] for column in _COLUMNS]

    async def get(self, owner_id: str, entry_id: str) -> Optional[ScheduleEntry]:
        record = await self.db.fetchrow(
            "SELECT * FROM schedule_entries WHERE id = $1 AND user_id = $2",
            entry_id,
            owner_id,
        )
        return self._from_record(record) if record else None

    async def list(
        self, owner_id: str, query: Optional[ScheduleQuery] = None
    ) -> List[ScheduleEntry]:
        query = query or ScheduleQuery()
        clauses = ["user_id = $1"]
        args: list = [owner_id]

        def _add(sql: str, value: Any) -> None:
            args.append(value)
            clauses.append(sql.format(n=len(args)))

        if query.type:
            _add("type = ${n}", query.type)
        if query.active_only:
            clauses.append("is_active")
        if query.overlapping:
            if query.start:
                _add("end_time > ${n}", query.start)
            if query.end:
                _add("start_time < ${n}", query.end)
        else:
            if query.start:
                _add("start_time >= ${n}", query.start)
            if query.end:
                _add("end_time <= ${n}", query.end)

        records = await self.db.fetch(
            f"SELECT * FROM schedule_entries WHERE {' AND '.join(clauses)} "
            "ORDER BY start_time ASC",
            *args,
        )
        return [self._from_record(r) for r in records]

    async def find_by_google_event(
        self, owner_id: str, event_ids: Sequence[str]
    ) -> set:
        records = await self.db.fetch(
            "SELECT metadata->>'google_event_id' AS event_id FROM schedule_entries "
            "WHERE user_id = $1 AND metadata->>'google_event_id' = ANY($2::text[])",
            owner_id,
            list(event_ids),
        )
        return {r["event_id"] for r in records}

    async def delete(self, owner_id: str, entry_id: str) -> bool:
        status = await self.db.execute(
            "DELETE FROM schedule_entries WHERE id = $1 AND user_id = $2",
            entry_id,
            owner_id,
        )
        return status != "DELETE 0"

    async def _insert_many(self, entries: List[ScheduleEntry]) -> List[ScheduleEntry]:
        placeholders = ", ".join(f"${i}" for i in range(1, len(_COLUMNS) + 1))
        async with self.db.connection() as conn:
            await conn.executemany(
                f"INSERT INTO schedule_entries ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                [self._values(e) for e in entries],
            )
        return entries

    async def _save(self, entry: ScheduleEntry) -> ScheduleEntry:
        assignments = ", ".join(
            f"{column} = ${i}" for i, column in enumerate(_COLUMNS, start=1) if i > 2
        )
        await self.db.execute(
            f"UPDATE schedule_entries SET {assignments} WHERE id = $1 AND user_id = $2",
            *self._values(entry),
        )
        return entry
