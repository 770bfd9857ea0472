from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from campus_planner.models import User, UserPreferences
from storage.db import Database

logger = logging.getLogger(__name__)


class EmailTakenError(ValueError):
    pass


class UserStore(ABC):

    @abstractmethod
    async def create(self, user: User) -> User:
        """Raises EmailTakenError if the email is already registered."""
        raise NotImplementedError

    @abstractmethod
    async def get(self, user_id: str) -> Optional[User]:
        raise NotImplementedError

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[User]:
        raise NotImplementedError

    @abstractmethod
    async def update_preferences(
        self, user_id: str, preferences: UserPreferences
    ) -> Optional[User]:
        raise NotImplementedError

    @abstractmethod
    async def list_active(self, limit: int) -> List[User]:
        raise NotImplementedError


class InMemoryUserStore(UserStore):

    def __init__(self):
        self._users: Dict[str, User] = {}

    async def create(self, user: User) -> User:
        if await self.get_by_email(user.email) is not None:
            raise EmailTakenError(f"email {user.email} is already registered")
        self._users[user.id] = user.model_copy(deep=True)
        return user

    async def get(self, user_id: str) -> Optional[User]:
        user = self._users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def get_by_email(self, email: str) -> Optional[User]:
        email = email.strip().lower()
        for user in self._users.values():
            if user.email == email:
                return user.model_copy(deep=True)
        return None

    async def update_preferences(
        self, user_id: str, preferences: UserPreferences
    ) -> Optional[User]:
        user = self._users.get(user_id)
        if user is None:
            return None
        user.preferences = preferences.model_copy(deep=True)
        return user.model_copy(deep=True)

    async def list_active(self, limit: int) -> List[User]:
        active = sorted(
            (u for u in self._users.values() if u.is_active), key=lambda u: u.created_at
        )
        return [u.model_copy(deep=True) for u in active[:limit]]


class PostgresUserStore(UserStore):

    def __init__(self, db: Database):
        self.db = db

    @staticmethod
    def _from_record(record) -> User:
        data = dict(record)
        if isinstance(data.get("preferences"), str):
            data["preferences"] = json.loads(data["preferences"])
        return User.model_validate(data)

    async def create(self, user: User) -> User:
        record = await self.db.fetchrow(
            """
            INSERT INTO users (id, name, email, password_hash, university, course,
                               year, preferences, is_active, created_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
            ON CONFLICT (email) DO NOTHING
            RETURNING id
            """,
            user.id,
            user.name,
            user.email,
            user.password_hash,
            user.university,
            user.course,
            user.year,
            user.preferences.model_dump_json(),
            user.is_active,
            user.created_at,
        )
        if record is None:
            raise EmailTakenError(f"email {user.email} is already registered")
        logger.info(f"Registered user {user.id}")
        return user

    async def get(self, user_id: str) -> Optional[User]:
        record = await self.db.fetchrow("SELECT * FROM users WHERE id = $1", user_id)
        return self._from_record(record) if record else None

    async def get_by_email(self, email: str) -> Optional[User]:
        record = await self.db.fetchrow(
            "SELECT * FROM users WHERE email = $1", email.strip().lower()
        )
        return self._from_record(record) if record else None

    async def update_preferences(
        self, user_id: str, preferences: UserPreferences
    ) -> Optional[User]:
        record = await self.db.fetchrow(
            "UPDATE users SET preferences = $2 WHERE id = $1 RETURNING *",
            user_id,
            preferences.model_dump_json(),
        )
        return self._from_record(record) if record else None

    async def list_active(self, limit: int) -> List[User]:
        records = await self.db.fetch(
            "SELECT * FROM users WHERE is_active ORDER BY created_at LIMIT $1", limit
        )
        return [self._from_record(r) for r in records]
