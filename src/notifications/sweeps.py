"""
Periodic notification sweeps over every active user.

Users are visited one at a time. Each visit has its own timeout, and a failing
user is recorded in the report while the sweep moves on to the next one.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, Optional

from campus_planner.models import User, utcnow
from notifications.mailer import Mailer
from storage.task_store import TaskQuery, TaskStore
from storage.user_store import UserStore

logger = logging.getLogger(__name__)

CLOSED_STATUSES = ("completed", "cancelled")


@dataclass
class SweepReport:
    kind: str
    started_at: datetime
    users_visited: int = 0
    notifications_sent: int = 0
    failures: Dict[str, str] = field(default_factory=dict)
    truncated: bool = False


class NotificationSweeper:

    def __init__(
        self,
        users: UserStore,
        tasks: TaskStore,
        mailer: Mailer,
        user_timeout_s: float = 30.0,
        max_users: int = 1000,
    ):
        self.users = users
        self.tasks = tasks
        self.mailer = mailer
        self.user_timeout_s = user_timeout_s
        self.max_users = max_users

    async def reminder_sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """Remind about open tasks whose deadline falls within the user's lead time."""
        return await self._sweep("reminder", self._remind_user, now or utcnow())

    async def overdue_sweep(self, now: Optional[datetime] = None) -> SweepReport:
        return await self._sweep("overdue", self._alert_user, now or utcnow())

    async def _remind_user(self, user: User, now: datetime) -> int:
        lead = timedelta(minutes=user.preferences.notifications.reminder_time)
        due = await self.tasks.list(
            user.id,
            TaskQuery(
                deadline_from=now,
                deadline_to=now + lead,
                exclude_statuses=CLOSED_STATUSES,
            ),
        )
        sent = 0
        for task in due:
            if await self.mailer.send_task_reminder(user, task, now):
                sent += 1
        return sent

    async def _alert_user(self, user: User, now: datetime) -> int:
        # deadline_to is inclusive; a deadline equal to now is not overdue yet
        overdue = [
            t
            for t in await self.tasks.list(
                user.id, TaskQuery(deadline_to=now, exclude_statuses=CLOSED_STATUSES)
            )
            if t.deadline < now
        ]
        sent = 0
        for task in overdue:
            if await self.mailer.send_overdue_alert(user, task, now):
                sent += 1
        return sent

    async def _sweep(
        self,
        kind: str,
        visit: Callable[[User, datetime], Awaitable[int]],
        now: datetime,
    ) -> SweepReport:
        report = SweepReport(kind=kind, started_at=now)
        users = await self.users.list_active(self.max_users + 1)
        if len(users) > self.max_users:
            report.truncated = True
            users = users[: self.max_users]
            logger.warning(f"{kind} sweep capped at {self.max_users} users")

        for user in users:
            report.users_visited += 1
            try:
                report.notifications_sent += await asyncio.wait_for(
                    visit(user, now), timeout=self.user_timeout_s
                )
            except asyncio.TimeoutError:
                report.failures[user.id] = f"timed out after {self.user_timeout_s}s"
                logger.error(f"{kind} sweep timed out for user {user.id}")
            except Exception as e:
                report.failures[user.id] = str(e)
                logger.exception(f"{kind} sweep failed for user {user.id}")

        logger.info(
            f"{kind} sweep finished: {report.users_visited} users, "
            f"{report.notifications_sent} sent, {len(report.failures)} failed"
        )
        return report
