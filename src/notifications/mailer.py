from __future__ import annotations

import asyncio
import html
import logging
import math
import smtplib
from dataclasses import dataclass
from datetime import datetime, timedelta
from email.message import EmailMessage
from typing import List, Optional, Sequence, Tuple

from api.metrics import NOTIFICATIONS_SENT_TOTAL
from campus_planner.analytics import week_start
from campus_planner.models import Task, User, utcnow

logger = logging.getLogger(__name__)

SIGNATURE = "Best regards,\nCampus Planner"
UPCOMING_LIMIT = 5


@dataclass(frozen=True)
class SmtpConfig:
    host: str
    port: int = 587
    user: Optional[str] = None
    password: Optional[str] = None
    sender: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.host)


def _hours(delta: timedelta) -> int:
    return max(0, math.ceil(delta.total_seconds() / 3600))


def _fmt(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%d %H:%M UTC")


def _html(title: str, color: str, lines: Sequence[str]) -> str:
    body = "".join(f"<p>{html.escape(line)}</p>" for line in lines if line)
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f'<h2 style="color: {color};">{html.escape(title)}</h2>{body}</div>'
    )


def reminder_message(user: User, task: Task, now: datetime) -> Tuple[str, List[str]]:
    hours_left = _hours(task.deadline - now)
    lines = [
        f"Hello {user.name},",
        "This is a reminder about your upcoming task:",
        task.title,
        f"Category: {task.category}",
        f"Priority: {task.priority}",
        f"Difficulty: {task.difficulty}",
        f"Estimated duration: {task.estimated_duration} minutes",
        f"Deadline: {_fmt(task.deadline)}",
        f"Time remaining: {hours_left} hours",
        f"Description: {task.description}" if task.description else "",
        f"Location: {task.location}" if task.location else "",
        "Don't forget to complete this task on time!",
    ]
    return f"Reminder: {task.title} - Due in {hours_left} hours", lines


def overdue_message(user: User, task: Task, now: datetime) -> Tuple[str, List[str]]:
    hours_over = _hours(now - task.deadline)
    lines = [
        f"Hello {user.name},",
        f"This task is overdue by {hours_over} hours!",
        task.title,
        f"Category: {task.category}",
        f"Priority: {task.priority}",
        f"Deadline: {_fmt(task.deadline)}",
        f"Description: {task.description}" if task.description else "",
        "Please complete this task as soon as possible!",
    ]
    return f"URGENT: Overdue Task - {task.title}", lines


def daily_summary_message(
    user: User, tasks: Sequence[Task], now: datetime
) -> Tuple[str, List[str]]:
    today = now.date()
    overdue = [t for t in tasks if t.is_overdue(now)]
    due_today = [t for t in tasks if t.deadline.date() == today and t not in overdue]
    upcoming = [t for t in tasks if now < t.deadline <= now + timedelta(days=7)]

    lines = [f"Hello {user.name},", f"Here's your task summary for {today.isoformat()}:"]
    if overdue:
        lines.append(f"Overdue tasks ({len(overdue)}):")
        lines += [f"- {t.title} - Due: {_fmt(t.deadline)}" for t in overdue]
    if due_today:
        lines.append(f"Today's tasks ({len(due_today)}):")
        lines += [f"- {t.title} - {t.priority} priority" for t in due_today]
    if upcoming:
        lines.append(f"Upcoming tasks ({len(upcoming)}):")
        lines += [f"- {t.title} - Due: {t.deadline.date().isoformat()}" for t in upcoming[:UPCOMING_LIMIT]]
        if len(upcoming) > UPCOMING_LIMIT:
            lines.append(f"... and {len(upcoming) - UPCOMING_LIMIT} more")
    lines.append("Have a productive day!")
    return f"Daily Summary - {today.isoformat()}", lines


def weekly_summary_message(
    user: User, tasks: Sequence[Task], now: datetime
) -> Tuple[str, List[str]]:
    start = week_start(now)
    end = start + timedelta(days=7)
    week = [t for t in tasks if start <= t.deadline < end]
    completed = [t for t in week if t.status == "completed"]
    pending = [t for t in week if t.status != "completed"]

    lines = [
        f"Hello {user.name},",
        f"Here's your summary for the week of {start.date().isoformat()}:",
        f"Completed tasks ({len(completed)}):",
    ]
    lines += [f"- {t.title}" for t in completed]
    if pending:
        lines.append(f"Pending tasks ({len(pending)}):")
        lines += [f"- {t.title} - Due: {t.deadline.date().isoformat()}" for t in pending]
    lines.append("Great work this week! Keep it up!")
    return f"Weekly Summary - Week of {start.date().isoformat()}", lines


class Mailer:
    """
    SMTP delivery of task notifications.

    Delivery problems are logged and reported as False; they never propagate
    to the caller.
    """

    def __init__(self, config: SmtpConfig):
        self.config = config

    def _build(self, to: str, subject: str, title: str, color: str, lines: Sequence[str]) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.config.sender or self.config.user or "no-reply@localhost"
        message["To"] = to
        message["Subject"] = subject
        text = "\n\n".join(line for line in lines if line)
        message.set_content(f"{text}\n\n{SIGNATURE}\n")
        message.add_alternative(_html(title, color, [*lines, SIGNATURE]), subtype="html")
        return message

    def _send_blocking(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.config.host, self.config.port, timeout=30) as smtp:
            smtp.starttls()
            if self.config.user:
                smtp.login(self.config.user, self.config.password or "")
            smtp.send_message(message)

    async def send(self, to: str, subject: str, title: str, color: str, lines: Sequence[str], kind: str) -> bool:
        if not self.config.configured:
            logger.info(f"SMTP not configured, skipping '{kind}' mail to {to}")
            return False
        message = self._build(to, subject, title, color, lines)
        try:
            await asyncio.to_thread(self._send_blocking, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send '{kind}' mail to {to}: {e}")
            return False
        NOTIFICATIONS_SENT_TOTAL.labels(kind=kind).inc()
        logger.info(f"Sent '{kind}' mail to {to}")
        return True

    async def send_task_reminder(self, user: User, task: Task, now: Optional[datetime] = None) -> bool:
        if not user.preferences.notifications.email:
            return False
        subject, lines = reminder_message(user, task, now or utcnow())
        return await self.send(user.email, subject, "Task Reminder", "#3B82F6", lines, "reminder")

    async def send_overdue_alert(self, user: User, task: Task, now: Optional[datetime] = None) -> bool:
        if not user.preferences.notifications.email:
            return False
        subject, lines = overdue_message(user, task, now or utcnow())
        return await self.send(user.email, subject, "Overdue Task Alert", "#DC2626", lines, "overdue")

    async def send_daily_summary(self, user: User, tasks: Sequence[Task], now: Optional[datetime] = None) -> bool:
        if not user.preferences.notifications.email:
            return False
        subject, lines = daily_summary_message(user, tasks, now or utcnow())
        return await self.send(user.email, subject, "Daily Summary", "#3B82F6", lines, "daily")

    async def send_weekly_summary(self, user: User, tasks: Sequence[Task], now: Optional[datetime] = None) -> bool:
        if not user.preferences.notifications.email:
            return False
        subject, lines = weekly_summary_message(user, tasks, now or utcnow())
        return await self.send(user.email, subject, "Weekly Summary", "#3B82F6", lines, "weekly")
