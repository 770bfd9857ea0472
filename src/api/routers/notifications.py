import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from api.dependencies import get_current_user, get_mailer, get_task_store, get_user_store
from campus_planner.models import NotificationPreferences, User, utcnow
from notifications.mailer import Mailer
from storage.task_store import TaskQuery, TaskStore
from storage.user_store import UserStore

router = APIRouter(prefix="/notifications", tags=["notifications"])
logger = logging.getLogger(__name__)

CLOSED = ("completed", "cancelled")


class NotificationTestIn(BaseModel):
    type: Literal["reminder", "overdue", "daily", "weekly"]
    task_id: Optional[str] = None


@router.post("/test")
async def send_test(
    payload: NotificationTestIn,
    user: User = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
    mailer: Mailer = Depends(get_mailer),
) -> dict:
    now = utcnow()
    if payload.type in ("reminder", "overdue"):
        if not payload.task_id:
            raise HTTPException(status_code=400, detail="Task ID is required for this notification")
        task = await tasks.get(user.id, payload.task_id)
        if task is None:
            raise HTTPException(status_code=404, detail="Task not found")
        if payload.type == "reminder":
            sent = await mailer.send_task_reminder(user, task, now)
        else:
            sent = await mailer.send_overdue_alert(user, task, now)
    elif payload.type == "daily":
        open_tasks = await tasks.list(user.id, TaskQuery(exclude_statuses=CLOSED))
        sent = await mailer.send_daily_summary(user, open_tasks, now)
    else:
        sent = await mailer.send_weekly_summary(user, await tasks.list(user.id), now)

    logger.info(f"Test {payload.type} notification for user {user.id}: sent={sent}")
    return {"message": "Test notification processed", "type": payload.type, "sent": sent}


@router.get("/preferences")
async def get_preferences(user: User = Depends(get_current_user)) -> dict:
    return {"notifications": user.preferences.notifications}


@router.put("/preferences")
async def update_preferences(
    payload: NotificationPreferences,
    user: User = Depends(get_current_user),
    users: UserStore = Depends(get_user_store),
) -> dict:
    preferences = user.preferences.model_copy(update={"notifications": payload})
    updated = await users.update_preferences(user.id, preferences)
    if updated is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {
        "message": "Notification preferences updated successfully",
        "notifications": updated.preferences.notifications,
    }
