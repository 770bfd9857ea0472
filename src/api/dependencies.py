from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api.config import Settings
from api.security import InvalidTokenError, decode_access_token
from api.state import PlannerState
from assistant.gateway import ReasoningGateway
from campus_planner.models import User
from notifications.mailer import Mailer
from storage.google_auth import GoogleAuthStore
from storage.schedule_store import ScheduleStore
from storage.task_store import TaskStore
from storage.user_store import UserStore

bearer_scheme = HTTPBearer(auto_error=False)


def get_state(request: Request) -> PlannerState:
    return request.app.state.planner


def get_settings(state: PlannerState = Depends(get_state)) -> Settings:
    return state.settings


def get_user_store(state: PlannerState = Depends(get_state)) -> UserStore:
    return state.users


def get_task_store(state: PlannerState = Depends(get_state)) -> TaskStore:
    return state.tasks


def get_schedule_store(state: PlannerState = Depends(get_state)) -> ScheduleStore:
    return state.schedule


def get_google_auth_store(state: PlannerState = Depends(get_state)) -> GoogleAuthStore:
    return state.google_auth


def get_gateway(state: PlannerState = Depends(get_state)) -> ReasoningGateway:
    return state.gateway


def get_mailer(state: PlannerState = Depends(get_state)) -> Mailer:
    return state.mailer


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
    users: UserStore = Depends(get_user_store),
) -> User:
    if credentials is None:
        raise HTTPException(status_code=401, detail="No token, authorization denied")
    try:
        user_id = decode_access_token(credentials.credentials, settings.jwt_secret)
    except InvalidTokenError:
        raise HTTPException(status_code=401, detail="Token is not valid")

    user = await users.get(user_id)
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="Token is not valid")
    return user
