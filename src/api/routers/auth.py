import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.config import Settings
from api.dependencies import get_current_user, get_settings, get_user_store
from api.security import create_access_token, hash_password, verify_password
from campus_planner.models import User, UserPreferences
from storage.user_store import EmailTakenError, UserStore

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


class RegisterIn(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=6)
    university: str = Field(..., min_length=1)
    course: str = Field(..., min_length=1)
    year: int = Field(..., ge=1, le=5)


class LoginIn(BaseModel):
    email: str
    password: str


class PreferencesIn(BaseModel):
    preferences: UserPreferences


@router.post("/register", status_code=201)
async def register(
    payload: RegisterIn,
    settings: Settings = Depends(get_settings),
    users: UserStore = Depends(get_user_store),
) -> dict:
    user = User(
        name=payload.name,
        email=payload.email,
        password_hash=hash_password(payload.password),
        university=payload.university,
        course=payload.course,
        year=payload.year,
    )
    try:
        await users.create(user)
    except EmailTakenError:
        raise HTTPException(status_code=400, detail="User already exists")

    token = create_access_token(user.id, settings.jwt_secret, settings.jwt_expires_days)
    return {"message": "User created successfully", "token": token, "user": user.profile()}


@router.post("/login")
async def login(
    payload: LoginIn,
    settings: Settings = Depends(get_settings),
    users: UserStore = Depends(get_user_store),
) -> dict:
    user = await users.get_by_email(payload.email)
    if user is None or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=400, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=400, detail="Account is disabled")

    token = create_access_token(user.id, settings.jwt_secret, settings.jwt_expires_days)
    logger.info(f"User {user.id} logged in")
    return {"message": "Login successful", "token": token, "user": user.profile()}


@router.get("/me")
async def me(user: User = Depends(get_current_user)) -> dict:
    return {"user": user.profile()}


@router.put("/preferences")
async def update_preferences(
    payload: PreferencesIn,
    user: User = Depends(get_current_user),
    users: UserStore = Depends(get_user_store),
) -> dict:
    updated = await users.update_preferences(user.id, payload.preferences)
    if updated is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"message": "Preferences updated successfully", "user": updated.profile()}
