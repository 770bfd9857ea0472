import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from google_auth_oauthlib.flow import Flow
from googleapiclient.errors import HttpError
from pydantic import BaseModel, Field

from api.config import Settings
from api.dependencies import (
    get_current_user,
    get_google_auth_store,
    get_schedule_store,
    get_settings,
    get_state,
)
from api.state import PlannerState
from campus_planner.models import User
from integration.google_workspace import (
    FORM_TEMPLATES,
    GoogleWorkspace,
    TemplateNotFoundError,
    sync_calendar,
    template_answers,
)
from storage.google_auth import GOOGLE_SCOPES, GoogleAuthStore
from storage.schedule_store import ScheduleStore

router = APIRouter(prefix="/google", tags=["google"])
logger = logging.getLogger(__name__)


class CallbackIn(BaseModel):
    code: str = Field(..., min_length=1)


class AutoFillIn(BaseModel):
    form_id: str = Field(..., min_length=1)
    responses: Dict[str, str]


class AutoFillTemplateIn(BaseModel):
    form_id: str = Field(..., min_length=1)
    template_id: str = Field(..., min_length=1)
    custom_data: Dict[str, str] = Field(default_factory=dict)


class SheetUpdateIn(BaseModel):
    range: str = Field(..., min_length=1)
    values: List[List[Any]]


class EventIn(BaseModel):
    title: str = Field(..., min_length=1)
    start_time: datetime
    end_time: datetime
    description: Optional[str] = None
    location: Optional[str] = None
    attendees: List[str] = Field(default_factory=list)


class EventUpdateIn(BaseModel):
    title: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    description: Optional[str] = None
    location: Optional[str] = None


def _flow(settings: Settings) -> Flow:
    if not settings.google_client_id or not settings.google_client_secret:
        raise HTTPException(status_code=500, detail="Google credentials not configured")
    return Flow.from_client_config(
        {
            "web": {
                "client_id": settings.google_client_id,
                "client_secret": settings.google_client_secret,
                "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                "token_uri": "https://oauth2.googleapis.com/token",
            }
        },
        scopes=GOOGLE_SCOPES,
        redirect_uri=settings.google_redirect_uri,
        autogenerate_code_verifier=False,
    )


async def get_workspace(
    user: User = Depends(get_current_user),
    store: GoogleAuthStore = Depends(get_google_auth_store),
    state: PlannerState = Depends(get_state),
) -> GoogleWorkspace:
    credentials = await store.get_credentials(user.id)
    if credentials is None:
        raise HTTPException(status_code=400, detail="User not authenticated with Google")
    return state.workspace_factory(credentials)


async def _call(fn, *args, **kwargs):
    """Run a blocking Google API call off the event loop."""
    try:
        return await asyncio.to_thread(fn, *args, **kwargs)
    except HttpError as e:
        logger.error(f"Google API call {fn.__name__} failed: {e}")
        raise HTTPException(status_code=502, detail="Google API request failed")


@router.get("/auth-url")
async def auth_url(
    user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
) -> dict:
    authorization_url, _ = _flow(settings).authorization_url(
        access_type="offline", include_granted_scopes="true", prompt="consent"
    )
    return {"auth_url": authorization_url}


@router.post("/callback")
async def callback(
    payload: CallbackIn,
    user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
    store: GoogleAuthStore = Depends(get_google_auth_store),
) -> dict:
    flow = _flow(settings)
    try:
        await asyncio.to_thread(flow.fetch_token, code=payload.code)
    except Exception as e:
        logger.error(f"OAuth token exchange failed for user {user.id}: {e}")
        raise HTTPException(status_code=400, detail="Google authentication failed")

    email = None
    try:
        session = flow.authorized_session()
        info = await asyncio.to_thread(
            lambda: session.get("https://www.googleapis.com/userinfo/v2/me").json()
        )
        email = info.get("email")
    except Exception as e:
        logger.warning(f"Failed to fetch Google account email: {e}")

    await store.save_credentials(user.id, flow.credentials, email)
    return {
        "message": "Google authentication successful",
        "email": email,
        "expiry": flow.credentials.expiry,
    }


@router.get("/auth-status")
async def auth_status(
    user: User = Depends(get_current_user),
    store: GoogleAuthStore = Depends(get_google_auth_store),
) -> dict:
    credentials = await store.get_credentials(user.id)
    return {
        "is_authenticated": credentials is not None,
        "email": await store.get_email(user.id),
    }


@router.post("/disconnect")
async def disconnect(
    user: User = Depends(get_current_user),
    store: GoogleAuthStore = Depends(get_google_auth_store),
) -> dict:
    await store.delete_credentials(user.id)
    return {"status": "disconnected"}


@router.get("/forms/templates")
async def form_templates(user: User = Depends(get_current_user)) -> dict:
    return {"templates": FORM_TEMPLATES}


@router.post("/forms/auto-fill")
async def auto_fill(
    payload: AutoFillIn,
    workspace: GoogleWorkspace = Depends(get_workspace),
) -> dict:
    result = await _call(workspace.submit_form, payload.form_id, payload.responses)
    return {"message": "Form auto-filled successfully", "result": result}


@router.post("/forms/auto-fill-template")
async def auto_fill_template(
    payload: AutoFillTemplateIn,
    user: User = Depends(get_current_user),
    workspace: GoogleWorkspace = Depends(get_workspace),
) -> dict:
    try:
        answers = template_answers(payload.template_id, user.profile(), payload.custom_data)
    except TemplateNotFoundError:
        raise HTTPException(status_code=404, detail="Template not found")
    result = await _call(workspace.submit_form, payload.form_id, answers)
    return {"message": "Form auto-filled with template successfully", "result": result}


@router.get("/sheets/{spreadsheet_id}")
async def read_sheet(
    spreadsheet_id: str,
    range: Optional[str] = None,
    workspace: GoogleWorkspace = Depends(get_workspace),
) -> dict:
    if not range:
        raise HTTPException(status_code=400, detail="Range parameter is required")
    return {"data": await _call(workspace.read_range, spreadsheet_id, range)}


@router.put("/sheets/{spreadsheet_id}")
async def write_sheet(
    spreadsheet_id: str,
    payload: SheetUpdateIn,
    workspace: GoogleWorkspace = Depends(get_workspace),
) -> dict:
    result = await _call(workspace.write_range, spreadsheet_id, payload.range, payload.values)
    return {"message": "Sheets data updated successfully", "result": result}


@router.get("/calendar/events")
async def list_events(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    workspace: GoogleWorkspace = Depends(get_workspace),
) -> dict:
    if start_date is None or end_date is None:
        raise HTTPException(status_code=400, detail="Start date and end date are required")
    return {"events": await _call(workspace.list_events, start_date, end_date)}


@router.post("/calendar/events", status_code=201)
async def create_event(
    payload: EventIn,
    workspace: GoogleWorkspace = Depends(get_workspace),
) -> dict:
    event = await _call(
        workspace.create_event,
        payload.title,
        payload.start_time,
        payload.end_time,
        description=payload.description,
        location=payload.location,
        attendees=payload.attendees,
    )
    return {"message": "Calendar event created successfully", "event": event}


@router.put("/calendar/events/{event_id}")
async def update_event(
    event_id: str,
    payload: EventUpdateIn,
    workspace: GoogleWorkspace = Depends(get_workspace),
) -> dict:
    patch: Dict[str, Any] = {}
    if payload.title is not None:
        patch["summary"] = payload.title
    if payload.description is not None:
        patch["description"] = payload.description
    if payload.location is not None:
        patch["location"] = payload.location
    if payload.start_time is not None:
        patch["start"] = {"dateTime": payload.start_time.isoformat()}
    if payload.end_time is not None:
        patch["end"] = {"dateTime": payload.end_time.isoformat()}
    if not patch:
        raise HTTPException(status_code=400, detail="Nothing to update")

    event = await _call(workspace.update_event, event_id, patch)
    return {"message": "Calendar event updated successfully", "event": event}


@router.delete("/calendar/events/{event_id}")
async def delete_event(
    event_id: str,
    workspace: GoogleWorkspace = Depends(get_workspace),
) -> dict:
    await _call(workspace.delete_event, event_id)
    return {"message": "Calendar event deleted successfully"}


@router.post("/calendar/sync")
async def sync(
    user: User = Depends(get_current_user),
    workspace: GoogleWorkspace = Depends(get_workspace),
    schedule: ScheduleStore = Depends(get_schedule_store),
) -> dict:
    try:
        result = await sync_calendar(workspace, schedule, user.id)
    except HttpError as e:
        logger.error(f"Calendar sync failed for user {user.id}: {e}")
        raise HTTPException(status_code=502, detail="Google API request failed")
    return {"message": "Calendar synced successfully", **result}
