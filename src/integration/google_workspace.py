"""
Google Calendar, Forms and Sheets access for one user.

googleapiclient is blocking, so async callers run these methods through
asyncio.to_thread.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from googleapiclient.discovery import build

from campus_planner.models import (
    ScheduleEntryCreate,
    ScheduleMetadata,
    UserProfile,
    ensure_utc,
    utcnow,
)

logger = logging.getLogger(__name__)

SYNC_WINDOW_DAYS = 30
DEFAULT_EVENT_COLOR = "#3B82F6"

FORM_TEMPLATES: List[Dict[str, Any]] = [
    {
        "id": "attendance",
        "name": "Attendance Form",
        "description": "Auto-fill attendance forms with student information",
        "fields": {
            "name": "Full Name",
            "studentId": "Student ID",
            "course": "Course",
            "year": "Year",
            "date": "Date",
            "time": "Time",
        },
    },
    {
        "id": "internship",
        "name": "Internship Application",
        "description": "Auto-fill internship application forms",
        "fields": {
            "name": "Full Name",
            "email": "Email",
            "phone": "Phone Number",
            "university": "University",
            "course": "Course",
            "year": "Year",
            "cgpa": "CGPA",
            "skills": "Skills",
            "experience": "Previous Experience",
        },
    },
    {
        "id": "project",
        "name": "Project Submission",
        "description": "Auto-fill project submission forms",
        "fields": {
            "name": "Student Name",
            "studentId": "Student ID",
            "projectTitle": "Project Title",
            "course": "Course",
            "instructor": "Instructor",
            "submissionDate": "Submission Date",
        },
    },
]


class TemplateNotFoundError(KeyError):
    pass


def get_template(template_id: str) -> Dict[str, Any]:
    for template in FORM_TEMPLATES:
        if template["id"] == template_id:
            return template
    raise TemplateNotFoundError(template_id)


def template_answers(
    template_id: str,
    profile: UserProfile,
    custom: Optional[Dict[str, str]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, str]:
    """Fill a template's fields: custom values first, then the profile."""
    now = now or utcnow()
    custom = custom or {}
    from_profile = {
        "name": profile.name,
        "email": profile.email,
        "university": profile.university,
        "course": profile.course,
        "year": str(profile.year),
        "date": now.date().isoformat(),
        "time": now.strftime("%H:%M:%S"),
    }
    return {
        key: custom.get(key) or from_profile.get(key, "")
        for key in get_template(template_id)["fields"]
    }


def _event_time(value: Dict[str, Any]) -> Optional[datetime]:
    raw = value.get("dateTime") or value.get("date")
    if not raw:
        return None
    return ensure_utc(datetime.fromisoformat(raw.replace("Z", "+00:00")))


def event_to_entry(event: Dict[str, Any]) -> Optional[ScheduleEntryCreate]:
    """Calendar event -> schedule entry of type 'event'; None if it has no times."""
    start = _event_time(event.get("start", {}))
    end = _event_time(event.get("end", {}))
    if start is None or end is None:
        return None
    color_id = event.get("colorId")
    return ScheduleEntryCreate(
        type="event",
        title=event.get("summary") or "Untitled Event",
        description=event.get("description") or "",
        location=event.get("location") or "",
        start_time=start,
        end_time=end,
        is_recurring=bool(event.get("recurrence")),
        color=f"#{color_id}" if color_id else DEFAULT_EVENT_COLOR,
        metadata=ScheduleMetadata(
            google_event_id=event.get("id"),
            html_link=event.get("htmlLink"),
        ),
    )


class GoogleWorkspace:

    def __init__(self, credentials, service_factory: Callable[..., Any] = build):
        self.credentials = credentials
        self._build = service_factory

    def _service(self, name: str, version: str):
        return self._build(name, version, credentials=self.credentials, cache_discovery=False)

    # Calendar

    def list_events(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        result = (
            self._service("calendar", "v3")
            .events()
            .list(
                calendarId="primary",
                timeMin=ensure_utc(start).isoformat(),
                timeMax=ensure_utc(end).isoformat(),
                singleEvents=True,
                orderBy="startTime",
            )
            .execute()
        )
        return [e for e in result.get("items", []) if e.get("status") != "cancelled"]

    def create_event(
        self,
        title: str,
        start: datetime,
        end: datetime,
        description: Optional[str] = None,
        location: Optional[str] = None,
        attendees: Sequence[str] = (),
    ) -> Dict[str, Any]:
        body = {
            "summary": title,
            "description": description,
            "location": location,
            "start": {"dateTime": ensure_utc(start).isoformat(), "timeZone": "UTC"},
            "end": {"dateTime": ensure_utc(end).isoformat(), "timeZone": "UTC"},
            "attendees": [{"email": a} for a in attendees],
        }
        return (
            self._service("calendar", "v3")
            .events()
            .insert(calendarId="primary", body=body)
            .execute()
        )

    def update_event(self, event_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        return (
            self._service("calendar", "v3")
            .events()
            .patch(calendarId="primary", eventId=event_id, body=patch)
            .execute()
        )

    def delete_event(self, event_id: str) -> None:
        self._service("calendar", "v3").events().delete(
            calendarId="primary", eventId=event_id
        ).execute()

    # Forms

    def submit_form(self, form_id: str, answers: Dict[str, str]) -> Dict[str, Any]:
        """Submit text answers keyed by question item id."""
        body = {
            "responses": [
                {
                    "itemId": item_id,
                    "response": {"textAnswers": {"answers": [{"value": str(value)}]}},
                }
                for item_id, value in answers.items()
            ]
        }
        return (
            self._service("forms", "v1")
            .forms()
            .responses()
            .create(formId=form_id, body=body)
            .execute()
        )

    # Sheets

    def read_range(self, spreadsheet_id: str, cell_range: str) -> List[List[Any]]:
        result = (
            self._service("sheets", "v4")
            .spreadsheets()
            .values()
            .get(spreadsheetId=spreadsheet_id, range=cell_range)
            .execute()
        )
        return result.get("values", [])

    def write_range(
        self, spreadsheet_id: str, cell_range: str, values: List[List[Any]]
    ) -> Dict[str, Any]:
        return (
            self._service("sheets", "v4")
            .spreadsheets()
            .values()
            .update(
                spreadsheetId=spreadsheet_id,
                range=cell_range,
                valueInputOption="RAW",
                body={"values": values},
            )
            .execute()
        )


async def sync_calendar(
    workspace: GoogleWorkspace,
    schedule_store,
    owner_id: str,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """
    Import the next 30 days of calendar events as schedule entries.

    Events imported by an earlier sync (same google_event_id) are skipped.
    """
    now = now or utcnow()
    events = await asyncio.to_thread(
        workspace.list_events, now, now + timedelta(days=SYNC_WINDOW_DAYS)
    )
    known = await schedule_store.find_by_google_event(
        owner_id, [e["id"] for e in events if e.get("id")]
    )

    fresh = []
    for event in events:
        if event.get("id") in known:
            continue
        entry = event_to_entry(event)
        if entry is None:
            logger.debug(f"Skipping calendar event without times: {event.get('id')}")
            continue
        fresh.append(entry)

    created = await schedule_store.create_many(owner_id, fresh)
    logger.info(
        f"Calendar sync for {owner_id}: {len(created)} imported, {len(known)} already present"
    )
    return {"synced": len(created), "skipped": len(events) - len(created)}
