from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from campus_planner.models import (
    CATEGORIES,
    DIFFICULTIES,
    PRIORITIES,
    UserProfile,
    ensure_utc,
    utcnow,
)
from llm.llm_client import LLMClient
from llm.schemas import ParsedTask

logger = logging.getLogger(__name__)

MIN_DURATION_MIN = 15
MAX_DURATION_MIN = 480
DEFAULT_DURATION_MIN = 60
MAX_TAGS = 10
FALLBACK_TAGS = 5
MAX_TITLE_LEN = 100

PARSE_SYSTEM = (
    "You turn a college student's free-text note into one task. "
    "Reply with a single JSON object and nothing else."
)

_WORD = re.compile(r"[A-Za-z][A-Za-z0-9'-]+")
_STOPWORDS = {
    "about", "after", "again", "also", "before", "by", "could", "from", "have",
    "into", "just", "next", "need", "needs", "should", "that", "their", "then",
    "there", "this", "those", "through", "today", "tomorrow", "until", "week",
    "when", "will", "with", "would", "your",
}


def build_parse_prompt(text: str, profile: Optional[UserProfile], now: datetime) -> str:
    context = ""
    if profile is not None:
        context = (
            f"User context:\n- University: {profile.university}\n"
            f"- Course: {profile.course}\n- Year: {profile.year}\n"
        )
    return (
        f'Parse the following input and extract task information.\n\nInput: "{text}"\n\n'
        f"{context}Current time: {now.isoformat()}\n\n"
        "Return JSON with keys: title, description, "
        f"category ({'|'.join(CATEGORIES)}), priority ({'|'.join(PRIORITIES)}), "
        f"difficulty ({'|'.join(DIFFICULTIES)}), estimated_duration (minutes), "
        "deadline (ISO 8601 or null), subject, location, tags (list of strings).\n"
        "Rules: relative deadlines such as 'this week' mean seven days from now; "
        "estimate duration from task type and complexity; raise priority on urgency "
        "words (urgent, ASAP, important); be conservative with time estimates."
    )


def _clamp_duration(value: Any) -> int:
    try:
        minutes = int(value)
    except (TypeError, ValueError):
        minutes = 0
    if minutes <= 0:
        minutes = DEFAULT_DURATION_MIN
    return max(MIN_DURATION_MIN, min(MAX_DURATION_MIN, minutes))


def _parse_deadline(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def validate_parsed_task(raw: Dict[str, Any]) -> ParsedTask:
    """Coerce a model answer onto the task enumerations and duration bounds."""
    if not isinstance(raw, dict):
        raise ValueError("parsed task must be a JSON object")

    title = str(raw.get("title") or "").strip() or "Untitled Task"
    tags = raw.get("tags")
    return ParsedTask(
        title=title[:MAX_TITLE_LEN],
        description=str(raw.get("description") or ""),
        category=raw.get("category") if raw.get("category") in CATEGORIES else "other",
        priority=raw.get("priority") if raw.get("priority") in PRIORITIES else "medium",
        difficulty=raw.get("difficulty") if raw.get("difficulty") in DIFFICULTIES else "medium",
        estimated_duration=_clamp_duration(raw.get("estimated_duration")),
        deadline=_parse_deadline(raw.get("deadline")),
        subject=_optional_str(raw.get("subject")),
        location=_optional_str(raw.get("location")),
        tags=[str(t) for t in tags][:MAX_TAGS] if isinstance(tags, list) else [],
    )


def keyword_tags(text: str, limit: int = FALLBACK_TAGS) -> List[str]:
    seen: List[str] = []
    for word in _WORD.findall(text.lower()):
        if len(word) < 4 or word in _STOPWORDS or word in seen:
            continue
        seen.append(word)
        if len(seen) == limit:
            break
    return seen


def fallback_parse(text: str) -> ParsedTask:
    cleaned = " ".join(text.split())
    return ParsedTask(
        title=cleaned[:MAX_TITLE_LEN] or "Untitled Task",
        description=cleaned,
        category="other",
        priority="medium",
        difficulty="medium",
        estimated_duration=DEFAULT_DURATION_MIN,
        deadline=None,
        tags=keyword_tags(cleaned),
    )


class TaskParser:

    def __init__(self, llm_client: Optional[LLMClient] = None):
        self.llm = llm_client or LLMClient()

    def parse(
        self,
        text: str,
        profile: Optional[UserProfile] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[ParsedTask, bool]:
        """Returns the parsed task and whether the local fallback produced it."""
        now = now or utcnow()
        try:
            raw = self.llm.complete_json(
                PARSE_SYSTEM, build_parse_prompt(text, profile, now), temperature=0.3
            )
            return validate_parsed_task(raw), False
        except (ValueError, ValidationError, RuntimeError) as e:
            logger.warning(f"Task parsing fell back to local heuristics: {e}")
        except Exception as e:
            logger.error(f"Remote task parsing failed: {e}")
        return fallback_parse(text), True
