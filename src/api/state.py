import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from google.oauth2.credentials import Credentials

from api.config import Settings
from assistant.gateway import ReasoningGateway
from integration.google_workspace import GoogleWorkspace
from llm.llm_client import LLMClient
from notifications.mailer import Mailer
from notifications.sweeps import NotificationSweeper
from scheduling.scheduler import FallbackScheduler
from storage.db import Database
from storage.google_auth import (
    GoogleAuthStore,
    InMemoryGoogleAuthStore,
    PostgresGoogleAuthStore,
)
from storage.schedule_store import (
    InMemoryScheduleStore,
    PostgresScheduleStore,
    ScheduleStore,
)
from storage.task_store import InMemoryTaskStore, PostgresTaskStore, TaskStore
from storage.user_store import InMemoryUserStore, PostgresUserStore, UserStore

logger = logging.getLogger(__name__)


@dataclass
class PlannerState:
    """Everything a request handler or background worker collaborates with."""

    settings: Settings
    users: UserStore
    tasks: TaskStore
    schedule: ScheduleStore
    google_auth: GoogleAuthStore
    gateway: ReasoningGateway
    mailer: Mailer
    sweeper: NotificationSweeper
    db: Optional[Database] = None
    workspace_factory: Callable[[Credentials], GoogleWorkspace] = GoogleWorkspace
    workers: List[asyncio.Task] = field(default_factory=list)


def build_state(settings: Settings, llm_client: Optional[LLMClient] = None) -> PlannerState:
    """
    Wire the collaborators. PostgreSQL-backed stores are used when
    DATABASE_URL is set; the pool itself is opened later in the lifespan.
    """
    google_kwargs = {
        "client_id": settings.google_client_id,
        "client_secret": settings.google_client_secret,
    }
    db: Optional[Database] = None
    if settings.database_url:
        db = Database(settings.database_url)
        users: UserStore = PostgresUserStore(db)
        tasks: TaskStore = PostgresTaskStore(db)
        schedule: ScheduleStore = PostgresScheduleStore(db)
        google_auth: GoogleAuthStore = PostgresGoogleAuthStore(
            db, settings.google_token_encryption_key, **google_kwargs
        )
        logger.info("Using PostgreSQL-backed stores")
    else:
        users = InMemoryUserStore()
        tasks = InMemoryTaskStore()
        schedule = InMemoryScheduleStore()
        google_auth = InMemoryGoogleAuthStore(
            settings.google_token_encryption_key, **google_kwargs
        )
        logger.warning("DATABASE_URL not set, using in-memory stores")

    llm_client = llm_client or LLMClient(provider_name=settings.llm_provider)
    mailer = Mailer(settings.smtp)
    return PlannerState(
        settings=settings,
        users=users,
        tasks=tasks,
        schedule=schedule,
        google_auth=google_auth,
        gateway=ReasoningGateway(llm_client, FallbackScheduler()),
        mailer=mailer,
        sweeper=NotificationSweeper(
            users,
            tasks,
            mailer,
            user_timeout_s=settings.sweep_user_timeout_s,
            max_users=settings.sweep_max_users,
        ),
        db=db,
    )
