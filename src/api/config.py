import os
from dataclasses import dataclass, field
from typing import Optional

from notifications.mailer import SmtpConfig


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    environment: str = "development"
    database_url: str = ""
    jwt_secret: str = "dev-secret-change-me"
    jwt_expires_days: int = 7
    llm_provider: str = "openai"
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    google_redirect_uri: str = "http://localhost:3000/google/callback"
    google_token_encryption_key: Optional[str] = None
    smtp: SmtpConfig = field(default_factory=lambda: SmtpConfig(host=""))
    sweeps_enabled: bool = True
    reminder_sweep_hour: int = 9
    overdue_sweep_hour: int = 18
    sweep_user_timeout_s: float = 30.0
    sweep_max_users: int = 1000

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            environment=os.getenv("ENVIRONMENT", "development").strip().lower(),
            database_url=os.getenv("DATABASE_URL", "").strip(),
            jwt_secret=os.getenv("JWT_SECRET", "dev-secret-change-me"),
            jwt_expires_days=int(os.getenv("JWT_EXPIRES_DAYS", "7")),
            llm_provider=os.getenv("LLM_PROVIDER", "openai").strip().lower(),
            google_client_id=os.getenv("GOOGLE_CLIENT_ID"),
            google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET"),
            google_redirect_uri=os.getenv(
                "GOOGLE_REDIRECT_URI", "http://localhost:3000/google/callback"
            ),
            google_token_encryption_key=os.getenv("GOOGLE_TOKEN_ENCRYPTION_KEY"),
            smtp=SmtpConfig(
                host=os.getenv("SMTP_HOST", "").strip(),
                port=int(os.getenv("SMTP_PORT", "587")),
                user=os.getenv("SMTP_USER"),
                password=os.getenv("SMTP_PASSWORD"),
                sender=os.getenv("SMTP_FROM"),
            ),
            sweeps_enabled=_flag("SWEEPS_ENABLED", "true"),
            reminder_sweep_hour=int(os.getenv("REMINDER_SWEEP_HOUR", "9")),
            overdue_sweep_hour=int(os.getenv("OVERDUE_SWEEP_HOUR", "18")),
            sweep_user_timeout_s=float(os.getenv("SWEEP_USER_TIMEOUT_S", "30")),
            sweep_max_users=int(os.getenv("SWEEP_MAX_USERS", "1000")),
        )
