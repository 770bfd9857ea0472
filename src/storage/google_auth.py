import logging
from abc import ABC, abstractmethod
from datetime import timezone
from typing import Dict, Optional

from cryptography.fernet import Fernet, InvalidToken
from google.oauth2.credentials import Credentials

from storage.db import Database

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"
GOOGLE_SCOPES = [
    "https://www.googleapis.com/auth/forms.body",
    "https://www.googleapis.com/auth/forms.responses.readonly",
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/userinfo.email",
    "openid",
]


class GoogleAuthStore(ABC):
    """
    Per-user Google OAuth tokens, encrypted at rest with Fernet.

    Subclasses persist the encrypted row; this class owns encryption and the
    rebuild of google-auth Credentials.
    """

    def __init__(
        self,
        encryption_key: Optional[str],
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
    ):
        if not encryption_key:
            # tokens stored with a temporary key are unreadable after restart
            logger.warning(
                "GOOGLE_TOKEN_ENCRYPTION_KEY not set. Generating a temporary key."
            )
            encryption_key = Fernet.generate_key().decode()
        self.fernet = Fernet(
            encryption_key.encode() if isinstance(encryption_key, str) else encryption_key
        )
        self.client_id = client_id
        self.client_secret = client_secret

    def _encrypt(self, data: Optional[str]) -> Optional[str]:
        if not data:
            return None
        return self.fernet.encrypt(data.encode()).decode()

    def _decrypt(self, token: Optional[str]) -> Optional[str]:
        if not token:
            return None
        try:
            return self.fernet.decrypt(token.encode()).decode()
        except InvalidToken as e:
            logger.error(f"Failed to decrypt token: {e}")
            return None

    @abstractmethod
    async def _write(
        self,
        user_id: str,
        access_token: str,
        refresh_token: Optional[str],
        expiry,
        email: Optional[str],
    ) -> None:
        """Upsert; a None refresh_token or email keeps the stored value."""
        raise NotImplementedError

    @abstractmethod
    async def _read(self, user_id: str) -> Optional[dict]:
        raise NotImplementedError

    @abstractmethod
    async def delete_credentials(self, user_id: str) -> None:
        raise NotImplementedError

    async def save_credentials(
        self, user_id: str, credentials: Credentials, email: Optional[str] = None
    ) -> None:
        # Google only returns a refresh token on first consent
        await self._write(
            user_id,
            self._encrypt(credentials.token),
            self._encrypt(credentials.refresh_token),
            credentials.expiry,
            email,
        )
        logger.info(f"Saved Google credentials for user {user_id}")

    async def get_credentials(self, user_id: str) -> Optional[Credentials]:
        row = await self._read(user_id)
        if not row:
            return None

        access_token = self._decrypt(row["access_token"])
        if not access_token:
            return None

        expiry = row["token_expiry"]
        # google-auth compares expiry against naive UTC
        if expiry and expiry.tzinfo:
            expiry = expiry.astimezone(timezone.utc).replace(tzinfo=None)

        return Credentials(
            token=access_token,
            refresh_token=self._decrypt(row["refresh_token"]),
            token_uri=TOKEN_URI,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=GOOGLE_SCOPES,
            expiry=expiry,
        )

    async def get_email(self, user_id: str) -> Optional[str]:
        row = await self._read(user_id)
        return row["email"] if row else None


class PostgresGoogleAuthStore(GoogleAuthStore):

    def __init__(self, db: Database, encryption_key: Optional[str], **kwargs):
        super().__init__(encryption_key, **kwargs)
        self.db = db

    async def _write(self, user_id, access_token, refresh_token, expiry, email) -> None:
        await self.db.execute(
            """
            INSERT INTO google_credentials (user_id, access_token, refresh_token, token_expiry, email)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (user_id) DO UPDATE SET
                access_token = EXCLUDED.access_token,
                refresh_token = COALESCE(EXCLUDED.refresh_token, google_credentials.refresh_token),
                token_expiry = EXCLUDED.token_expiry,
                email = COALESCE(EXCLUDED.email, google_credentials.email),
                updated_at = NOW()
            """,
            user_id,
            access_token,
            refresh_token,
            expiry,
            email,
        )

    async def _read(self, user_id: str) -> Optional[dict]:
        row = await self.db.fetchrow(
            "SELECT access_token, refresh_token, token_expiry, email "
            "FROM google_credentials WHERE user_id = $1",
            user_id,
        )
        return dict(row) if row else None

    async def delete_credentials(self, user_id: str) -> None:
        await self.db.execute("DELETE FROM google_credentials WHERE user_id = $1", user_id)
        logger.info(f"Deleted Google credentials for user {user_id}")


class InMemoryGoogleAuthStore(GoogleAuthStore):

    def __init__(self, encryption_key: Optional[str] = None, **kwargs):
        super().__init__(encryption_key, **kwargs)
        self._rows: Dict[str, dict] = {}

    async def _write(self, user_id, access_token, refresh_token, expiry, email) -> None:
        previous = self._rows.get(user_id, {})
        self._rows[user_id] = {
            "access_token": access_token,
            "refresh_token": refresh_token or previous.get("refresh_token"),
            "token_expiry": expiry,
            "email": email or previous.get("email"),
        }

    async def _read(self, user_id: str) -> Optional[dict]:
        row = self._rows.get(user_id)
        return dict(row) if row else None

    async def delete_credentials(self, user_id: str) -> None:
        self._rows.pop(user_id, None)
        logger.info(f"Deleted Google credentials for user {user_id}")
