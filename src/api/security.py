import base64
import hmac
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

JWT_ALGORITHM = "HS256"
PBKDF2_ITERATIONS = 390_000
_SCHEME = "pbkdf2_sha256"


class InvalidTokenError(ValueError):
    pass


def _derive(password: str, salt: bytes, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


def hash_password(password: str, iterations: int = PBKDF2_ITERATIONS) -> str:
    """Returns ``pbkdf2_sha256$<iterations>$<salt>$<hash>`` (urlsafe base64)."""
    salt = os.urandom(16)
    digest = _derive(password, salt, iterations)
    return "$".join(
        [
            _SCHEME,
            str(iterations),
            base64.urlsafe_b64encode(salt).decode(),
            base64.urlsafe_b64encode(digest).decode(),
        ]
    )


def verify_password(password: str, encoded: str) -> bool:
    try:
        scheme, iterations, salt, digest = encoded.split("$")
    except ValueError:
        return False
    if scheme != _SCHEME:
        return False
    candidate = _derive(password, base64.urlsafe_b64decode(salt), int(iterations))
    return hmac.compare_digest(candidate, base64.urlsafe_b64decode(digest))


def create_access_token(
    user_id: str,
    secret: str,
    expires_days: int = 7,
    now: Optional[datetime] = None,
) -> str:
    now = now or datetime.now(timezone.utc)
    payload = {"sub": user_id, "iat": now, "exp": now + timedelta(days=expires_days)}
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str, secret: str) -> str:
    """Returns the user id carried by a valid, unexpired token."""
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        raise InvalidTokenError(str(e)) from e
    subject = payload.get("sub")
    if not subject:
        raise InvalidTokenError("token has no subject")
    return subject
