from datetime import datetime, timedelta, timezone

import pytest

from api.security import (
    InvalidTokenError,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)


def test_password_hash_round_trip():
    encoded = hash_password("secret123", iterations=1_000)
    assert encoded.startswith("pbkdf2_sha256$1000$")
    assert verify_password("secret123", encoded)
    assert not verify_password("secret124", encoded)


def test_same_password_gets_distinct_salts():
    assert hash_password("pw", iterations=1_000) != hash_password("pw", iterations=1_000)


def test_malformed_hash_never_verifies():
    assert not verify_password("pw", "plaintext")
    assert not verify_password("pw", "md5$1$abc$def")


def test_token_round_trip():
    token = create_access_token("user-1", "k")
    assert decode_access_token(token, "k") == "user-1"


def test_token_with_wrong_secret_or_expired():
    token = create_access_token("user-1", "k")
    with pytest.raises(InvalidTokenError):
        decode_access_token(token, "other")

    stale = create_access_token("user-1", "k", expires_days=7, now=datetime.now(timezone.utc) - timedelta(days=8))
    with pytest.raises(InvalidTokenError):
        decode_access_token(stale, "k")
