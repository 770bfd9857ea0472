from datetime import datetime, timedelta, timezone

from api.security import create_access_token


def test_register_returns_token_and_profile(client, register):
    headers = register(client)
    r = client.get("/auth/me", headers=headers)
    assert r.status_code == 200
    user = r.json()["user"]
    assert user["email"] == "ada@uni.edu"
    assert "password_hash" not in user
    assert user["preferences"]["working_hours"] == {"start": "09:00", "end": "18:00"}


def test_duplicate_email_rejected(client, register):
    register(client)
    r = client.post(
        "/auth/register",
        json={
            "name": "Other",
            "email": "ADA@uni.edu",
            "password": "another1",
            "university": "U",
            "course": "C",
            "year": 1,
        },
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "User already exists"


def test_register_validation_errors_are_400(client):
    r = client.post(
        "/auth/register",
        json={"name": "X", "email": "not-an-email", "password": "123", "university": "U", "course": "C", "year": 9},
    )
    assert r.status_code == 400
    body = r.json()
    assert body["detail"] == "Validation failed"
    fields = {e["loc"][-1] for e in body["errors"]}
    assert {"email", "password", "year"} <= fields


def test_login(client, register):
    register(client)
    ok = client.post("/auth/login", json={"email": "ada@uni.edu", "password": "secret123"})
    assert ok.status_code == 200
    assert ok.json()["token"]

    bad = client.post("/auth/login", json={"email": "ada@uni.edu", "password": "wrong"})
    assert bad.status_code == 400
    assert bad.json()["detail"] == "Invalid credentials"


def test_missing_and_invalid_tokens(client):
    assert client.get("/auth/me").status_code == 401
    r = client.get("/auth/me", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Token is not valid"


def test_expired_token_rejected(client, register):
    me = client.get("/auth/me", headers=register(client, email="b@uni.edu")).json()["user"]
    stale = create_access_token(
        me["id"], "test-secret", expires_days=1, now=datetime.now(timezone.utc) - timedelta(days=3)
    )
    r = client.get("/auth/me", headers={"Authorization": f"Bearer {stale}"})
    assert r.status_code == 401


def test_token_for_unknown_user_rejected(client):
    token = create_access_token("nobody", "test-secret")
    assert client.get("/auth/me", headers={"Authorization": f"Bearer {token}"}).status_code == 401


def test_update_preferences(client, auth_headers):
    r = client.put(
        "/auth/preferences",
        headers=auth_headers,
        json={"preferences": {"timezone": "Europe/Berlin", "break_duration": 10}},
    )
    assert r.status_code == 200
    prefs = r.json()["user"]["preferences"]
    assert prefs["timezone"] == "Europe/Berlin"
    assert prefs["break_duration"] == 10
    assert prefs["study_session"] == 45
