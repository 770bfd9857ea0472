import json
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient


def _deadline(**delta) -> str:
    return (datetime.now(timezone.utc) + timedelta(**delta)).isoformat()


def _create(client, headers, **overrides) -> dict:
    body = {
        "title": "Essay",
        "category": "assignment",
        "estimated_duration": 90,
        "deadline": _deadline(days=2),
    }
    body.update(overrides)
    r = client.post("/tasks", headers=headers, json=body)
    assert r.status_code == 201, r.text
    return r.json()["task"]


def test_create_and_get_carries_ai_priority(client, auth_headers):
    task = _create(client, auth_headers)
    assert task["status"] == "pending"
    assert task["ai_priority"] == 80

    r = client.get(f"/tasks/{task['id']}", headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["task"]["ai_priority"] == 80


def test_missing_fields_are_400(client, auth_headers):
    r = client.post("/tasks", headers=auth_headers, json={"title": "No deadline", "category": "lab"})
    assert r.status_code == 400
    fields = {e["loc"][-1] for e in r.json()["errors"]}
    assert {"deadline", "estimated_duration"} <= fields


def test_requires_auth(client):
    assert client.get("/tasks").status_code == 401


def test_other_users_tasks_are_not_found(client, auth_headers, register):
    task = _create(client, auth_headers)
    other = register(client, email="mallory@uni.edu")
    assert client.get(f"/tasks/{task['id']}", headers=other).status_code == 404
    assert client.delete(f"/tasks/{task['id']}", headers=other).status_code == 404
    assert client.get("/tasks", headers=other).json()["tasks"] == []


def test_list_filters_and_priority_sort(client, auth_headers):
    _create(client, auth_headers, title="Low", priority="low")
    _create(client, auth_headers, title="Urgent", priority="urgent", deadline=_deadline(days=5))
    _create(client, auth_headers, title="Lab", category="lab", priority="high")

    r = client.get("/tasks", headers=auth_headers, params={"sort_by": "priority"})
    assert [t["title"] for t in r.json()["tasks"]] == ["Urgent", "Lab", "Low"]

    r = client.get("/tasks", headers=auth_headers, params={"category": "lab"})
    assert [t["title"] for t in r.json()["tasks"]] == ["Lab"]

    r = client.get("/tasks", headers=auth_headers, params={"status": "finished"})
    assert r.status_code == 400


def test_update_and_status_machine(client, auth_headers):
    task = _create(client, auth_headers)

    r = client.put(f"/tasks/{task['id']}", headers=auth_headers, json={"progress": 40, "tags": [" reading ", ""]})
    assert r.status_code == 200
    assert r.json()["task"]["progress"] == 40
    assert r.json()["task"]["tags"] == ["reading"]

    r = client.post(f"/tasks/{task['id']}/start", headers=auth_headers)
    assert r.json()["task"]["status"] == "in_progress"
    assert r.json()["task"]["start_time"] is not None

    r = client.post(f"/tasks/{task['id']}/complete", headers=auth_headers, json={"actual_duration": 100})
    done = r.json()["task"]
    assert (done["status"], done["progress"], done["actual_duration"]) == ("completed", 100, 100)

    r = client.put(f"/tasks/{task['id']}", headers=auth_headers, json={"status": "pending"})
    assert r.status_code == 400


def test_complete_without_body(client, auth_headers):
    task = _create(client, auth_headers)
    r = client.post(f"/tasks/{task['id']}/complete", headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["task"]["status"] == "completed"


def test_dependency_cycle_is_400(client, auth_headers):
    research = _create(client, auth_headers, title="Research")
    draft = _create(client, auth_headers, title="Draft", dependencies=[research["id"]])
    r = client.put(f"/tasks/{research['id']}", headers=auth_headers, json={"dependencies": [draft["id"]]})
    assert r.status_code == 400
    assert "cycle" in r.json()["detail"]


def test_delete(client, auth_headers):
    task = _create(client, auth_headers)
    assert client.delete(f"/tasks/{task['id']}", headers=auth_headers).status_code == 200
    assert client.get(f"/tasks/{task['id']}", headers=auth_headers).status_code == 404
    assert client.post(f"/tasks/{task['id']}/start", headers=auth_headers).status_code == 404


def test_from_text_falls_back_when_model_offline(client, auth_headers):
    r = client.post("/tasks/from-text", headers=auth_headers, json={"text": "  Read chapter four of biology  "})
    assert r.status_code == 201
    body = r.json()
    assert body["parsed_by"] == "fallback"
    task = body["task"]
    assert task["title"] == "Read chapter four of biology"
    assert task["ai_generated"] is True
    deadline = datetime.fromisoformat(task["deadline"].replace("Z", "+00:00"))
    assert timedelta(days=6) < deadline - datetime.now(timezone.utc) <= timedelta(days=7)


def test_from_text_uses_model_answer(app_factory, fake_provider_factory, register):
    provider = fake_provider_factory(
        json.dumps(
            {
                "title": "Chemistry exam",
                "category": "exam",
                "priority": "urgent",
                "difficulty": "hard",
                "estimated_duration": 180,
                "deadline": _deadline(days=1),
            }
        )
    )
    with TestClient(app_factory(provider)) as client:
        headers = register(client)
        r = client.post("/tasks/from-text", headers=headers, json={"text": "chem exam tomorrow!!"})
    assert r.status_code == 201
    assert r.json()["parsed_by"] == "model"
    assert r.json()["task"]["category"] == "exam"
    assert r.json()["task"]["ai_priority"] == 100


def test_from_text_blank_is_400(client, auth_headers):
    assert client.post("/tasks/from-text", headers=auth_headers, json={"text": "   "}).status_code == 400


def test_analytics_overview(client, auth_headers):
    first = _create(client, auth_headers)
    _create(client, auth_headers, category="lab", priority="high")
    client.post(f"/tasks/{first['id']}/complete", headers=auth_headers, json={"actual_duration": 30})

    r = client.get("/tasks/analytics/overview", headers=auth_headers, params={"period": "week"})
    stats = r.json()["analytics"]
    assert stats["total"] == 2
    assert stats["completed"] == 1
    assert stats["pending"] == 1
    assert stats["categories"] == {"assignment": 1, "lab": 1}
    assert stats["average_completion_time"] == 30


def test_upcoming_deadlines_exclude_closed_and_far(client, auth_headers):
    soon = _create(client, auth_headers, title="Soon", deadline=_deadline(days=1))
    _create(client, auth_headers, title="Far", deadline=_deadline(days=20))
    done = _create(client, auth_headers, title="Done", deadline=_deadline(days=2))
    client.post(f"/tasks/{done['id']}/complete", headers=auth_headers)

    r = client.get("/tasks/upcoming/deadlines", headers=auth_headers, params={"days": 7})
    assert [t["id"] for t in r.json()["tasks"]] == [soon["id"]]
