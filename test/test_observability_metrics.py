from fastapi import APIRouter
from fastapi.testclient import TestClient


def test_health_reports_in_memory_storage(client):
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "healthy"
    assert body["storage"] == "in-memory"
    assert body["environment"] == "test"


def test_metrics_endpoint_exposes_prometheus_text(client) -> None:
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "text/plain" in r.headers.get("content-type", "")
    body = r.text
    assert "campus_requests_total" in body
    assert "campus_request_latency_seconds" in body


def test_requests_are_counted_by_route_template(client, auth_headers) -> None:
    client.get("/tasks/does-not-exist", headers=auth_headers)

    lines = client.get("/metrics").text.splitlines()
    found = any(
        line.startswith('campus_requests_total{endpoint="/tasks/{task_id}",status="404"}')
        for line in lines
    )
    assert found, "Expected campus_requests_total sample line for /tasks/{task_id}"


def test_fallbacks_and_created_tasks_are_counted(client, auth_headers) -> None:
    client.post("/tasks/from-text", headers=auth_headers, json={"text": "Buy lab goggles"})

    body = client.get("/metrics").text
    assert 'campus_llm_fallback_total{capability="parse_task"}' in body
    assert 'campus_tasks_created_total{source="text"}' in body


def _app_with_crash(app_factory, settings=None):
    app = app_factory(settings=settings)
    crash = APIRouter()

    @crash.get("/boom")
    async def boom():
        raise RuntimeError("kaboom")

    app.include_router(crash)
    return app


def test_unhandled_errors_are_500_with_detail_outside_production(app_factory):
    with TestClient(_app_with_crash(app_factory), raise_server_exceptions=False) as client:
        r = client.get("/boom")
    assert r.status_code == 500
    assert r.json() == {"detail": "Server error", "error": "kaboom"}


def test_production_hides_error_text(app_factory, test_settings):
    import dataclasses

    settings = dataclasses.replace(test_settings, environment="production")
    with TestClient(_app_with_crash(app_factory, settings), raise_server_exceptions=False) as client:
        r = client.get("/boom")
    assert r.status_code == 500
    assert r.json() == {"detail": "Server error"}
