from __future__ import annotations

from fastapi.testclient import TestClient


def test_preserves_incoming_request_id_header(client: TestClient):
    incoming_id = "test-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing(client: TestClient):
    resp = client.get("/health")

    assert resp.status_code == 200
    generated = resp.headers.get("X-Request-ID")
    assert generated
    assert resp.headers.get("X-Request-Duration-ms") is not None


def test_error_body_carries_request_id(client: TestClient):
    resp = client.get("/api/v1/user/profile", headers={"X-Request-ID": "trace-me"})

    assert resp.status_code == 401
    assert resp.json()["error"]["request_id"] == "trace-me"
    assert resp.headers.get("X-Request-ID") == "trace-me"


def test_health_reports_cache_and_limiter(client: TestClient):
    with client:
        body = client.get("/health").json()

    assert body["status"] == "ok"
    assert body["service"] == "daily-notes-api"
    assert body["cache"] == "enabled"
    assert body["rate_limit"]["rate"] == 5
    assert body["rate_limit"]["window_seconds"] == 900


def test_openapi_marks_auth_routes_public(client: TestClient):
    schema = client.get("/openapi.json").json()

    assert "BearerAuth" in schema["components"]["securitySchemes"]
    login = schema["paths"]["/api/v1/auth/login"]["post"]
    assert login["security"] == []
    assert "429" in login["responses"]
    profile = schema["paths"]["/api/v1/user/profile"]["get"]
    assert "security" not in profile
