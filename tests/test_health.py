"""
Tests for the health, readiness and root endpoints and the middleware.
"""
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.requests import Request

from studio import __version__
from studio.core.audit import AuditMiddleware, describe_auth, get_client_ip
from studio.core.security import IMPERSONATION_COOKIE, SESSION_COOKIE
from studio.database.connection import get_database


class TestHealth:
    """/health and /health/ready"""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["version"] == __version__

    def test_ready(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_not_ready_without_database(self, client, monkeypatch):
        monkeypatch.setattr(get_database(), "check_connection", lambda: False)

        response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json() == {"error": "Database unavailable", "code": "database_error"}


def test_root(client):
    body = client.get("/").json()

    assert body["message"] == "JKKN Solution Studio API"
    assert body["documentation"] == "/docs"


def test_unknown_body_shape_is_400(client, learner):
    response = client.post("/api/cycles", content="not json", headers={**learner[1], "Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request body"


class TestMiddleware:
    """Security headers and request auditing"""

    def test_security_headers(self, client):
        response = client.get("/health")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"

    def test_audit_middleware_times_requests(self):
        app = FastAPI()
        app.add_middleware(AuditMiddleware)

        @app.get("/ping")
        async def ping():
            return {"ok": True}

        response = TestClient(app).get("/ping", headers={"Authorization": "Bearer abc"})

        assert response.status_code == 200
        assert response.headers["X-Response-Time"].endswith("s")

    def test_describe_auth_and_client_ip(self):
        request = Request({
            "type": "http",
            "headers": [
                (b"x-forwarded-for", b"10.0.0.7, 172.16.0.1"),
                (b"cookie", f"{SESSION_COOKIE}=t; {IMPERSONATION_COOKIE}=i".encode()),
            ],
            "client": ("127.0.0.1", 5000),
        })

        assert get_client_ip(request) == "10.0.0.7"
        assert describe_auth(request) == "cookie+impersonation"
