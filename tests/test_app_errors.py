"""
Application factory, error boundary and response hardening tests.

Tests cover:
  - Startup refuses a missing signing secret
  - Every error kind has an HTTP status; internal details never leak
  - JSON 404 / 405 / 415 for API paths
  - Health check (ok / degraded) and service info
  - Security headers and request ids
  - Best-effort administrator activity records
"""

from contextlib import contextmanager

import pytest

from academy import create_app
from academy.blueprints import public_bp
from academy.config import TestingConfig
from academy.core.exceptions import (
    AcademyError,
    ErrorKind,
    InternalError,
    ResourceNotFound,
    SessionExpired,
    StorageUnavailable,
)
from academy.core.identity import SYSTEM
from academy.services import audit_service, catalog_service
from academy.utils.errors import STATUS_BY_KIND, E, api_error, render_academy_error


@contextmanager
def _storage_down(*args, **kwargs):
    raise StorageUnavailable(log_detail="could not connect to server at 10.0.0.5")
    yield


# ═══════════════════════════════════════════════════════════════
# BLOCK 1: Factory
# ═══════════════════════════════════════════════════════════════

class TestFactory:
    def test_missing_jwt_secret_refuses_start(self, monkeypatch):
        monkeypatch.setattr(TestingConfig, "JWT_SECRET_KEY", None)
        with pytest.raises(RuntimeError, match="JWT_SECRET_KEY"):
            create_app("testing")

    def test_blueprints_registered(self, app):
        assert {"auth_bp", "public_bp", "user_bp", "admin_bp"} <= set(app.blueprints)


# ═══════════════════════════════════════════════════════════════
# BLOCK 2: Error boundary
# ═══════════════════════════════════════════════════════════════

class TestErrorBoundary:
    def test_every_kind_mapped(self):
        assert set(STATUS_BY_KIND) == set(ErrorKind)

    def test_every_error_class_renders(self, app):
        classes = [c for c in AcademyError.__subclasses__()]
        assert {c.kind for c in classes} == set(ErrorKind)
        with app.test_request_context("/api/v1/x"):
            for cls in classes:
                response, status = render_academy_error(cls())
                assert status == STATUS_BY_KIND[cls.kind]
                assert response.get_json()["code"] == cls.kind.value

    def test_session_expired_is_client_error(self, app):
        with app.test_request_context("/api/v1/x"):
            response, status = render_academy_error(SessionExpired())
        assert status == 400

    def test_not_found_message(self, app):
        with app.test_request_context("/api/v1/x"):
            response, status = render_academy_error(ResourceNotFound("Payment", resource_id="p1"))
        assert status == 404
        assert response.get_json() == {"error": "Payment not found", "code": "RESOURCE_NOT_FOUND"}

    @pytest.mark.parametrize("exc,message", [
        (StorageUnavailable("replica 10.0.0.5 refused connection"), "Service temporarily unavailable"),
        (InternalError("KeyError: 'password_hash'"), "Internal server error"),
    ])
    def test_server_errors_use_safe_message(self, app, exc, message):
        with app.test_request_context("/api/v1/x"):
            response, _ = render_academy_error(exc)
        assert response.get_json()["error"] == message

    def test_api_error_envelope(self, app):
        with app.test_request_context("/api/v1/x"):
            response, status = api_error(E.RESOURCE_CONFLICT, "Taken", details={"field": "email"})
            assert status == 409
            assert response.get_json() == {
                "error": "Taken", "code": "RESOURCE_CONFLICT", "details": {"field": "email"},
            }

            _, status = api_error("SOMETHING_ELSE", "x")
            assert status == 400
            _, status = api_error(E.VALIDATION_FAILED, "x", status=422)
            assert status == 422

    def test_unhandled_exception_is_safe_500(self, client, monkeypatch):
        def _boom(*args, **kwargs):
            raise KeyError("internal column name")

        monkeypatch.setattr(catalog_service, "list_programs", _boom)
        res = client.get("/api/v1/public/training-programs")
        assert res.status_code == 500
        assert res.get_json() == {"error": "Internal server error", "code": "INTERNAL_ERROR"}
        assert "internal column name" not in res.get_data(as_text=True)

    def test_unknown_route(self, client):
        res = client.get("/api/v1/does-not-exist")
        assert res.status_code == 404
        assert res.get_json()["code"] == "HTTP_404"

    def test_method_not_allowed(self, client):
        res = client.delete("/api/v1/auth/login")
        assert res.status_code == 405
        assert res.get_json()["code"] == "HTTP_405"

    def test_non_json_body(self, client):
        res = client.post("/api/v1/auth/login", data="email=a&password=b", content_type="text/plain")
        assert res.status_code == 415


# ═══════════════════════════════════════════════════════════════
# BLOCK 3: Health & info
# ═══════════════════════════════════════════════════════════════

class TestHealth:
    def test_healthy(self, client):
        res = client.get("/api/v1/public/health")
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "ok"
        assert body["checks"]["database"]["status"] == "ok"

    def test_degraded(self, client, monkeypatch):
        monkeypatch.setattr(public_bp, "system_context", _storage_down)
        res = client.get("/api/v1/public/health")
        assert res.status_code == 503
        assert res.get_json()["status"] == "degraded"
        assert "10.0.0.5" not in res.get_data(as_text=True)

    def test_info(self, client):
        body = client.get("/api/v1/public/info").get_json()
        assert body["payment_window_seconds"] == 300
        assert body["payment_methods"] == ["UPI"]


# ═══════════════════════════════════════════════════════════════
# BLOCK 4: Response hardening
# ═══════════════════════════════════════════════════════════════

class TestSecurityHeaders:
    def test_headers_present(self, client):
        res = client.get("/api/v1/public/info")
        assert res.headers["X-Content-Type-Options"] == "nosniff"
        assert res.headers["X-Frame-Options"] == "DENY"
        assert res.headers["Referrer-Policy"] == "no-referrer"
        assert res.headers["Cache-Control"] == "no-store"
        assert "default-src 'none'" in res.headers["Content-Security-Policy"]

    def test_request_id_echoed(self, client):
        res = client.get("/api/v1/public/info", headers={"X-Request-ID": "req-123"})
        assert res.headers["X-Request-ID"] == "req-123"

    def test_headers_on_errors(self, client):
        res = client.get("/api/v1/user/profile")
        assert res.status_code == 401
        assert res.headers["X-Content-Type-Options"] == "nosniff"


# ═══════════════════════════════════════════════════════════════
# BLOCK 5: Activity records are best-effort
# ═══════════════════════════════════════════════════════════════

class TestActivityRecords:
    def test_failure_returns_false(self, monkeypatch):
        monkeypatch.setattr(audit_service, "access_context", _storage_down)
        assert audit_service.record_admin_activity(
            SYSTEM, action="user.update_role", resource_type="user", resource_id="u1",
        ) is False

    def test_failure_does_not_undo_admin_write(self, client, admin_headers, monkeypatch):
        monkeypatch.setattr(audit_service, "access_context", _storage_down)
        res = client.post(
            "/api/v1/admin/training-programs",
            json={"title": "Still Created", "price": "10"},
            headers=admin_headers,
        )
        assert res.status_code == 201

        listing = client.get("/api/v1/admin/training-programs", headers=admin_headers).get_json()
        assert [p["title"] for p in listing["training_programs"]] == ["Still Created"]

    def test_record_contents(self, client, admin, admin_headers):
        client.post(
            "/api/v1/admin/training-programs",
            json={"title": "Logged", "price": "10"},
            headers={**admin_headers, "User-Agent": "pytest-agent", "X-Forwarded-For": "203.0.113.9, 10.0.0.1"},
        )
        logs = client.get("/api/v1/admin/activity-logs", headers=admin_headers).get_json()["logs"]
        assert len(logs) == 1
        assert logs[0]["admin_id"] == admin.id
        assert logs[0]["ip_address"] == "203.0.113.9"
        assert logs[0]["user_agent"] == "pytest-agent"
        assert logs[0]["details"]["title"] == "Logged"
