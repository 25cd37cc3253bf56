"""
Middleware Tests — JWT guard, tenant context, security headers, request guards.
"""

import importlib

from sqlalchemy.exc import OperationalError

from app.models import db
from app.models.auth import Role
from app.services.jwt_service import generate_access_token


def test_protected_route_requires_token(client):
    res = client.get("/api/v1/projects")
    assert res.status_code == 401
    assert res.get_json()["code"] == "ERR_UNAUTHORIZED"


def test_invalid_token(client):
    res = client.get("/api/v1/projects", headers={"Authorization": "Bearer not.a.jwt"})
    assert res.status_code == 401
    assert res.get_json()["error"] == "Invalid token"


def test_expired_token(app, client, admin_user, monkeypatch):
    monkeypatch.setitem(app.config, "JWT_ACCESS_EXPIRES", -30)
    token = generate_access_token(admin_user.id, admin_user.organization_id, ["ADMIN"])
    res = client.get("/api/v1/projects", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 401
    assert res.get_json()["error"] == "Token expired"


def test_inactive_organization_is_forbidden(client, admin_headers, organization):
    organization.is_active = False
    db.session.commit()
    res = client.get("/api/v1/projects", headers=admin_headers)
    assert res.status_code == 403


def test_public_paths_need_no_token(client):
    assert client.get("/api/v1/health").status_code == 200
    assert client.get("/api/v1/health/ready").get_json() == {"status": "ok"}


def test_liveness_reports_database(client):
    res = client.get("/api/v1/health/live")
    assert res.status_code == 200
    body = res.get_json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"]["status"] == "ok"
    assert body["checks"]["system_roles"]["missing"] == []


def test_liveness_degraded_when_system_role_missing(client):
    Role.query.filter_by(name="TESTER").delete()
    db.session.commit()
    res = client.get("/api/v1/health/live")
    assert res.status_code == 503
    body = res.get_json()
    assert body["status"] == "degraded"
    assert body["checks"]["system_roles"]["status"] == "error"
    assert body["checks"]["system_roles"]["missing"] == ["TESTER"]


def test_liveness_hides_database_error_text(client, monkeypatch):
    def _broken():
        raise OperationalError("SELECT 1", {}, Exception("password=hunter2 host=db"))

    health = importlib.import_module("app.blueprints.health_bp")
    monkeypatch.setattr(health, "_probe_database", _broken)
    res = client.get("/api/v1/health/live")
    assert res.status_code == 503
    database = res.get_json()["checks"]["database"]
    assert database == {"status": "error", "detail": "check failed"}
    assert "hunter2" not in res.get_data(as_text=True)


def test_security_headers(client):
    res = client.get("/api/v1/health")
    assert res.headers["X-Content-Type-Options"] == "nosniff"
    assert res.headers["X-Frame-Options"] == "DENY"
    assert "Strict-Transport-Security" in res.headers
    assert "Server" not in res.headers


def test_auth_responses_are_not_cached(client):
    res = client.post("/api/v1/auth/login", json={"username": "nobody", "password": "x"})
    assert res.headers["Cache-Control"] == "no-store"


def test_request_id_is_echoed(client):
    res = client.get("/api/v1/health", headers={"X-Request-ID": "abc123"})
    assert res.headers["X-Request-ID"] == "abc123"
    assert "X-Request-Duration-Ms" in res.headers


def test_non_json_body_is_rejected(client, admin_headers):
    res = client.post("/api/v1/projects", headers=admin_headers,
                      data="name=Payments", content_type="text/plain")
    assert res.status_code == 415
    assert res.get_json()["code"] == "ERR_UNSUPPORTED_MEDIA_TYPE"


def test_unknown_route_is_json_404(client, admin_headers):
    res = client.get("/api/v1/nothing-here", headers=admin_headers)
    assert res.status_code == 404
    assert res.get_json()["code"] == "ERR_NOT_FOUND"


def test_wrong_method_is_json_405(client, admin_headers):
    res = client.patch("/api/v1/projects", headers=admin_headers, json={})
    assert res.status_code == 405
    assert res.get_json()["code"] == "ERR_METHOD_NOT_ALLOWED"
