"""
Auth API Tests

Tests cover:
  - Password hashing (bcrypt) and OTP generation
  - Organization sign-up: OTP request → register-org
  - Login (username or email), access cookie, inactive accounts
  - Refresh token rotation and logout revocation
  - /me, /check, password change, admin user listing
"""

from datetime import datetime, timedelta, timezone

from app.models import db
from app.models.auth import EmailVerification, Organization, Session, User
from app.utils.crypto import generate_otp, hash_password, verify_password

PASSWORD = "Secret123!"


def _request_otp(client, email):
    res = client.post("/api/v1/auth/otp", json={"email": email})
    assert res.status_code == 200, res.get_json()
    return EmailVerification.query.filter_by(email=email).one().otp_code


def _register_payload(**overrides):
    payload = {
        "organization_name": "Initech",
        "username": "peter",
        "email": "peter@example.com",
        "password": PASSWORD,
        "full_name": "Peter Gibbons",
    }
    payload.update(overrides)
    return payload


def _login(client, username, password=PASSWORD):
    return client.post("/api/v1/auth/login", json={"username": username, "password": password})


# ═══════════════════════════════════════════════════════════════
# CRYPTO
# ═══════════════════════════════════════════════════════════════

def test_hash_and_verify_password():
    hashed = hash_password("hunter2hunter2")
    assert hashed.startswith("$2b$")
    assert verify_password("hunter2hunter2", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("anything", "not-a-bcrypt-hash")


def test_generate_otp_is_six_digits():
    for _ in range(20):
        otp = generate_otp()
        assert len(otp) == 6 and otp.isdigit()


# ═══════════════════════════════════════════════════════════════
# ORGANIZATION SIGN-UP
# ═══════════════════════════════════════════════════════════════

def test_request_otp_stores_single_code_per_email(client):
    _request_otp(client, "peter@example.com")
    _request_otp(client, "peter@example.com")
    assert EmailVerification.query.filter_by(email="peter@example.com").count() == 1


def test_request_otp_rejects_registered_email(client, admin_user):
    res = client.post("/api/v1/auth/otp", json={"email": admin_user.email})
    assert res.status_code == 400
    assert "already registered" in res.get_json()["error"]


def test_request_otp_rejects_invalid_email(client):
    res = client.post("/api/v1/auth/otp", json={"email": "not-an-email"})
    assert res.status_code == 400


def test_register_org_creates_organization_and_admin(client):
    otp = _request_otp(client, "peter@example.com")
    res = client.post("/api/v1/auth/register-org", json=_register_payload(otp=otp))
    assert res.status_code == 201, res.get_json()
    body = res.get_json()
    assert body["organization"]["name"] == "Initech"
    assert body["user"]["roles"] == ["ADMIN"]
    assert body["user"]["organization_id"] == body["organization"]["id"]
    # Verification rows are consumed
    assert EmailVerification.query.filter_by(email="peter@example.com").count() == 0


def test_register_org_rejects_wrong_code(client):
    otp = _request_otp(client, "peter@example.com")
    wrong = "000000" if otp != "000000" else "111111"
    res = client.post("/api/v1/auth/register-org", json=_register_payload(otp=wrong))
    assert res.status_code == 400
    assert Organization.query.filter_by(name="Initech").count() == 0


def test_register_org_rejects_expired_code(client):
    otp = _request_otp(client, "peter@example.com")
    verification = EmailVerification.query.filter_by(email="peter@example.com").one()
    verification.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    db.session.commit()

    res = client.post("/api/v1/auth/register-org", json=_register_payload(otp=otp))
    assert res.status_code == 400
    assert "expired" in res.get_json()["error"]


def test_register_org_without_code_request(client):
    res = client.post("/api/v1/auth/register-org", json=_register_payload(otp="123456"))
    assert res.status_code == 400


def test_register_org_duplicate_name_conflicts(client, organization):
    otp = _request_otp(client, "peter@example.com")
    res = client.post(
        "/api/v1/auth/register-org",
        json=_register_payload(otp=otp, organization_name=organization.name),
    )
    assert res.status_code == 409


def test_register_org_duplicate_username_conflicts(client, admin_user):
    otp = _request_otp(client, "peter@example.com")
    res = client.post(
        "/api/v1/auth/register-org",
        json=_register_payload(otp=otp, username=admin_user.username),
    )
    assert res.status_code == 409
    assert Organization.query.filter_by(name="Initech").count() == 0


# ═══════════════════════════════════════════════════════════════
# LOGIN
# ═══════════════════════════════════════════════════════════════

def test_login_returns_token_pair_and_cookie(client, admin_user):
    res = _login(client, "alice")
    assert res.status_code == 200
    body = res.get_json()
    assert body["token_type"] == "Bearer"
    assert body["access_token"] and body["refresh_token"]
    assert body["user"]["username"] == "alice"

    cookies = res.headers.getlist("Set-Cookie")
    access_cookie = next(c for c in cookies if c.startswith("access_token="))
    assert "HttpOnly" in access_cookie
    assert "SameSite=Strict" in access_cookie
    assert Session.query.filter_by(user_id=admin_user.id, is_active=True).count() == 1


def test_login_with_email(client, admin_user):
    res = client.post("/api/v1/auth/login", json={"username": "ALICE@example.com", "password": PASSWORD})
    assert res.status_code == 200


def test_login_bad_password(client, admin_user):
    res = _login(client, "alice", "wrong-password")
    assert res.status_code == 401
    assert res.get_json()["code"] == "ERR_UNAUTHORIZED"


def test_login_missing_fields(client):
    res = client.post("/api/v1/auth/login", json={"username": "alice"})
    assert res.status_code == 400


def test_login_inactive_user(client, admin_user):
    admin_user.is_active = False
    db.session.commit()
    res = _login(client, "alice")
    assert res.status_code == 403


def test_login_inactive_organization(client, admin_user, organization):
    organization.is_active = False
    db.session.commit()
    res = _login(client, "alice")
    assert res.status_code == 403


# ═══════════════════════════════════════════════════════════════
# REFRESH / LOGOUT
# ═══════════════════════════════════════════════════════════════

def test_refresh_rotates_session(client, admin_user):
    tokens = _login(client, "alice").get_json()

    res = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert res.status_code == 200
    new_tokens = res.get_json()
    assert new_tokens["refresh_token"] != tokens["refresh_token"]

    # The old refresh token is spent
    res = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert res.status_code == 401


def test_refresh_rejects_access_token(client, admin_user):
    tokens = _login(client, "alice").get_json()
    res = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert res.status_code == 401


def test_refresh_requires_token(client):
    res = client.post("/api/v1/auth/refresh", json={})
    assert res.status_code == 400


def test_logout_revokes_refresh_token_and_clears_cookie(client, admin_user):
    tokens = _login(client, "alice").get_json()

    res = client.post("/api/v1/auth/logout", json={"refresh_token": tokens["refresh_token"]})
    assert res.status_code == 200
    cookies = res.headers.getlist("Set-Cookie")
    assert any(c.startswith("access_token=;") for c in cookies)

    res = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert res.status_code == 401


def test_logout_with_access_token_revokes_all_sessions(client, admin_user):
    first = _login(client, "alice").get_json()
    _login(client, "alice")
    assert Session.query.filter_by(user_id=admin_user.id, is_active=True).count() == 2

    res = client.post(
        "/api/v1/auth/logout",
        headers={"Authorization": f"Bearer {first['access_token']}"},
    )
    assert res.status_code == 200
    assert Session.query.filter_by(user_id=admin_user.id, is_active=True).count() == 0


# ═══════════════════════════════════════════════════════════════
# ME / CHECK / PASSWORD / USERS
# ═══════════════════════════════════════════════════════════════

def test_me_returns_profile_and_organization(client, admin_headers, organization):
    res = client.get("/api/v1/auth/me", headers=admin_headers)
    assert res.status_code == 200
    body = res.get_json()
    assert body["user"]["username"] == "alice"
    assert body["user"]["roles"] == ["ADMIN"]
    assert body["organization"]["name"] == organization.name


def test_me_accepts_access_cookie(client, admin_user):
    token = _login(client, "alice").get_json()["access_token"]
    fresh = client.application.test_client()
    fresh.set_cookie("access_token", token)
    res = fresh.get("/api/v1/auth/me")
    assert res.status_code == 200


def test_check(client, tester_headers):
    res = client.get("/api/v1/auth/check", headers=tester_headers)
    assert res.status_code == 200
    assert res.get_json() == {"authenticated": True}

    res = client.get("/api/v1/auth/check")
    assert res.status_code == 401


def test_change_password(client, tester_user, tester_headers):
    res = client.put(
        "/api/v1/auth/password",
        headers=tester_headers,
        json={"current_password": PASSWORD, "new_password": "BrandNew456!"},
    )
    assert res.status_code == 200
    assert _login(client, "terry", "BrandNew456!").status_code == 200
    assert _login(client, "terry").status_code == 401


def test_change_password_wrong_current(client, tester_headers):
    res = client.put(
        "/api/v1/auth/password",
        headers=tester_headers,
        json={"current_password": "nope-nope", "new_password": "BrandNew456!"},
    )
    assert res.status_code == 401


def test_change_password_too_short(client, tester_headers):
    res = client.put(
        "/api/v1/auth/password",
        headers=tester_headers,
        json={"current_password": PASSWORD, "new_password": "short"},
    )
    assert res.status_code == 400


def test_list_users_admin_only(client, admin_headers, tester_headers, qa_user, tester_user, other_admin):
    res = client.get("/api/v1/auth/users", headers=admin_headers)
    assert res.status_code == 200
    usernames = [u["username"] for u in res.get_json()]
    assert usernames == ["quinn", "terry"]

    res = client.get("/api/v1/auth/users", headers=tester_headers)
    assert res.status_code == 403


def test_deactivated_user_token_is_rejected(client, tester_user, tester_headers):
    db.session.get(User, tester_user.id).is_active = False
    db.session.commit()
    res = client.get("/api/v1/auth/me", headers=tester_headers)
    assert res.status_code == 401
