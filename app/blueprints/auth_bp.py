"""
Auth Blueprint — organization sign-up and JWT authentication endpoints.

  POST /api/v1/auth/otp            — Send a sign-up verification code
  POST /api/v1/auth/register-org   — Verify code → create organization + ADMIN
  POST /api/v1/auth/login          — Username/email + password → JWT pair (+ cookie)
  POST /api/v1/auth/refresh        — Refresh token → new JWT pair (rotation)
  POST /api/v1/auth/logout         — Revoke refresh token, clear cookie
  GET  /api/v1/auth/me             — Current user profile
  GET  /api/v1/auth/check          — {"authenticated": true}
  PUT  /api/v1/auth/password       — Change own password
  GET  /api/v1/auth/users          — ADMIN: non-admin users of the organization
"""

import logging

from flask import Blueprint, current_app, g, jsonify, request

from app.middleware.permission_required import current_user, require_auth, require_role
from app.models.auth import ROLE_ADMIN
from app.services import jwt_service, onboarding_service
from app.services.user_service import (
    authenticate_user,
    change_password as change_user_password,
    list_non_admin_users,
)
from app.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")
register_error_handlers(auth_bp)


def _client():
    return request.remote_addr, request.headers.get("User-Agent", "")


def _token_body(tokens, **extra):
    return {
        "access_token": tokens["access_token"],
        "refresh_token": tokens["refresh_token"],
        "token_type": tokens["token_type"],
        "expires_in": tokens["expires_in"],
        **extra,
    }


def _token_response(user, status=200):
    """Start a refresh session, answer with the pair and set the access cookie."""
    tokens = jwt_service.start_session(user, *_client())
    response = jsonify(_token_body(tokens, user=user.to_dict(include_roles=True)))
    _set_access_cookie(response, tokens["access_token"], tokens["expires_in"])
    return response, status


def _set_access_cookie(response, token, max_age):
    cfg = current_app.config
    response.set_cookie(
        cfg.get("JWT_COOKIE_NAME", "access_token"),
        token,
        max_age=max_age,
        httponly=True,
        secure=cfg.get("JWT_COOKIE_SECURE", False),
        samesite=cfg.get("JWT_COOKIE_SAMESITE", "Strict"),
        path="/",
    )


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/otp
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/otp", methods=["POST"])
def request_otp():
    """
    Send a 6-digit verification code for organization sign-up.

    Body: { "email": "..." }
    """
    data = request.get_json(silent=True) or {}
    if not data.get("email"):
        return api_error(E.VALIDATION_REQUIRED, "Email is required")

    onboarding_service.request_otp(data["email"])
    return jsonify({"message": "Verification code sent to email"}), 200


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/register-org
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/register-org", methods=["POST"])
def register_org():
    """
    Create an organization and its first ADMIN user.

    Body: { "organization_name", "username", "email", "password", "otp",
            "full_name"?, "domain"? }
    """
    data = request.get_json(silent=True) or {}
    user, organization = onboarding_service.register_organization(data)
    return jsonify({
        "message": "Organization registered successfully",
        "user": user.to_dict(include_roles=True),
        "organization": organization.to_dict(),
    }), 201


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate with username (or email) + password, return JWT pair.

    Body: { "username": "...", "password": "..." }
    """
    data = request.get_json(silent=True) or {}
    login_name = data.get("username") or data.get("email") or ""
    user = authenticate_user(login_name, data.get("password") or "")
    return _token_response(user)


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/refresh
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    """
    Exchange a refresh token for a new JWT pair (token rotation).

    Body: { "refresh_token": "..." }
    """
    refresh_token = (request.get_json(silent=True) or {}).get("refresh_token")
    if not refresh_token:
        return api_error(E.VALIDATION_REQUIRED, "Refresh token is required")

    _user, tokens = jwt_service.refresh_session(refresh_token, *_client())
    response = jsonify(_token_body(tokens))
    _set_access_cookie(response, tokens["access_token"], tokens["expires_in"])
    return response, 200


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/logout
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/logout", methods=["POST"])
def logout():
    """
    Revoke the current refresh token / session and clear the access cookie.

    Body: { "refresh_token": "..." }  or uses the access token
    """
    data = request.get_json(silent=True) or {}
    refresh_token = data.get("refresh_token", "")

    if refresh_token:
        jwt_service.end_session(refresh_token)
    elif getattr(g, "jwt_user_id", None):
        # No refresh token: log out everywhere
        jwt_service.end_all_sessions(g.jwt_user_id)

    response = jsonify({"message": "Logged out successfully"})
    response.delete_cookie(current_app.config.get("JWT_COOKIE_NAME", "access_token"), path="/")
    return response, 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me  ·  GET /api/v1/auth/check
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    """Current user profile with its organization."""
    user = current_user()
    return jsonify({
        "user": user.to_dict(include_roles=True),
        "organization": user.organization.to_dict() if user.organization else None,
    }), 200


@auth_bp.route("/check", methods=["GET"])
@require_auth
def check():
    return jsonify({"authenticated": True}), 200


# ═══════════════════════════════════════════════════════════════
# PUT /api/v1/auth/password
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/password", methods=["PUT"])
@require_auth
def change_password():
    """
    Change current user's password.

    Body: { "current_password": "...", "new_password": "..." }
    """
    data = request.get_json(silent=True) or {}
    current_pw = data.get("current_password", "")
    new_pw = data.get("new_password", "")

    if not current_pw or not new_pw:
        return api_error(E.VALIDATION_REQUIRED, "Both current and new password are required")

    change_user_password(current_user(), current_pw, new_pw)
    return jsonify({"message": "Password changed successfully"}), 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/users
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/users", methods=["GET"])
@require_role(ROLE_ADMIN)
def list_users():
    """Non-admin users of the caller's organization."""
    users = list_non_admin_users(current_user().organization_id)
    return jsonify([u.to_dict(include_roles=True) for u in users]), 200
