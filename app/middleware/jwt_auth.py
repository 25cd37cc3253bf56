"""
JWT Auth Middleware — Parses the access token and sets g.jwt_*.

Token sources, in priority order:
  1. ``Authorization: Bearer <token>`` header
  2. ``access_token`` HttpOnly cookie (browser SPA flow)

Every /api/v1 path outside the public list requires a valid access token;
a missing, expired or malformed token answers 401 before the route runs.

Chain order:
  jwt_auth.py  →  tenant_context.py  →  route handler
"""

import logging

import jwt as pyjwt
from flask import current_app, g, request

from app.services.jwt_service import decode_access_token
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/auth/otp",
    "/api/v1/auth/register-org",
    "/api/v1/auth/refresh",
    "/api/v1/auth/logout",
    "/api/v1/invitations/accept",
    "/api/v1/health",
)

# Public read of an invitation by its token (join page)
_PUBLIC_INVITATION_PREFIX = "/api/v1/invitations/"


def is_public_path(path: str, method: str) -> bool:
    """True for /api/v1 paths that do not need an authenticated user."""
    if any(path.startswith(prefix) for prefix in JWT_SKIP_PREFIXES):
        return True
    return method == "GET" and path.startswith(_PUBLIC_INVITATION_PREFIX)


def get_request_token():
    """Return the raw access token from the header or cookie, or None."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    cookie_name = current_app.config.get("JWT_COOKIE_NAME", "access_token")
    return request.cookies.get(cookie_name) or None


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        # Clear JWT context
        g.jwt_user_id = None
        g.jwt_organization_id = None
        g.jwt_roles = []

        path = request.path
        if not path.startswith("/api/v1/") or request.method == "OPTIONS":
            return None

        token = get_request_token()
        if is_public_path(path, request.method):
            # Public routes still see the caller when a token is present
            if token:
                _load_payload(token)
            return None

        if not token:
            return api_error(E.UNAUTHORIZED, "Authentication required")

        error = _load_payload(token)
        if error:
            return api_error(E.UNAUTHORIZED, error)
        return None


def _load_payload(token):
    """Decode ``token`` into g; return an error message on failure."""
    try:
        payload = decode_access_token(token)
    except pyjwt.ExpiredSignatureError:
        return "Token expired"
    except pyjwt.InvalidTokenError as exc:
        logger.info("Rejected access token: %s", exc)
        return "Invalid token"

    g.jwt_user_id = payload["sub"]
    g.jwt_organization_id = payload.get("org")
    g.jwt_roles = payload.get("roles", [])
    return None
