"""
JWT Service — token generation, verification and refresh-session storage.

Access token:  15 minutes (JWT_ACCESS_EXPIRES)
Refresh token: 7 days     (JWT_REFRESH_EXPIRES)
Algorithm:     HS256

Token payload (access):
{
    "sub": "<user_id>",            # string, as required by RFC 7519 / PyJWT
    "org": <organization_id>,
    "roles": ["ADMIN", ...],
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}

Refresh tokens are never stored raw: the ``sessions`` table keeps their
SHA-256 hash and every refresh rotates the session.
"""

import hashlib
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from app.core.exceptions import AuthenticationError
from app.models import db
from app.models.auth import Session, User

logger = logging.getLogger(__name__)

# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 900       # 15 minutes
DEFAULT_REFRESH_EXPIRES = 604800   # 7 days
ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


def _get_refresh_expires():
    return current_app.config.get("JWT_REFRESH_EXPIRES", DEFAULT_REFRESH_EXPIRES)


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def generate_access_token(user_id: int, organization_id: int | None, roles: list[str]) -> str:
    """Generate a short-lived access token."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "org": organization_id,
        "roles": roles,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=_get_access_expires()),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


def generate_refresh_token(user_id: int) -> tuple[str, str, datetime]:
    """
    Generate a long-lived refresh token.
    Returns: (raw_token, token_hash, expires_at)
    """
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(seconds=_get_refresh_expires())
    payload = {
        "sub": str(user_id),
        "type": "refresh",
        "iat": now,
        "exp": expires_at,
        "jti": str(uuid.uuid4()),
    }
    raw_token = jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)
    return raw_token, hash_token(raw_token), expires_at


def generate_token_pair(user) -> dict:
    """Generate both access + refresh tokens for a User."""
    access_token = generate_access_token(user.id, user.organization_id, user.role_names)
    refresh_token, token_hash, expires_at = generate_refresh_token(user.id)
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_hash": token_hash,
        "expires_at": expires_at,
        "token_type": "Bearer",
        "expires_in": _get_access_expires(),
    }


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_token(token: str, expected_type: str = "access") -> dict:
    """
    Decode and verify a JWT token.

    Returns the payload dict on success, with ``sub`` converted back to int.
    Raises jwt.InvalidTokenError (or a subclass such as
    ExpiredSignatureError) on failure.
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])

    if payload.get("type") != expected_type:
        raise jwt.InvalidTokenError(f"Expected {expected_type} token, got {payload.get('type')}")
    try:
        payload["sub"] = int(payload["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise jwt.InvalidTokenError("Token subject is not a user id") from exc
    return payload


def decode_access_token(token: str) -> dict:
    return decode_token(token, expected_type="access")


def decode_refresh_token(token: str) -> dict:
    return decode_token(token, expected_type="refresh")


# ═══════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════
def hash_token(token: str) -> str:
    """SHA-256 hex digest; only this is stored for refresh tokens."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_invite_token() -> str:
    """URL-safe random invitation token."""
    return secrets.token_urlsafe(32)


# ═══════════════════════════════════════════════════════════════
# Refresh sessions
# ═══════════════════════════════════════════════════════════════
def _new_session(user_id: int, tokens: dict, ip_address, user_agent) -> Session:
    session = Session(
        user_id=user_id,
        token_hash=tokens["token_hash"],
        ip_address=ip_address,
        user_agent=(user_agent or "")[:500],
        expires_at=tokens["expires_at"],
    )
    db.session.add(session)
    return session


def start_session(user: User, ip_address=None, user_agent=None) -> dict:
    """Issue a token pair for ``user`` and store its refresh session. Commits."""
    tokens = generate_token_pair(user)
    _new_session(user.id, tokens, ip_address, user_agent)
    db.session.commit()
    logger.info("Session started for user %d", user.id)
    return tokens


def refresh_session(refresh_token: str, ip_address=None, user_agent=None) -> tuple[User, dict]:
    """
    Exchange a refresh token for a new pair.

    The presented session is closed and replaced (rotation), so each
    refresh token works once. Raises AuthenticationError when the token,
    its session or its user is no longer valid.
    """
    try:
        payload = decode_refresh_token(refresh_token)
    except jwt.InvalidTokenError as exc:
        raise AuthenticationError("Invalid or expired refresh token") from exc

    session = Session.query.filter_by(
        user_id=payload["sub"], token_hash=hash_token(refresh_token), is_active=True,
    ).first()
    if session is None:
        raise AuthenticationError("Session not found or revoked")

    user = db.session.get(User, payload["sub"])
    if session.is_expired or user is None or not user.is_active:
        session.is_active = False
        db.session.commit()
        raise AuthenticationError(
            "Session expired" if session.is_expired else "User inactive or not found"
        )

    tokens = generate_token_pair(user)
    session.is_active = False
    session.last_used_at = datetime.now(timezone.utc)
    _new_session(user.id, tokens, ip_address, user_agent)
    db.session.commit()
    return user, tokens


def end_session(refresh_token: str) -> bool:
    """Revoke the session of one refresh token. False when none was active."""
    updated = Session.query.filter_by(
        token_hash=hash_token(refresh_token), is_active=True,
    ).update({"is_active": False})
    db.session.commit()
    return bool(updated)


def end_all_sessions(user_id: int) -> int:
    """Revoke every active session of a user (logout everywhere)."""
    updated = Session.query.filter_by(user_id=user_id, is_active=True).update({"is_active": False})
    db.session.commit()
    logger.info("Revoked %d sessions for user %s", updated, user_id)
    return updated
