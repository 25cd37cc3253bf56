"""
Invitation Service — invite a user into an organization by e-mail.

An invitation carries a random token, the invited role and the inviting
organization. It is valid for INVITE_EXPIRES_DAYS (default 7) and only
until accepted.
"""

import logging
from datetime import datetime, timedelta, timezone

from flask import current_app

from app.models import db
from app.models.auth import SYSTEM_ROLES, Invitation, User
from app.services import email_service
from app.services.jwt_service import generate_invite_token
from app.services.user_service import (
    UserServiceError,
    create_user,
    email_in_use,
    normalize_email,
    username_in_use,
)

logger = logging.getLogger(__name__)


def create_invitation(inviter: User, email: str, role: str) -> Invitation:
    """Invite ``email`` into the inviter's organization with ``role``."""
    email = normalize_email(email)
    role = (role or "").strip().upper()
    if role not in SYSTEM_ROLES:
        raise UserServiceError(f"Invalid role: {role or '<empty>'}")
    if email_in_use(email):
        raise UserServiceError("Email is already registered")

    days = current_app.config.get("INVITE_EXPIRES_DAYS", 7)
    invitation = Invitation(
        token=generate_invite_token(),
        email=email,
        role=role,
        organization_id=inviter.organization_id,
        invited_by=inviter.id,
        expires_at=datetime.now(timezone.utc) + timedelta(days=days),
        accepted=False,
    )
    db.session.add(invitation)
    db.session.commit()

    email_service.send_invitation(
        email, invitation.token, inviter.organization.name, role,
    )
    logger.info("Invitation %d for %s (%s) created by user %d",
                invitation.id, email, role, inviter.id)
    return invitation


def get_valid_invitation(token: str) -> Invitation:
    invitation = Invitation.query.filter_by(token=token).first() if token else None
    if invitation is None or not invitation.is_valid:
        raise UserServiceError("Invalid or expired invitation")
    return invitation


def accept_invitation(token: str, username: str, password: str, full_name: str = None) -> User:
    """Create the invited user inside the invitation's organization."""
    invitation = get_valid_invitation(token)
    username = (username or "").strip()
    if not username or not password:
        raise UserServiceError("Username and password are required")
    if username_in_use(username):
        raise UserServiceError("Username already exists", 409)

    user = create_user(
        organization_id=invitation.organization_id,
        username=username,
        email=invitation.email,
        password=password,
        role_names=[invitation.role],
        full_name=full_name,
    )
    invitation.accepted = True
    db.session.commit()
    logger.info("Invitation %d accepted by %s", invitation.id, username)
    return user
