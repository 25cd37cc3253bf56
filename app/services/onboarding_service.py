"""
Onboarding Service — self-service organization sign-up.

Two-step flow:
  Step 1: request_otp(email)           → 6-digit code e-mailed, valid 15 minutes
  Step 2: register_organization(...)   → code verified, organization + first
                                         ADMIN user created, codes discarded
"""

import logging
from datetime import datetime, timedelta, timezone

from flask import current_app

from app.models import db
from app.models.auth import ROLE_ADMIN, EmailVerification, Organization
from app.services import email_service
from app.services.user_service import (
    UserServiceError,
    create_user,
    email_in_use,
    normalize_email,
    username_in_use,
    validate_password,
)
from app.utils.crypto import generate_otp

logger = logging.getLogger(__name__)


def request_otp(email: str) -> EmailVerification:
    """Step 1: issue a verification code for an unused e-mail address."""
    email = normalize_email(email)
    if email_in_use(email):
        raise UserServiceError("Email is already registered")

    minutes = current_app.config.get("OTP_EXPIRES_MINUTES", 15)
    EmailVerification.query.filter_by(email=email).delete()
    verification = EmailVerification(
        email=email,
        otp_code=generate_otp(),
        expires_at=datetime.now(timezone.utc) + timedelta(minutes=minutes),
    )
    db.session.add(verification)
    db.session.commit()

    email_service.send_verification_code(email, verification.otp_code)
    logger.info("Verification code issued for %s", email)
    return verification


def _latest_verification(email: str) -> EmailVerification | None:
    return (
        EmailVerification.query
        .filter_by(email=email)
        .order_by(EmailVerification.created_at.desc(), EmailVerification.id.desc())
        .first()
    )


def register_organization(data: dict):
    """Step 2: verify the code, then create the organization and its admin.

    Args:
        data: {"organization_name", "username", "email", "password", "otp",
               "full_name" (optional), "domain" (optional)}

    Returns:
        (user, organization)
    """
    org_name = (data.get("organization_name") or "").strip()
    username = (data.get("username") or "").strip()
    otp = str(data.get("otp") or "").strip()
    password = data.get("password") or ""

    if not org_name or not username or not data.get("email") or not password or not otp:
        raise UserServiceError(
            "organization_name, username, email, password and otp are required"
        )
    email = normalize_email(data["email"])
    validate_password(password)

    verification = _latest_verification(email)
    if verification is None:
        raise UserServiceError("No verification code found for this email")
    if verification.is_expired:
        raise UserServiceError("Verification code has expired")
    if verification.otp_code != otp:
        raise UserServiceError("Invalid verification code")

    if Organization.query.filter_by(name=org_name).first():
        raise UserServiceError("Organization name already exists", 409)
    if username_in_use(username):
        raise UserServiceError("Username already exists", 409)
    if email_in_use(email):
        raise UserServiceError("Email already exists", 409)

    organization = Organization(
        name=org_name,
        domain=(data.get("domain") or "").strip() or None,
        subscription_plan="FREE",
        is_active=True,
    )
    db.session.add(organization)
    db.session.flush()

    user = create_user(
        organization_id=organization.id,
        username=username,
        email=email,
        password=password,
        role_names=[ROLE_ADMIN],
        full_name=data.get("full_name"),
    )
    EmailVerification.query.filter_by(email=email).delete()
    db.session.commit()

    logger.info("Organization %s (id=%d) registered by %s",
                organization.name, organization.id, user.username)
    return user, organization
