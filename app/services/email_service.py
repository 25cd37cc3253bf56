"""
Email Service — verification codes and invitation links.

When SMTP is not configured, emails are logged but not sent (dev/test mode).

Configuration (env vars):
    MAIL_SERVER     SMTP host (default: None → log-only mode)
    MAIL_PORT       SMTP port (default: 587)
    MAIL_USE_TLS    Use TLS (default: true)
    MAIL_USERNAME   SMTP username
    MAIL_PASSWORD   SMTP password
    MAIL_DEFAULT_SENDER  Default from address
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from flask import current_app

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Email Templates
# ═══════════════════════════════════════════════════════════════════════════

_TEMPLATES: dict[str, dict[str, str]] = {
    "verification_code": {
        "subject": "[TCM] Your verification code",
        "html": """
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <div style="background: #354A5F; color: white; padding: 16px 24px; border-radius: 8px 8px 0 0;">
                <h2 style="margin: 0; font-size: 18px;">Test Case Management</h2>
            </div>
            <div style="background: #f8fafc; padding: 24px; border: 1px solid #e2e8f0; border-top: none;">
                <p style="color: #334155;">Use this code to verify your e-mail address:</p>
                <p style="font-size: 28px; font-weight: 700; letter-spacing: 6px; color: #1e293b;">{otp}</p>
                <p style="color: #64748b;">The code expires in {minutes} minutes.</p>
            </div>
        </div>
        """,
    },
    "invitation": {
        "subject": "[TCM] You have been invited to {organization}",
        "html": """
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <div style="background: #354A5F; color: white; padding: 16px 24px; border-radius: 8px 8px 0 0;">
                <h2 style="margin: 0; font-size: 18px;">Test Case Management</h2>
            </div>
            <div style="background: #f8fafc; padding: 24px; border: 1px solid #e2e8f0; border-top: none;">
                <p style="color: #334155;">
                    You have been invited to join <strong>{organization}</strong> as <strong>{role}</strong>.
                </p>
                <p><a href="{link}" style="color: #2563eb;">Accept the invitation</a></p>
                <p style="color: #64748b;">The link expires in {days} days.</p>
            </div>
        </div>
        """,
    },
}


class EmailService:
    """
    Email sending service with template support.

    In development/test mode (no MAIL_SERVER configured), emails are
    logged but not actually sent via SMTP.
    """

    @staticmethod
    def is_configured() -> bool:
        """Check if SMTP is configured."""
        return bool(current_app.config.get("MAIL_SERVER"))

    @classmethod
    def send(cls, *, to_email: str, subject: str, html_body: str) -> bool:
        """
        Send an email. Returns True when delivered (or logged in dev mode).

        Delivery failures are logged and reported as False; callers decide
        whether that blocks the flow.
        """
        if not cls.is_configured():
            logger.info("Email (dev mode): to=%s subject='%s'", to_email, subject)
            return True

        try:
            cls._send_smtp(to_email=to_email, subject=subject, html_body=html_body)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Email failed: to=%s error=%s", to_email, exc)
            return False
        logger.info("Email sent: to=%s subject='%s'", to_email, subject)
        return True

    @classmethod
    def send_from_template(cls, *, to_email: str, template_name: str,
                           context: dict[str, Any]) -> bool:
        """Send an email using a named template."""
        template = _TEMPLATES[template_name]
        subject = template["subject"].format_map(_SafeDict(context))
        html_body = template["html"].format_map(_SafeDict(context))
        return cls.send(to_email=to_email, subject=subject, html_body=html_body)

    @staticmethod
    def _send_smtp(*, to_email: str, subject: str, html_body: str) -> None:
        """Actually send via SMTP."""
        cfg = current_app.config
        server = cfg.get("MAIL_SERVER")
        port = cfg.get("MAIL_PORT", 587)
        use_tls = cfg.get("MAIL_USE_TLS", True)
        username = cfg.get("MAIL_USERNAME")
        password = cfg.get("MAIL_PASSWORD")
        sender = cfg.get("MAIL_DEFAULT_SENDER", f"noreply@{server}")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = to_email
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(server, port, timeout=30) as smtp:
            if use_tls:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)


def send_verification_code(email: str, otp: str) -> bool:
    return EmailService.send_from_template(
        to_email=email,
        template_name="verification_code",
        context={"otp": otp, "minutes": current_app.config.get("OTP_EXPIRES_MINUTES", 15)},
    )


def send_invitation(email: str, token: str, organization_name: str, role: str) -> bool:
    base = current_app.config.get("FRONTEND_URL", "").rstrip("/")
    return EmailService.send_from_template(
        to_email=email,
        template_name="invitation",
        context={
            "organization": organization_name,
            "role": role,
            "link": f"{base}/join?token={token}",
            "days": current_app.config.get("INVITE_EXPIRES_DAYS", 7),
        },
    )


class _SafeDict(dict):
    """Dict that returns {key} for missing keys instead of raising."""

    def __missing__(self, key):
        return f"{{{key}}}"
