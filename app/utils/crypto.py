"""
Crypto utilities — bcrypt password hashing and one-time codes.

Password hashing:
  bcrypt ($2b$) hashes, 12 rounds.

One-time codes:
  6-digit numeric OTPs for e-mail verification, drawn from ``secrets``.
"""

import secrets

import bcrypt
from flask import current_app, has_app_context

DEFAULT_ROUNDS = 12


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password with bcrypt (BCRYPT_ROUNDS, default 12)."""
    rounds = DEFAULT_ROUNDS
    if has_app_context():
        rounds = current_app.config.get("BCRYPT_ROUNDS", DEFAULT_ROUNDS)
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify a plain-text password against its bcrypt hash."""
    if not password_hash or not plain_password:
        return False
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )
    except ValueError:
        # Malformed hash in the DB counts as a failed check
        return False


def generate_otp(length: int = 6) -> str:
    """Zero-padded numeric one-time code."""
    return f"{secrets.randbelow(10 ** length):0{length}d}"
