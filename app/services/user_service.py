"""
User Service — user creation, login, role seeding and role-based listings.
"""

import logging
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email

from app.models import db
from app.models.auth import ROLE_ADMIN, SYSTEM_ROLES, Role, User, UserRole
from app.utils.crypto import hash_password, verify_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


class UserServiceError(Exception):
    """Custom exception for user service errors."""
    def __init__(self, message, status_code=400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


# ═══════════════════════════════════════════════════════════════
# Validation helpers
# ═══════════════════════════════════════════════════════════════
def normalize_email(email: str) -> str:
    """Validate an e-mail address and return its lower-cased normal form."""
    try:
        valid = validate_email((email or "").strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise UserServiceError(f"Invalid email: {e}")
    return valid.normalized.lower()


def validate_password(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise UserServiceError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )


def email_in_use(email: str) -> bool:
    return User.query.filter(db.func.lower(User.email) == email.lower()).first() is not None


def username_in_use(username: str) -> bool:
    return User.query.filter_by(username=username).first() is not None


# ═══════════════════════════════════════════════════════════════
# Roles
# ═══════════════════════════════════════════════════════════════
def ensure_system_roles() -> int:
    """Create any missing system role. Idempotent; returns the number created."""
    created = 0
    for name, description in SYSTEM_ROLES.items():
        if Role.query.filter_by(name=name).first() is None:
            db.session.add(Role(name=name, description=description))
            created += 1
    if created:
        db.session.commit()
        logger.info("Seeded %d system roles", created)
    return created


def get_role(name: str) -> Role:
    role = Role.query.filter_by(name=name).first()
    if role is None:
        # Roles are seeded on startup; a fresh schema may still be empty
        ensure_system_roles()
        role = Role.query.filter_by(name=name).first()
    if role is None:
        raise UserServiceError(f"Role '{name}' not found")
    return role


# ═══════════════════════════════════════════════════════════════
# User CRUD
# ═══════════════════════════════════════════════════════════════
def create_user(
    organization_id: int,
    username: str,
    email: str,
    password: str,
    role_names: list[str],
    full_name: str = None,
) -> User:
    """Create a user with the given roles. Flushes; the caller commits."""
    username = (username or "").strip()
    if not username:
        raise UserServiceError("Username is required")
    email = normalize_email(email)
    validate_password(password)

    if username_in_use(username):
        raise UserServiceError("Username already exists", 409)
    if email_in_use(email):
        raise UserServiceError("Email already exists", 409)

    user = User(
        organization_id=organization_id,
        username=username,
        email=email,
        password_hash=hash_password(password),
        full_name=(full_name or "").strip() or None,
        is_active=True,
    )
    db.session.add(user)
    db.session.flush()  # Get user.id before assigning roles

    for rn in role_names:
        db.session.add(UserRole(user_id=user.id, role_id=get_role(rn).id))
    db.session.flush()
    return user


def change_password(user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise UserServiceError("Current password is incorrect", 401)
    validate_password(new_password)
    user.password_hash = hash_password(new_password)
    db.session.commit()
    logger.info("Password changed for user %d", user.id)


# ═══════════════════════════════════════════════════════════════
# Listings
# ═══════════════════════════════════════════════════════════════
def list_users_by_role(organization_id: int, role_name: str) -> list[User]:
    """Users of an organization holding ``role_name``."""
    if role_name not in SYSTEM_ROLES:
        raise UserServiceError(f"Invalid role: {role_name}")
    return (
        User.query
        .join(UserRole, UserRole.user_id == User.id)
        .join(Role, Role.id == UserRole.role_id)
        .filter(User.organization_id == organization_id, Role.name == role_name)
        .order_by(User.username)
        .all()
    )


def list_non_admin_users(organization_id: int) -> list[User]:
    """Users of an organization that do not hold ADMIN."""
    users = User.query.filter_by(organization_id=organization_id).order_by(User.username).all()
    return [u for u in users if ROLE_ADMIN not in u.role_names]


# ═══════════════════════════════════════════════════════════════
# Login helpers
# ═══════════════════════════════════════════════════════════════
def authenticate_user(login: str, password: str) -> User:
    """Authenticate with username (or email) + password. Returns User on success."""
    login = (login or "").strip()
    if not login or not password:
        raise UserServiceError("Username and password are required", 400)

    user = User.query.filter_by(username=login).first()
    if user is None and "@" in login:
        user = User.query.filter(db.func.lower(User.email) == login.lower()).first()
    if not user or not verify_password(password, user.password_hash):
        raise UserServiceError("Invalid username or password", 401)

    if not user.is_active:
        raise UserServiceError("Account is inactive", 403)
    if user.organization is not None and not user.organization.is_active:
        raise UserServiceError("Organization account is deactivated", 403)

    user.last_login_at = datetime.now(timezone.utc)
    db.session.commit()
    return user
