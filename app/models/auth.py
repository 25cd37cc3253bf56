"""
Auth Models — organizations, users, roles, sessions, invitations and
e-mail verifications.

Roles are the fixed system set ADMIN / QA / BA / TESTER. A user belongs to
exactly one organization; all TCM data is scoped through it.
"""

import uuid
from datetime import datetime, timezone

from app.models import db
from app.models.base import as_utc, iso, utcnow

# ── Role names ───────────────────────────────────────────────────────────
ROLE_ADMIN = "ADMIN"
ROLE_QA = "QA"
ROLE_BA = "BA"
ROLE_TESTER = "TESTER"

SYSTEM_ROLES = {
    ROLE_ADMIN: "Organization administrator",
    ROLE_QA: "Quality assurance engineer",
    ROLE_BA: "Business analyst",
    ROLE_TESTER: "Test executor",
}

# Roles that may be assigned to modules and executions
ASSIGNABLE_ROLES = {ROLE_QA, ROLE_BA, ROLE_TESTER}

SUBSCRIPTION_PLANS = {"FREE", "PRO", "ENTERPRISE"}


# ═══════════════════════════════════════════════════════════════
# 1. ORGANIZATIONS
# ═══════════════════════════════════════════════════════════════
class Organization(db.Model):
    __tablename__ = "organizations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), unique=True, nullable=False)
    domain = db.Column(db.String(200))
    subscription_plan = db.Column(db.String(20), default="FREE")
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    # Relationships
    users = db.relationship("User", back_populates="organization", lazy="dynamic")
    projects = db.relationship(
        "Project", back_populates="organization", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "domain": self.domain,
            "subscription_plan": self.subscription_plan,
            "is_active": self.is_active,
            "created_at": iso(self.created_at),
            "user_count": self.users.count(),
        }

    def __repr__(self):
        return f"<Organization {self.id}: {self.name}>"


# ═══════════════════════════════════════════════════════════════
# 2. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True, index=True,
    )
    username = db.Column(db.String(100), unique=True, nullable=False)
    email = db.Column(db.String(200), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    full_name = db.Column(db.String(200))
    is_active = db.Column(db.Boolean, default=True)
    last_login_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    organization = db.relationship("Organization", back_populates="users")
    user_roles = db.relationship(
        "UserRole", back_populates="user", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    sessions = db.relationship(
        "Session", back_populates="user", lazy="dynamic", cascade="all, delete-orphan",
    )
    assigned_projects = db.relationship(
        "Project", secondary="project_assignments",
        back_populates="assigned_users", lazy="select",
    )
    assigned_modules = db.relationship(
        "TestModule", secondary="module_assignments",
        back_populates="assigned_users", lazy="select",
    )

    @property
    def role_names(self):
        """List of role names for this user."""
        return sorted(ur.role.name for ur in self.user_roles.all())

    def has_role(self, *names):
        return any(n in names for n in self.role_names)

    @property
    def is_admin(self):
        return self.has_role(ROLE_ADMIN)

    def to_dict(self, include_roles=False):
        d = {
            "id": self.id,
            "organization_id": self.organization_id,
            "organization_name": self.organization.name if self.organization else None,
            "username": self.username,
            "email": self.email,
            "full_name": self.full_name,
            "is_active": self.is_active,
            "last_login_at": iso(self.last_login_at),
            "created_at": iso(self.created_at),
        }
        if include_roles:
            d["roles"] = self.role_names
        return d

    def to_summary(self):
        return {"id": self.id, "username": self.username, "email": self.email}

    def __repr__(self):
        return f"<User {self.id}: {self.username}>"


# ═══════════════════════════════════════════════════════════════
# 3. ROLES
# ═══════════════════════════════════════════════════════════════
class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(20), unique=True, nullable=False)
    description = db.Column(db.String(200))

    user_roles = db.relationship("UserRole", back_populates="role", lazy="dynamic")

    def to_dict(self):
        return {"id": self.id, "name": self.name, "description": self.description}


# ═══════════════════════════════════════════════════════════════
# 4. USER_ROLES (Junction table)
# ═══════════════════════════════════════════════════════════════
class UserRole(db.Model):
    __tablename__ = "user_roles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False
    )
    assigned_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        db.UniqueConstraint("user_id", "role_id", name="uq_user_role"),
    )

    user = db.relationship("User", back_populates="user_roles")
    role = db.relationship("Role", back_populates="user_roles")


# ═══════════════════════════════════════════════════════════════
# 5. SESSIONS (Refresh tokens & login tracking)
# ═══════════════════════════════════════════════════════════════
class Session(db.Model):
    __tablename__ = "sessions"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    token_hash = db.Column(db.String(256), nullable=False, index=True)  # SHA-256 of refresh token
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_used_at = db.Column(db.DateTime(timezone=True))

    user = db.relationship("User", back_populates="sessions")

    @property
    def is_expired(self):
        return datetime.now(timezone.utc) > as_utc(self.expires_at)


# ═══════════════════════════════════════════════════════════════
# 6. INVITATIONS
# ═══════════════════════════════════════════════════════════════
class Invitation(db.Model):
    __tablename__ = "invitations"

    id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String(128), unique=True, nullable=False)
    email = db.Column(db.String(200), nullable=False)
    role = db.Column(db.String(20), nullable=False)
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    invited_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    accepted = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    organization = db.relationship("Organization")

    @property
    def is_expired(self):
        return datetime.now(timezone.utc) > as_utc(self.expires_at)

    @property
    def is_valid(self):
        return not self.accepted and not self.is_expired

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "organization_id": self.organization_id,
            "organization_name": self.organization.name if self.organization else None,
            "expires_at": iso(self.expires_at),
            "accepted": self.accepted,
            "is_valid": self.is_valid,
        }


# ═══════════════════════════════════════════════════════════════
# 7. EMAIL VERIFICATIONS (OTP for organization sign-up)
# ═══════════════════════════════════════════════════════════════
class EmailVerification(db.Model):
    __tablename__ = "email_verifications"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), nullable=False, index=True)
    otp_code = db.Column(db.String(6), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    @property
    def is_expired(self):
        return datetime.now(timezone.utc) > as_utc(self.expires_at)
