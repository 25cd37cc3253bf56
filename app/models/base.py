"""
OrganizationModel — Abstract base class for organization-scoped models.

Tables that belong directly to an organization (tenant boundary) inherit
from OrganizationModel instead of db.Model. This adds:
  - organization_id FK column with index
  - query_for_organization(organization_id) classmethod
  - created_at / updated_at UTC timestamps
"""

from datetime import datetime, timezone

from app.models import db


def utcnow():
    return datetime.now(timezone.utc)


class OrganizationModel(db.Model):
    """Abstract base for organization-scoped tables."""
    __abstract__ = True

    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @classmethod
    def query_for_organization(cls, organization_id):
        """Return a query filtered by organization_id."""
        return cls.query.filter_by(organization_id=organization_id)


def as_utc(value):
    """SQLite drops tzinfo; treat naive timestamps as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def iso(value):
    """ISO-8601 string for a datetime column, or None."""
    return value.isoformat() if value else None
