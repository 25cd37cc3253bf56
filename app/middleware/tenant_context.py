"""
Tenant Context Middleware — Enforces organization isolation on API requests.

When a JWT-authenticated user makes a request:
  1. g.jwt_user_id is already set by jwt_auth middleware
  2. This middleware loads the user and verifies it still exists and is active
  3. Verifies the user's organization is active
  4. Sets g.current_user / g.organization for downstream services

Roles are re-read from the database here, so a role change takes effect
without waiting for the access token to expire.

Chain order:
  jwt_auth.py  →  tenant_context.py  →  route handler
"""

import logging

from flask import g, request

from app.models import db
from app.models.auth import User
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def init_tenant_context(app):
    """Register tenant context middleware as a before_request hook."""

    @app.before_request
    def _tenant_context():
        g.current_user = None
        g.organization = None

        if not request.path.startswith("/api/v1/"):
            return None

        user_id = getattr(g, "jwt_user_id", None)
        if user_id is None:
            return None  # public route, or already rejected by jwt_auth

        user = db.session.get(User, user_id)
        if user is None or not user.is_active:
            logger.warning("JWT user %s missing or inactive", user_id)
            return api_error(E.UNAUTHORIZED, "User not found or inactive")

        organization = user.organization
        if organization is not None and not organization.is_active:
            logger.warning("Organization %s is deactivated", organization.id)
            return api_error(E.FORBIDDEN, "Organization account is deactivated")

        g.current_user = user
        g.organization = organization
        g.jwt_organization_id = user.organization_id
        g.jwt_roles = user.role_names
        return None

    logger.info("Tenant context middleware installed")
