"""
Permission Decorators — JWT-aware RBAC decorators for route protection.

Usage:
    @bp.route("/projects", methods=["POST"])
    @require_role(ROLE_ADMIN)
    def create_project():
        ...

    @bp.route("/modules/<int:module_id>/submodules", methods=["POST"])
    @require_role(ROLE_ADMIN, ROLE_QA, ROLE_BA)
    def create_submodule(module_id):
        ...

Role checks answer 403; a request without an authenticated user answers
401. Assignment-level checks (project / module access) live in
``app.services.access_service`` because they need the target resource.
"""

import functools
import logging

from flask import g

from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def current_user():
    """The authenticated User for this request, or None."""
    return getattr(g, "current_user", None)


def require_auth(f):
    """Decorator: require an authenticated, active user."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if current_user() is None:
            return api_error(E.UNAUTHORIZED, "Authentication required")
        return f(*args, **kwargs)
    return decorated


def require_role(*roles: str):
    """
    Decorator: require the user to hold at least ONE of the listed roles.

    Args:
        roles: Role names, e.g. ROLE_ADMIN, ROLE_QA
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = current_user()
            if user is None:
                return api_error(E.UNAUTHORIZED, "Authentication required")

            if not user.has_role(*roles):
                logger.warning(
                    "User %d denied: needs any of %s on %s",
                    user.id, roles, f.__name__,
                )
                return api_error(E.FORBIDDEN, "Permission denied")

            return f(*args, **kwargs)
        return decorated
    return decorator
