"""
Admin Blueprint — organization-wide listings for administrators.

    GET /api/v1/users/by-role/<role>   — ADMIN/QA/BA: users holding a role
    GET /api/v1/admin/users            — ADMIN: non-admin users
    GET /api/v1/admin/modules          — ADMIN: every module
    GET /api/v1/admin/executions       — ADMIN: every execution (?user_id=)
"""

from flask import Blueprint, jsonify, request

from app.middleware.permission_required import current_user, require_role
from app.models.auth import ROLE_ADMIN, ROLE_BA, ROLE_QA
from app.services import execution_service, module_service, user_service
from app.utils.errors import register_error_handlers
from app.utils.helpers import parse_positive_int

admin_bp = Blueprint("admin", __name__, url_prefix="/api/v1")
register_error_handlers(admin_bp)


@admin_bp.route("/users/by-role/<role>", methods=["GET"])
@require_role(ROLE_ADMIN, ROLE_QA, ROLE_BA)
def users_by_role(role):
    users = user_service.list_users_by_role(current_user().organization_id, role.upper())
    return jsonify([u.to_dict(include_roles=True) for u in users]), 200


@admin_bp.route("/admin/users", methods=["GET"])
@require_role(ROLE_ADMIN)
def list_users():
    users = user_service.list_non_admin_users(current_user().organization_id)
    return jsonify([u.to_dict(include_roles=True) for u in users]), 200


@admin_bp.route("/admin/modules", methods=["GET"])
@require_role(ROLE_ADMIN)
def list_modules():
    modules = module_service.list_modules(current_user())
    return jsonify([m.to_dict() for m in modules]), 200


@admin_bp.route("/admin/executions", methods=["GET"])
@require_role(ROLE_ADMIN)
def list_executions():
    executions = execution_service.list_org_executions(
        current_user().organization_id,
        user_id=parse_positive_int(request.args.get("user_id")),
    )
    return jsonify([e.to_dict(include_step_results=False) for e in executions]), 200
