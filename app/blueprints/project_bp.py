"""
Project Blueprint — projects and project assignments.

    GET    /api/v1/projects                          — List visible projects
    POST   /api/v1/projects                          — ADMIN: create
    GET    /api/v1/projects/<id>                     — Detail (+ modules)
    PUT    /api/v1/projects/<id>                     — ADMIN: update
    DELETE /api/v1/projects/<id>                     — ADMIN: delete with subtree
    POST   /api/v1/projects/assign                   — ADMIN: assign user
    DELETE /api/v1/projects/assign                   — ADMIN: remove assignment
    GET    /api/v1/projects/assigned-to-me           — ADMIN/QA/BA: direct assignments
    GET    /api/v1/projects/<id>/assigned-users      — ADMIN: assigned users
"""

import logging

from flask import Blueprint, jsonify, request

from app.middleware.permission_required import current_user, require_auth, require_role
from app.models.auth import ROLE_ADMIN, ROLE_BA, ROLE_QA
from app.services import access_service, project_service
from app.utils.errors import E, api_error, register_error_handlers
from app.utils.helpers import db_commit_or_error, parse_positive_int

logger = logging.getLogger(__name__)

project_bp = Blueprint("project", __name__, url_prefix="/api/v1")
register_error_handlers(project_bp)


def _assignment_ids():
    data = request.get_json(silent=True) or {}
    user_id = parse_positive_int(data.get("user_id", request.args.get("user_id")))
    project_id = parse_positive_int(data.get("project_id", request.args.get("project_id")))
    return user_id, project_id


# ═════════════════════════════════════════════════════════════════════════════
# PROJECTS
# ═════════════════════════════════════════════════════════════════════════════

@project_bp.route("/projects", methods=["GET"])
@require_auth
def list_projects():
    projects = project_service.list_projects(current_user())
    return jsonify([p.to_dict() for p in projects]), 200


@project_bp.route("/projects", methods=["POST"])
@require_role(ROLE_ADMIN)
def create_project():
    """Create a project in the caller's organization."""
    data = request.get_json(silent=True) or {}
    project = project_service.create_project(current_user(), data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(project.to_dict()), 201


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
@require_auth
def get_project(project_id):
    user = current_user()
    project = access_service.get_project(project_id, user)
    access_service.require_project_access(user, project)
    return jsonify(project.to_dict(include_modules=True)), 200


@project_bp.route("/projects/<int:project_id>", methods=["PUT"])
@require_role(ROLE_ADMIN)
def update_project(project_id):
    project = access_service.get_project(project_id, current_user())
    data = request.get_json(silent=True) or {}
    project_service.update_project(project, data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(project.to_dict()), 200


@project_bp.route("/projects/<int:project_id>", methods=["DELETE"])
@require_role(ROLE_ADMIN)
def delete_project(project_id):
    """Delete a project with its modules, submodules, test cases and executions."""
    project = access_service.get_project(project_id, current_user())
    project_name = project.name
    project_service.delete_project(project)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": f"Project '{project_name}' deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# ASSIGNMENTS
# ═════════════════════════════════════════════════════════════════════════════

@project_bp.route("/projects/assign", methods=["POST"])
@require_role(ROLE_ADMIN)
def assign_user():
    """Body: { "user_id": 3, "project_id": 1 }"""
    user_id, project_id = _assignment_ids()
    if user_id is None or project_id is None:
        return api_error(E.VALIDATION_REQUIRED, "user_id and project_id are required")

    project, target, created = project_service.assign_user(current_user(), user_id, project_id)
    err = db_commit_or_error()
    if err:
        return err
    message = "User assigned to project" if created else "User already assigned to project"
    return jsonify({
        "message": message,
        "project_id": project.id,
        "user": target.to_summary(),
    }), 200


@project_bp.route("/projects/assign", methods=["DELETE"])
@require_role(ROLE_ADMIN)
def unassign_user():
    user_id, project_id = _assignment_ids()
    if user_id is None or project_id is None:
        return api_error(E.VALIDATION_REQUIRED, "user_id and project_id are required")

    removed = project_service.unassign_user(current_user(), user_id, project_id)
    err = db_commit_or_error()
    if err:
        return err
    message = "User removed from project" if removed else "User was not assigned to project"
    return jsonify({"message": message}), 200


@project_bp.route("/projects/assigned-to-me", methods=["GET"])
@require_role(ROLE_ADMIN, ROLE_QA, ROLE_BA)
def assigned_to_me():
    projects = project_service.list_assigned_projects(current_user())
    return jsonify([p.to_dict() for p in projects]), 200


@project_bp.route("/projects/<int:project_id>/assigned-users", methods=["GET"])
@require_role(ROLE_ADMIN)
def assigned_users(project_id):
    project = access_service.get_project(project_id, current_user())
    users = sorted(project.assigned_users, key=lambda u: u.username)
    return jsonify([u.to_dict(include_roles=True) for u in users]), 200
