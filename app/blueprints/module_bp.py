"""
Module Blueprint — test modules, submodules and module assignments.

Modules:
    GET    /api/v1/modules                                 — Visible modules
    POST   /api/v1/projects/<pid>/modules                  — Create
    GET    /api/v1/modules/<id>                            — Detail (+ submodules, cases)
    PUT    /api/v1/modules/<id>                            — Update
    DELETE /api/v1/modules/<id>                            — ADMIN: delete with subtree

Assignments:
    POST   /api/v1/modules/assign                          — Assign user (+ executions)
    DELETE /api/v1/modules/assign                          — Remove assignment
    GET    /api/v1/modules/assigned-to-me                  — Caller's modules
    GET    /api/v1/modules/<id>/assigned-users             — Assigned users
    POST   /api/v1/modules/<id>/regenerate-executions      — Fill missing executions

Submodules:
    GET    /api/v1/modules/<mid>/submodules                — List
    POST   /api/v1/modules/<mid>/submodules                — Create
    GET    /api/v1/submodules/<id>                         — Detail (+ cases)
    PUT    /api/v1/submodules/<id>                         — Update
    DELETE /api/v1/submodules/<id>                         — Delete with subtree
"""

import logging

from flask import Blueprint, jsonify, request

from app.middleware.permission_required import current_user, require_auth, require_role
from app.models.auth import ROLE_ADMIN, ROLE_BA, ROLE_QA
from app.services import access_service, module_service
from app.utils.errors import register_error_handlers
from app.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

module_bp = Blueprint("module", __name__, url_prefix="/api/v1")
register_error_handlers(module_bp)

_MANAGERS = (ROLE_ADMIN, ROLE_QA, ROLE_BA)


def _assignment_payload():
    data = dict(request.get_json(silent=True) or {})
    for key in ("user_id", "module_id"):
        data.setdefault(key, request.args.get(key))
    return data


# ═════════════════════════════════════════════════════════════════════════════
# MODULES
# ═════════════════════════════════════════════════════════════════════════════

@module_bp.route("/modules", methods=["GET"])
@require_auth
def list_modules():
    modules = module_service.list_modules(current_user())
    return jsonify([m.to_dict() for m in modules]), 200


@module_bp.route("/projects/<int:project_id>/modules", methods=["POST"])
@require_role(*_MANAGERS)
def create_module(project_id):
    user = current_user()
    project = access_service.get_project(project_id, user)
    data = request.get_json(silent=True) or {}
    module = module_service.create_module(user, project, data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(module.to_dict()), 201


@module_bp.route("/modules/<int:module_id>", methods=["GET"])
@require_auth
def get_module(module_id):
    user = current_user()
    module = access_service.get_module(module_id, user)
    access_service.require_module_access(user, module)
    return jsonify(module.to_dict(include_submodules=True)), 200


@module_bp.route("/modules/<int:module_id>", methods=["PUT"])
@require_role(*_MANAGERS)
def update_module(module_id):
    user = current_user()
    module = access_service.get_module(module_id, user)
    module_service.update_module(user, module, request.get_json(silent=True) or {})
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(module.to_dict()), 200


@module_bp.route("/modules/<int:module_id>", methods=["DELETE"])
@require_role(ROLE_ADMIN)
def delete_module(module_id):
    user = current_user()
    module = access_service.get_module(module_id, user)
    module_name = module.name
    module_service.delete_module(user, module)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": f"Module '{module_name}' deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# ASSIGNMENTS
# ═════════════════════════════════════════════════════════════════════════════

@module_bp.route("/modules/assign", methods=["POST"])
@require_role(*_MANAGERS)
def assign_user():
    """
    Assign a QA / BA / TESTER to a module.

    Body: { "user_id": 3, "module_id": 7 }

    A new assignment creates an execution for every test case of the module
    the user has none for yet.
    """
    module, target, created = module_service.assign_user(current_user(), _assignment_payload())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({
        "message": "User assigned to module",
        "module_id": module.id,
        "user": target.to_summary(),
        "executions_created": created,
    }), 200


@module_bp.route("/modules/assign", methods=["DELETE"])
@require_role(*_MANAGERS)
def unassign_user():
    removed = module_service.unassign_user(current_user(), _assignment_payload())
    err = db_commit_or_error()
    if err:
        return err
    message = "User removed from module" if removed else "User was not assigned to module"
    return jsonify({"message": message}), 200


@module_bp.route("/modules/assigned-to-me", methods=["GET"])
@require_auth
def assigned_to_me():
    modules = module_service.list_modules(current_user())
    return jsonify([m.to_dict() for m in modules]), 200


@module_bp.route("/modules/<int:module_id>/assigned-users", methods=["GET"])
@require_role(*_MANAGERS)
def assigned_users(module_id):
    user = current_user()
    module = access_service.get_module(module_id, user)
    access_service.require_module_access(user, module)
    users = sorted(module.assigned_users, key=lambda u: u.username)
    return jsonify([u.to_dict(include_roles=True) for u in users]), 200


@module_bp.route("/modules/<int:module_id>/regenerate-executions", methods=["POST"])
@require_role(*_MANAGERS)
def regenerate_executions(module_id):
    user = current_user()
    module = access_service.get_module(module_id, user)
    created = module_service.regenerate_executions(user, module)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({
        "message": "Executions regenerated",
        "module_id": module.id,
        "executions_created": created,
    }), 200


# ═════════════════════════════════════════════════════════════════════════════
# SUBMODULES
# ═════════════════════════════════════════════════════════════════════════════

@module_bp.route("/modules/<int:module_id>/submodules", methods=["GET"])
@require_auth
def list_submodules(module_id):
    user = current_user()
    module = access_service.get_module(module_id, user)
    access_service.require_module_access(user, module)
    return jsonify([sm.to_dict() for sm in module.submodules]), 200


@module_bp.route("/modules/<int:module_id>/submodules", methods=["POST"])
@require_role(*_MANAGERS)
def create_submodule(module_id):
    user = current_user()
    module = access_service.get_module(module_id, user)
    submodule = module_service.create_submodule(user, module, request.get_json(silent=True) or {})
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(submodule.to_dict()), 201


@module_bp.route("/submodules/<int:submodule_id>", methods=["GET"])
@require_auth
def get_submodule(submodule_id):
    user = current_user()
    submodule = access_service.get_submodule(submodule_id, user)
    access_service.require_module_access(user, submodule.module)
    return jsonify(submodule.to_dict(include_test_cases=True)), 200


@module_bp.route("/submodules/<int:submodule_id>", methods=["PUT"])
@require_role(*_MANAGERS)
def update_submodule(submodule_id):
    user = current_user()
    submodule = access_service.get_submodule(submodule_id, user)
    module_service.update_submodule(user, submodule, request.get_json(silent=True) or {})
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(submodule.to_dict()), 200


@module_bp.route("/submodules/<int:submodule_id>", methods=["DELETE"])
@require_role(*_MANAGERS)
def delete_submodule(submodule_id):
    user = current_user()
    submodule = access_service.get_submodule(submodule_id, user)
    submodule_name = submodule.name
    module_service.delete_submodule(user, submodule)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": f"Submodule '{submodule_name}' deleted"}), 200
