"""
Execution Blueprint — running test cases step by step.

    POST   /api/v1/testcases/<id>/executions               — Start an execution
    GET    /api/v1/testcases/<id>/executions               — Executions of a case
    GET    /api/v1/executions/<id>                         — Detail (+ step results)
    PUT    /api/v1/executions/<id>/steps/<step_id>         — Record a step outcome
    PUT    /api/v1/executions/<id>/complete                — Close with overall result
    PUT    /api/v1/executions/<id>/save                    — Save notes only
    POST   /api/v1/executions/<id>/assign                  — ADMIN: assign executor
    GET    /api/v1/executions/assigned-to/<user_id>        — Executions of a user
    GET    /api/v1/executions/my-assignments               — Caller's work list
    GET    /api/v1/executions/summary                      — Caller's result counts
"""

import logging

from flask import Blueprint, jsonify, request

from app.middleware.permission_required import current_user, require_auth, require_role
from app.models.auth import ROLE_ADMIN
from app.services import access_service, execution_service, testcase_service
from app.utils.errors import register_error_handlers
from app.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

execution_bp = Blueprint("execution", __name__, url_prefix="/api/v1")
register_error_handlers(execution_bp)


@execution_bp.route("/testcases/<int:case_id>/executions", methods=["POST"])
@require_auth
def start_execution(case_id):
    user = current_user()
    test_case = access_service.get_test_case(case_id, user)
    execution = execution_service.start_execution(user, test_case)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(execution.to_dict()), 201


@execution_bp.route("/testcases/<int:case_id>/executions", methods=["GET"])
@require_auth
def list_case_executions(case_id):
    user = current_user()
    test_case = access_service.get_test_case(case_id, user)
    testcase_service.require_read_access(user, test_case)
    executions = execution_service.list_case_executions(test_case)
    return jsonify([e.to_dict() for e in executions]), 200


@execution_bp.route("/executions/<int:execution_id>", methods=["GET"])
@require_auth
def get_execution(execution_id):
    user = current_user()
    execution = access_service.get_execution(execution_id, user)
    execution_service.require_view_permission(user, execution)
    return jsonify(execution.to_dict()), 200


@execution_bp.route("/executions/<int:execution_id>/steps/<int:step_id>", methods=["PUT"])
@require_auth
def update_step_result(execution_id, step_id):
    """Body: { "status": "PASSED", "actual_result": "..." }"""
    user = current_user()
    execution = access_service.get_execution(execution_id, user)
    data = request.get_json(silent=True) or {}
    execution_service.update_step_result(user, execution, step_id, data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(execution.to_dict()), 200


@execution_bp.route("/executions/<int:execution_id>/complete", methods=["PUT"])
@require_auth
def complete_execution(execution_id):
    """
    Body: {
        "overall_result": "PASSED", "notes": "...", "duration": 12,
        "environment": "QA", "bug_report_subject": "...",
        "bug_report_description": "...", "redmine_issue_url": "..."
    }
    """
    user = current_user()
    execution = access_service.get_execution(execution_id, user)
    data = request.get_json(silent=True) or {}
    execution_service.complete_execution(user, execution, data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(execution.to_dict()), 200


@execution_bp.route("/executions/<int:execution_id>/save", methods=["PUT"])
@require_auth
def save_execution(execution_id):
    user = current_user()
    execution = access_service.get_execution(execution_id, user)
    execution_service.save_execution_notes(user, execution, request.get_json(silent=True) or {})
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(execution.to_dict()), 200


@execution_bp.route("/executions/<int:execution_id>/assign", methods=["POST"])
@require_role(ROLE_ADMIN)
def assign_execution(execution_id):
    """Body: { "user_id": 5 }  (or ?user_id=5)"""
    user = current_user()
    execution = access_service.get_execution(execution_id, user)
    data = request.get_json(silent=True) or {}
    user_id = data.get("user_id", request.args.get("user_id"))
    execution_service.assign_execution(user, execution, user_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(execution.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════════
# WORK LISTS
# ═════════════════════════════════════════════════════════════════════════════

@execution_bp.route("/executions/assigned-to/<int:user_id>", methods=["GET"])
@require_auth
def assigned_to(user_id):
    executions = execution_service.list_assigned_to(current_user(), user_id)
    return jsonify([e.to_dict() for e in executions]), 200


@execution_bp.route("/executions/my-assignments", methods=["GET"])
@require_auth
def my_assignments():
    executions = execution_service.my_assignments(current_user())
    return jsonify([e.to_dict() for e in executions]), 200


@execution_bp.route("/executions/summary", methods=["GET"])
@require_auth
def summary():
    return jsonify(execution_service.completion_summary(current_user())), 200
