"""
Test Case Blueprint — test cases with ordered steps, and pass/fail analytics.

    GET    /api/v1/testcases                        — Visible cases (filters + pagination)
    POST   /api/v1/submodules/<sid>/testcases       — Create (+ steps, executions)
    GET    /api/v1/testcases/<id>                   — Detail (+ steps)
    PUT    /api/v1/testcases/<id>                   — Update; ``steps`` replaces the list
    DELETE /api/v1/testcases/<id>                   — ADMIN: delete with executions
    GET    /api/v1/testcases/analytics              — KPIs (ADMIN may pass ?user_id=)
"""

import logging

from flask import Blueprint, jsonify, request

from app.blueprints import paginate_query
from app.middleware.permission_required import current_user, require_auth, require_role
from app.models.auth import ROLE_ADMIN, ROLE_BA, ROLE_QA
from app.services import access_service, analytics_service, testcase_service
from app.utils.errors import register_error_handlers
from app.utils.helpers import clean_str, db_commit_or_error, parse_positive_int

logger = logging.getLogger(__name__)

testcase_bp = Blueprint("testcase", __name__, url_prefix="/api/v1")
register_error_handlers(testcase_bp)


@testcase_bp.route("/testcases", methods=["GET"])
@require_auth
def list_test_cases():
    """
    Filters: ?module_id=&submodule_id=&q=
    Pagination: ?limit=&offset=
    """
    query = testcase_service.test_cases_query(
        current_user(),
        module_id=parse_positive_int(request.args.get("module_id")),
        submodule_id=parse_positive_int(request.args.get("submodule_id")),
        search=clean_str(request.args.get("q")),
    )
    items, total = paginate_query(query)
    return jsonify({"items": [tc.to_dict() for tc in items], "total": total}), 200


@testcase_bp.route("/submodules/<int:submodule_id>/testcases", methods=["POST"])
@require_role(ROLE_ADMIN, ROLE_QA, ROLE_BA)
def create_test_case(submodule_id):
    """
    Body: {
        "test_case_id": "TC-01", "title": "...", "description": "...",
        "priority": "HIGH", "steps": [{"action": "...", "expected_result": "..."}]
    }
    """
    user = current_user()
    submodule = access_service.get_submodule(submodule_id, user)
    data = request.get_json(silent=True) or {}
    test_case = testcase_service.create_test_case(user, submodule, data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(test_case.to_dict(include_steps=True)), 201


@testcase_bp.route("/testcases/<int:case_id>", methods=["GET"])
@require_auth
def get_test_case(case_id):
    user = current_user()
    test_case = access_service.get_test_case(case_id, user)
    testcase_service.require_read_access(user, test_case)
    return jsonify(test_case.to_dict(include_steps=True)), 200


@testcase_bp.route("/testcases/<int:case_id>", methods=["PUT"])
@require_role(ROLE_ADMIN, ROLE_QA, ROLE_BA)
def update_test_case(case_id):
    user = current_user()
    test_case = access_service.get_test_case(case_id, user)
    data = request.get_json(silent=True) or {}
    testcase_service.update_test_case(user, test_case, data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(test_case.to_dict(include_steps=True)), 200


@testcase_bp.route("/testcases/<int:case_id>", methods=["DELETE"])
@require_role(ROLE_ADMIN)
def delete_test_case(case_id):
    user = current_user()
    test_case = access_service.get_test_case(case_id, user)
    code = test_case.test_case_id
    testcase_service.delete_test_case(user, test_case)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": f"Test case '{code}' deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# ANALYTICS
# ═════════════════════════════════════════════════════════════════════════════

@testcase_bp.route("/testcases/analytics", methods=["GET"])
@require_auth
def test_analytics():
    """Pass/fail KPIs; ``user_id`` narrows an ADMIN's view to one assignee."""
    user = current_user()
    user_id = parse_positive_int(request.args.get("user_id")) if user.is_admin else None
    return jsonify(analytics_service.get_test_analytics(user, user_id=user_id)), 200
