"""
Execution API Tests — step recording, completion, assignment and work lists.
"""

from app.models import db
from app.models.testing import TestExecution

# Uses shared fixtures from conftest.py: client, tree, *_user, *_headers


def _assign_module(client, headers, user_id, module_id):
    res = client.post("/api/v1/modules/assign", headers=headers,
                      json={"user_id": user_id, "module_id": module_id})
    assert res.status_code == 200, res.get_json()


def _tester_execution(client, admin_headers, tester_user, tree):
    _assign_module(client, admin_headers, tester_user.id, tree["module"].id)
    return TestExecution.query.filter_by(assigned_to_user_id=tester_user.id).one()


def _step_url(execution, step):
    return f"/api/v1/executions/{execution.id}/steps/{step.id}"


# ═════════════════════════════════════════════════════════════════════════════
# START / VIEW
# ═════════════════════════════════════════════════════════════════════════════

def test_start_execution_creates_pending_results(client, admin_headers, tree):
    case = tree["case"]
    res = client.post(f"/api/v1/testcases/{case.id}/executions", headers=admin_headers)
    assert res.status_code == 201
    body = res.get_json()
    assert body["status"] == "PENDING"
    assert body["overall_result"] == "PENDING"
    assert body["assigned_to_user"] is None
    assert body["test_case_code"] == "TC-001"
    assert [(sr["step_number"], sr["status"]) for sr in body["step_results"]] == [
        (1, "PENDING"), (2, "PENDING"),
    ]

    res = client.get(f"/api/v1/testcases/{case.id}/executions", headers=admin_headers)
    assert [e["id"] for e in res.get_json()] == [body["id"]]


def test_start_execution_requires_module_access(client, tester_headers, tree):
    res = client.post(f"/api/v1/testcases/{tree['case'].id}/executions", headers=tester_headers)
    assert res.status_code == 403


def test_execution_detail_visibility(client, admin_headers, tester_headers, tester_user,
                                     other_headers, user_factory, headers_for, tree):
    execution = _tester_execution(client, admin_headers, tester_user, tree)
    url = f"/api/v1/executions/{execution.id}"

    assert client.get(url, headers=tester_headers).status_code == 200
    assert client.get(url, headers=admin_headers).status_code == 200
    assert client.get(url, headers=other_headers).status_code == 404

    outsider = user_factory("owen", "TESTER")
    assert client.get(url, headers=headers_for(outsider)).status_code == 403


# ═════════════════════════════════════════════════════════════════════════════
# STEP RESULTS
# ═════════════════════════════════════════════════════════════════════════════

def test_step_update_moves_execution_in_progress(client, admin_headers, tester_user, tester_headers, tree):
    execution = _tester_execution(client, admin_headers, tester_user, tree)
    step = tree["case"].steps[0]

    res = client.put(_step_url(execution, step), headers=tester_headers,
                     json={"status": "passed", "actual_result": "Cart opened"})
    assert res.status_code == 200
    body = res.get_json()
    assert body["status"] == "IN_PROGRESS"
    assert body["start_date"] is not None
    first = body["step_results"][0]
    assert first["status"] == "PASSED"
    assert first["actual_result"] == "Cart opened"


def test_step_update_unknown_status_is_pending(client, admin_headers, tester_user, tester_headers, tree):
    execution = _tester_execution(client, admin_headers, tester_user, tree)
    step = tree["case"].steps[1]
    res = client.put(_step_url(execution, step), headers=tester_headers, json={"status": "MAYBE"})
    assert res.status_code == 200
    assert res.get_json()["step_results"][1]["status"] == "PENDING"


def test_step_update_unknown_step_is_404(client, admin_headers, tester_user, tester_headers, tree):
    execution = _tester_execution(client, admin_headers, tester_user, tree)
    res = client.put(f"/api/v1/executions/{execution.id}/steps/99999", headers=tester_headers,
                     json={"status": "PASSED"})
    assert res.status_code == 404


def test_module_member_may_update_steps_of_colleague(
    client, admin_headers, tester_user, qa_user, qa_headers, tree,
):
    execution = _tester_execution(client, admin_headers, tester_user, tree)
    step = tree["case"].steps[0]
    assert client.put(_step_url(execution, step), headers=qa_headers,
                      json={"status": "FAILED"}).status_code == 403

    _assign_module(client, admin_headers, qa_user.id, tree["module"].id)
    assert client.put(_step_url(execution, step), headers=qa_headers,
                      json={"status": "FAILED"}).status_code == 200


# ═════════════════════════════════════════════════════════════════════════════
# COMPLETE / SAVE
# ═════════════════════════════════════════════════════════════════════════════

def test_complete_execution(client, admin_headers, tester_user, tester_headers, tree):
    execution = _tester_execution(client, admin_headers, tester_user, tree)
    res = client.put(f"/api/v1/executions/{execution.id}/complete", headers=tester_headers, json={
        "overall_result": "failed",
        "notes": "Broken on step 2",
        "duration": "15",
        "environment": "QA",
        "bug_report_subject": "Item missing",
    })
    assert res.status_code == 200, res.get_json()
    body = res.get_json()
    assert body["status"] == "COMPLETED"
    assert body["overall_result"] == "FAILED"
    assert body["executed_by"] == "terry"
    assert body["duration"] == 15
    assert body["environment"] == "QA"
    assert body["bug_report_subject"] == "Item missing"
    assert body["completion_date"] is not None


def test_complete_rejects_bad_duration(client, admin_headers, tester_user, tester_headers, tree):
    execution = _tester_execution(client, admin_headers, tester_user, tree)
    url = f"/api/v1/executions/{execution.id}/complete"
    assert client.put(url, headers=tester_headers,
                      json={"overall_result": "PASSED", "duration": "soon"}).status_code == 400
    assert client.put(url, headers=tester_headers,
                      json={"overall_result": "PASSED", "duration": -3}).status_code == 400


def test_only_assignee_or_admin_completes(
    client, admin_headers, tester_user, qa_user, qa_headers, tree,
):
    execution = _tester_execution(client, admin_headers, tester_user, tree)
    _assign_module(client, admin_headers, qa_user.id, tree["module"].id)
    url = f"/api/v1/executions/{execution.id}/complete"

    assert client.put(url, headers=qa_headers, json={"overall_result": "PASSED"}).status_code == 403
    res = client.put(url, headers=admin_headers, json={"overall_result": "PASSED"})
    assert res.status_code == 200
    assert res.get_json()["executed_by"] == "alice"


def test_save_keeps_status(client, admin_headers, tester_user, tester_headers, tree):
    execution = _tester_execution(client, admin_headers, tester_user, tree)
    res = client.put(f"/api/v1/executions/{execution.id}/save", headers=tester_headers,
                     json={"notes": "halfway"})
    assert res.status_code == 200
    body = res.get_json()
    assert body["notes"] == "halfway"
    assert body["status"] == "PENDING"
    assert body["overall_result"] == "PENDING"


# ═════════════════════════════════════════════════════════════════════════════
# ASSIGN
# ═════════════════════════════════════════════════════════════════════════════

def test_admin_assigns_execution(client, admin_headers, tester_user, tree):
    case = tree["case"]
    execution_id = client.post(f"/api/v1/testcases/{case.id}/executions",
                               headers=admin_headers).get_json()["id"]

    res = client.post(f"/api/v1/executions/{execution_id}/assign", headers=admin_headers,
                      json={"user_id": tester_user.id})
    assert res.status_code == 200
    body = res.get_json()
    assert body["assigned_to_user"]["username"] == "terry"
    assert body["status"] == "IN_PROGRESS"


def test_assign_execution_validation(client, admin_headers, qa_headers, user_factory, other_admin, tree):
    case = tree["case"]
    execution_id = client.post(f"/api/v1/testcases/{case.id}/executions",
                               headers=admin_headers).get_json()["id"]
    url = f"/api/v1/executions/{execution_id}/assign"

    assert client.post(url, headers=admin_headers, json={}).status_code == 400
    assert client.post(url, headers=admin_headers, json={"user_id": other_admin.id}).status_code == 404
    second_admin = user_factory("adam", "ADMIN")
    assert client.post(url, headers=admin_headers, json={"user_id": second_admin.id}).status_code == 400
    assert client.post(url, headers=qa_headers, json={"user_id": second_admin.id}).status_code == 403


# ═════════════════════════════════════════════════════════════════════════════
# WORK LISTS
# ═════════════════════════════════════════════════════════════════════════════

def test_assigned_to_own_or_admin(client, admin_headers, tester_user, tester_headers, qa_user, tree):
    _tester_execution(client, admin_headers, tester_user, tree)

    res = client.get(f"/api/v1/executions/assigned-to/{tester_user.id}", headers=tester_headers)
    assert res.status_code == 200
    assert len(res.get_json()) == 1

    res = client.get(f"/api/v1/executions/assigned-to/{tester_user.id}", headers=admin_headers)
    assert len(res.get_json()) == 1

    res = client.get(f"/api/v1/executions/assigned-to/{qa_user.id}", headers=tester_headers)
    assert res.status_code == 403


def test_my_assignments_and_summary(client, admin_headers, tester_user, tester_headers, tree):
    execution = _tester_execution(client, admin_headers, tester_user, tree)

    res = client.get("/api/v1/executions/my-assignments", headers=tester_headers)
    assert [e["id"] for e in res.get_json()] == [execution.id]

    client.put(f"/api/v1/executions/{execution.id}/complete", headers=tester_headers,
               json={"overall_result": "BLOCKED"})
    res = client.get("/api/v1/executions/summary", headers=tester_headers)
    assert res.get_json() == {"total": 1, "passed": 0, "failed": 0, "blocked": 1, "pending": 0}


def test_my_assignments_drop_after_unassign(client, admin_headers, tester_user, tester_headers, tree):
    _tester_execution(client, admin_headers, tester_user, tree)
    client.delete("/api/v1/modules/assign", headers=admin_headers,
                  json={"user_id": tester_user.id, "module_id": tree["module"].id})

    res = client.get("/api/v1/executions/my-assignments", headers=tester_headers)
    assert res.get_json() == []
    # The execution itself survives
    assert TestExecution.query.count() == 1


def test_admin_my_assignments_shows_latest_per_case(client, admin_headers, tester_user, tree):
    _tester_execution(client, admin_headers, tester_user, tree)
    newest = client.post(f"/api/v1/testcases/{tree['case'].id}/executions",
                         headers=admin_headers).get_json()

    res = client.get("/api/v1/executions/my-assignments", headers=admin_headers)
    assert [e["id"] for e in res.get_json()] == [newest["id"]]
    assert db.session.get(TestExecution, newest["id"]) is not None
