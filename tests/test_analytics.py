"""
Analytics Tests — pass/fail KPIs per organization, project and module.
"""

# Uses shared fixtures from conftest.py: client, tree, *_user, *_headers

URL = "/api/v1/testcases/analytics"


def _assign_module(client, headers, user_id, module_id):
    res = client.post("/api/v1/modules/assign", headers=headers,
                      json={"user_id": user_id, "module_id": module_id})
    assert res.status_code == 200, res.get_json()


def _add_case(client, headers, submodule_id, code):
    res = client.post(f"/api/v1/submodules/{submodule_id}/testcases", headers=headers,
                      json={"test_case_id": code, "title": f"Case {code}",
                            "steps": [{"action": "Do it"}]})
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _complete(client, headers, execution_id, result):
    res = client.put(f"/api/v1/executions/{execution_id}/complete", headers=headers,
                     json={"overall_result": result})
    assert res.status_code == 200, res.get_json()


def _my_executions(client, headers):
    return {e["test_case_code"]: e["id"]
            for e in client.get("/api/v1/executions/my-assignments", headers=headers).get_json()}


def test_empty_organization(client, admin_headers):
    body = client.get(URL, headers=admin_headers).get_json()
    assert body["total"] == 0
    assert body["pass_rate"] == 0.0
    assert body["by_project"] == [] and body["by_module"] == []


def test_admin_sees_all_cases_and_latest_results(client, admin_headers, tester_user, tester_headers, tree):
    _assign_module(client, admin_headers, tester_user.id, tree["module"].id)
    _add_case(client, admin_headers, tree["submodule"].id, "TC-002")
    executions = _my_executions(client, tester_headers)
    _complete(client, tester_headers, executions["TC-001"], "PASSED")

    body = client.get(URL, headers=admin_headers).get_json()
    assert body["total"] == 2
    assert body["executed"] == 1
    assert body["passed"] == 1
    assert body["not_executed"] == 1
    assert body["pass_rate"] == 100.0
    assert body["fail_rate"] == 0.0

    [project] = body["by_project"]
    assert project["project_name"] == "Payments"
    assert project["total"] == 2
    [module] = body["by_module"]
    assert module["module_name"] == "Checkout"
    assert module["passed"] == 1

    _complete(client, tester_headers, executions["TC-002"], "FAILED")
    body = client.get(URL, headers=admin_headers).get_json()
    assert (body["passed"], body["failed"]) == (1, 1)
    assert body["pass_rate"] == 50.0
    assert body["fail_rate"] == 50.0


def test_latest_completed_execution_wins(client, admin_headers, tester_user, tester_headers, tree):
    _assign_module(client, admin_headers, tester_user.id, tree["module"].id)
    executions = _my_executions(client, tester_headers)
    _complete(client, tester_headers, executions["TC-001"], "FAILED")

    rerun = client.post(f"/api/v1/testcases/{tree['case'].id}/executions", headers=admin_headers).get_json()
    body = client.get(URL, headers=admin_headers).get_json()
    # An open rerun does not hide the completed result
    assert body["failed"] == 1

    _complete(client, admin_headers, rerun["id"], "PASSED")
    body = client.get(URL, headers=admin_headers).get_json()
    assert (body["executed"], body["passed"], body["failed"]) == (1, 1, 0)


def test_blocked_counts_as_executed(client, admin_headers, tester_user, tester_headers, tree):
    _assign_module(client, admin_headers, tester_user.id, tree["module"].id)
    _complete(client, tester_headers, _my_executions(client, tester_headers)["TC-001"], "BLOCKED")

    body = client.get(URL, headers=admin_headers).get_json()
    assert body["executed"] == 1
    assert body["passed"] == 0 and body["failed"] == 0
    assert body["pass_rate"] == 0.0


def test_non_admin_scope_is_own_assignments(
    client, admin_headers, tester_user, tester_headers, qa_headers, tree,
):
    _assign_module(client, admin_headers, tester_user.id, tree["module"].id)
    _complete(client, tester_headers, _my_executions(client, tester_headers)["TC-001"], "PASSED")

    body = client.get(URL, headers=tester_headers).get_json()
    assert (body["total"], body["passed"]) == (1, 1)

    # QA has no assigned work; user_id is only honoured for admins
    body = client.get(f"{URL}?user_id={tester_user.id}", headers=qa_headers).get_json()
    assert body["total"] == 0


def test_admin_filter_by_user(client, admin_headers, tester_user, tester_headers, qa_user, tree):
    _assign_module(client, admin_headers, tester_user.id, tree["module"].id)
    _complete(client, tester_headers, _my_executions(client, tester_headers)["TC-001"], "PASSED")

    body = client.get(f"{URL}?user_id={tester_user.id}", headers=admin_headers).get_json()
    assert (body["total"], body["passed"]) == (1, 1)

    body = client.get(f"{URL}?user_id={qa_user.id}", headers=admin_headers).get_json()
    assert body["total"] == 0


def test_other_organization_sees_nothing(client, other_headers, tree):
    body = client.get(URL, headers=other_headers).get_json()
    assert body["total"] == 0
