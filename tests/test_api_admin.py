"""
Admin API Tests — organization-wide user, module and execution listings.
"""


def test_users_by_role(client, qa_headers, tester_user, ba_user, other_admin):
    res = client.get("/api/v1/users/by-role/tester", headers=qa_headers)
    assert res.status_code == 200
    assert [u["username"] for u in res.get_json()] == ["terry"]

    res = client.get("/api/v1/users/by-role/ADMIN", headers=qa_headers)
    # Admins of other organizations stay hidden
    assert [u["username"] for u in res.get_json()] == []


def test_users_by_role_rejects_unknown_role(client, admin_headers):
    res = client.get("/api/v1/users/by-role/owner", headers=admin_headers)
    assert res.status_code == 400


def test_users_by_role_forbidden_for_tester(client, tester_headers):
    assert client.get("/api/v1/users/by-role/QA", headers=tester_headers).status_code == 403


def test_admin_users_lists_non_admins(client, admin_headers, qa_user, ba_user, tester_user):
    res = client.get("/api/v1/admin/users", headers=admin_headers)
    assert res.status_code == 200
    assert [u["username"] for u in res.get_json()] == ["bob", "quinn", "terry"]


def test_admin_modules(client, admin_headers, qa_headers, tree):
    res = client.get("/api/v1/admin/modules", headers=admin_headers)
    assert [m["name"] for m in res.get_json()] == ["Checkout"]
    assert client.get("/api/v1/admin/modules", headers=qa_headers).status_code == 403


def test_admin_executions_filter(client, admin_headers, tester_user, qa_user, tree):
    module_id = tree["module"].id
    for user in (tester_user, qa_user):
        client.post("/api/v1/modules/assign", headers=admin_headers,
                    json={"user_id": user.id, "module_id": module_id})

    res = client.get("/api/v1/admin/executions", headers=admin_headers)
    body = res.get_json()
    assert len(body) == 2
    assert "step_results" not in body[0]

    res = client.get(f"/api/v1/admin/executions?user_id={tester_user.id}", headers=admin_headers)
    assert [e["assigned_to_user"]["username"] for e in res.get_json()] == ["terry"]
