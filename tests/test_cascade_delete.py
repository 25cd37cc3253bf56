"""
Cascade Delete Tests — removing a parent removes its whole subtree.
"""

from app.models import db
from app.models.project import Project, project_assignments
from app.models.testing import (
    TestCase,
    TestExecution,
    TestModule,
    TestStep,
    TestStepResult,
    TestSubmodule,
    module_assignments,
)


def _populate(client, admin_headers, tester_user, tree):
    client.post("/api/v1/projects/assign", headers=admin_headers,
                json={"user_id": tester_user.id, "project_id": tree["project"].id})
    client.post("/api/v1/modules/assign", headers=admin_headers,
                json={"user_id": tester_user.id, "module_id": tree["module"].id})
    assert TestExecution.query.count() == 1
    assert TestStepResult.query.count() == 2


def _count(table):
    return db.session.execute(db.select(db.func.count()).select_from(table)).scalar()


def test_delete_project_removes_everything_below(client, admin_headers, tester_user, tree):
    _populate(client, admin_headers, tester_user, tree)

    res = client.delete(f"/api/v1/projects/{tree['project'].id}", headers=admin_headers)
    assert res.status_code == 200

    for model in (Project, TestModule, TestSubmodule, TestCase, TestStep, TestExecution, TestStepResult):
        assert model.query.count() == 0, model.__name__
    assert _count(project_assignments) == 0
    assert _count(module_assignments) == 0


def test_delete_module_keeps_project(client, admin_headers, tester_user, tree):
    _populate(client, admin_headers, tester_user, tree)

    res = client.delete(f"/api/v1/modules/{tree['module'].id}", headers=admin_headers)
    assert res.status_code == 200

    assert Project.query.count() == 1
    assert TestSubmodule.query.count() == 0
    assert TestCase.query.count() == 0
    assert TestStepResult.query.count() == 0
    assert _count(module_assignments) == 0
    assert _count(project_assignments) == 1


def test_delete_submodule_removes_cases_and_executions(client, admin_headers, tester_user, tree):
    _populate(client, admin_headers, tester_user, tree)

    res = client.delete(f"/api/v1/submodules/{tree['submodule'].id}", headers=admin_headers)
    assert res.status_code == 200

    assert TestModule.query.count() == 1
    assert TestCase.query.count() == 0
    assert TestStep.query.count() == 0
    assert TestExecution.query.count() == 0
    assert _count(module_assignments) == 1
