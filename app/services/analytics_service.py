"""
Analytics service — pass/fail KPIs over test executions.

A test case counts as executed once it has a completed execution
(PASSED, FAILED, BLOCKED or PARTIALLY_PASSED); its outcome is the result
of the latest completed execution. Rates are percentages of executed
cases, rounded to two decimals.
"""

from __future__ import annotations

from app.models.auth import User
from app.models.project import Project
from app.models.testing import COMPLETED_RESULTS, TestCase, TestModule, TestSubmodule
from app.services import execution_service


def _rate(count: int, executed: int) -> float:
    return round(count * 100 / executed, 2) if executed else 0.0


def _empty_counts() -> dict:
    return {"total": 0, "executed": 0, "passed": 0, "failed": 0, "not_executed": 0}


def _finish(counts: dict) -> dict:
    counts["not_executed"] = counts["total"] - counts["executed"]
    counts["pass_rate"] = _rate(counts["passed"], counts["executed"])
    counts["fail_rate"] = _rate(counts["failed"], counts["executed"])
    return counts


def _tally(counts: dict, result: str | None) -> None:
    counts["total"] += 1
    if result is None:
        return
    counts["executed"] += 1
    if result == "PASSED":
        counts["passed"] += 1
    elif result == "FAILED":
        counts["failed"] += 1


def get_test_analytics(user: User, user_id: int | None = None) -> dict:
    """
    KPIs for the caller's scope.

    ADMIN: every execution of the organization, or only those assigned to
    ``user_id`` when given. Others: their own executions inside the modules
    they are assigned to (``user_id`` is ignored).
    """
    if user.organization_id is None:
        return {**_finish(_empty_counts()), "by_project": [], "by_module": []}

    if user.is_admin:
        executions = execution_service.list_org_executions(user.organization_id, user_id=user_id)
    else:
        executions = execution_service.my_assignments(user)

    # Latest completed execution per case
    completed = [e for e in executions if e.overall_result in COMPLETED_RESULTS]
    results = {e.test_case_id: e.overall_result
               for e in execution_service.latest_per_case(completed)}

    if user.is_admin and user_id is None:
        cases = (
            TestCase.query
            .join(TestSubmodule, TestCase.submodule_id == TestSubmodule.id)
            .join(TestModule, TestSubmodule.module_id == TestModule.id)
            .join(Project, TestModule.project_id == Project.id)
            .filter(Project.organization_id == user.organization_id)
            .order_by(TestCase.id)
            .all()
        )
    else:
        by_id = {e.test_case_id: e.test_case for e in executions}
        cases = [by_id[cid] for cid in sorted(by_id)]

    overall = _empty_counts()
    projects: dict[int, dict] = {}
    modules: dict[int, dict] = {}
    for tc in cases:
        module = tc.module
        project = module.project
        result = results.get(tc.id)

        _tally(overall, result)
        p = projects.setdefault(project.id, {
            "project_id": project.id, "project_name": project.name, **_empty_counts(),
        })
        _tally(p, result)
        m = modules.setdefault(module.id, {
            "module_id": module.id, "module_name": module.name,
            "project_id": project.id, "project_name": project.name, **_empty_counts(),
        })
        _tally(m, result)

    return {
        **_finish(overall),
        "by_project": [_finish(projects[k]) for k in sorted(projects)],
        "by_module": [_finish(modules[k]) for k in sorted(modules)],
    }
