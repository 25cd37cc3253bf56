"""
Execution service — test execution lifecycle.

Lifecycle:
    PENDING ──first step update──▶ IN_PROGRESS ──complete──▶ COMPLETED
    PENDING ──admin assigns──────▶ IN_PROGRESS

Each execution owns one step result per test step. Executions are created
explicitly (POST /testcases/<id>/executions) or generated for every user
assigned to the test case's module.

Functions flush; the calling blueprint commits.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from app.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from app.models import db
from app.models.auth import ASSIGNABLE_ROLES, User
from app.models.base import as_utc
from app.models.project import Project
from app.models.testing import (
    COMPLETED_RESULTS,
    STEP_UPDATE_STATUSES,
    TestCase,
    TestExecution,
    TestModule,
    TestStepResult,
    TestSubmodule,
)
from app.services import access_service
from app.utils.helpers import clean_str, parse_positive_int

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _sort_key(execution: TestExecution):
    tc = execution.test_case
    return (tc.submodule.module_id, tc.submodule_id, tc.id)


# ═════════════════════════════════════════════════════════════════════════
# Creation
# ═════════════════════════════════════════════════════════════════════════
def create_execution(
    test_case: TestCase,
    assigned_to: User | None = None,
    step_status: str = "PENDING",
) -> TestExecution:
    """New PENDING execution with one step result per step of ``test_case``."""
    execution = TestExecution(
        test_case=test_case,
        assigned_to_user=assigned_to,
        execution_date=_utcnow(),
        overall_result="PENDING",
        status="PENDING",
        notes="",
    )
    for step in test_case.steps:
        execution.step_results.append(TestStepResult(
            test_step=step,
            step_number=step.step_number,
            status=step_status,
            actual_result="",
        ))
    db.session.add(execution)
    return execution


def generate_for_users(test_case: TestCase, users, step_status: str = "PENDING") -> int:
    """Create an execution of ``test_case`` for every user lacking one. Returns count."""
    existing = {e.assigned_to_user_id for e in test_case.executions}
    created = 0
    for user in users:
        if user.id in existing:
            continue
        create_execution(test_case, assigned_to=user, step_status=step_status)
        existing.add(user.id)
        created += 1
    return created


def generate_for_module_user(module: TestModule, user: User) -> int:
    """Create executions for every case in ``module`` that ``user`` has none for."""
    created = sum(generate_for_users(tc, [user]) for tc in module.test_cases())
    if created:
        db.session.flush()
        logger.info("Generated %d executions for user %d in module %d",
                    created, user.id, module.id)
    return created


def regenerate_for_module(module: TestModule) -> int:
    """Fill in missing executions for every assigned user × test case of ``module``."""
    created = 0
    for tc in module.test_cases():
        created += generate_for_users(tc, module.assigned_users)
    db.session.flush()
    logger.info("Regenerated %d executions for module %d", created, module.id)
    return created


def start_execution(user: User, test_case: TestCase) -> TestExecution:
    """Explicitly start a new execution of a test case (unassigned)."""
    access_service.require_executor(user)
    access_service.require_module_access(user, test_case.module)
    execution = create_execution(test_case)
    db.session.flush()
    logger.info("Execution %d created for test case %d by user %d",
                execution.id, test_case.id, user.id)
    return execution


# ═════════════════════════════════════════════════════════════════════════
# Permission helpers
# ═════════════════════════════════════════════════════════════════════════
def _is_assignee(user: User, execution: TestExecution) -> bool:
    return execution.assigned_to_user_id is not None and execution.assigned_to_user_id == user.id


def _require_step_permission(user: User, execution: TestExecution) -> None:
    """Assignee, any user assigned to the execution's module, or ADMIN."""
    if user.is_admin or _is_assignee(user, execution):
        return
    if execution.test_case.module in user.assigned_modules:
        return
    raise PermissionDeniedError("You are not assigned to this execution or its module")


def _require_completion_permission(user: User, execution: TestExecution) -> None:
    """Assignee or ADMIN."""
    if user.is_admin or _is_assignee(user, execution):
        return
    raise PermissionDeniedError("You can only complete executions assigned to you")


def require_view_permission(user: User, execution: TestExecution) -> None:
    if user.is_admin or _is_assignee(user, execution):
        return
    access_service.require_module_access(user, execution.test_case.module)


# ═════════════════════════════════════════════════════════════════════════
# Updates
# ═════════════════════════════════════════════════════════════════════════
def update_step_result(user: User, execution: TestExecution, step_id: int, data: dict) -> TestStepResult:
    """Record one step outcome. Unknown statuses are stored as PENDING."""
    _require_step_permission(user, execution)

    result = next((sr for sr in execution.step_results if sr.test_step_id == step_id), None)
    if result is None:
        raise NotFoundError(resource="Step result", resource_id=step_id)

    status = str(data.get("status") or "").strip().upper()
    result.status = status if status in STEP_UPDATE_STATUSES else "PENDING"
    if "actual_result" in data:
        result.actual_result = data.get("actual_result") or ""

    if execution.status == "PENDING":
        execution.status = "IN_PROGRESS"
        execution.start_date = execution.start_date or _utcnow()
    db.session.flush()
    return result


def complete_execution(user: User, execution: TestExecution, data: dict) -> TestExecution:
    """Close an execution with its overall result."""
    _require_completion_permission(user, execution)

    result = str(data.get("overall_result") or "").strip().upper()
    now = _utcnow()
    execution.overall_result = result if result in COMPLETED_RESULTS else "PENDING"
    execution.status = "COMPLETED"
    execution.completion_date = now
    execution.execution_date = now
    execution.executed_by = user.username
    execution.start_date = execution.start_date or now
    if "notes" in data:
        execution.notes = data.get("notes") or ""

    if "duration" in data:
        duration = data.get("duration")
        if duration not in (None, ""):
            try:
                duration = int(duration)
            except (TypeError, ValueError):
                raise ValidationError("duration must be an integer (minutes)")
            if duration < 0:
                raise ValidationError("duration must not be negative")
        else:
            duration = None
        execution.duration = duration
    if "environment" in data:
        execution.environment = clean_str(data.get("environment"))

    for field in ("bug_report_subject", "bug_report_description", "redmine_issue_url"):
        if field in data:
            setattr(execution, field, clean_str(data.get(field)))

    db.session.flush()
    logger.info("Execution %d completed as %s by user %d",
                execution.id, execution.overall_result, user.id)
    return execution


def save_execution_notes(user: User, execution: TestExecution, data: dict) -> TestExecution:
    """Persist work-in-progress notes; status and result are untouched."""
    _require_completion_permission(user, execution)
    execution.notes = data.get("notes") or ""
    db.session.flush()
    return execution


def assign_execution(admin: User, execution: TestExecution, user_id) -> TestExecution:
    """ADMIN assigns an execution to a QA / BA / TESTER of the organization."""
    access_service.require_admin(admin)
    user_id = parse_positive_int(user_id)
    if user_id is None:
        raise ValidationError("user_id is required", details={"user_id": "required"})
    target = access_service.get_org_user(user_id, admin)
    if not target.has_role(*ASSIGNABLE_ROLES):
        raise ValidationError("User must have QA, BA or TESTER role to be assigned")

    execution.assigned_to_user = target
    execution.status = "IN_PROGRESS"
    execution.start_date = _utcnow()
    db.session.flush()
    logger.info("Execution %d assigned to user %d", execution.id, target.id)
    return execution


# ═════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════
def _org_executions_query(organization_id: int):
    return (
        TestExecution.query
        .join(TestCase, TestExecution.test_case_id == TestCase.id)
        .join(TestSubmodule, TestCase.submodule_id == TestSubmodule.id)
        .join(TestModule, TestSubmodule.module_id == TestModule.id)
        .join(Project, TestModule.project_id == Project.id)
        .filter(Project.organization_id == organization_id)
    )


def list_org_executions(organization_id: int, user_id: int | None = None) -> list[TestExecution]:
    query = _org_executions_query(organization_id)
    if user_id is not None:
        query = query.filter(TestExecution.assigned_to_user_id == user_id)
    return sorted(query.all(), key=lambda e: (_sort_key(e), e.id))


def list_case_executions(test_case: TestCase) -> list[TestExecution]:
    return sorted(test_case.executions, key=lambda e: e.id)


def list_assigned_to(viewer: User, user_id: int) -> list[TestExecution]:
    """Executions assigned to ``user_id``; non-admins may only look at their own."""
    if not viewer.is_admin and viewer.id != user_id:
        raise PermissionDeniedError("You can only view your own assigned executions")
    target = access_service.get_org_user(user_id, viewer)
    executions = _org_executions_query(viewer.organization_id).filter(
        TestExecution.assigned_to_user_id == target.id
    ).all()
    return sorted(executions, key=_sort_key)


def _own_module_executions(user: User) -> list[TestExecution]:
    """Executions assigned to ``user`` inside modules the user is assigned to."""
    module_ids = {m.id for m in user.assigned_modules}
    if not module_ids:
        return []
    executions = _org_executions_query(user.organization_id).filter(
        TestExecution.assigned_to_user_id == user.id,
        TestModule.id.in_(module_ids),
    ).all()
    return executions


def _recency(execution: TestExecution):
    return (as_utc(execution.execution_date), execution.id)


def latest_per_case(executions) -> list[TestExecution]:
    """Keep the most recent execution of every test case."""
    latest: dict[int, TestExecution] = {}
    for execution in executions:
        current = latest.get(execution.test_case_id)
        if current is None or _recency(execution) > _recency(current):
            latest[execution.test_case_id] = execution
    return list(latest.values())


def my_assignments(user: User) -> list[TestExecution]:
    """ADMIN: latest execution per case in the organization; others: own assigned work."""
    if user.is_admin:
        executions = latest_per_case(_org_executions_query(user.organization_id).all())
    else:
        executions = _own_module_executions(user)
    return sorted(executions, key=_sort_key)


def completion_summary(user: User) -> dict:
    """Counts over the user's own assigned executions in assigned modules."""
    executions = _own_module_executions(user)
    total = len(executions)
    passed = sum(1 for e in executions if e.overall_result == "PASSED")
    failed = sum(1 for e in executions if e.overall_result == "FAILED")
    blocked = sum(1 for e in executions if e.overall_result == "BLOCKED")
    return {
        "total": total,
        "passed": passed,
        "failed": failed,
        "blocked": blocked,
        "pending": total - passed - failed - blocked,
    }
