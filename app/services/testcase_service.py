"""
Test case service — CRUD for test cases and their ordered steps.

Rules:
  - ``test_case_id`` (the business code) is unique within a module.
  - Submitted steps are renumbered 1..N in submitted order.
  - Creating a case generates an execution for every user assigned to
    its module.
  - Replacing the step list drops the step results of the old steps.

Functions flush; the calling blueprint commits.
"""

from __future__ import annotations

import logging

from sqlalchemy import false, or_

from app.core.exceptions import ConflictError, ValidationError
from app.models import db
from app.models.auth import User
from app.models.project import Project
from app.models.testing import (
    TEST_CASE_PRIORITIES,
    TestCase,
    TestModule,
    TestStep,
    TestStepResult,
    TestSubmodule,
)
from app.services import access_service, execution_service
from app.utils.helpers import clean_str

logger = logging.getLogger(__name__)

_TEXT_FIELDS = ("description", "prerequisites", "expected_result", "tags")


# ═════════════════════════════════════════════════════════════════════════
# Validation helpers
# ═════════════════════════════════════════════════════════════════════════
def case_code_exists(module: TestModule, code: str, exclude_id: int | None = None) -> bool:
    query = (
        TestCase.query
        .join(TestSubmodule, TestCase.submodule_id == TestSubmodule.id)
        .filter(TestSubmodule.module_id == module.id, TestCase.test_case_id == code)
    )
    if exclude_id is not None:
        query = query.filter(TestCase.id != exclude_id)
    return query.first() is not None


def _normalize_priority(value) -> str:
    priority = (clean_str(value) or "MEDIUM").upper()
    if priority not in TEST_CASE_PRIORITIES:
        raise ValidationError(
            f"priority must be one of: {', '.join(sorted(TEST_CASE_PRIORITIES))}",
            details={"priority": "invalid"},
        )
    return priority


def build_steps(raw_steps) -> list[TestStep]:
    """Turn submitted step dicts into TestStep rows numbered 1..N."""
    if raw_steps is None:
        return []
    if not isinstance(raw_steps, list):
        raise ValidationError("steps must be a list", details={"steps": "invalid"})

    steps = []
    for index, raw in enumerate(raw_steps, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Step {index} must be an object", details={"steps": "invalid"})
        action = clean_str(raw.get("action"))
        if not action:
            raise ValidationError(f"Step {index}: action is required",
                                  details={"steps": f"{index}.action required"})
        steps.append(TestStep(
            step_number=index,
            action=action,
            expected_result=clean_str(raw.get("expected_result"), ""),
        ))
    return steps


# ═════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════
def test_cases_query(user: User, module_id=None, submodule_id=None, search=None):
    """Test cases of the user's organization the user may read, optionally filtered."""
    query = (
        TestCase.query
        .join(TestSubmodule, TestCase.submodule_id == TestSubmodule.id)
        .join(TestModule, TestSubmodule.module_id == TestModule.id)
        .join(Project, TestModule.project_id == Project.id)
        .filter(Project.organization_id == user.organization_id)
    )
    module_ids = access_service.accessible_module_ids(user)
    if module_ids is not None:
        if not module_ids:
            return query.filter(false())
        query = query.filter(TestModule.id.in_(module_ids))
    if module_id is not None:
        query = query.filter(TestModule.id == module_id)
    if submodule_id is not None:
        query = query.filter(TestSubmodule.id == submodule_id)
    if search:
        like = f"%{search}%"
        query = query.filter(or_(TestCase.test_case_id.ilike(like), TestCase.title.ilike(like)))
    return query.order_by(TestModule.id, TestSubmodule.id, TestCase.id)


# ═════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════
def create_test_case(user: User, submodule: TestSubmodule, data: dict) -> TestCase:
    """Create a case with its steps and hand it to every user assigned to the module."""
    access_service.require_admin_qa_or_ba(user)
    module = submodule.module
    access_service.require_module_access(user, module)

    code = clean_str(data.get("test_case_id"))
    title = clean_str(data.get("title"))
    missing = {f: "required" for f, v in (("test_case_id", code), ("title", title)) if not v}
    if missing:
        raise ValidationError("test_case_id and title are required", details=missing)
    if case_code_exists(module, code):
        raise ConflictError(resource="Test case", field="test_case_id", value=code)

    test_case = TestCase(
        submodule=submodule,
        test_case_id=code,
        title=title,
        priority=_normalize_priority(data.get("priority")),
        **{f: clean_str(data.get(f), "") for f in _TEXT_FIELDS},
    )
    test_case.steps = build_steps(data.get("steps"))
    db.session.add(test_case)
    db.session.flush()

    created = execution_service.generate_for_users(test_case, module.assigned_users)
    db.session.flush()
    logger.info("Test case %d '%s' created in submodule %d (%d executions)",
                test_case.id, code, submodule.id, created)
    return test_case


def update_test_case(user: User, test_case: TestCase, data: dict) -> TestCase:
    access_service.require_admin_qa_or_ba(user)
    module = test_case.module
    access_service.require_module_access(user, module)

    if "test_case_id" in data:
        code = clean_str(data.get("test_case_id"))
        if not code:
            raise ValidationError("test_case_id cannot be empty", details={"test_case_id": "required"})
        if case_code_exists(module, code, exclude_id=test_case.id):
            raise ConflictError(resource="Test case", field="test_case_id", value=code)
        test_case.test_case_id = code
    if "title" in data:
        title = clean_str(data.get("title"))
        if not title:
            raise ValidationError("title cannot be empty", details={"title": "required"})
        test_case.title = title
    if "priority" in data:
        test_case.priority = _normalize_priority(data.get("priority"))
    for field in _TEXT_FIELDS:
        if field in data:
            setattr(test_case, field, clean_str(data.get(field), ""))

    if "steps" in data:
        _replace_steps(test_case, build_steps(data.get("steps")))

    db.session.flush()
    return test_case


def _replace_steps(test_case: TestCase, new_steps: list[TestStep]) -> None:
    """Swap the step list; old steps and their results are deleted by cascade."""
    old_ids = [s.id for s in test_case.steps]
    for execution in test_case.executions:
        for result in list(execution.step_results):
            if result.test_step_id in old_ids:
                execution.step_results.remove(result)
    test_case.steps = new_steps
    db.session.flush()

    # Open executions stay runnable against the new step list
    for execution in test_case.executions:
        if execution.status == "COMPLETED":
            continue
        for step in new_steps:
            execution.step_results.append(TestStepResult(
                test_step=step, step_number=step.step_number,
                status="PENDING", actual_result="",
            ))
    logger.info("Test case %d steps replaced (%d → %d)",
                test_case.id, len(old_ids), len(new_steps))


def delete_test_case(user: User, test_case: TestCase) -> None:
    """Delete a case with its steps, executions and step results."""
    access_service.require_admin(user)
    db.session.delete(test_case)
    db.session.flush()
    logger.info("Test case %d deleted by user %d", test_case.id, user.id)


def require_read_access(user: User, test_case: TestCase) -> None:
    access_service.require_module_access(user, test_case.module)
