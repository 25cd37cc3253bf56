"""
Module service — test modules, submodules and module assignments.

Assigning a user to a module hands them the module's work: an execution
is generated for every test case of the module the user has none for.

Functions flush; the calling blueprint commits.
"""

from __future__ import annotations

import logging

from app.core.exceptions import ValidationError
from app.models import db
from app.models.auth import ASSIGNABLE_ROLES, User
from app.models.project import Project
from app.models.testing import TestModule, TestSubmodule
from app.services import access_service, execution_service
from app.utils.helpers import clean_str, parse_positive_int

logger = logging.getLogger(__name__)


def _required_name(data: dict, what: str) -> str:
    name = clean_str(data.get("name"))
    if not name:
        raise ValidationError(f"{what} name is required", details={"name": "required"})
    return name


# ═════════════════════════════════════════════════════════════════════════
# Modules
# ═════════════════════════════════════════════════════════════════════════
def list_modules(user: User) -> list[TestModule]:
    """ADMIN: every module in the organization; others: assigned modules."""
    if user.is_admin:
        return (
            TestModule.query
            .join(Project, TestModule.project_id == Project.id)
            .filter(Project.organization_id == user.organization_id)
            .order_by(TestModule.id)
            .all()
        )
    return sorted(
        (m for m in user.assigned_modules if m.organization_id == user.organization_id),
        key=lambda m: m.id,
    )


def create_module(user: User, project: Project, data: dict) -> TestModule:
    access_service.require_admin_qa_or_ba(user)
    access_service.require_project_access(user, project)
    module = TestModule(
        project=project,
        name=_required_name(data, "Module"),
        description=clean_str(data.get("description"), ""),
    )
    db.session.add(module)
    db.session.flush()
    logger.info("Module %d '%s' created in project %d", module.id, module.name, project.id)
    return module


def update_module(user: User, module: TestModule, data: dict) -> TestModule:
    access_service.require_admin_qa_or_ba(user)
    access_service.require_module_access(user, module)
    if "name" in data:
        module.name = _required_name(data, "Module")
    if "description" in data:
        module.description = clean_str(data.get("description"), "")
    db.session.flush()
    return module


def delete_module(user: User, module: TestModule) -> None:
    """Delete a module with its submodules, cases, executions and assignments."""
    access_service.require_admin(user)
    module.assigned_users.clear()
    db.session.delete(module)
    db.session.flush()
    logger.info("Module %d deleted by user %d", module.id, user.id)


# ═════════════════════════════════════════════════════════════════════════
# Assignments
# ═════════════════════════════════════════════════════════════════════════
def _assignment_targets(user: User, data: dict) -> tuple[TestModule, User]:
    user_id = parse_positive_int(data.get("user_id"))
    module_id = parse_positive_int(data.get("module_id"))
    if user_id is None or module_id is None:
        raise ValidationError(
            "user_id and module_id are required",
            details={"user_id": "required", "module_id": "required"},
        )
    module = access_service.get_module(module_id, user)
    access_service.require_module_access(user, module)
    target = access_service.get_org_user(user_id, user)
    return module, target


def assign_user(user: User, data: dict) -> tuple[TestModule, User, int]:
    """Assign a QA / BA / TESTER to a module. Returns (module, target, executions_created)."""
    access_service.require_admin_qa_or_ba(user)
    module, target = _assignment_targets(user, data)
    if not target.has_role(*ASSIGNABLE_ROLES):
        raise ValidationError("User must have QA, BA or TESTER role to be assigned to modules")

    if target in module.assigned_users:
        return module, target, 0

    module.assigned_users.append(target)
    db.session.flush()
    created = execution_service.generate_for_module_user(module, target)
    logger.info("User %d assigned to module %d (%d executions created)",
                target.id, module.id, created)
    return module, target, created


def unassign_user(user: User, data: dict) -> bool:
    access_service.require_admin_qa_or_ba(user)
    module, target = _assignment_targets(user, data)
    if target not in module.assigned_users:
        return False
    module.assigned_users.remove(target)
    db.session.flush()
    logger.info("User %d removed from module %d", target.id, module.id)
    return True


def regenerate_executions(user: User, module: TestModule) -> int:
    access_service.require_admin_qa_or_ba(user)
    access_service.require_module_access(user, module)
    return execution_service.regenerate_for_module(module)


# ═════════════════════════════════════════════════════════════════════════
# Submodules
# ═════════════════════════════════════════════════════════════════════════
def create_submodule(user: User, module: TestModule, data: dict) -> TestSubmodule:
    access_service.require_admin_qa_or_ba(user)
    access_service.require_module_access(user, module)
    submodule = TestSubmodule(
        module=module,
        name=_required_name(data, "Submodule"),
        description=clean_str(data.get("description"), ""),
    )
    db.session.add(submodule)
    db.session.flush()
    logger.info("Submodule %d '%s' created in module %d",
                submodule.id, submodule.name, module.id)
    return submodule


def update_submodule(user: User, submodule: TestSubmodule, data: dict) -> TestSubmodule:
    access_service.require_admin_qa_or_ba(user)
    access_service.require_module_access(user, submodule.module)
    if "name" in data:
        submodule.name = _required_name(data, "Submodule")
    if "description" in data:
        submodule.description = clean_str(data.get("description"), "")
    db.session.flush()
    return submodule


def delete_submodule(user: User, submodule: TestSubmodule) -> None:
    """Delete a submodule with its test cases, steps and executions."""
    access_service.require_admin_qa_or_ba(user)
    access_service.require_module_access(user, submodule.module)
    db.session.delete(submodule)
    db.session.flush()
    logger.info("Submodule %d deleted by user %d", submodule.id, user.id)


def find_or_create_submodule(module: TestModule, name: str) -> tuple[TestSubmodule, bool]:
    """Look a submodule up by name within ``module``; create it when missing."""
    for submodule in module.submodules:
        if submodule.name == name:
            return submodule, False
    submodule = TestSubmodule(module=module, name=name, description="")
    db.session.add(submodule)
    return submodule, True
