"""
Access service — organization scoping and assignment-based authorization.

Every get-by-id for TCM data goes through the ``get_*`` helpers below.
A resource owned by another organization is indistinguishable from a
missing one: both raise NotFoundError → HTTP 404.

Role rules:
    ADMIN    full access inside its own organization
    QA / BA  manage modules, submodules and test cases they are assigned to
    TESTER   execute test cases they are assigned to

Project access (non-admin): assigned to the project, or to any of its modules.
Module access (non-admin):  assigned to the module, or to its project.
"""

import logging

from app.core.exceptions import NotFoundError, PermissionDeniedError
from app.models import db
from app.models.auth import ROLE_ADMIN, ROLE_BA, ROLE_QA, ROLE_TESTER, User
from app.models.project import Project
from app.models.testing import TestCase, TestExecution, TestModule, TestSubmodule

logger = logging.getLogger(__name__)

MANAGER_ROLES = (ROLE_ADMIN, ROLE_QA, ROLE_BA)
EXECUTOR_ROLES = (ROLE_ADMIN, ROLE_QA, ROLE_BA, ROLE_TESTER)


# ═══════════════════════════════════════════════════════════════
# Role checks
# ═══════════════════════════════════════════════════════════════
def require_admin(user: User) -> None:
    if not user.is_admin:
        raise PermissionDeniedError("Admin role required")


def require_admin_qa_or_ba(user: User) -> None:
    if not user.has_role(*MANAGER_ROLES):
        raise PermissionDeniedError("Admin, QA or BA role required")


def require_executor(user: User) -> None:
    if not user.has_role(*EXECUTOR_ROLES):
        raise PermissionDeniedError("A testing role is required")


# ═══════════════════════════════════════════════════════════════
# Organization-scoped lookups
# ═══════════════════════════════════════════════════════════════
def ensure_same_org(organization_id, user: User, resource: str, resource_id=None) -> None:
    """Raise NotFoundError unless the resource lives in the user's organization."""
    if organization_id is None or organization_id != user.organization_id:
        raise NotFoundError(resource=resource, resource_id=resource_id,
                            organization_id=user.organization_id)


def get_project(project_id: int, user: User) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    ensure_same_org(project.organization_id, user, "Project", project_id)
    return project


def get_module(module_id: int, user: User) -> TestModule:
    module = db.session.get(TestModule, module_id)
    if module is None:
        raise NotFoundError(resource="Module", resource_id=module_id)
    ensure_same_org(module.organization_id, user, "Module", module_id)
    return module


def get_submodule(submodule_id: int, user: User) -> TestSubmodule:
    submodule = db.session.get(TestSubmodule, submodule_id)
    if submodule is None:
        raise NotFoundError(resource="Submodule", resource_id=submodule_id)
    ensure_same_org(submodule.module.organization_id, user, "Submodule", submodule_id)
    return submodule


def get_test_case(case_id: int, user: User) -> TestCase:
    test_case = db.session.get(TestCase, case_id)
    if test_case is None:
        raise NotFoundError(resource="Test case", resource_id=case_id)
    ensure_same_org(test_case.module.organization_id, user, "Test case", case_id)
    return test_case


def get_execution(execution_id: int, user: User) -> TestExecution:
    execution = db.session.get(TestExecution, execution_id)
    if execution is None:
        raise NotFoundError(resource="Execution", resource_id=execution_id)
    ensure_same_org(execution.test_case.module.organization_id, user,
                    "Execution", execution_id)
    return execution


def get_org_user(user_id: int, user: User) -> User:
    """Load another user of the caller's organization."""
    target = db.session.get(User, user_id)
    if target is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    ensure_same_org(target.organization_id, user, "User", user_id)
    return target


# ═══════════════════════════════════════════════════════════════
# Assignment checks
# ═══════════════════════════════════════════════════════════════
def can_access_project(user: User, project: Project) -> bool:
    if project.organization_id != user.organization_id:
        return False
    if user.is_admin:
        return True
    if user in project.assigned_users:
        return True
    return any(m.project_id == project.id for m in user.assigned_modules)


def can_access_module(user: User, module: TestModule) -> bool:
    if module.organization_id != user.organization_id:
        return False
    if user.is_admin:
        return True
    if module in user.assigned_modules:
        return True
    return module.project in user.assigned_projects


def require_project_access(user: User, project: Project) -> None:
    if not can_access_project(user, project):
        logger.warning("User %d has no access to project %d", user.id, project.id)
        raise PermissionDeniedError("You are not assigned to this project")


def require_module_access(user: User, module: TestModule) -> None:
    if not can_access_module(user, module):
        logger.warning("User %d has no access to module %d", user.id, module.id)
        raise PermissionDeniedError("You are not assigned to this module")


def accessible_module_ids(user: User) -> set[int] | None:
    """Module ids the user may read; None means every module in the organization."""
    if user.is_admin:
        return None
    ids = {m.id for m in user.assigned_modules}
    for project in user.assigned_projects:
        ids.update(m.id for m in project.modules)
    return ids
