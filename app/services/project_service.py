"""Project CRUD and assignment service with strict organization ownership checks."""

from __future__ import annotations

import logging

from app.core.exceptions import ConflictError, ValidationError
from app.models import db
from app.models.auth import User
from app.models.project import Project
from app.services import access_service
from app.utils.helpers import clean_str

logger = logging.getLogger(__name__)


def list_projects(user: User) -> list[Project]:
    """ADMIN: every project in the organization; others: assigned directly or via a module."""
    query = Project.query_for_organization(user.organization_id)
    if user.is_admin:
        return query.order_by(Project.name.asc()).all()

    ids = {p.id for p in user.assigned_projects}
    ids.update(m.project_id for m in user.assigned_modules)
    if not ids:
        return []
    return query.filter(Project.id.in_(ids)).order_by(Project.name.asc()).all()


def list_assigned_projects(user: User) -> list[Project]:
    """Projects directly assigned to ``user``."""
    return sorted(
        (p for p in user.assigned_projects if p.organization_id == user.organization_id),
        key=lambda p: p.name,
    )


def _check_unique_name(organization_id: int, name: str, exclude_id: int | None = None) -> None:
    query = Project.query_for_organization(organization_id).filter(Project.name == name)
    if exclude_id is not None:
        query = query.filter(Project.id != exclude_id)
    if query.first():
        raise ConflictError(resource="Project", field="name", value=name)


def create_project(user: User, data: dict) -> Project:
    """Create a project in the user's organization."""
    name = clean_str(data.get("name"))
    if not name:
        raise ValidationError("Project name is required", details={"name": "required"})
    _check_unique_name(user.organization_id, name)

    project = Project(
        organization_id=user.organization_id,
        name=name,
        description=clean_str(data.get("description"), ""),
        created_by=user.username,
    )
    db.session.add(project)
    db.session.flush()
    logger.info("Project %d '%s' created by user %d", project.id, name, user.id)
    return project


def update_project(project: Project, data: dict) -> Project:
    if "name" in data:
        name = clean_str(data.get("name"))
        if not name:
            raise ValidationError("Project name cannot be empty", details={"name": "required"})
        _check_unique_name(project.organization_id, name, exclude_id=project.id)
        project.name = name
    if "description" in data:
        project.description = clean_str(data.get("description"), "")
    db.session.flush()
    return project


def delete_project(project: Project) -> None:
    """Delete a project and drain its modules, submodules, cases and executions."""
    logger.info("Deleting project %d '%s' with %d modules",
                project.id, project.name, len(project.modules))
    project.assigned_users.clear()
    db.session.delete(project)
    db.session.flush()


# ═══════════════════════════════════════════════════════════════
# Assignments
# ═══════════════════════════════════════════════════════════════
def assign_user(admin: User, user_id: int, project_id: int) -> tuple[Project, User, bool]:
    """Assign a user to a project. Idempotent; returns (project, user, created)."""
    project = access_service.get_project(project_id, admin)
    target = access_service.get_org_user(user_id, admin)
    if target in project.assigned_users:
        return project, target, False
    project.assigned_users.append(target)
    db.session.flush()
    logger.info("User %d assigned to project %d", target.id, project.id)
    return project, target, True


def unassign_user(admin: User, user_id: int, project_id: int) -> bool:
    project = access_service.get_project(project_id, admin)
    target = access_service.get_org_user(user_id, admin)
    if target not in project.assigned_users:
        return False
    project.assigned_users.remove(target)
    db.session.flush()
    logger.info("User %d removed from project %d", target.id, project.id)
    return True
