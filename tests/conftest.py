"""
Shared pytest fixtures for the TCM Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - organization / other_organization: Pre-created organizations
    - admin_user, qa_user, ba_user, tester_user, other_admin: users with roles
    - *_headers: JWT Authorization headers for those users
    - tree: project → module → submodule → test case (2 steps), committed
"""

import pytest

from app import create_app
from app.models import db as _db
from app.models.auth import ROLE_ADMIN, ROLE_BA, ROLE_QA, ROLE_TESTER, Organization
from app.models.project import Project
from app.models.testing import TestCase, TestModule, TestStep, TestSubmodule
from app.services.jwt_service import generate_access_token
from app.services.user_service import create_user, ensure_system_roles

PASSWORD = "Secret123!"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        ensure_system_roles()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Organizations & users ────────────────────────────────────────────────


def make_user(organization, username, *roles):
    user = create_user(
        organization_id=organization.id,
        username=username,
        email=f"{username}@example.com",
        password=PASSWORD,
        role_names=list(roles),
        full_name=username.title(),
    )
    _db.session.commit()
    return user


def bearer(user) -> dict:
    token = generate_access_token(user.id, user.organization_id, user.role_names)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def organization():
    org = Organization(name="Acme QA", domain="example.com")
    _db.session.add(org)
    _db.session.commit()
    return org


@pytest.fixture()
def other_organization():
    org = Organization(name="Globex")
    _db.session.add(org)
    _db.session.commit()
    return org


@pytest.fixture()
def admin_user(organization):
    return make_user(organization, "alice", ROLE_ADMIN)


@pytest.fixture()
def qa_user(organization):
    return make_user(organization, "quinn", ROLE_QA)


@pytest.fixture()
def ba_user(organization):
    return make_user(organization, "bob", ROLE_BA)


@pytest.fixture()
def tester_user(organization):
    return make_user(organization, "terry", ROLE_TESTER)


@pytest.fixture()
def other_admin(other_organization):
    return make_user(other_organization, "olga", ROLE_ADMIN)


@pytest.fixture()
def admin_headers(admin_user):
    return bearer(admin_user)


@pytest.fixture()
def qa_headers(qa_user):
    return bearer(qa_user)


@pytest.fixture()
def ba_headers(ba_user):
    return bearer(ba_user)


@pytest.fixture()
def tester_headers(tester_user):
    return bearer(tester_user)


@pytest.fixture()
def other_headers(other_admin):
    return bearer(other_admin)


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def tree(organization, admin_user):
    """
    Committed hierarchy inside ``organization``:
    project "Payments" → module "Checkout" → submodule "Cart" →
    case "TC-001" with two steps.
    """
    project = Project(organization_id=organization.id, name="Payments", created_by="alice")
    module = TestModule(project=project, name="Checkout", description="")
    submodule = TestSubmodule(module=module, name="Cart", description="")
    case = TestCase(submodule=submodule, test_case_id="TC-001", title="Add item", priority="HIGH")
    case.steps = [
        TestStep(step_number=1, action="Open cart", expected_result="Cart is shown"),
        TestStep(step_number=2, action="Add item", expected_result="Item listed"),
    ]
    _db.session.add(project)
    _db.session.commit()
    return {
        "project": project,
        "module": module,
        "submodule": submodule,
        "case": case,
    }


@pytest.fixture()
def user_factory(organization):
    """Create extra users in ``organization``: ``user_factory("dana", ROLE_QA)``."""
    def _make(username, *roles):
        return make_user(organization, username, *roles)
    return _make


@pytest.fixture()
def headers_for():
    """JWT headers for an arbitrary user."""
    return bearer
