"""
TCM Platform
Test hierarchy and execution models.

Models:
    - TestModule:      grouping of submodules inside a project; users are assigned here
    - TestSubmodule:   suite of test cases inside a module
    - TestCase:        individual test case with a human-readable case code
    - TestStep:        ordered step (1..N) within a test case
    - TestExecution:   one attempt to run a test case, optionally assigned to a user
    - TestStepResult:  per-step outcome inside an execution

Architecture ref:
    Project ──1:N──▶ TestModule ──1:N──▶ TestSubmodule ──1:N──▶ TestCase
    TestCase ──1:N──▶ TestStep
    TestCase ──1:N──▶ TestExecution ──1:N──▶ TestStepResult ──N:1──▶ TestStep
    TestModule ──N:M──▶ User (module_assignments)

Deleting any node drains its subtree through the ORM cascades below; the
ondelete="CASCADE" foreign keys give the same guarantee for bulk SQL deletes.
"""

from app.models import db
from app.models.base import iso, utcnow


# ── Constants ────────────────────────────────────────────────────────────

EXECUTION_RESULTS = {
    "PENDING", "PASSED", "FAILED", "BLOCKED", "PARTIALLY_PASSED",
}

# Results that count an execution as completed
COMPLETED_RESULTS = {"PASSED", "FAILED", "BLOCKED", "PARTIALLY_PASSED"}

EXECUTION_STATUSES = {"PENDING", "IN_PROGRESS", "COMPLETED"}

STEP_STATUSES = {"PENDING", "PASSED", "FAILED", "BLOCKED", "NOT_EXECUTED"}

# Statuses a user may record on a step
STEP_UPDATE_STATUSES = {"PASSED", "FAILED", "BLOCKED", "PENDING"}

TEST_CASE_PRIORITIES = {"LOW", "MEDIUM", "HIGH", "CRITICAL"}


# User ↔ Module assignment
module_assignments = db.Table(
    "module_assignments",
    db.Column("user_id", db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    db.Column("module_id", db.Integer, db.ForeignKey("test_modules.id", ondelete="CASCADE"), primary_key=True),
)


# ═════════════════════════════════════════════════════════════════════════════
# TEST MODULE
# ═════════════════════════════════════════════════════════════════════════════

class TestModule(db.Model):
    """Functional area of a project (e.g. "Training Market")."""

    __tablename__ = "test_modules"
    __test__ = False  # not a pytest class

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    project = db.relationship("Project", back_populates="modules")
    submodules = db.relationship(
        "TestSubmodule", back_populates="module", lazy="select",
        cascade="all, delete-orphan", order_by="TestSubmodule.id",
    )
    assigned_users = db.relationship(
        "User", secondary=module_assignments,
        back_populates="assigned_modules", lazy="select",
    )

    @property
    def organization_id(self):
        return self.project.organization_id if self.project else None

    def test_cases(self):
        """All test cases of the module, ordered by submodule then id."""
        return [tc for sm in self.submodules for tc in sm.test_cases]

    def to_dict(self, include_submodules=False):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "project_name": self.project.name if self.project else None,
            "name": self.name,
            "description": self.description,
            "submodule_count": len(self.submodules),
            "assigned_user_count": len(self.assigned_users),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_submodules:
            d["submodules"] = [sm.to_dict(include_test_cases=True) for sm in self.submodules]
        return d

    def __repr__(self):
        return f"<TestModule {self.id}: {self.name}>"


# ═════════════════════════════════════════════════════════════════════════════
# TEST SUBMODULE (suite)
# ═════════════════════════════════════════════════════════════════════════════

class TestSubmodule(db.Model):
    """Suite of related test cases within a module."""

    __tablename__ = "test_submodules"
    __test__ = False  # not a pytest class

    id = db.Column(db.Integer, primary_key=True)
    module_id = db.Column(
        db.Integer, db.ForeignKey("test_modules.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    module = db.relationship("TestModule", back_populates="submodules")
    test_cases = db.relationship(
        "TestCase", back_populates="submodule", lazy="select",
        cascade="all, delete-orphan", order_by="TestCase.id",
    )

    def to_dict(self, include_test_cases=False):
        d = {
            "id": self.id,
            "module_id": self.module_id,
            "name": self.name,
            "description": self.description,
            "test_case_count": len(self.test_cases),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_test_cases:
            d["test_cases"] = [tc.to_dict() for tc in self.test_cases]
        return d

    def __repr__(self):
        return f"<TestSubmodule {self.id}: {self.name}>"


# ═════════════════════════════════════════════════════════════════════════════
# TEST CASE
# ═════════════════════════════════════════════════════════════════════════════

class TestCase(db.Model):
    """
    Individual test case.

    ``test_case_id`` is the business code shown to users (e.g. "TRM-TS-01");
    it is unique within a module.
    """

    __tablename__ = "test_cases"
    __test__ = False  # not a pytest class

    id = db.Column(db.Integer, primary_key=True)
    submodule_id = db.Column(
        db.Integer, db.ForeignKey("test_submodules.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    test_case_id = db.Column(db.String(100), nullable=False, comment="Business case code")
    title = db.Column(db.String(500), nullable=False)
    description = db.Column(db.Text, default="")
    priority = db.Column(
        db.String(20), default="MEDIUM",
        comment="LOW | MEDIUM | HIGH | CRITICAL",
    )
    prerequisites = db.Column(db.Text, default="")
    expected_result = db.Column(db.Text, default="")
    tags = db.Column(db.String(500), default="")
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    submodule = db.relationship("TestSubmodule", back_populates="test_cases")
    steps = db.relationship(
        "TestStep", back_populates="test_case", lazy="select",
        cascade="all, delete-orphan", order_by="TestStep.step_number",
    )
    executions = db.relationship(
        "TestExecution", back_populates="test_case", lazy="select",
        cascade="all, delete-orphan", order_by="TestExecution.id",
    )

    @property
    def module(self):
        return self.submodule.module if self.submodule else None

    def to_dict(self, include_steps=False):
        sm = self.submodule
        module = sm.module if sm else None
        d = {
            "id": self.id,
            "test_case_id": self.test_case_id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "prerequisites": self.prerequisites,
            "expected_result": self.expected_result,
            "tags": self.tags,
            "submodule_id": self.submodule_id,
            "submodule_name": sm.name if sm else None,
            "module_id": module.id if module else None,
            "module_name": module.name if module else None,
            "project_id": module.project_id if module else None,
            "step_count": len(self.steps),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_steps:
            d["steps"] = [s.to_dict() for s in self.steps]
        return d

    def __repr__(self):
        return f"<TestCase {self.id}: {self.test_case_id}>"


# ═════════════════════════════════════════════════════════════════════════════
# TEST STEP
# ═════════════════════════════════════════════════════════════════════════════

class TestStep(db.Model):
    """Atomic step within a test case."""

    __tablename__ = "test_steps"
    __test__ = False  # not a pytest class

    id = db.Column(db.Integer, primary_key=True)
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("test_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    step_number = db.Column(db.Integer, nullable=False, comment="Sequential step number from 1")
    action = db.Column(db.Text, nullable=False, comment="Action to perform")
    expected_result = db.Column(db.Text, default="", comment="Expected outcome")

    test_case = db.relationship("TestCase", back_populates="steps")
    step_results = db.relationship(
        "TestStepResult", back_populates="test_step", lazy="select",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "test_case_id": self.test_case_id,
            "step_number": self.step_number,
            "action": self.action,
            "expected_result": self.expected_result,
        }

    def __repr__(self):
        return f"<TestStep {self.id}: case#{self.test_case_id} step#{self.step_number}>"


# ═════════════════════════════════════════════════════════════════════════════
# TEST EXECUTION
# ═════════════════════════════════════════════════════════════════════════════

class TestExecution(db.Model):
    """
    One attempt to run a test case.

    ``overall_result`` carries the outcome (PENDING until completed) and
    ``status`` the workflow position (PENDING → IN_PROGRESS → COMPLETED).
    """

    __tablename__ = "test_executions"
    __test__ = False  # not a pytest class

    id = db.Column(db.Integer, primary_key=True)
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("test_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    assigned_to_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    execution_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    overall_result = db.Column(
        db.String(20), nullable=False, default="PENDING",
        comment="PENDING | PASSED | FAILED | BLOCKED | PARTIALLY_PASSED",
    )
    status = db.Column(
        db.String(20), nullable=False, default="PENDING",
        comment="PENDING | IN_PROGRESS | COMPLETED",
    )
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    completion_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, default="")
    duration = db.Column(db.Integer, nullable=True, comment="Execution time in minutes")
    environment = db.Column(db.String(100), nullable=True)
    executed_by = db.Column(db.String(100), nullable=True, comment="Username of the executor")
    bug_report_subject = db.Column(db.String(500), nullable=True)
    bug_report_description = db.Column(db.Text, nullable=True)
    redmine_issue_url = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    test_case = db.relationship("TestCase", back_populates="executions")
    assigned_to_user = db.relationship("User")
    step_results = db.relationship(
        "TestStepResult", back_populates="execution", lazy="select",
        cascade="all, delete-orphan", order_by="TestStepResult.step_number",
    )

    @property
    def is_completed(self):
        return self.overall_result in COMPLETED_RESULTS

    def to_dict(self, include_step_results=True):
        tc = self.test_case
        sm = tc.submodule if tc else None
        module = sm.module if sm else None
        project = module.project if module else None
        d = {
            "id": self.id,
            "test_case_id": self.test_case_id,
            "test_case_code": tc.test_case_id if tc else None,
            "title": tc.title if tc else None,
            "description": tc.description if tc else None,
            "submodule_id": sm.id if sm else None,
            "submodule_name": sm.name if sm else None,
            "module_id": module.id if module else None,
            "module_name": module.name if module else None,
            "project_id": project.id if project else None,
            "project_name": project.name if project else None,
            "execution_date": iso(self.execution_date),
            "overall_result": self.overall_result,
            "status": self.status,
            "notes": self.notes,
            "duration": self.duration,
            "environment": self.environment,
            "executed_by": self.executed_by,
            "start_date": iso(self.start_date),
            "completion_date": iso(self.completion_date),
            "assigned_to_user": self.assigned_to_user.to_summary() if self.assigned_to_user else None,
            "bug_report_subject": self.bug_report_subject,
            "bug_report_description": self.bug_report_description,
            "redmine_issue_url": self.redmine_issue_url,
        }
        if include_step_results:
            d["step_results"] = [sr.to_dict() for sr in self.step_results]
        return d

    def __repr__(self):
        return f"<TestExecution {self.id}: case#{self.test_case_id} → {self.overall_result}>"


# ═════════════════════════════════════════════════════════════════════════════
# TEST STEP RESULT
# ═════════════════════════════════════════════════════════════════════════════

class TestStepResult(db.Model):
    """Outcome of one step within an execution."""

    __tablename__ = "test_step_results"
    __test__ = False  # not a pytest class

    id = db.Column(db.Integer, primary_key=True)
    execution_id = db.Column(
        db.Integer, db.ForeignKey("test_executions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    test_step_id = db.Column(
        db.Integer, db.ForeignKey("test_steps.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    step_number = db.Column(db.Integer, nullable=False, comment="Mirrors TestStep.step_number")
    status = db.Column(
        db.String(20), nullable=False, default="PENDING",
        comment="PENDING | PASSED | FAILED | BLOCKED | NOT_EXECUTED",
    )
    actual_result = db.Column(db.Text, default="")

    execution = db.relationship("TestExecution", back_populates="step_results")
    test_step = db.relationship("TestStep", back_populates="step_results")

    def to_dict(self):
        step = self.test_step
        return {
            "id": self.id,
            "execution_id": self.execution_id,
            "step_id": self.test_step_id,
            "step_number": self.step_number,
            "action": step.action if step else None,
            "expected_result": step.expected_result if step else None,
            "status": self.status,
            "actual_result": self.actual_result,
        }

    def __repr__(self):
        return f"<TestStepResult {self.id}: exec#{self.execution_id} step#{self.step_number} → {self.status}>"
