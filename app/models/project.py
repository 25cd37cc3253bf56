"""Project model — top of the test hierarchy inside an organization."""

from app.models import db
from app.models.base import OrganizationModel, iso

# User ↔ Project assignment
project_assignments = db.Table(
    "project_assignments",
    db.Column("user_id", db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    db.Column("project_id", db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True),
)


class Project(OrganizationModel):
    """Project owned by one organization; owns test modules."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(100), nullable=True)

    __table_args__ = (
        db.UniqueConstraint("organization_id", "name", name="uq_project_org_name"),
    )

    organization = db.relationship("Organization", back_populates="projects")
    modules = db.relationship(
        "TestModule", back_populates="project", lazy="select",
        cascade="all, delete-orphan",
        order_by="TestModule.id",
    )
    assigned_users = db.relationship(
        "User", secondary=project_assignments,
        back_populates="assigned_projects", lazy="select",
    )

    def to_dict(self, include_modules=False):
        d = {
            "id": self.id,
            "organization_id": self.organization_id,
            "name": self.name,
            "description": self.description,
            "created_by": self.created_by,
            "module_count": len(self.modules),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_modules:
            d["modules"] = [m.to_dict() for m in self.modules]
        return d

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"
