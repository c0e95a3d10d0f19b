"""Project -> Phase hierarchy that resource pools are declared against."""

from datetime import datetime, timezone

from app.models import db


class Project(db.Model):
    """Client engagement that owns one or more phases."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    client = db.Column(db.String(200), nullable=True)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(30), nullable=False, default="active")
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    phases = db.relationship(
        "Phase", back_populates="project", lazy="dynamic",
        cascade="all, delete-orphan", order_by="Phase.order",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "client": self.client,
            "status": self.status,
        }

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.name}>"


class Phase(db.Model):
    """Time-boxed stage of a project; resource pools are scoped to a phase."""

    __tablename__ = "phases"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    order = db.Column(db.Integer, nullable=False, default=1)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    project = db.relationship("Project", back_populates="phases")
    pools = db.relationship("ResourcePool", back_populates="phase", lazy="dynamic")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "project": self.project.name if self.project else None,
            "name": self.name,
            "order": self.order,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }

    def __repr__(self) -> str:
        return f"<Phase {self.id}: {self.name}>"
