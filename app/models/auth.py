"""
Resource Allocation Platform
Identity models consumed by the request lifecycle.

Models:
    - Department: organisational unit (operations, approval or admin)
    - User: platform user with a single role flag

User management itself (registration, invitations, passwords) lives outside
this service; these tables only carry what the approval chain and the
fulfillment hand-off need to authorise a caller.
"""

from datetime import datetime, timezone

from app.models import db

# ── Constants ─────────────────────────────────────────────────────────────────

UNIT_TYPES = frozenset({"operations", "approval", "admin"})

USER_ROLES = frozenset({
    "member",
    "department_head",
    "it_head",
    "it_team",
    "admin",
})

# Highest approval level each role may sign off.
ROLE_APPROVAL_LEVEL = {
    "department_head": 1,
    "it_head": 2,
    "admin": 3,
}

FULFILLMENT_ROLES = frozenset({"admin", "it_head", "it_team"})

# Roles that approve or execute and therefore cannot be handed a task.
NON_ASSIGNABLE_ROLES = frozenset({"department_head", "it_head", "it_team", "admin"})


class Department(db.Model):
    """Organisational unit a user belongs to."""

    __tablename__ = "departments"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False, unique=True)
    unit_type = db.Column(
        db.String(20),
        nullable=False,
        default="operations",
        comment="operations | approval | admin",
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    members = db.relationship("User", back_populates="department", lazy="dynamic")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "unit_type": self.unit_type,
        }

    def __repr__(self) -> str:
        return f"<Department {self.id}: {self.name} [{self.unit_type}]>"


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), nullable=False, unique=True)
    full_name = db.Column(db.String(200))
    user_role = db.Column(
        db.String(30),
        nullable=False,
        default="member",
        comment="member | department_head | it_head | it_team | admin",
    )
    department_id = db.Column(
        db.Integer,
        db.ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    department = db.relationship("Department", back_populates="members")

    @property
    def display_name(self) -> str:
        return self.full_name or self.email

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "user_role": self.user_role,
            "department_id": self.department_id,
            "department": self.department.name if self.department else None,
            "is_active": self.is_active,
        }

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.email} [{self.user_role}]>"
