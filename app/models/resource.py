"""
Resource Allocation Platform
Resource catalogue models.

Models:
    - ResourceTemplate: structured resource definition carrying the number
      of approval levels a request against it must collect
    - ResourcePool: finite quantity of one resource declared for a phase

A pool's identity is either a template reference or a free-form type label,
never both, and is unique within its phase.
"""

from datetime import datetime, timezone

from sqlalchemy.orm import validates

from app.models import db

# ── Constants ─────────────────────────────────────────────────────────────────

APPROVAL_LEVELS_MIN = 1
APPROVAL_LEVELS_MAX = 3


def clamp_approval_levels(value) -> int:
    """Clamp a configured approval-level count into [1, 3]."""
    try:
        levels = int(value)
    except (TypeError, ValueError):
        levels = APPROVAL_LEVELS_MIN
    return max(APPROVAL_LEVELS_MIN, min(APPROVAL_LEVELS_MAX, levels))


class ResourceTemplate(db.Model):
    """
    Structured resource definition (e.g. "Standard VM", "Object Storage").

    The field schema is owned by the template management screens; the
    request lifecycle only reads ``approval_levels``.
    """

    __tablename__ = "resource_templates"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(50), nullable=True, comment="compute | storage | network | other")
    approval_levels = db.Column(
        db.Integer,
        nullable=False,
        default=1,
        comment="Sign-offs required before a request is approved (1-3)",
    )
    field_schema = db.Column(db.JSON, nullable=False, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @validates("approval_levels")
    def _clamp_levels(self, _key, value):
        return clamp_approval_levels(value)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "approval_levels": self.approval_levels,
            "field_schema": self.field_schema or [],
            "is_active": self.is_active,
        }

    def __repr__(self) -> str:
        return f"<ResourceTemplate {self.id}: {self.name} (L{self.approval_levels})>"


class ResourcePool(db.Model):
    """
    Quantity-bounded resource declared inside a project phase.

    ``committed_qty`` is a cached counter.  It is written only through
    ``resource_ledger.write_committed`` (final approval and reconciliation)
    and must equal the summed quantity of the pool's APPROVED,
    ASSIGNED_TO_IT and COMPLETED requests.
    """

    __tablename__ = "resource_pools"

    id = db.Column(db.Integer, primary_key=True)
    phase_id = db.Column(
        db.Integer,
        db.ForeignKey("phases.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    resource_template_id = db.Column(
        db.Integer,
        db.ForeignKey("resource_templates.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    resource_type = db.Column(
        db.String(100),
        nullable=True,
        comment="Free-form type label when the pool is not template based",
    )
    identifier = db.Column(db.String(100), nullable=True, comment="Optional inventory label")
    total_qty = db.Column(db.Integer, nullable=False)
    committed_qty = db.Column(db.Integer, nullable=False, default=0)
    configuration = db.Column(db.JSON, nullable=False, default=dict)
    cost_per_unit = db.Column(db.Numeric(12, 2), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("phase_id", "resource_template_id", name="uq_pool_phase_template"),
        db.UniqueConstraint("phase_id", "resource_type", name="uq_pool_phase_type"),
        db.CheckConstraint("total_qty > 0", name="ck_pool_total_positive"),
        db.CheckConstraint("committed_qty >= 0", name="ck_pool_committed_non_negative"),
        db.CheckConstraint(
            "(resource_template_id IS NULL) <> (resource_type IS NULL)",
            name="ck_pool_single_identity",
        ),
    )

    phase = db.relationship("Phase", back_populates="pools")
    template = db.relationship("ResourceTemplate")

    @property
    def label(self) -> str:
        if self.template is not None:
            return self.template.name
        return self.resource_type or f"pool-{self.id}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "phase_id": self.phase_id,
            "resource_template_id": self.resource_template_id,
            "resource_type": self.resource_type,
            "label": self.label,
            "identifier": self.identifier,
            "total_qty": self.total_qty,
            "committed_qty": self.committed_qty,
            "configuration": self.configuration or {},
            "cost_per_unit": float(self.cost_per_unit) if self.cost_per_unit is not None else None,
        }

    def __repr__(self) -> str:
        return f"<ResourcePool {self.id}: {self.label} {self.committed_qty}/{self.total_qty}>"
