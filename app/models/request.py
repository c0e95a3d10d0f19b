"""
Resource Allocation Platform
Resource request lifecycle models.

Models:
    - ResourceRequest: a requester's ask for N units of a pool
    - ApprovalDecision: one sign-off (approve/reject) at one approval level

Lifecycle:
    PENDING → IN_PROGRESS → APPROVED | REJECTED
    APPROVED → ASSIGNED_TO_IT → COMPLETED

ApprovalDecision rows are APPEND-ONLY.  ``current_level`` on the request is
a denormalised copy of the approved-decision count; the approval chain state
is always recomputed from the decision rows.
"""

from datetime import datetime, timezone

from app.models import db

# ── Constants ─────────────────────────────────────────────────────────────────

STATUS_PENDING = "PENDING"
STATUS_IN_PROGRESS = "IN_PROGRESS"
STATUS_APPROVED = "APPROVED"
STATUS_REJECTED = "REJECTED"
STATUS_ASSIGNED_TO_IT = "ASSIGNED_TO_IT"
STATUS_COMPLETED = "COMPLETED"

REQUEST_STATUSES = frozenset({
    STATUS_PENDING,
    STATUS_IN_PROGRESS,
    STATUS_APPROVED,
    STATUS_REJECTED,
    STATUS_ASSIGNED_TO_IT,
    STATUS_COMPLETED,
})

# Statuses whose quantity counts against the pool.
COMMITTED_STATUSES = frozenset({STATUS_APPROVED, STATUS_ASSIGNED_TO_IT, STATUS_COMPLETED})

# No approval decision may be recorded from these.
DECIDED_STATUSES = frozenset({
    STATUS_APPROVED,
    STATUS_ASSIGNED_TO_IT,
    STATUS_COMPLETED,
    STATUS_REJECTED,
})

TERMINAL_STATUSES = frozenset({STATUS_REJECTED, STATUS_COMPLETED})

REQUEST_TRANSITIONS = {
    STATUS_PENDING:        [STATUS_IN_PROGRESS, STATUS_APPROVED, STATUS_REJECTED],
    STATUS_IN_PROGRESS:    [STATUS_IN_PROGRESS, STATUS_APPROVED, STATUS_REJECTED],
    STATUS_APPROVED:       [STATUS_ASSIGNED_TO_IT],
    STATUS_ASSIGNED_TO_IT: [STATUS_ASSIGNED_TO_IT, STATUS_COMPLETED],
    STATUS_REJECTED:       [],
    STATUS_COMPLETED:      [],
}

DECISION_APPROVED = "APPROVED"
DECISION_REJECTED = "REJECTED"
DECISIONS = frozenset({DECISION_APPROVED, DECISION_REJECTED})


def validate_request_transition(old_status, new_status):
    """Return True if ResourceRequest status transition is valid."""
    return new_status in REQUEST_TRANSITIONS.get(old_status, [])


class ResourceRequest(db.Model):
    """
    Request for a quantity of one resource pool.

    Business rules:
    - requested_qty is a positive integer (CHECK constraint as backstop).
    - Exactly one of resource_template_id / resource_type is set; pool_id is
      the pool both resolved to at submission time.
    - required_levels is snapshotted from the template at submission so a
      later template edit cannot change an in-flight chain.
    - Editable by the requester only while no level-1 approval exists.
    - Never mutated once REJECTED or COMPLETED.
    """

    __tablename__ = "resource_requests"

    id = db.Column(db.Integer, primary_key=True)
    requester_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    phase_id = db.Column(
        db.Integer,
        db.ForeignKey("phases.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    pool_id = db.Column(
        db.Integer,
        db.ForeignKey("resource_pools.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    resource_template_id = db.Column(
        db.Integer,
        db.ForeignKey("resource_templates.id", ondelete="RESTRICT"),
        nullable=True,
    )
    resource_type = db.Column(db.String(100), nullable=True)

    requested_qty = db.Column(db.Integer, nullable=False)
    requested_config = db.Column(db.JSON, nullable=False, default=dict)
    justification = db.Column(db.Text, nullable=True)

    status = db.Column(
        db.String(20),
        nullable=False,
        default=STATUS_PENDING,
        index=True,
        comment="PENDING | IN_PROGRESS | APPROVED | REJECTED | ASSIGNED_TO_IT | COMPLETED",
    )
    current_level = db.Column(db.Integer, nullable=False, default=0)
    required_levels = db.Column(db.Integer, nullable=False, default=1)
    rejection_reason = db.Column(db.Text, nullable=True)

    # Fulfillment hand-off
    routed_to_fulfillment = db.Column(db.Boolean, nullable=False, default=False)
    assigned_to_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    assigned_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completion_notes = db.Column(db.Text, nullable=True)
    credentials = db.Column(db.JSON, nullable=True, comment="Access details handed back to the requester")

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
        db.CheckConstraint("requested_qty > 0", name="ck_request_qty_positive"),
        db.Index("ix_request_pool_status", "pool_id", "status"),
    )

    requester = db.relationship("User", foreign_keys=[requester_id])
    assigned_to = db.relationship("User", foreign_keys=[assigned_to_id])
    completed_by = db.relationship("User", foreign_keys=[completed_by_id])
    phase = db.relationship("Phase")
    pool = db.relationship("ResourcePool")
    template = db.relationship("ResourceTemplate")
    decisions = db.relationship(
        "ApprovalDecision",
        back_populates="request",
        order_by="ApprovalDecision.level",
        cascade="all, delete-orphan",
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def resource_label(self) -> str:
        if self.template is not None:
            return self.template.name
        return self.resource_type or "Resource"

    def to_dict(self, include_decisions: bool = False) -> dict:
        d = {
            "id": self.id,
            "requester_id": self.requester_id,
            "requester": self.requester.display_name if self.requester else None,
            "phase_id": self.phase_id,
            "pool_id": self.pool_id,
            "resource_template_id": self.resource_template_id,
            "resource_type": self.resource_type,
            "resource_label": self.resource_label,
            "requested_qty": self.requested_qty,
            "requested_config": self.requested_config or {},
            "justification": self.justification,
            "status": self.status,
            "current_level": self.current_level,
            "required_levels": self.required_levels,
            "rejection_reason": self.rejection_reason,
            "routed_to_fulfillment": self.routed_to_fulfillment,
            "assigned_to_id": self.assigned_to_id,
            "assigned_to": self.assigned_to.display_name if self.assigned_to else None,
            "assigned_by_id": self.assigned_by_id,
            "assigned_at": self.assigned_at.isoformat() if self.assigned_at else None,
            "completed_by_id": self.completed_by_id,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "completion_notes": self.completion_notes,
            "credentials": self.credentials,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_decisions:
            d["decisions"] = [dec.to_dict() for dec in self.decisions]
        return d

    def __repr__(self) -> str:
        return f"<ResourceRequest #{self.id} qty={self.requested_qty} [{self.status}]>"


class ApprovalDecision(db.Model):
    """
    Immutable sign-off at one approval level.

    Business rules:
    - At most one decision per (request, level), enforced by a unique
      constraint so racing approvers cannot both record a level.
    - A level-L decision exists only when levels 1..L-1 are APPROVED.
    - approver_name_snapshot survives deletion of the approver's User row.
    """

    __tablename__ = "approval_decisions"

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(
        db.Integer,
        db.ForeignKey("resource_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    level = db.Column(db.Integer, nullable=False)
    decision = db.Column(db.String(20), nullable=False, comment="APPROVED | REJECTED")
    approver_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    approver_name_snapshot = db.Column(db.String(255), nullable=True)
    comments = db.Column(db.Text, nullable=True)
    decided_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("request_id", "level", name="uq_decision_request_level"),
        db.CheckConstraint("level >= 1 AND level <= 3", name="ck_decision_level_range"),
    )

    request = db.relationship("ResourceRequest", back_populates="decisions")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "level": self.level,
            "decision": self.decision,
            "approver_id": self.approver_id,
            "approver_name": self.approver_name_snapshot,
            "comments": self.comments,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
        }

    def __repr__(self) -> str:
        return f"<ApprovalDecision req={self.request_id} L{self.level} {self.decision}>"
