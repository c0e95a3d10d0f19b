"""
Approval chain evaluator.

Pure functions over (approval level count N, decisions so far).  Nothing
here touches the session; the request lifecycle feeds in the persisted
decision rows and acts on the returned ``ChainState``.

Rules:
    required_level = min(1 + approved_count, N)
    outcome        = REJECTED    if any decision is a rejection
                     APPROVED    once approved_count == N
                     IN_PROGRESS otherwise

Decisions only need ``level`` and ``decision`` attributes, so plain
objects work as well as ApprovalDecision rows.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.core.exceptions import DuplicateApprovalError, ValidationError, WrongLevelError
from app.models.request import (
    DECISION_APPROVED,
    DECISION_REJECTED,
    STATUS_APPROVED,
    STATUS_IN_PROGRESS,
    STATUS_REJECTED,
)
from app.models.resource import clamp_approval_levels

OUTCOME_IN_PROGRESS = STATUS_IN_PROGRESS
OUTCOME_APPROVED = STATUS_APPROVED
OUTCOME_REJECTED = STATUS_REJECTED


@dataclass(frozen=True)
class ChainState:
    """Snapshot of where an approval chain stands."""
    required_level: int
    outcome: str
    approved_count: int
    approval_levels: int

    @property
    def is_open(self) -> bool:
        return self.outcome == OUTCOME_IN_PROGRESS

    @property
    def next_is_final(self) -> bool:
        """True when an approval at ``required_level`` completes the chain."""
        return self.is_open and self.approved_count + 1 == self.approval_levels

    def to_dict(self) -> dict:
        return {
            "required_level": self.required_level,
            "outcome": self.outcome,
            "approved_count": self.approved_count,
            "approval_levels": self.approval_levels,
        }


def evaluate_chain(approval_levels, decisions) -> ChainState:
    """Derive the chain state from the decisions recorded so far."""
    n = clamp_approval_levels(approval_levels)
    approved = sum(1 for d in decisions if d.decision == DECISION_APPROVED)
    rejected = any(d.decision == DECISION_REJECTED for d in decisions)

    if rejected:
        outcome = OUTCOME_REJECTED
    elif approved >= n:
        outcome = OUTCOME_APPROVED
    else:
        outcome = OUTCOME_IN_PROGRESS

    return ChainState(
        required_level=min(1 + approved, n),
        outcome=outcome,
        approved_count=approved,
        approval_levels=n,
    )


def validate_next_decision(state: ChainState, decisions, level, *, request_id=None) -> None:
    """Check that a decision at ``level`` may be recorded next.

    Raises:
        ValidationError: level is not a positive integer within the chain.
        DuplicateApprovalError: a decision for ``level`` already exists.
        WrongLevelError: ``level`` is not the level the chain requires.
    """
    if isinstance(level, bool) or not isinstance(level, int) or level < 1:
        raise ValidationError("level must be a positive integer", details={"level": level})
    if any(d.level == level for d in decisions):
        raise DuplicateApprovalError(request_id, level)
    if level != state.required_level:
        raise WrongLevelError(request_id, level, state.required_level)


def validate_history(decisions) -> list[str]:
    """Return the ways a decision history breaks the ledger shape.

    A well-formed history has levels 1, 2, ... with no gaps, every decision
    but the last APPROVED, and a rejection only in last position.  An empty
    list means the history is valid.
    """
    problems = []
    ordered = sorted(decisions, key=lambda d: d.level)
    for expected, d in enumerate(ordered, start=1):
        if d.level != expected:
            problems.append(f"expected level {expected}, found level {d.level}")
            break
    for d in ordered[:-1]:
        if d.decision != DECISION_APPROVED:
            problems.append(f"level {d.level} is {d.decision} but is not the last decision")
    return problems
