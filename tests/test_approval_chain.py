"""
Approval chain evaluator tests.

Pure functions only: decisions are plain namespaces, nothing touches the DB.
"""

from types import SimpleNamespace

import pytest

from app.core.exceptions import DuplicateApprovalError, ValidationError, WrongLevelError
from app.models.resource import clamp_approval_levels
from app.services.approval_chain import (
    OUTCOME_APPROVED,
    OUTCOME_IN_PROGRESS,
    OUTCOME_REJECTED,
    evaluate_chain,
    validate_history,
    validate_next_decision,
)


def _dec(level, decision="APPROVED"):
    return SimpleNamespace(level=level, decision=decision)


class TestEvaluateChain:
    def test_empty_chain_requires_level_one(self):
        state = evaluate_chain(2, [])
        assert state.required_level == 1
        assert state.outcome == OUTCOME_IN_PROGRESS
        assert state.approved_count == 0
        assert state.is_open
        assert not state.next_is_final

    def test_single_level_chain_first_approval_is_final(self):
        assert evaluate_chain(1, []).next_is_final

    def test_partial_approval_advances_level(self):
        state = evaluate_chain(2, [_dec(1)])
        assert state.required_level == 2
        assert state.outcome == OUTCOME_IN_PROGRESS
        assert state.next_is_final

    def test_all_levels_approved(self):
        state = evaluate_chain(2, [_dec(1), _dec(2)])
        assert state.outcome == OUTCOME_APPROVED
        assert state.required_level == 2
        assert not state.is_open

    def test_rejection_wins(self):
        state = evaluate_chain(3, [_dec(1), _dec(2, "REJECTED")])
        assert state.outcome == OUTCOME_REJECTED
        assert not state.is_open
        assert not state.next_is_final

    @pytest.mark.parametrize("configured,expected", [(0, 1), (-2, 1), (7, 3), ("2", 2), (None, 1)])
    def test_level_count_is_clamped(self, configured, expected):
        assert evaluate_chain(configured, []).approval_levels == expected
        assert clamp_approval_levels(configured) == expected

    def test_to_dict(self):
        assert evaluate_chain(3, [_dec(1)]).to_dict() == {
            "required_level": 2,
            "outcome": "IN_PROGRESS",
            "approved_count": 1,
            "approval_levels": 3,
        }


class TestValidateNextDecision:
    def test_required_level_accepted(self):
        decisions = [_dec(1)]
        validate_next_decision(evaluate_chain(2, decisions), decisions, 2, request_id=9)

    def test_duplicate_checked_before_wrong_level(self):
        decisions = [_dec(1)]
        with pytest.raises(DuplicateApprovalError) as exc:
            validate_next_decision(evaluate_chain(2, decisions), decisions, 1, request_id=9)
        assert exc.value.level == 1

    def test_skipping_a_level(self):
        with pytest.raises(WrongLevelError) as exc:
            validate_next_decision(evaluate_chain(3, []), [], 2, request_id=9)
        assert exc.value.required_level == 1
        assert exc.value.details == {"level": 2, "required_level": 1}

    @pytest.mark.parametrize("level", [0, -1, "1", None, True, 1.0])
    def test_level_must_be_positive_int(self, level):
        with pytest.raises(ValidationError):
            validate_next_decision(evaluate_chain(2, []), [], level)


class TestValidateHistory:
    def test_well_formed_histories(self):
        assert validate_history([]) == []
        assert validate_history([_dec(2), _dec(1)]) == []
        assert validate_history([_dec(1), _dec(2, "REJECTED")]) == []

    def test_gap_in_levels(self):
        problems = validate_history([_dec(1), _dec(3)])
        assert problems == ["expected level 2, found level 3"]

    def test_history_not_starting_at_one(self):
        assert validate_history([_dec(2)]) == ["expected level 1, found level 2"]

    def test_rejection_must_be_last(self):
        problems = validate_history([_dec(1, "REJECTED"), _dec(2)])
        assert len(problems) == 1
        assert "level 1 is REJECTED" in problems[0]
