"""
tests/test_vote_state_machine.py — Vote Transition Table Tests
===============================================================
"""

from __future__ import annotations

import pytest

from vibechecc.database.models import VoteType
from vibechecc.engine.votes import (
    TRANSITIONS,
    Step,
    VoteIntent,
    VoteState,
    plan_transition,
    state_for,
    vote_type_for,
)


class TestTransitionTable:
    def test_every_state_intent_pair_is_defined(self):
        assert len(TRANSITIONS) == len(VoteState) * len(VoteIntent)

    @pytest.mark.parametrize(
        "current, intent, target, steps, action",
        [
            (VoteState.NONE, VoteIntent.BOOST, VoteState.BOOSTED,
             (Step.SEND_BOOST,), "boosted"),
            (VoteState.BOOSTED, VoteIntent.BOOST, VoteState.NONE,
             (Step.REVERSE_BOOST,), "unboosted"),
            (VoteState.DAMPENED, VoteIntent.BOOST, VoteState.BOOSTED,
             (Step.RESTORE_PENALTY, Step.SEND_BOOST), "boosted"),
            (VoteState.NONE, VoteIntent.DAMPEN, VoteState.DAMPENED,
             (Step.PENALIZE,), "dampened"),
            (VoteState.BOOSTED, VoteIntent.DAMPEN, VoteState.DAMPENED,
             (Step.REVERSE_BOOST, Step.PENALIZE), "dampened"),
            (VoteState.DAMPENED, VoteIntent.DAMPEN, VoteState.NONE,
             (Step.RESTORE_PENALTY,), "undampened"),
        ],
    )
    def test_transition(self, current, intent, target, steps, action):
        plan = plan_transition(current, intent)
        assert plan.target is target
        assert plan.steps == steps
        assert plan.action == action

    def test_pressing_same_button_retracts(self):
        assert plan_transition(VoteState.BOOSTED, "boost").is_retraction
        assert plan_transition(VoteState.DAMPENED, "dampen").is_retraction
        assert not plan_transition(VoteState.NONE, "boost").is_retraction

    def test_switch_detection(self):
        assert plan_transition(VoteState.BOOSTED, VoteIntent.DAMPEN).is_switch
        assert plan_transition(VoteState.DAMPENED, VoteIntent.BOOST).is_switch
        assert not plan_transition(VoteState.NONE, VoteIntent.DAMPEN).is_switch
        assert not plan_transition(VoteState.BOOSTED, VoteIntent.BOOST).is_switch

    def test_only_entering_boosted_needs_funds(self):
        needs_funds = {key for key, t in TRANSITIONS.items() if t.requires_funds}
        assert needs_funds == {
            (VoteState.NONE, VoteIntent.BOOST),
            (VoteState.DAMPENED, VoteIntent.BOOST),
        }

    def test_only_entering_dampened_is_gated(self):
        gated = {key for key, t in TRANSITIONS.items() if t.requires_dampen_gates}
        assert gated == {
            (VoteState.NONE, VoteIntent.DAMPEN),
            (VoteState.BOOSTED, VoteIntent.DAMPEN),
        }

    def test_reversal_runs_before_new_money(self):
        """A switch always undoes the prior vote's transfer first."""
        for plan in TRANSITIONS.values():
            if plan.is_switch:
                assert plan.steps[0] in (Step.REVERSE_BOOST, Step.RESTORE_PENALTY)

    def test_unknown_intent_rejected(self):
        with pytest.raises(ValueError, match="Unknown vote intent"):
            plan_transition(VoteState.NONE, "superlike")


class TestStoredVoteMapping:
    def test_no_row_is_none_state(self):
        assert state_for(None) is VoteState.NONE

    def test_round_trip_through_vote_type(self):
        assert state_for("boost") is VoteState.BOOSTED
        assert state_for(VoteType.DAMPEN) is VoteState.DAMPENED
        assert vote_type_for(VoteState.BOOSTED) is VoteType.BOOST
        assert vote_type_for(VoteState.DAMPENED) is VoteType.DAMPEN

    def test_none_state_has_no_vote_type(self):
        assert vote_type_for(VoteState.NONE) is None
