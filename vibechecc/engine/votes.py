"""
vibechecc.engine.votes — Vote State Machine
============================================

Each (rating, voter) pair is in exactly one state::

    NONE ──boost──▶ BOOSTED ──boost──▶ NONE
      │                │
    dampen           dampen
      ▼                ▼
    DAMPENED ◀─────────┘
      │   ──boost──▶ BOOSTED
      └── dampen ──▶ NONE

Pressing the button matching the current state retracts the vote;
pressing the other one switches it.  :data:`TRANSITIONS` lists, for every
(state, intent) pair, the target state and the ordered money steps the
vote service has to run.  No DB I/O here.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from vibechecc.database.models import VoteType


class VoteState(enum.StrEnum):
    NONE = "none"
    BOOSTED = "boosted"
    DAMPENED = "dampened"


class VoteIntent(enum.StrEnum):
    BOOST = "boost"
    DAMPEN = "dampen"


class Step(enum.StrEnum):
    """Money movements, run in the order listed by a transition."""
    REVERSE_BOOST = "reverse_boost"  # author returns the prior boost to the voter
    RESTORE_PENALTY = "restore_penalty"  # author gets the prior dampen penalty back
    SEND_BOOST = "send_boost"  # voter pays the author a fresh boost
    PENALIZE = "penalize"  # author loses a fresh dampen penalty


@dataclass(frozen=True, slots=True)
class Transition:
    source: VoteState
    intent: VoteIntent
    target: VoteState
    steps: tuple[Step, ...]
    action: str  # reported to the caller: boosted / unboosted / dampened / undampened

    @property
    def is_retraction(self) -> bool:
        return self.target is VoteState.NONE

    @property
    def is_switch(self) -> bool:
        return self.source is not VoteState.NONE and self.target is not VoteState.NONE

    @property
    def requires_funds(self) -> bool:
        """Entering BOOSTED: the voter must afford the boost."""
        return Step.SEND_BOOST in self.steps

    @property
    def requires_dampen_gates(self) -> bool:
        """Entering DAMPENED: daily quota and author protection apply."""
        return Step.PENALIZE in self.steps


TRANSITIONS: dict[tuple[VoteState, VoteIntent], Transition] = {
    (VoteState.NONE, VoteIntent.BOOST): Transition(
        VoteState.NONE, VoteIntent.BOOST, VoteState.BOOSTED,
        (Step.SEND_BOOST,), "boosted",
    ),
    (VoteState.BOOSTED, VoteIntent.BOOST): Transition(
        VoteState.BOOSTED, VoteIntent.BOOST, VoteState.NONE,
        (Step.REVERSE_BOOST,), "unboosted",
    ),
    (VoteState.DAMPENED, VoteIntent.BOOST): Transition(
        VoteState.DAMPENED, VoteIntent.BOOST, VoteState.BOOSTED,
        (Step.RESTORE_PENALTY, Step.SEND_BOOST), "boosted",
    ),
    (VoteState.NONE, VoteIntent.DAMPEN): Transition(
        VoteState.NONE, VoteIntent.DAMPEN, VoteState.DAMPENED,
        (Step.PENALIZE,), "dampened",
    ),
    (VoteState.BOOSTED, VoteIntent.DAMPEN): Transition(
        VoteState.BOOSTED, VoteIntent.DAMPEN, VoteState.DAMPENED,
        (Step.REVERSE_BOOST, Step.PENALIZE), "dampened",
    ),
    (VoteState.DAMPENED, VoteIntent.DAMPEN): Transition(
        VoteState.DAMPENED, VoteIntent.DAMPEN, VoteState.NONE,
        (Step.RESTORE_PENALTY,), "undampened",
    ),
}


_STATE_BY_VOTE_TYPE: dict[str, VoteState] = {
    VoteType.BOOST.value: VoteState.BOOSTED,
    VoteType.DAMPEN.value: VoteState.DAMPENED,
}

_VOTE_TYPE_BY_STATE: dict[VoteState, VoteType] = {
    VoteState.BOOSTED: VoteType.BOOST,
    VoteState.DAMPENED: VoteType.DAMPEN,
}


def state_for(vote_type: str | None) -> VoteState:
    """Map a stored ``rating_votes.vote_type`` (or no row) to a state."""
    if vote_type is None:
        return VoteState.NONE
    return _STATE_BY_VOTE_TYPE[str(vote_type)]


def vote_type_for(state: VoteState) -> VoteType | None:
    """Inverse of :func:`state_for`; NONE has no stored row."""
    return _VOTE_TYPE_BY_STATE.get(VoteState(state))


def plan_transition(current: VoteState, intent: VoteIntent | str) -> Transition:
    """Look up the transition for *intent* from *current*.

    Raises
    ------
    ValueError
        If *intent* is not ``boost`` or ``dampen``.
    """
    try:
        key = (VoteState(current), VoteIntent(intent))
    except ValueError:
        raise ValueError(f"Unknown vote intent {intent!r}") from None
    return TRANSITIONS[key]
