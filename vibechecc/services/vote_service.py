"""
vibechecc.services.vote_service — Boost / Dampen Entry Points
==============================================================

One generic :func:`apply_vote` drives every vote transition;
:func:`boost` and :func:`dampen` are thin callers that shape the result.

A transition runs as a single database transaction:

1. Validate the caller, the rating, and that the voter isn't the author.
2. Lock both ledgers (ascending ``user_id``) and the existing vote row.
3. Plan the transition from :data:`vibechecc.engine.votes.TRANSITIONS`.
4. Check every precondition (funds for a boost, dampen quota, author
   protection) **before** writing anything.
5. Run the planned money steps through the transfer service.
6. Insert, switch or delete the vote row and refresh the rating's
   aggregates.

Any error rolls the whole unit back.  Notifications go out only after
commit.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vibechecc import constants as c
from vibechecc.database.engine import get_session, run_in_transaction
from vibechecc.database.models import Rating, RatingVote, UserPoints
from vibechecc.engine.karma import KarmaAction
from vibechecc.engine.transfer import boost_amount, dampen_penalty, is_protected
from vibechecc.engine.votes import (
    Step,
    Transition,
    VoteIntent,
    VoteState,
    plan_transition,
    state_for,
    vote_type_for,
)
from vibechecc.errors import (
    InsufficientFundsError,
    NotAuthenticatedError,
    ProtectedTargetError,
    RateLimitedError,
    RatingNotFoundError,
    SelfVoteError,
    TransactionConflictError,
)
from vibechecc.services import notification_service, score_service
from vibechecc.services.ledger_service import lock_ledgers, update_karma
from vibechecc.services.score_service import VoteScore
from vibechecc.services.transfer_service import TransferKind, transfer

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from vibechecc.engine.cache import ConfigCache

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------
@dataclass
class VoteOutcome:
    """Everything :func:`apply_vote` did, for callers and notifications."""

    rating_id: int
    voter_id: str
    author_id: str
    intent: VoteIntent
    action: str
    state: VoteState
    points: int
    message: str
    score: VoteScore = field(default_factory=VoteScore)


@dataclass
class BoostResult:
    boosted: bool
    action: str
    points_transferred: int
    message: str


@dataclass
class DampenResult:
    dampened: bool
    action: str
    points_penalized: int
    message: str


@dataclass(frozen=True, slots=True)
class VoterStatus:
    vote_type: str | None = None

    @property
    def boosted(self) -> bool:
        return self.vote_type == "boost"

    @property
    def dampened(self) -> bool:
        return self.vote_type == "dampen"


_MESSAGES: dict[tuple[str, bool], str] = {
    ("boosted", False): "Boosted! Sent {n} VP to rating author",
    ("boosted", True): "Switched to boost! Sent {n} VP to rating author",
    ("unboosted", False): "Unboosted! Reclaimed {n} VP",
    ("dampened", False): "Dampened! Removed {n} VP from rating author",
    ("dampened", True): "Switched to dampen! Removed {n} VP from rating author",
    ("undampened", False): "Undampened! Restored {n} VP to rating author",
}


# ---------------------------------------------------------------------------
# Transition internals
# ---------------------------------------------------------------------------
def _lock_vote(session: Session, rating_id: int, voter_id: str) -> RatingVote | None:
    return session.scalar(
        select(RatingVote)
        .where(RatingVote.rating_id == rating_id, RatingVote.user_id == voter_id)
        .with_for_update()
    )


def check_dampen_gates(
    voter: UserPoints,
    author: UserPoints,
    cache: ConfigCache | None,
) -> None:
    limit = c.MAX_DAMPEN_PER_DAY
    if cache is not None:
        limit = cache.get_int("limits.max_dampen_per_day", limit)
    if voter.daily_dampen_count >= limit:
        logger.warning("Dampen refused for %s: daily limit %d reached", voter.user_id, limit)
        raise RateLimitedError(limit)

    if is_protected(
        author.current_balance,
        author.protected_points,
        author.created_at,
        cache=cache,
    ):
        logger.warning("Dampen refused: %s is protected", author.user_id)
        raise ProtectedTargetError()


def record_dampen(
    voter: UserPoints,
    author: UserPoints,
    cache: ConfigCache | None,
) -> None:
    """Count a dampen against the voter's daily quota and adjust both karmas."""
    voter.daily_dampen_count += 1
    update_karma(author, KarmaAction.CONTENT_DAMPENED, cache)
    threshold = c.EXCESSIVE_DAMPEN_THRESHOLD
    if cache is not None:
        threshold = cache.get_int("karma.excessive_dampen_threshold", threshold)
    if voter.daily_dampen_count >= threshold:
        update_karma(voter, KarmaAction.EXCESSIVE_DAMPEN, cache)


def _insert_vote(session: Session, rating_id: int, voter_id: str, state: VoteState) -> RatingVote:
    vote = RatingVote(
        rating_id=rating_id,
        user_id=voter_id,
        vote_type=vote_type_for(state).value,
        points_moved=0,
    )
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(vote)
            session.flush()
    except IntegrityError:
        # A concurrent transition by the same voter created the row first;
        # retry the whole unit so it is re-planned from the stored state.
        raise TransactionConflictError(
            f"Concurrent vote on rating {rating_id} by {voter_id}"
        ) from None
    return vote


def _run_steps(
    session: Session,
    plan: Transition,
    rating: Rating,
    vote: RatingVote | None,
    voter: UserPoints,
    author: UserPoints,
    boost_cost: int,
    cache: ConfigCache | None,
) -> int:
    """Execute the money steps of *plan* and return the points to report."""
    target_id = str(rating.id)
    prior_points = vote.points_moved if vote is not None else 0
    reported = 0

    for step in plan.steps:
        if step is Step.REVERSE_BOOST:
            result = transfer(
                session, author.user_id, voter.user_id, prior_points,
                TransferKind.REVERSE_BOOST, target_id=target_id,
                metadata={"vote_action": plan.action}, cache=cache,
            )
            if not result.success:
                # Author already spent the boost; the vote still goes.
                logger.warning(
                    "Boost reversal on rating %s skipped: %s can't cover %d VP",
                    target_id, author.user_id, prior_points,
                )
            reported = result.amount_moved

        elif step is Step.RESTORE_PENALTY:
            result = transfer(
                session, voter.user_id, author.user_id, prior_points,
                TransferKind.RESTORE, target_id=target_id,
                metadata={"vote_action": plan.action}, cache=cache,
            )
            reported = result.amount_moved

        elif step is Step.SEND_BOOST:
            result = transfer(
                session, voter.user_id, author.user_id, boost_cost,
                TransferKind.BOOST, target_id=target_id,
                metadata={"vote_action": plan.action}, cache=cache,
            )
            if not result.success:
                raise InsufficientFundsError(boost_cost, voter.current_balance)
            update_karma(voter, KarmaAction.HELPFUL_BOOST, cache)
            update_karma(author, KarmaAction.CONTENT_BOOSTED, cache)
            reported = result.amount_moved

        elif step is Step.PENALIZE:
            # Priced on the author's state after any reversal above.
            penalty = dampen_penalty(
                author.current_balance, author.protected_points,
                author.karma_score, cache,
            )
            result = transfer(
                session, voter.user_id, author.user_id, penalty,
                TransferKind.DAMPEN, target_id=target_id,
                metadata={"vote_action": plan.action}, cache=cache,
            )
            record_dampen(voter, author, cache)
            reported = result.amount_moved

    return reported


def _apply_vote(
    session: Session,
    rating_id: int,
    voter_id: str | None,
    intent: VoteIntent,
    cache: ConfigCache | None = None,
) -> VoteOutcome:
    if not voter_id:
        raise NotAuthenticatedError()

    rating = session.get(Rating, rating_id)
    if rating is None:
        raise RatingNotFoundError(rating_id)
    if rating.user_id == voter_id:
        raise SelfVoteError(intent.value)

    ledgers = lock_ledgers(session, (voter_id, rating.user_id), cache, create=True)
    voter = ledgers[voter_id]
    author = ledgers[rating.user_id]

    vote = _lock_vote(session, rating_id, voter_id)
    plan = plan_transition(state_for(vote.vote_type if vote else None), intent)

    # Preconditions: nothing has been written yet if one of these fails.
    if plan.requires_dampen_gates:
        check_dampen_gates(voter, author, cache)
    boost_cost = 0
    if plan.requires_funds:
        boost_cost = boost_amount(author.level, voter.level, cache)
        if voter.current_balance < boost_cost:
            raise InsufficientFundsError(boost_cost, voter.current_balance)

    if vote is None:
        new_vote = _insert_vote(session, rating_id, voter_id, plan.target)
        reported = _run_steps(session, plan, rating, None, voter, author, boost_cost, cache)
        new_vote.points_moved = reported
    else:
        reported = _run_steps(session, plan, rating, vote, voter, author, boost_cost, cache)
        if plan.is_retraction:
            session.delete(vote)
        else:
            vote.vote_type = vote_type_for(plan.target).value
            vote.points_moved = reported

    score = score_service.recompute(session, rating_id)
    message = _MESSAGES[(plan.action, plan.is_switch)].format(n=reported)
    logger.info(
        "Vote %s → %s on rating %d by %s (%d VP)",
        plan.source, plan.target, rating_id, voter_id, reported,
    )
    return VoteOutcome(
        rating_id=rating_id,
        voter_id=voter_id,
        author_id=rating.user_id,
        intent=intent,
        action=plan.action,
        state=plan.target,
        points=reported,
        message=message,
        score=score,
    )


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------
def apply_vote(
    engine: Engine,
    rating_id: int,
    voter_id: str | None,
    intent: VoteIntent | str,
    cache: ConfigCache | None = None,
) -> VoteOutcome:
    """Run one boost/dampen press for *voter_id* on *rating_id*.

    Raises
    ------
    NotAuthenticatedError
        If *voter_id* is empty.
    RatingNotFoundError
        If the rating doesn't exist.
    SelfVoteError
        If the voter wrote the rating.
    InsufficientFundsError
        If a boost costs more than the voter's balance.
    RateLimitedError
        If the voter has used up today's dampens.
    ProtectedTargetError
        If the rating author can't be dampened right now.
    TransactionConflictError
        If contention persisted through every retry.
    """
    outcome = run_in_transaction(engine, _apply_vote, rating_id, voter_id, VoteIntent(intent), cache)
    if outcome.state is not VoteState.NONE:
        notification_service.notify(
            outcome.author_id,
            f"rating_{outcome.action}",
            {
                "rating_id": outcome.rating_id,
                "voter_id": outcome.voter_id,
                "points": outcome.points,
            },
        )
    return outcome


def boost(
    engine: Engine,
    rating_id: int,
    voter_id: str | None,
    cache: ConfigCache | None = None,
) -> BoostResult:
    """Boost (or un-boost) a rating."""
    outcome = apply_vote(engine, rating_id, voter_id, VoteIntent.BOOST, cache)
    return BoostResult(
        boosted=outcome.state is VoteState.BOOSTED,
        action=outcome.action,
        points_transferred=outcome.points,
        message=outcome.message,
    )


def dampen(
    engine: Engine,
    rating_id: int,
    voter_id: str | None,
    cache: ConfigCache | None = None,
) -> DampenResult:
    """Dampen (or un-dampen) a rating."""
    outcome = apply_vote(engine, rating_id, voter_id, VoteIntent.DAMPEN, cache)
    return DampenResult(
        dampened=outcome.state is VoteState.DAMPENED,
        action=outcome.action,
        points_penalized=outcome.points,
        message=outcome.message,
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def _score_of(rating: Rating | None) -> VoteScore:
    if rating is None:
        return VoteScore()
    return VoteScore(
        net_score=rating.net_score,
        boost_count=rating.boost_count,
        dampen_count=rating.dampen_count,
    )


def get_vote_score(engine: Engine, rating_id: int) -> VoteScore:
    """Stored aggregates for *rating_id*; zeros if the rating is gone."""
    with get_session(engine) as session:
        return _score_of(session.get(Rating, rating_id))


def get_voter_status(engine: Engine, rating_id: int, voter_id: str | None) -> VoterStatus:
    """The caller's current vote on *rating_id*."""
    if not voter_id:
        return VoterStatus()
    with get_session(engine) as session:
        vote_type = session.scalar(
            select(RatingVote.vote_type).where(
                RatingVote.rating_id == rating_id,
                RatingVote.user_id == voter_id,
            )
        )
    return VoterStatus(vote_type)


def get_bulk_vote_scores(engine: Engine, rating_ids: Iterable[int]) -> dict[int, VoteScore]:
    """Aggregates for many ratings at once; unknown ids map to zeros."""
    ids = list(dict.fromkeys(rating_ids))
    if not ids:
        return {}
    with get_session(engine) as session:
        rows = session.scalars(select(Rating).where(Rating.id.in_(ids))).all()
        found = {r.id: _score_of(r) for r in rows}
    return {rid: found.get(rid, VoteScore()) for rid in ids}


def get_bulk_voter_statuses(
    engine: Engine,
    rating_ids: Iterable[int],
    voter_id: str | None,
) -> dict[int, VoterStatus]:
    """The caller's vote on each of *rating_ids*."""
    ids = list(dict.fromkeys(rating_ids))
    if not ids or not voter_id:
        return {rid: VoterStatus() for rid in ids}
    with get_session(engine) as session:
        rows = session.execute(
            select(RatingVote.rating_id, RatingVote.vote_type).where(
                RatingVote.rating_id.in_(ids),
                RatingVote.user_id == voter_id,
            )
        ).all()
    by_rating = {row.rating_id: row.vote_type for row in rows}
    return {rid: VoterStatus(by_rating.get(rid)) for rid in ids}
