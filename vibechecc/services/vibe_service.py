"""
vibechecc.services.vibe_service — Vibe Ownership & Paid Content Boosts
=======================================================================

The economy keeps one row per vibe: who created it and its paid boost
score.  The content system calls :func:`register_vibe` when a vibe is
published; that is the only place ``post_vibe`` points are paid, once per
vibe.  Rating rewards look the creator up here instead of trusting the
client.

Paid boosts
-----------
Any user other than the creator can pay to push a vibe up or down.  The
price of the next press is :func:`~vibechecc.engine.transfer.content_boost_cost`
at the vibe's current score, so it climbs the further the score is from
zero in either direction.

* **boost**: the voter pays the full cost.  The creator's share is moved
  with a ``boost`` transfer and the remainder is spent.  ``boost_score``
  goes up by one.
* **dampen**: subject to the same daily quota and creator protection as a
  rating dampen.  The voter spends the full cost, and the creator loses a
  dampen penalty priced like a rating dampen.  ``boost_score`` goes down
  by one.

Presses are not toggles; every press is charged again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vibechecc.database.engine import get_session, run_in_transaction
from vibechecc.database.models import TransactionAction, TransactionType, UserPoints, Vibe
from vibechecc.engine.karma import KarmaAction
from vibechecc.engine.transfer import content_boost_cost, creator_share, dampen_penalty
from vibechecc.errors import (
    AuthorizationError,
    InsufficientFundsError,
    NotAuthenticatedError,
    SelfVoteError,
    TransactionConflictError,
    VibeNotFoundError,
)
from vibechecc.services import notification_service
from vibechecc.services.ledger_service import (
    AwardResult,
    adjust_balance,
    award_points,
    lock_ledgers,
    update_karma,
)
from vibechecc.services.transaction_service import record_transaction
from vibechecc.services.transfer_service import TransferKind, transfer
from vibechecc.services.vote_service import check_dampen_gates, record_dampen

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from vibechecc.engine.cache import ConfigCache

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------
@dataclass
class VibeRegistration:
    vibe_id: str
    created: bool
    award: AwardResult | None = None


@dataclass
class ContentBoostResult:
    success: bool
    creator_id: str
    points_spent: int
    points_transferred: int
    new_balance: int
    new_boost_score: int
    next_boost_cost: int
    message: str


@dataclass
class ContentDampenResult:
    success: bool
    creator_id: str
    points_spent: int
    points_penalized: int
    new_balance: int
    new_boost_score: int
    next_dampen_cost: int
    message: str


@dataclass(frozen=True, slots=True)
class BoostCost:
    boost_cost: int
    dampen_cost: int
    current_boost_score: int


# ---------------------------------------------------------------------------
# Ownership
# ---------------------------------------------------------------------------
def get_vibe(session: Session, vibe_id: str, *, lock: bool = False) -> Vibe | None:
    if lock:
        return session.get(Vibe, vibe_id, with_for_update=True)
    return session.get(Vibe, vibe_id)


def get_vibe_author(session: Session, vibe_id: str) -> str:
    """Creator of *vibe_id*.

    Raises
    ------
    VibeNotFoundError
        If the vibe was never registered.
    """
    vibe = get_vibe(session, vibe_id)
    if vibe is None:
        raise VibeNotFoundError(vibe_id)
    return vibe.created_by_id


def _register(
    session: Session,
    vibe_id: str,
    author_id: str | None,
    cache: ConfigCache | None,
) -> VibeRegistration:
    if not author_id:
        raise NotAuthenticatedError("A vibe needs an author")

    existing = get_vibe(session, vibe_id, lock=True)
    if existing is not None:
        if existing.created_by_id != author_id:
            raise AuthorizationError(f"Vibe {vibe_id} belongs to another user")
        return VibeRegistration(vibe_id=vibe_id, created=False)

    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(Vibe(id=vibe_id, created_by_id=author_id))
            session.flush()
    except IntegrityError:
        raise TransactionConflictError(f"Concurrent registration of vibe {vibe_id}") from None

    award = award_points(
        session, author_id, TransactionAction.POST_VIBE, cache, target_id=vibe_id,
    )
    logger.info("Registered vibe %s by %s (award %s)", vibe_id, author_id, award.success)
    return VibeRegistration(vibe_id=vibe_id, created=True, award=award)


def register_vibe(
    engine: Engine,
    vibe_id: str,
    author_id: str | None,
    cache: ConfigCache | None = None,
) -> VibeRegistration:
    """Record that *author_id* published *vibe_id* and pay ``post_vibe``.

    Registering the same vibe again for the same author is a no-op that
    pays nothing.

    Raises
    ------
    NotAuthenticatedError
        If *author_id* is empty.
    AuthorizationError
        If the vibe is already registered to someone else.
    """
    return run_in_transaction(engine, _register, vibe_id, author_id, cache)


# ---------------------------------------------------------------------------
# Paid boosts
# ---------------------------------------------------------------------------
def _lock_parties(
    session: Session,
    vibe_id: str,
    user_id: str | None,
    intent: str,
    cache: ConfigCache | None,
) -> tuple[Vibe, UserPoints, UserPoints]:
    if not user_id:
        raise NotAuthenticatedError()
    vibe = get_vibe(session, vibe_id, lock=True)
    if vibe is None:
        raise VibeNotFoundError(vibe_id)
    if vibe.created_by_id == user_id:
        raise SelfVoteError(intent, "vibe")
    ledgers = lock_ledgers(session, (user_id, vibe.created_by_id), cache, create=True)
    return vibe, ledgers[user_id], ledgers[vibe.created_by_id]


def _spend(
    session: Session,
    ledger: UserPoints,
    amount: int,
    action: TransactionAction,
    vibe: Vibe,
    metadata: dict,
) -> None:
    if amount <= 0:
        return
    balance_after = adjust_balance(ledger, -amount)
    record_transaction(
        session,
        user_id=ledger.user_id,
        type=TransactionType.SPENT,
        action=action,
        amount=-amount,
        balance_after=balance_after,
        target_id=vibe.id,
        to_user_id=vibe.created_by_id,
        multiplier=ledger.multiplier,
        metadata=metadata,
    )


def _boost(
    session: Session,
    vibe_id: str,
    user_id: str | None,
    cache: ConfigCache | None,
) -> ContentBoostResult:
    vibe, voter, creator = _lock_parties(session, vibe_id, user_id, "boost", cache)

    cost = content_boost_cost(vibe.boost_score, cache)
    if voter.current_balance < cost:
        raise InsufficientFundsError(cost, voter.current_balance, "boost", "vibe")
    share = creator_share(cost, cache)
    meta = {"content_type": "vibe", "boost_cost": cost, "creator_share": share}

    _spend(session, voter, cost - share, TransactionAction.BOOST_CONTENT, vibe, meta)
    result = transfer(
        session, voter.user_id, creator.user_id, share, TransferKind.BOOST,
        target_id=vibe.id, metadata=meta, cache=cache,
    )
    if not result.success:
        raise InsufficientFundsError(cost, voter.current_balance, "boost", "vibe")
    update_karma(voter, KarmaAction.HELPFUL_BOOST, cache)
    update_karma(creator, KarmaAction.CONTENT_BOOSTED, cache)

    vibe.boost_score += 1
    vibe.total_boosts += 1
    session.flush()

    logger.info("Vibe %s boosted by %s for %d VP (%d to creator)", vibe.id, voter.user_id, cost, share)
    return ContentBoostResult(
        success=True,
        creator_id=creator.user_id,
        points_spent=cost,
        points_transferred=share,
        new_balance=voter.current_balance,
        new_boost_score=vibe.boost_score,
        next_boost_cost=content_boost_cost(vibe.boost_score, cache),
        message=f"Boosted! Spent {cost} VP ({share} VP sent to creator)",
    )


def _dampen(
    session: Session,
    vibe_id: str,
    user_id: str | None,
    cache: ConfigCache | None,
) -> ContentDampenResult:
    vibe, voter, creator = _lock_parties(session, vibe_id, user_id, "dampen", cache)

    check_dampen_gates(voter, creator, cache)
    cost = content_boost_cost(vibe.boost_score, cache)
    if voter.current_balance < cost:
        raise InsufficientFundsError(cost, voter.current_balance, "dampen", "vibe")

    meta = {"content_type": "vibe", "dampen_cost": cost}
    _spend(session, voter, cost, TransactionAction.DAMPEN_CONTENT, vibe, meta)
    penalty = dampen_penalty(
        creator.current_balance, creator.protected_points, creator.karma_score, cache,
    )
    result = transfer(
        session, voter.user_id, creator.user_id, penalty, TransferKind.DAMPEN,
        target_id=vibe.id, metadata=meta, cache=cache,
    )
    record_dampen(voter, creator, cache)

    vibe.boost_score -= 1
    vibe.total_dampens += 1
    session.flush()

    logger.info(
        "Vibe %s dampened by %s for %d VP (creator lost %d)",
        vibe.id, voter.user_id, cost, result.amount_moved,
    )
    return ContentDampenResult(
        success=True,
        creator_id=creator.user_id,
        points_spent=cost,
        points_penalized=result.amount_moved,
        new_balance=voter.current_balance,
        new_boost_score=vibe.boost_score,
        next_dampen_cost=content_boost_cost(vibe.boost_score, cache),
        message=f"Dampened! Spent {cost} VP ({result.amount_moved} VP removed from creator)",
    )


def boost_vibe(
    engine: Engine,
    vibe_id: str,
    user_id: str | None,
    cache: ConfigCache | None = None,
) -> ContentBoostResult:
    """Pay to boost *vibe_id*.

    Raises
    ------
    NotAuthenticatedError, VibeNotFoundError, SelfVoteError,
    InsufficientFundsError
    """
    result = run_in_transaction(engine, _boost, vibe_id, user_id, cache)
    notification_service.notify(
        result.creator_id,
        "vibe_boosted",
        {"vibe_id": vibe_id, "voter_id": user_id, "points": result.points_transferred},
    )
    return result


def dampen_vibe(
    engine: Engine,
    vibe_id: str,
    user_id: str | None,
    cache: ConfigCache | None = None,
) -> ContentDampenResult:
    """Pay to dampen *vibe_id*.

    Raises
    ------
    NotAuthenticatedError, VibeNotFoundError, SelfVoteError,
    RateLimitedError, ProtectedTargetError, InsufficientFundsError
    """
    result = run_in_transaction(engine, _dampen, vibe_id, user_id, cache)
    notification_service.notify(
        result.creator_id,
        "vibe_dampened",
        {"vibe_id": vibe_id, "voter_id": user_id, "points": result.points_penalized},
    )
    return result


def get_boost_cost(
    engine: Engine,
    vibe_id: str,
    cache: ConfigCache | None = None,
) -> BoostCost:
    """Price of the next boost and dampen; an unknown vibe is priced at score 0."""
    with get_session(engine) as session:
        vibe = get_vibe(session, vibe_id)
        score = vibe.boost_score if vibe is not None else 0
    cost = content_boost_cost(score, cache)
    return BoostCost(boost_cost=cost, dampen_cost=cost, current_boost_score=score)
