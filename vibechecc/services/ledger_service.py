"""
vibechecc.services.ledger_service — Points Ledger
==================================================

Owns every mutation of a :class:`~vibechecc.database.models.UserPoints`
row:

* lazy, idempotent ledger creation with starter values
  (:func:`ensure_ledger`),
* row-locked reads in a deterministic order (:func:`lock_ledgers`),
* the single balance primitive that refuses to go negative
  (:func:`adjust_balance`),
* the lazy daily reset (counters, streak, streak bonus, history snapshot),
* earning flows with daily caps and level-ups (:func:`award_points`),
* karma updates.

Functions here take an open :class:`Session` and never commit; the caller
owns the transaction (see :func:`vibechecc.database.engine.run_in_transaction`).
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vibechecc import constants as c
from vibechecc.constants import calculate_level, calculate_multiplier
from vibechecc.database.models import TransactionAction, TransactionType, UserPoints
from vibechecc.engine.karma import KarmaAction, apply_karma, karma_delta
from vibechecc.errors import (
    InsufficientFundsError,
    LedgerNotInitializedError,
    TransactionConflictError,
)
from vibechecc.services.transaction_service import record_transaction, snapshot_day

if TYPE_CHECKING:
    from vibechecc.engine.cache import ConfigCache

logger = logging.getLogger(__name__)


def today_utc() -> date:
    return datetime.now(UTC).date()


# ---------------------------------------------------------------------------
# Lookup / creation
# ---------------------------------------------------------------------------
def get_ledger(session: Session, user_id: str, *, lock: bool = False) -> UserPoints | None:
    """Fetch a ledger row, optionally ``SELECT … FOR UPDATE``."""
    stmt = select(UserPoints).where(UserPoints.user_id == user_id)
    if lock:
        stmt = stmt.with_for_update()
    return session.scalar(stmt)


def ensure_ledger(
    session: Session,
    user_id: str,
    cache: ConfigCache | None = None,
) -> UserPoints:
    """Return the locked ledger for *user_id*, creating it on first use.

    Creation runs in a SAVEPOINT: if a concurrent transaction inserted the
    same ledger first, the unique-key violation is caught and the winner's
    row is read instead, so repeated or concurrent calls yield exactly one
    ledger.  The starter balance counts as earned, so it also seeds
    ``total_points_earned`` and is recorded as a ``starter_bonus`` earning
    in the audit log.  The multiplier starts at 1.0 and is recomputed on
    the first earning.
    """
    ledger = get_ledger(session, user_id, lock=True)
    if ledger is None:
        starter = c.STARTER_BALANCE
        protected = c.STARTER_PROTECTED_POINTS
        if cache is not None:
            starter = cache.get_int("economy.starter_balance", starter)
            protected = cache.get_int("economy.starter_protected_points", protected)

        candidate = UserPoints(
            user_id=user_id,
            current_balance=starter,
            total_points_earned=starter,
            protected_points=protected,
            last_reset_date=today_utc(),
            level=1,
            multiplier=1.0,
        )
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(candidate)
                session.flush()
        except IntegrityError:
            # Lost the creation race; the other transaction's row wins.
            ledger = get_ledger(session, user_id, lock=True)
            if ledger is None:
                raise TransactionConflictError(
                    f"Ledger creation for {user_id} collided"
                ) from None
        else:
            ledger = candidate
            record_transaction(
                session,
                user_id=user_id,
                type=TransactionType.EARNED,
                action=TransactionAction.STARTER_BONUS,
                amount=starter,
                balance_after=ledger.current_balance,
                multiplier=1.0,
                metadata={"protected_points": protected},
            )
            logger.info("Created points ledger for %s (balance=%d)", user_id, starter)

    apply_daily_reset(session, ledger, cache)
    return ledger


def require_ledger(
    session: Session,
    user_id: str,
    cache: ConfigCache | None = None,
) -> UserPoints:
    """Locked ledger for *user_id*; raises if it doesn't exist yet."""
    ledger = get_ledger(session, user_id, lock=True)
    if ledger is None:
        raise LedgerNotInitializedError(user_id)
    apply_daily_reset(session, ledger, cache)
    return ledger


def lock_ledgers(
    session: Session,
    user_ids: Iterable[str],
    cache: ConfigCache | None = None,
    *,
    create: bool = False,
) -> dict[str, UserPoints]:
    """Lock several ledgers in ascending ``user_id`` order.

    Two transactions touching the same pair of users always acquire the
    row locks in the same order and so never deadlock each other.
    """
    loader = ensure_ledger if create else require_ledger
    return {uid: loader(session, uid, cache) for uid in sorted(set(user_ids))}


# ---------------------------------------------------------------------------
# Balance primitive
# ---------------------------------------------------------------------------
def adjust_balance(ledger: UserPoints, delta: int, *, earned: bool = False) -> int:
    """Apply *delta* to the ledger balance and return the new balance.

    Raises :class:`InsufficientFundsError` instead of letting the balance
    go negative.  ``total_points_earned`` only grows, and only for
    positive deltas flagged as earnings.
    """
    new_balance = ledger.current_balance + delta
    if new_balance < 0:
        raise InsufficientFundsError(required=-delta, available=ledger.current_balance)
    ledger.current_balance = new_balance
    if earned and delta > 0:
        ledger.total_points_earned += delta
    return new_balance


# ---------------------------------------------------------------------------
# Daily reset
# ---------------------------------------------------------------------------
def apply_daily_reset(
    session: Session,
    ledger: UserPoints,
    cache: ConfigCache | None = None,
    *,
    today: date | None = None,
) -> bool:
    """Reset daily counters if the ledger was last reset on an earlier day.

    On the first access of a new day:

    1. The previous day is rolled into ``points_history``.
    2. The streak survives only if the user was active yesterday.
    3. A surviving streak of a week or more pays
       ``daily_streak_bonus * (streak // 7)``.
    4. Every daily counter is zeroed.

    Returns True if a reset happened.
    """
    today = today or today_utc()
    if ledger.last_reset_date == today:
        return False

    yesterday = today - timedelta(days=1)
    snapshot_day(session, ledger, ledger.last_reset_date)

    active_yesterday = ledger.last_activity_date == yesterday
    if not active_yesterday and ledger.last_activity_date != today:
        ledger.streak_days = 0

    ledger.daily_earned_points = 0
    ledger.daily_post_count = 0
    ledger.daily_review_count = 0
    ledger.daily_dampen_count = 0
    ledger.last_reset_date = today

    bonus_step = c.DAILY_STREAK_BONUS
    interval = c.STREAK_BONUS_INTERVAL
    if cache is not None:
        bonus_step = cache.get_int("economy.daily_streak_bonus", bonus_step)
        interval = cache.get_int("economy.streak_bonus_interval", interval)

    if active_yesterday and ledger.streak_days >= interval > 0:
        weeks = ledger.streak_days // interval
        _earn(
            session,
            ledger,
            bonus_step * weeks,
            TransactionAction.DAILY_BONUS,
            cache,
            metadata={"streak_days": ledger.streak_days, "bonus_multiplier": weeks},
        )
        logger.info(
            "Streak bonus for %s: %d days → +%d",
            ledger.user_id, ledger.streak_days, bonus_step * weeks,
        )
    return True


# ---------------------------------------------------------------------------
# Earning flows
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class EarningRule:
    """How one earning action is priced and capped."""

    base_key: str
    base_default: int
    counter: str | None = None       # UserPoints daily counter to bump
    cap_key: str | None = None
    cap_default: int = 0
    cap_reason: str = ""
    uses_earn_cap: bool = True
    counts_as_activity: bool = True


EARNING_RULES: dict[str, EarningRule] = {
    TransactionAction.POST_VIBE.value: EarningRule(
        base_key="economy.base_vibe_points",
        base_default=c.BASE_VIBE_POINTS,
        counter="daily_post_count",
        cap_key="economy.daily_post_cap",
        cap_default=c.DAILY_POST_CAP,
        cap_reason="daily_post_cap_reached",
    ),
    TransactionAction.WRITE_REVIEW.value: EarningRule(
        base_key="economy.base_review_points",
        base_default=c.BASE_REVIEW_POINTS,
        counter="daily_review_count",
        cap_key="economy.daily_review_cap",
        cap_default=c.DAILY_REVIEW_CAP,
        cap_reason="daily_review_cap_reached",
    ),
    TransactionAction.RECEIVE_REVIEW.value: EarningRule(
        base_key="economy.base_receive_review_points",
        base_default=c.BASE_RECEIVE_REVIEW_POINTS,
        uses_earn_cap=False,
        counts_as_activity=False,
    ),
}


@dataclass
class AwardResult:
    """Outcome of one earning attempt."""

    success: bool
    points_awarded: int = 0
    new_balance: int = 0
    new_level: int = 1
    level_up: bool = False
    reason: str | None = None


def _earn(
    session: Session,
    ledger: UserPoints,
    amount: int,
    action: TransactionAction,
    cache: ConfigCache | None = None,
    *,
    target_id: str | None = None,
    metadata: dict | None = None,
) -> bool:
    """Credit earned points, record them and handle level-ups.

    Returns True if the ledger gained at least one level.
    """
    multiplier = ledger.multiplier
    new_balance = adjust_balance(ledger, amount, earned=True)
    record_transaction(
        session,
        user_id=ledger.user_id,
        type=TransactionType.EARNED,
        action=action,
        amount=amount,
        balance_after=new_balance,
        target_id=target_id,
        multiplier=multiplier,
        metadata=metadata,
    )

    old_level = ledger.level
    new_level = calculate_level(ledger.total_points_earned, cache)
    ledger.multiplier = calculate_multiplier(ledger.total_points_earned, cache)
    if new_level <= old_level:
        return False

    ledger.level = new_level
    per_level = c.LEVEL_UP_BONUS
    if cache is not None:
        per_level = cache.get_int("economy.level_up_bonus", per_level)
    levels_gained = new_level - old_level
    bonus = per_level * levels_gained
    protected_bonus = math.ceil(bonus * 0.5)
    ledger.protected_points += protected_bonus
    balance_after_bonus = adjust_balance(ledger, bonus, earned=True)
    record_transaction(
        session,
        user_id=ledger.user_id,
        type=TransactionType.EARNED,
        action=TransactionAction.LEVEL_UP,
        amount=bonus,
        balance_after=balance_after_bonus,
        multiplier=multiplier,
        metadata={
            "old_level": old_level,
            "new_level": new_level,
            "levels_gained": levels_gained,
            "bonus_per_level": per_level,
            "protected_bonus": protected_bonus,
            "new_protected_points": ledger.protected_points,
        },
    )
    logger.info("%s reached level %d (+%d)", ledger.user_id, new_level, bonus)
    return True


def _touch_streak(ledger: UserPoints, today: date) -> None:
    if ledger.last_activity_date == today:
        return
    if ledger.last_activity_date == today - timedelta(days=1):
        ledger.streak_days += 1
    else:
        ledger.streak_days = 1
    ledger.last_activity_date = today


def award_points(
    session: Session,
    user_id: str,
    action: TransactionAction | str,
    cache: ConfigCache | None = None,
    *,
    target_id: str | None = None,
    metadata: dict | None = None,
) -> AwardResult:
    """Award points for an earning *action* (``post_vibe``, ``write_review``,
    ``receive_review``).

    Points awarded are ``floor(base * multiplier)``.  Capped actions are
    refused once their daily count or the daily earn cap is reached; a
    refusal is a normal result with ``success=False`` and a ``reason``.

    Raises
    ------
    ValueError
        If *action* is not an earning action.
    """
    rule = EARNING_RULES.get(str(action))
    if rule is None:
        raise ValueError(f"{action!r} is not an earning action")

    ledger = ensure_ledger(session, user_id, cache)

    def _refused(reason: str) -> AwardResult:
        return AwardResult(
            success=False,
            new_balance=ledger.current_balance,
            new_level=ledger.level,
            reason=reason,
        )

    if rule.counter is not None and rule.cap_key is not None:
        cap = cache.get_int(rule.cap_key, rule.cap_default) if cache else rule.cap_default
        if getattr(ledger, rule.counter) >= cap:
            return _refused(rule.cap_reason)

    if rule.uses_earn_cap:
        earn_cap = (
            cache.get_int("economy.daily_earn_cap", c.DAILY_EARN_CAP)
            if cache else c.DAILY_EARN_CAP
        )
        if ledger.daily_earned_points >= earn_cap:
            return _refused("daily_earn_cap_reached")

    base = cache.get_int(rule.base_key, rule.base_default) if cache else rule.base_default
    points = math.floor(base * ledger.multiplier)

    if rule.counter is not None:
        setattr(ledger, rule.counter, getattr(ledger, rule.counter) + 1)
    if rule.uses_earn_cap:
        ledger.daily_earned_points += points
    if rule.counts_as_activity:
        _touch_streak(ledger, today_utc())

    leveled = _earn(
        session,
        ledger,
        points,
        TransactionAction(str(action)),
        cache,
        target_id=target_id,
        metadata={"base_points": base, **(metadata or {})},
    )
    return AwardResult(
        success=True,
        points_awarded=points,
        new_balance=ledger.current_balance,
        new_level=ledger.level,
        level_up=leveled,
    )


# ---------------------------------------------------------------------------
# Karma
# ---------------------------------------------------------------------------
def update_karma(
    ledger: UserPoints,
    action: KarmaAction,
    cache: ConfigCache | None = None,
) -> float:
    """Apply the karma delta for *action* and return the new score."""
    ledger.karma_score = apply_karma(ledger.karma_score, karma_delta(action, cache))
    return ledger.karma_score


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------
def get_user_points_stats(session: Session, user_id: str) -> dict | None:
    """Public view of a ledger, or None if the user has none yet.

    Reads never reset a ledger, so daily counters left over from an earlier
    day are reported as zero.
    """
    ledger = get_ledger(session, user_id)
    if ledger is None:
        return None
    next_level_at = ledger.level * c.POINTS_PER_LEVEL
    fresh_day = ledger.last_reset_date == today_utc()
    return {
        "user_id": ledger.user_id,
        "current_balance": ledger.current_balance,
        "total_points_earned": ledger.total_points_earned,
        "protected_points": ledger.protected_points,
        "level": ledger.level,
        "multiplier": ledger.multiplier,
        "streak_days": ledger.streak_days,
        "karma_score": ledger.karma_score,
        "daily_earned_points": ledger.daily_earned_points if fresh_day else 0,
        "daily_dampen_count": ledger.daily_dampen_count if fresh_day else 0,
        "points_to_next_level": max(0, next_level_at - ledger.total_points_earned),
    }


LEADERBOARD_COLUMNS = {
    "points": UserPoints.total_points_earned,
    "level": UserPoints.level,
    "streak": UserPoints.streak_days,
}


def get_leaderboard(session: Session, kind: str = "points", limit: int = 10) -> list[UserPoints]:
    """Top ledgers by lifetime points, level or streak.

    Raises
    ------
    ValueError
        If *kind* is not one of ``points``, ``level``, ``streak``.
    """
    column = LEADERBOARD_COLUMNS.get(kind)
    if column is None:
        raise ValueError(f"Unknown leaderboard type: {kind!r}")
    return list(session.scalars(
        select(UserPoints)
        .where(column > (1 if kind == "level" else 0))
        .order_by(column.desc(), UserPoints.user_id)
        .limit(limit)
    ).all())
