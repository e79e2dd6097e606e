"""
vibechecc.engine.transfer — Transfer Amounts & Protection Rules
================================================================

Pure calculations behind boosts and dampens.  No DB I/O; the transfer
service feeds in ledger values and applies the results.

Boost amount
    ``ceil(base * (1 + max(0, author_level - voter_level) * level_gap_bonus))``
    so boosting someone further along pays them a little more.

Dampen penalty
    Computed from the *author's* state only::

        effective = max(0, balance - protected_points)
        penalty   = base
                  * (1 if effective > healthy else max(min_mult, effective / healthy))
                  * (max(0.5, 1 - karma / 100)      if karma > 0)
                  * (min(2,   1 + |karma| / 50)     if karma < 0)
        penalty   = ceil(min(penalty, max_penalty, effective))

Content boost cost
    Paid vibe boosts and dampens get dearer as the vibe's boost score
    moves away from zero: ``ceil(base_cost * (1 + |score| / score_step))``.
    The creator receives ``ceil(cost * creator_share)`` of a boost.

Protection
    An author is protected while their ledger is younger than
    ``new_user_days`` or while their effective balance is at or below
    ``min_protected_points``.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from vibechecc import constants as c

if TYPE_CHECKING:
    from vibechecc.engine.cache import ConfigCache

# Multiplier products like 2 * 1.1 land a hair above the integer.
_FLOAT_PRECISION = 9


def _ceil(value: float) -> int:
    return math.ceil(round(value, _FLOAT_PRECISION))


def _normalize_dt(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def effective_balance(balance: int, protected_points: int) -> int:
    """Points above the protected floor, never negative."""
    return max(0, balance - protected_points)


def boost_amount(
    author_level: int,
    voter_level: int,
    cache: ConfigCache | None = None,
) -> int:
    """Points a voter sends to the rating author when boosting."""
    base = c.RATING_BOOST_TRANSFER
    gap_bonus = c.LEVEL_GAP_BONUS
    if cache is not None:
        base = cache.get_int("transfer.boost_amount", base)
        gap_bonus = cache.get_float("transfer.level_gap_bonus", gap_bonus)
    gap = max(0, author_level - voter_level)
    return _ceil(base * (1 + gap * gap_bonus))


def dampen_penalty(
    balance: int,
    protected_points: int,
    karma: float,
    cache: ConfigCache | None = None,
) -> int:
    """Points removed from the author by one dampen.

    Never more than ``max_penalty`` and never more than the effective
    balance, so a dampen can't push a ledger below its protected floor.
    """
    base = c.RATING_DAMPEN_PENALTY
    max_penalty = c.MAX_DAMPEN_PENALTY
    healthy = c.HEALTHY_BALANCE
    min_mult = c.MIN_BALANCE_MULTIPLIER
    if cache is not None:
        base = cache.get_int("transfer.dampen_penalty", base)
        max_penalty = cache.get_int("transfer.max_dampen_penalty", max_penalty)
        healthy = cache.get_int("transfer.healthy_balance", healthy)
        min_mult = cache.get_float("transfer.min_balance_multiplier", min_mult)

    effective = effective_balance(balance, protected_points)

    balance_mult = 1.0 if effective > healthy else max(min_mult, effective / max(healthy, 1))
    karma_mult = max(0.5, 1 - karma / 100) if karma > 0 else 1.0
    bad_karma_mult = min(2.0, 1 + abs(karma) / 50) if karma < 0 else 1.0

    penalty = base * balance_mult * karma_mult * bad_karma_mult
    penalty = min(penalty, max_penalty, effective)
    return _ceil(penalty)


def content_boost_cost(boost_score: int, cache: ConfigCache | None = None) -> int:
    """Price of the next paid boost or dampen on a vibe at *boost_score*."""
    base = c.CONTENT_BOOST_BASE_COST
    step = c.CONTENT_BOOST_SCORE_STEP
    if cache is not None:
        base = cache.get_int("content.boost_base_cost", base)
        step = cache.get_int("content.boost_score_step", step)
    return _ceil(base * (1 + abs(boost_score) / max(step, 1)))


def creator_share(cost: int, cache: ConfigCache | None = None) -> int:
    """Part of a paid vibe boost that goes to the vibe's creator."""
    share = c.CONTENT_CREATOR_SHARE
    if cache is not None:
        share = cache.get_float("content.creator_share", share)
    return min(cost, _ceil(cost * share))


def account_age_days(created_at: datetime, now: datetime | None = None) -> float:
    """Fractional days since *created_at*."""
    now = _normalize_dt(now or datetime.now(UTC))
    return (now - _normalize_dt(created_at)).total_seconds() / 86400


def is_protected(
    balance: int,
    protected_points: int,
    created_at: datetime,
    *,
    now: datetime | None = None,
    cache: ConfigCache | None = None,
) -> bool:
    """True if the ledger owner cannot currently be dampened."""
    new_user_days = c.NEW_USER_PROTECTED_DAYS
    min_protected = c.MIN_PROTECTED_POINTS
    if cache is not None:
        new_user_days = cache.get_int("protection.new_user_days", new_user_days)
        min_protected = cache.get_int("protection.min_protected_points", min_protected)

    if account_age_days(created_at, now) < new_user_days:
        return True
    return effective_balance(balance, protected_points) <= min_protected
