"""
vibechecc.engine.karma — Karma Deltas
======================================

Karma is a bounded reputation score in ``[-100, 100]`` that softens or
sharpens dampen penalties.  Pure functions only; the ledger service
applies the result to a :class:`~vibechecc.database.models.UserPoints` row.
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING

from vibechecc.constants import KARMA_MAX, KARMA_MIN

if TYPE_CHECKING:
    from vibechecc.engine.cache import ConfigCache


class KarmaAction(enum.StrEnum):
    """Events that move a user's karma."""
    POSITIVE_RATING = "positive_rating"
    NEGATIVE_RATING = "negative_rating"
    HELPFUL_BOOST = "helpful_boost"
    EXCESSIVE_DAMPEN = "excessive_dampen"
    CONTENT_BOOSTED = "content_boosted"
    CONTENT_DAMPENED = "content_dampened"


DEFAULT_KARMA_DELTAS: dict[str, float] = {
    KarmaAction.POSITIVE_RATING.value: 1.0,
    KarmaAction.NEGATIVE_RATING.value: -0.5,
    KarmaAction.HELPFUL_BOOST.value: 2.0,
    KarmaAction.EXCESSIVE_DAMPEN.value: -3.0,
    KarmaAction.CONTENT_BOOSTED.value: 1.0,
    KarmaAction.CONTENT_DAMPENED.value: -1.0,
}


def karma_delta(action: KarmaAction | str, cache: ConfigCache | None = None) -> float:
    """Karma change for *action*; unknown actions move nothing."""
    default = DEFAULT_KARMA_DELTAS.get(str(action), 0.0)
    if cache is None:
        return default
    return cache.get_float(f"karma.{action}", default)


def apply_karma(current: float, delta: float) -> float:
    """Return *current* + *delta* clamped to the karma range."""
    return max(float(KARMA_MIN), min(float(KARMA_MAX), current + delta))
