"""
vibechecc.constants — Economy Defaults & Level Formulas
========================================================

Single source of truth for the economy's default tuning values and the
level / earnings-multiplier formulas.  Every value here can be overridden
at runtime through the ``settings`` table (see
:mod:`vibechecc.database.seed` for the key names); these are the
fallbacks used when no :class:`ConfigCache` is available.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vibechecc.engine.cache import ConfigCache

# ---------------------------------------------------------------------------
# Ledger bootstrap
# ---------------------------------------------------------------------------
STARTER_BALANCE = 50
STARTER_PROTECTED_POINTS = 50

# ---------------------------------------------------------------------------
# Earning flows
# ---------------------------------------------------------------------------
BASE_VIBE_POINTS = 10
BASE_REVIEW_POINTS = 5
BASE_RECEIVE_REVIEW_POINTS = 2
DAILY_EARN_CAP = 50
DAILY_POST_CAP = 3
DAILY_REVIEW_CAP = 10
LEVEL_UP_BONUS = 20
DAILY_STREAK_BONUS = 5
STREAK_BONUS_INTERVAL = 7  # days per streak-bonus step

# ---------------------------------------------------------------------------
# Boost / dampen economy
# ---------------------------------------------------------------------------
RATING_BOOST_TRANSFER = 2
LEVEL_GAP_BONUS = 0.1  # extra boost share per level the author is above the voter
RATING_DAMPEN_PENALTY = 1
MAX_DAMPEN_PENALTY = 5
MAX_DAMPEN_PER_DAY = 10
HEALTHY_BALANCE = 50  # effective balance above which dampens hit at full strength
MIN_BALANCE_MULTIPLIER = 0.2

# ---------------------------------------------------------------------------
# Paid content boosts on vibes
# ---------------------------------------------------------------------------
CONTENT_BOOST_BASE_COST = 5
CONTENT_BOOST_SCORE_STEP = 10  # |boost score| per +100% of the base cost
CONTENT_CREATOR_SHARE = 0.5    # share of a content boost sent to the creator

# ---------------------------------------------------------------------------
# Protection
# ---------------------------------------------------------------------------
MIN_PROTECTED_POINTS = 20
NEW_USER_PROTECTED_DAYS = 7

# ---------------------------------------------------------------------------
# Karma
# ---------------------------------------------------------------------------
KARMA_MIN = -100
KARMA_MAX = 100
EXCESSIVE_DAMPEN_THRESHOLD = 5  # dampens per day after which the dampener loses karma

# ---------------------------------------------------------------------------
# Levels
# ---------------------------------------------------------------------------
POINTS_PER_LEVEL = 100
MIN_MULTIPLIER = 0.1


def calculate_level(total_points_earned: int, cache: ConfigCache | None = None) -> int:
    """Level reached after earning *total_points_earned* lifetime points.

    Linear formula::

        level = floor(total / points_per_level) + 1
    """
    per_level = POINTS_PER_LEVEL
    if cache is not None:
        per_level = cache.get_int("economy.points_per_level", POINTS_PER_LEVEL)
    return max(0, total_points_earned) // max(per_level, 1) + 1


def calculate_multiplier(total_points_earned: int, cache: ConfigCache | None = None) -> float:
    """Earnings multiplier for a ledger with *total_points_earned* lifetime points.

    Diminishing returns so veterans can't farm indefinitely::

        multiplier = max(min_multiplier, 1 / (1 + log10(total / 100 + 1)))
    """
    per_level = POINTS_PER_LEVEL
    floor = MIN_MULTIPLIER
    if cache is not None:
        per_level = cache.get_int("economy.points_per_level", POINTS_PER_LEVEL)
        floor = cache.get_float("economy.min_multiplier", MIN_MULTIPLIER)
    total = max(0, total_points_earned)
    return max(floor, 1 / (1 + math.log10(total / max(per_level, 1) + 1)))
