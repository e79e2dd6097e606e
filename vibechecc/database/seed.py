"""
vibechecc.database.seed — Default Settings Seeder
==================================================

Baseline economy settings seeded on first startup.

Idempotent — only inserts keys that don't already exist.  Values edited
later by an operator are never overwritten.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from vibechecc import constants as c
from vibechecc.database.models import Setting
from vibechecc.engine.karma import DEFAULT_KARMA_DELTAS

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default settings catalogue
# ---------------------------------------------------------------------------
DEFAULT_SETTINGS: dict[str, tuple[object, str, str]] = {
    "economy.starter_balance": (
        c.STARTER_BALANCE, "economy", "Balance granted when a ledger is created",
    ),
    "economy.starter_protected_points": (
        c.STARTER_PROTECTED_POINTS, "economy", "Protected points granted with a new ledger",
    ),
    "economy.points_per_level": (c.POINTS_PER_LEVEL, "economy", "Lifetime points per level"),
    "economy.min_multiplier": (c.MIN_MULTIPLIER, "economy", "Floor for the earnings multiplier"),
    "economy.base_vibe_points": (c.BASE_VIBE_POINTS, "economy", "Base points for posting a vibe"),
    "economy.base_review_points": (
        c.BASE_REVIEW_POINTS, "economy", "Base points for writing a review",
    ),
    "economy.base_receive_review_points": (
        c.BASE_RECEIVE_REVIEW_POINTS, "economy", "Base points for receiving a review",
    ),
    "economy.daily_earn_cap": (c.DAILY_EARN_CAP, "limits", "Max points earned per day"),
    "economy.daily_post_cap": (c.DAILY_POST_CAP, "limits", "Rewarded vibe posts per day"),
    "economy.daily_review_cap": (c.DAILY_REVIEW_CAP, "limits", "Rewarded reviews per day"),
    "economy.level_up_bonus": (c.LEVEL_UP_BONUS, "economy", "Bonus points per level gained"),
    "economy.daily_streak_bonus": (
        c.DAILY_STREAK_BONUS, "economy", "Streak bonus per completed week",
    ),
    "economy.streak_bonus_interval": (
        c.STREAK_BONUS_INTERVAL, "economy", "Streak days per bonus step",
    ),
    "transfer.boost_amount": (c.RATING_BOOST_TRANSFER, "transfer", "Base points sent per boost"),
    "transfer.level_gap_bonus": (
        c.LEVEL_GAP_BONUS, "transfer", "Extra boost share per level the author leads by",
    ),
    "transfer.dampen_penalty": (c.RATING_DAMPEN_PENALTY, "transfer", "Base dampen penalty"),
    "transfer.max_dampen_penalty": (
        c.MAX_DAMPEN_PENALTY, "transfer", "Hard cap on a single dampen penalty",
    ),
    "transfer.healthy_balance": (
        c.HEALTHY_BALANCE, "transfer", "Effective balance above which dampens hit fully",
    ),
    "transfer.min_balance_multiplier": (
        c.MIN_BALANCE_MULTIPLIER, "transfer", "Floor for the low-balance dampen multiplier",
    ),
    "content.boost_base_cost": (
        c.CONTENT_BOOST_BASE_COST, "content", "Base cost of a paid vibe boost or dampen",
    ),
    "content.boost_score_step": (
        c.CONTENT_BOOST_SCORE_STEP, "content", "Boost score per +100% of the content cost",
    ),
    "content.creator_share": (
        c.CONTENT_CREATOR_SHARE, "content", "Share of a paid vibe boost sent to the creator",
    ),
    "limits.max_dampen_per_day": (c.MAX_DAMPEN_PER_DAY, "limits", "Dampens allowed per day"),
    "protection.min_protected_points": (
        c.MIN_PROTECTED_POINTS, "protection", "Effective balance at or below which users are protected",
    ),
    "protection.new_user_days": (
        c.NEW_USER_PROTECTED_DAYS, "protection", "Days a new ledger is protected from dampens",
    ),
    "karma.excessive_dampen_threshold": (
        c.EXCESSIVE_DAMPEN_THRESHOLD, "karma", "Daily dampens after which the dampener loses karma",
    ),
    **{
        f"karma.{action}": (delta, "karma", f"Karma change for {action.replace('_', ' ')}")
        for action, delta in DEFAULT_KARMA_DELTAS.items()
    },
}
"""Each entry maps ``key`` → ``(default_value, category, description)``."""


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_default_settings(engine: Engine) -> None:
    """Insert default settings that don't yet exist.

    Runs on every startup but only writes rows for keys that are missing,
    so it is safe to call repeatedly.
    """
    session = Session(engine)
    inserted = 0
    try:
        for key, (value, category, desc) in DEFAULT_SETTINGS.items():
            existing = session.get(Setting, key)
            if existing is None:
                session.add(Setting(
                    key=key,
                    value_json=json.dumps(value),
                    category=category,
                    description=desc,
                ))
                inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d default settings.", inserted)
