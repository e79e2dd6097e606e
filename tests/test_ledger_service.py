"""
tests/test_ledger_service.py — Points Ledger Integration Tests
===============================================================

Ledger creation, the balance primitive, earning flows with caps and
level-ups, the lazy daily reset and the read models.

Uses an in-memory SQLite database via the shared conftest fixtures.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from conftest import make_ledger
from vibechecc.database.models import (
    PointsHistory,
    PointTransaction,
    TransactionAction,
    UserPoints,
)
from vibechecc.engine.karma import KarmaAction
from vibechecc.errors import InsufficientFundsError, LedgerNotInitializedError
from vibechecc.services import ledger_service
from vibechecc.services.ledger_service import today_utc
from vibechecc.services.transaction_service import verify_ledger


def _txn_actions(session, user_id: str) -> list[str]:
    return list(session.scalars(
        select(PointTransaction.action)
        .where(PointTransaction.user_id == user_id)
        .order_by(PointTransaction.id)
    ).all())


# ===========================================================================
# Creation & locking
# ===========================================================================
class TestEnsureLedger:
    def test_creates_with_starter_values(self, db_session):
        ledger = ledger_service.ensure_ledger(db_session, "alice")
        assert ledger.current_balance == 50
        assert ledger.protected_points == 50
        assert ledger.total_points_earned == 50
        assert ledger.level == 1
        assert ledger.multiplier == 1.0
        assert ledger.daily_dampen_count == 0
        assert ledger.last_reset_date == today_utc()

    def test_records_starter_bonus(self, db_session):
        ledger_service.ensure_ledger(db_session, "alice")
        txn = db_session.scalar(select(PointTransaction).where(PointTransaction.user_id == "alice"))
        assert txn.action == TransactionAction.STARTER_BONUS
        assert txn.type == "earned"
        assert txn.amount == 50
        assert txn.balance_after == 50
        assert txn.metadata_ == {"protected_points": 50}

    def test_is_idempotent(self, db_session):
        first = ledger_service.ensure_ledger(db_session, "alice")
        second = ledger_service.ensure_ledger(db_session, "alice")
        assert first is second
        count = db_session.scalar(select(func.count()).select_from(UserPoints))
        assert count == 1
        assert _txn_actions(db_session, "alice") == ["starter_bonus"]

    def test_starter_values_come_from_cache(self, db_session, cache):
        overrides = {"economy.starter_balance": 80, "economy.starter_protected_points": 30}
        cache.get_int.side_effect = lambda key, default=0: overrides.get(key, default)
        ledger = ledger_service.ensure_ledger(db_session, "alice", cache)
        assert ledger.current_balance == 80
        assert ledger.total_points_earned == 80
        assert ledger.protected_points == 30


class TestRequireAndLock:
    def test_require_missing_ledger_raises(self, db_session):
        with pytest.raises(LedgerNotInitializedError, match="please retry"):
            ledger_service.require_ledger(db_session, "ghost")

    def test_lock_without_create_raises_for_missing(self, db_engine, db_session):
        make_ledger(db_engine, "alice")
        with pytest.raises(LedgerNotInitializedError):
            ledger_service.lock_ledgers(db_session, ["alice", "bob"])

    def test_lock_with_create_returns_every_ledger(self, db_engine, db_session):
        make_ledger(db_engine, "zed")
        ledgers = ledger_service.lock_ledgers(db_session, ["zed", "amy", "zed"], create=True)
        assert list(ledgers) == ["amy", "zed"]
        assert ledgers["zed"].current_balance == 200
        assert ledgers["amy"].current_balance == 50


# ===========================================================================
# Balance primitive
# ===========================================================================
class TestAdjustBalance:
    def test_refuses_to_go_negative(self, db_session):
        ledger = ledger_service.ensure_ledger(db_session, "alice")
        with pytest.raises(InsufficientFundsError) as exc_info:
            ledger_service.adjust_balance(ledger, -51)
        assert exc_info.value.required == 51
        assert exc_info.value.available == 50
        assert ledger.current_balance == 50

    def test_can_reach_exactly_zero(self, db_session):
        ledger = ledger_service.ensure_ledger(db_session, "alice")
        assert ledger_service.adjust_balance(ledger, -50) == 0

    def test_only_flagged_earnings_raise_lifetime_total(self, db_session):
        ledger = ledger_service.ensure_ledger(db_session, "alice")
        ledger_service.adjust_balance(ledger, 10)
        assert ledger.total_points_earned == 50
        ledger_service.adjust_balance(ledger, 10, earned=True)
        assert ledger.total_points_earned == 60
        ledger_service.adjust_balance(ledger, -5, earned=True)
        assert ledger.total_points_earned == 60


# ===========================================================================
# Earning flows
# ===========================================================================
class TestAwardPoints:
    def test_post_vibe_awards_base_points(self, db_session):
        result = ledger_service.award_points(
            db_session, "alice", TransactionAction.POST_VIBE, target_id="vibe-1",
        )
        assert result.success is True
        assert result.points_awarded == 10
        assert result.new_balance == 60
        assert result.level_up is False

        ledger = ledger_service.get_ledger(db_session, "alice")
        assert ledger.total_points_earned == 60
        assert ledger.daily_post_count == 1
        assert ledger.daily_earned_points == 10
        assert ledger.streak_days == 1
        assert ledger.last_activity_date == today_utc()
        assert _txn_actions(db_session, "alice") == ["starter_bonus", "post_vibe"]

    def test_multiplier_scales_award(self, db_engine, db_session):
        make_ledger(db_engine, "alice", multiplier=0.55)
        result = ledger_service.award_points(db_session, "alice", "write_review")
        assert result.points_awarded == 2   # floor(5 * 0.55)

    def test_post_cap_refuses_fourth_post(self, db_session):
        for _ in range(3):
            assert ledger_service.award_points(db_session, "alice", "post_vibe").success
        result = ledger_service.award_points(db_session, "alice", "post_vibe")
        assert result.success is False
        assert result.reason == "daily_post_cap_reached"
        assert result.points_awarded == 0
        assert ledger_service.get_ledger(db_session, "alice").daily_post_count == 3

    def test_daily_earn_cap(self, db_engine, db_session):
        make_ledger(db_engine, "alice", daily_earned_points=50)
        result = ledger_service.award_points(db_session, "alice", "write_review")
        assert result.success is False
        assert result.reason == "daily_earn_cap_reached"

    def test_receive_review_ignores_caps_and_streak(self, db_engine, db_session):
        make_ledger(db_engine, "alice", daily_earned_points=50)
        result = ledger_service.award_points(db_session, "alice", "receive_review")
        assert result.success is True
        assert result.points_awarded == 2
        ledger = ledger_service.get_ledger(db_session, "alice")
        assert ledger.daily_earned_points == 50
        assert ledger.streak_days == 0
        assert ledger.last_activity_date is None

    def test_level_up_pays_bonus_and_protects_half(self, db_engine, db_session):
        make_ledger(db_engine, "alice", balance=100, total_points_earned=95)
        result = ledger_service.award_points(db_session, "alice", "post_vibe")
        assert result.success is True
        assert result.level_up is True
        assert result.new_level == 2
        assert result.points_awarded == 10
        assert result.new_balance == 130   # 100 + 10 + 20 bonus

        ledger = ledger_service.get_ledger(db_session, "alice")
        assert ledger.protected_points == 60
        assert ledger.total_points_earned == 125
        assert ledger.multiplier < 1.0

        level_txn = db_session.scalar(
            select(PointTransaction).where(PointTransaction.action == "level_up")
        )
        assert level_txn.amount == 20
        assert level_txn.metadata_["old_level"] == 1
        assert level_txn.metadata_["new_level"] == 2
        assert level_txn.metadata_["protected_bonus"] == 10

    def test_award_keeps_audit_log_consistent(self, db_engine, db_session):
        make_ledger(db_engine, "alice", balance=100, total_points_earned=95)
        ledger_service.award_points(db_session, "alice", "post_vibe")
        assert verify_ledger(db_session, "alice").ok

    def test_rejects_non_earning_action(self, db_session):
        with pytest.raises(ValueError, match="not an earning action"):
            ledger_service.award_points(db_session, "alice", TransactionAction.RECEIVE_BOOST)

    def test_streak_continues_from_yesterday(self, db_engine, db_session):
        yesterday = today_utc() - timedelta(days=1)
        make_ledger(db_engine, "alice", streak_days=3, last_activity_date=yesterday)
        ledger_service.award_points(db_session, "alice", "post_vibe")
        assert ledger_service.get_ledger(db_session, "alice").streak_days == 4


# ===========================================================================
# Lazy daily reset
# ===========================================================================
class TestDailyReset:
    def test_new_day_zeroes_counters_and_snapshots(self, db_engine, db_session):
        yesterday = today_utc() - timedelta(days=1)
        make_ledger(
            db_engine, "alice",
            last_reset_date=yesterday,
            daily_earned_points=30,
            daily_post_count=3,
            daily_review_count=2,
            daily_dampen_count=10,
        )
        ledger = ledger_service.require_ledger(db_session, "alice")
        assert ledger.last_reset_date == today_utc()
        assert ledger.daily_earned_points == 0
        assert ledger.daily_post_count == 0
        assert ledger.daily_review_count == 0
        assert ledger.daily_dampen_count == 0

        history = db_session.scalar(select(PointsHistory).where(PointsHistory.user_id == "alice"))
        assert history.day == yesterday
        assert history.ending_balance == 200

    def test_same_day_access_does_not_reset(self, db_engine, db_session):
        make_ledger(db_engine, "alice", daily_dampen_count=4)
        ledger = ledger_service.require_ledger(db_session, "alice")
        assert ledger.daily_dampen_count == 4

    def test_week_long_streak_pays_bonus(self, db_engine, db_session):
        yesterday = today_utc() - timedelta(days=1)
        make_ledger(
            db_engine, "alice",
            last_reset_date=yesterday,
            last_activity_date=yesterday,
            streak_days=14,
        )
        ledger = ledger_service.require_ledger(db_session, "alice")
        assert ledger.current_balance == 210   # 5 * (14 // 7)
        assert ledger.streak_days == 14

        bonus = db_session.scalar(
            select(PointTransaction).where(PointTransaction.action == "daily_bonus")
        )
        assert bonus.amount == 10
        assert bonus.metadata_ == {"streak_days": 14, "bonus_multiplier": 2}

    def test_short_streak_pays_nothing(self, db_engine, db_session):
        yesterday = today_utc() - timedelta(days=1)
        make_ledger(
            db_engine, "alice",
            last_reset_date=yesterday,
            last_activity_date=yesterday,
            streak_days=6,
        )
        ledger = ledger_service.require_ledger(db_session, "alice")
        assert ledger.current_balance == 200
        assert "daily_bonus" not in _txn_actions(db_session, "alice")

    def test_gap_breaks_streak(self, db_engine, db_session):
        three_days_ago = today_utc() - timedelta(days=3)
        make_ledger(
            db_engine, "alice",
            last_reset_date=three_days_ago,
            last_activity_date=three_days_ago,
            streak_days=20,
        )
        ledger = ledger_service.require_ledger(db_session, "alice")
        assert ledger.streak_days == 0
        assert ledger.current_balance == 200

    def test_explicit_today_is_respected(self, db_engine, db_session):
        make_ledger(db_engine, "alice")
        ledger = ledger_service.get_ledger(db_session, "alice")
        assert ledger_service.apply_daily_reset(db_session, ledger, today=today_utc()) is False
        tomorrow = today_utc() + timedelta(days=1)
        assert ledger_service.apply_daily_reset(db_session, ledger, today=tomorrow) is True
        assert ledger.last_reset_date == tomorrow


# ===========================================================================
# Karma & read models
# ===========================================================================
class TestKarmaAndReads:
    def test_update_karma_clamps(self, db_engine, db_session):
        make_ledger(db_engine, "alice", karma_score=99.0)
        ledger = ledger_service.get_ledger(db_session, "alice")
        assert ledger_service.update_karma(ledger, KarmaAction.HELPFUL_BOOST) == 100.0
        assert ledger_service.update_karma(ledger, KarmaAction.EXCESSIVE_DAMPEN) == 97.0

    def test_stats_for_missing_user(self, db_session):
        assert ledger_service.get_user_points_stats(db_session, "ghost") is None

    def test_stats(self, db_engine, db_session):
        make_ledger(db_engine, "alice", total_points_earned=130, level=2, streak_days=5)
        stats = ledger_service.get_user_points_stats(db_session, "alice")
        assert stats["current_balance"] == 200
        assert stats["level"] == 2
        assert stats["points_to_next_level"] == 70
        assert stats["streak_days"] == 5
        assert stats["daily_dampen_count"] == 0

    def test_stats_for_new_ledger_count_starter_as_earned(self, db_session):
        ledger_service.ensure_ledger(db_session, "alice")
        stats = ledger_service.get_user_points_stats(db_session, "alice")
        assert stats["total_points_earned"] == 50
        assert stats["points_to_next_level"] == 50

    def test_stats_hide_counters_from_an_earlier_day(self, db_engine, db_session):
        make_ledger(
            db_engine, "alice",
            last_reset_date=today_utc() - timedelta(days=1),
            daily_earned_points=40,
            daily_dampen_count=7,
        )
        stats = ledger_service.get_user_points_stats(db_session, "alice")
        assert stats["daily_earned_points"] == 0
        assert stats["daily_dampen_count"] == 0
        # Reading does not reset the stored row.
        assert ledger_service.get_ledger(db_session, "alice").daily_dampen_count == 7

    def test_stats_keep_todays_counters(self, db_engine, db_session):
        make_ledger(db_engine, "alice", daily_earned_points=40, daily_dampen_count=7)
        stats = ledger_service.get_user_points_stats(db_session, "alice")
        assert stats["daily_earned_points"] == 40
        assert stats["daily_dampen_count"] == 7

    def test_leaderboard_by_points(self, db_engine, db_session):
        make_ledger(db_engine, "a", total_points_earned=10)
        make_ledger(db_engine, "b", total_points_earned=300)
        make_ledger(db_engine, "c", total_points_earned=0)
        rows = ledger_service.get_leaderboard(db_session, "points")
        assert [r.user_id for r in rows] == ["b", "a"]

    def test_leaderboard_by_level_skips_level_one(self, db_engine, db_session):
        make_ledger(db_engine, "a", level=1)
        make_ledger(db_engine, "b", level=4)
        make_ledger(db_engine, "c", level=2)
        rows = ledger_service.get_leaderboard(db_session, "level", limit=1)
        assert [r.user_id for r in rows] == ["b"]

    def test_leaderboard_unknown_kind(self, db_session):
        with pytest.raises(ValueError, match="Unknown leaderboard type"):
            ledger_service.get_leaderboard(db_session, "karma")
