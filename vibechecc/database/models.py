"""
vibechecc.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- vibes               — Owner of each vibe and its paid boost score
- ratings             — Emoji + score + review left on a vibe, with vote aggregates
- rating_votes        — One boost/dampen per (rating, voter)
- user_points         — Per-user points ledger (balance, daily counters, level, karma)
- point_transactions  — Append-only audit log of every balance change
- points_history      — Daily per-user aggregates written on the lazy daily reset
- settings            — Key/value economy tuning store

User ids are opaque strings issued by the external identity provider.
"""

from __future__ import annotations

import enum
from datetime import UTC, date, datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all vibechecc ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class VoteType(enum.StrEnum):
    """The two ways a user can react to someone else's rating."""
    BOOST = "boost"
    DAMPEN = "dampen"


class TransactionType(enum.StrEnum):
    """Coarse classification of a ledger entry, used by daily history."""
    EARNED = "earned"
    SPENT = "spent"
    TRANSFER = "transfer"
    REVERSAL = "reversal"


class TransactionAction(enum.StrEnum):
    """What caused a ledger entry."""
    STARTER_BONUS = "starter_bonus"
    POST_VIBE = "post_vibe"
    WRITE_REVIEW = "write_review"
    RECEIVE_REVIEW = "receive_review"
    LEVEL_UP = "level_up"
    DAILY_BONUS = "daily_bonus"
    TRANSFER_BOOST = "transfer_boost"
    RECEIVE_BOOST = "receive_boost"
    TRANSFER_DAMPEN = "transfer_dampen"
    RECEIVE_DAMPEN = "receive_dampen"
    REVERSE_BOOST = "reverse_boost"
    RECLAIM_BOOST = "reclaim_boost"
    RESTORE_DAMPEN = "restore_dampen"
    BOOST_CONTENT = "boost_content"
    DAMPEN_CONTENT = "dampen_content"


# ---------------------------------------------------------------------------
# Vibes — owner registry and paid boost score
# ---------------------------------------------------------------------------
class Vibe(Base):
    """Economy view of a posted vibe.

    The vibe itself (title, body, media) lives in the content service; this
    row records who created it, so review rewards and paid boosts go to the
    right ledger, and tracks the paid boost score.
    """
    __tablename__ = "vibes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_by_id: Mapped[str] = mapped_column(String(64), nullable=False)
    boost_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_boosts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_dampens: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_vibes_created_by", "created_by_id"),
    )

    def __repr__(self) -> str:
        return f"<Vibe id={self.id!r} by={self.created_by_id} score={self.boost_score}>"


# ---------------------------------------------------------------------------
# Ratings — one per (vibe, rater, emoji)
# ---------------------------------------------------------------------------
class Rating(Base):
    __tablename__ = "ratings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vibe_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    emoji: Mapped[str] = mapped_column(String(32), nullable=False)
    value: Mapped[int] = mapped_column(Integer, nullable=False)
    review: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow,
        server_default=func.now(),
    )

    # Aggregates, written only by score_service.recompute()
    boost_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    dampen_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    net_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    votes: Mapped[list[RatingVote]] = relationship(
        back_populates="rating", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("vibe_id", "user_id", "emoji", name="uq_ratings_vibe_user_emoji"),
        CheckConstraint("value BETWEEN 1 AND 5", name="ck_ratings_value_range"),
        Index("ix_ratings_user", "user_id"),
        Index("ix_ratings_net_score", "net_score"),
    )

    def __repr__(self) -> str:
        return f"<Rating id={self.id} vibe={self.vibe_id} user={self.user_id} value={self.value}>"


# ---------------------------------------------------------------------------
# RatingVote — a voter's current boost/dampen on a rating
# ---------------------------------------------------------------------------
class RatingVote(Base):
    """Current vote of one user on one rating.

    ``points_moved`` is what the triggering transfer actually moved (the
    boost amount or the clamped dampen penalty) so the vote can later be
    reversed exactly.
    """
    __tablename__ = "rating_votes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rating_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("ratings.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    vote_type: Mapped[str] = mapped_column(String(10), nullable=False)
    points_moved: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    rating: Mapped[Rating] = relationship(back_populates="votes")

    __table_args__ = (
        UniqueConstraint("rating_id", "user_id", name="uq_rating_votes_rating_user"),
        CheckConstraint(
            "vote_type IN ('boost', 'dampen')", name="ck_rating_votes_vote_type"
        ),
        Index("ix_rating_votes_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<RatingVote rating={self.rating_id} user={self.user_id} type={self.vote_type}>"


# ---------------------------------------------------------------------------
# UserPoints — the per-user ledger
# ---------------------------------------------------------------------------
class UserPoints(Base):
    __tablename__ = "user_points"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    current_balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_points_earned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    protected_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Daily counters, zeroed by the lazy daily reset
    daily_earned_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    daily_post_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    daily_review_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    daily_dampen_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_reset_date: Mapped[date] = mapped_column(Date, nullable=False)

    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    multiplier: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)
    streak_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_activity_date: Mapped[date | None] = mapped_column(Date, default=None)
    karma_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint("current_balance >= 0", name="ck_user_points_balance_non_negative"),
        Index("ix_user_points_total_earned", "total_points_earned"),
        Index("ix_user_points_level", "level"),
        Index("ix_user_points_streak", "streak_days"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserPoints user={self.user_id} balance={self.current_balance} "
            f"level={self.level}>"
        )


# ---------------------------------------------------------------------------
# PointTransaction — append-only audit log
# ---------------------------------------------------------------------------
class PointTransaction(Base):
    __tablename__ = "point_transactions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(64), default=None)
    from_user_id: Mapped[str | None] = mapped_column(String(64), default=None)
    to_user_id: Mapped[str | None] = mapped_column(String(64), default=None)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)  # signed
    multiplier: Mapped[float | None] = mapped_column(Float, default=None)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_point_transactions_user_time", "user_id", "timestamp"),
        Index("ix_point_transactions_target", "target_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<PointTransaction id={self.id} user={self.user_id} "
            f"action={self.action} amount={self.amount}>"
        )


# ---------------------------------------------------------------------------
# PointsHistory — one aggregate row per user per day
# ---------------------------------------------------------------------------
class PointsHistory(Base):
    __tablename__ = "points_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    day: Mapped[date] = mapped_column("date", Date, nullable=False)
    points_earned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    points_spent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    net_change: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    ending_balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    activity_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_points_history_user_date"),
    )

    def __repr__(self) -> str:
        return f"<PointsHistory user={self.user_id} date={self.day} net={self.net_change}>"


# ---------------------------------------------------------------------------
# Setting — key/value economy tuning store
# ---------------------------------------------------------------------------
class Setting(Base):
    """Key-value configuration store.

    Every economy tuning knob (transfer amounts, dampen quota, protection
    thresholds, karma deltas) lives here so operators can adjust values
    without redeploying.  Values are stored as JSON strings; typed
    accessors live in :class:`~vibechecc.engine.cache.ConfigCache`.
    """
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_settings_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Setting key={self.key!r} category={self.category!r}>"
