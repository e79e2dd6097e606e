"""Initial economy schema: ratings, votes, points ledger, audit log, settings

Revision ID: 5c1e7d20b9a4
Revises:
Create Date: 2026-10-17 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "5c1e7d20b9a4"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "ratings",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("vibe_id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("emoji", sa.String(32), nullable=False),
        sa.Column("value", sa.Integer(), nullable=False),
        sa.Column("review", sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column("boost_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("dampen_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("net_score", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("vibe_id", "user_id", "emoji", name="uq_ratings_vibe_user_emoji"),
        sa.CheckConstraint("value BETWEEN 1 AND 5", name="ck_ratings_value_range"),
    )
    op.create_index("ix_ratings_user", "ratings", ["user_id"])
    op.create_index("ix_ratings_net_score", "ratings", ["net_score"])

    op.create_table(
        "rating_votes",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "rating_id",
            sa.Integer(),
            sa.ForeignKey("ratings.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("vote_type", sa.String(10), nullable=False),
        sa.Column("points_moved", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("rating_id", "user_id", name="uq_rating_votes_rating_user"),
        sa.CheckConstraint(
            "vote_type IN ('boost', 'dampen')", name="ck_rating_votes_vote_type"
        ),
    )
    op.create_index("ix_rating_votes_user", "rating_votes", ["user_id"])

    op.create_table(
        "user_points",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("current_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_points_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("protected_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("daily_earned_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("daily_post_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("daily_review_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("daily_dampen_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_reset_date", sa.Date(), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("multiplier", sa.Float(), nullable=False, server_default="1.0"),
        sa.Column("streak_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_activity_date", sa.Date(), nullable=True),
        sa.Column("karma_score", sa.Float(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint(
            "current_balance >= 0", name="ck_user_points_balance_non_negative"
        ),
    )
    op.create_index("ix_user_points_total_earned", "user_points", ["total_points_earned"])
    op.create_index("ix_user_points_level", "user_points", ["level"])
    op.create_index("ix_user_points_streak", "user_points", ["streak_days"])

    op.create_table(
        "point_transactions",
        sa.Column("id", sa.BigInteger(), autoincrement=True, primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("action", sa.String(30), nullable=False),
        sa.Column("target_id", sa.String(64), nullable=True),
        sa.Column("from_user_id", sa.String(64), nullable=True),
        sa.Column("to_user_id", sa.String(64), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("multiplier", sa.Float(), nullable=True),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_point_transactions_user_time", "point_transactions", ["user_id", "timestamp"]
    )
    op.create_index("ix_point_transactions_target", "point_transactions", ["target_id"])

    op.create_table(
        "points_history",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("points_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("points_spent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("net_change", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ending_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("activity_count", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("user_id", "date", name="uq_points_history_user_date"),
    )

    op.create_table(
        "settings",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value_json", sa.Text(), nullable=False),
        sa.Column("category", sa.String(50), nullable=False, server_default="general"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_settings_category", "settings", ["category"])


def downgrade() -> None:
    op.drop_index("ix_settings_category", table_name="settings")
    op.drop_table("settings")
    op.drop_table("points_history")
    op.drop_index("ix_point_transactions_target", table_name="point_transactions")
    op.drop_index("ix_point_transactions_user_time", table_name="point_transactions")
    op.drop_table("point_transactions")
    op.drop_index("ix_user_points_streak", table_name="user_points")
    op.drop_index("ix_user_points_level", table_name="user_points")
    op.drop_index("ix_user_points_total_earned", table_name="user_points")
    op.drop_table("user_points")
    op.drop_index("ix_rating_votes_user", table_name="rating_votes")
    op.drop_table("rating_votes")
    op.drop_index("ix_ratings_net_score", table_name="ratings")
    op.drop_index("ix_ratings_user", table_name="ratings")
    op.drop_table("ratings")
