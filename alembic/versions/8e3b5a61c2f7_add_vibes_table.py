"""Add vibes table: vibe owners and paid boost score

Revision ID: 8e3b5a61c2f7
Revises: 5c1e7d20b9a4
Create Date: 2026-10-24 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "8e3b5a61c2f7"
down_revision = "5c1e7d20b9a4"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "vibes",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("created_by_id", sa.String(64), nullable=False),
        sa.Column("boost_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_boosts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_dampens", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_vibes_created_by", "vibes", ["created_by_id"])


def downgrade() -> None:
    op.drop_index("ix_vibes_created_by", table_name="vibes")
    op.drop_table("vibes")
