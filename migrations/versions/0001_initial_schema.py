"""initial schema: habits

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

One row per habit, partitioned by user_id. streak_days is checked
non-negative here so bad writes fail at the store, not in the streak logic.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "habits",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("name", sa.String(256), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("is_done_today", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("streak_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_completed_date", sa.String(10), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint("streak_days >= 0", name="ck_habits_streak_non_negative"),
    )
    op.create_index("ix_habits_user_id", "habits", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_habits_user_id", table_name="habits")
    op.drop_table("habits")
