"""add habits.goal_history

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-18 12:00:00.000000

Outgoing goals of past adjustments, so adaptive habits judge earlier days
against the goal that was in force at the time.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0002"
down_revision: Union[str, None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        "habits",
        sa.Column(
            "goal_history", sa.Text(), nullable=True,
            comment="JSON-encoded list of [effective_on, previous_goal] pairs",
        ),
    )


def downgrade() -> None:
    op.drop_column("habits", "goal_history")
