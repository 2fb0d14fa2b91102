"""analysis_record

Append-only verdict log, partitioned by session_id.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "analysis_record",
        sa.Column("seq", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("session_id", sa.String(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("verdict", sa.String(), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("tactic", sa.String(), nullable=False),
        sa.Column("explanation", sa.Text(), nullable=False),
        sa.Column("prompt", sa.Text(), nullable=True),
        sa.Column("analysis", sa.Text(), nullable=True),
    )
    op.create_index("ix_analysis_record_id", "analysis_record", ["id"], unique=True)
    op.create_index("ix_analysis_record_session_id", "analysis_record", ["session_id"])


def downgrade() -> None:
    op.drop_index("ix_analysis_record_session_id", table_name="analysis_record")
    op.drop_index("ix_analysis_record_id", table_name="analysis_record")
    op.drop_table("analysis_record")
