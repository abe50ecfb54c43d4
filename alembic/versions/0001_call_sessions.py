"""call sessions

Revision ID: 0001_call_sessions
Revises:
Create Date: 2026-10-19

"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_call_sessions"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "call_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("session_id", sa.String(length=64), nullable=False),
        sa.Column("call_id", sa.String(length=128), nullable=True),
        sa.Column("hospital_id", sa.String(length=128), nullable=False),
        sa.Column("caller_phone", sa.String(length=128), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("ai_summary", sa.Text(), nullable=True),
        sa.Column("inbound_recording", sa.String(length=255), nullable=True),
        sa.Column("outbound_recording", sa.String(length=255), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_call_sessions_session_id",
        "call_sessions",
        ["session_id"],
        unique=True,
    )
    op.create_index(
        "ix_call_sessions_call_id",
        "call_sessions",
        ["call_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_call_sessions_call_id", table_name="call_sessions")
    op.drop_index("ix_call_sessions_session_id", table_name="call_sessions")
    op.drop_table("call_sessions")
