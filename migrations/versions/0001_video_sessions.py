"""Video sessions table

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "video_sessions",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="processing"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at_ms", sa.BigInteger(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_video_sessions_status", "video_sessions", ["status"])
    op.create_index("ix_video_sessions_created_at_ms", "video_sessions", ["created_at_ms"])


def downgrade() -> None:
    op.drop_index("ix_video_sessions_created_at_ms", table_name="video_sessions")
    op.drop_index("ix_video_sessions_status", table_name="video_sessions")
    op.drop_table("video_sessions")
