"""Create transcript and transcript_segment tables

Revision ID: 002
Revises: 001
Create Date: 2026-10-12

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "002"
down_revision: str | None = "001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "transcript",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("recording_id", sa.String(length=36), sa.ForeignKey("recording.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("speaker_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_transcript_recording_id"), "transcript", ["recording_id"], unique=True)
    op.create_index(op.f("ix_transcript_user_id"), "transcript", ["user_id"])

    op.create_table(
        "transcript_segment",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("transcript_id", sa.String(length=36), sa.ForeignKey("transcript.id"), nullable=False),
        sa.Column("segment_index", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Float(), nullable=False),
        sa.Column("end_time", sa.Float(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("speaker", sa.String(length=64), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_transcript_segment_transcript_id"), "transcript_segment", ["transcript_id"])


def downgrade() -> None:
    op.drop_index(op.f("ix_transcript_segment_transcript_id"), table_name="transcript_segment")
    op.drop_table("transcript_segment")
    op.drop_index(op.f("ix_transcript_user_id"), table_name="transcript")
    op.drop_index(op.f("ix_transcript_recording_id"), table_name="transcript")
    op.drop_table("transcript")
