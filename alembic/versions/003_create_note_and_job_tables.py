"""Create conversation_note and transcription_job tables

Revision ID: 003
Revises: 002
Create Date: 2026-10-13

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "003"
down_revision: str | None = "002"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "conversation_note",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("recording_id", sa.String(length=36), sa.ForeignKey("recording.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("answer", sa.Text(), nullable=False),
        sa.Column("timestamps", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_conversation_note_recording_id"), "conversation_note", ["recording_id"])
    op.create_index(op.f("ix_conversation_note_user_id"), "conversation_note", ["user_id"])
    op.create_index(op.f("ix_conversation_note_created_at"), "conversation_note", ["created_at"])

    op.create_table(
        "transcription_job",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("recording_id", sa.String(length=36), sa.ForeignKey("recording.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="queued"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("finished_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    # Unique: at most one transcription per recording
    op.create_index(op.f("ix_transcription_job_recording_id"), "transcription_job", ["recording_id"], unique=True)
    op.create_index(op.f("ix_transcription_job_user_id"), "transcription_job", ["user_id"])
    op.create_index(op.f("ix_transcription_job_status"), "transcription_job", ["status"])


def downgrade() -> None:
    op.drop_index(op.f("ix_transcription_job_status"), table_name="transcription_job")
    op.drop_index(op.f("ix_transcription_job_user_id"), table_name="transcription_job")
    op.drop_index(op.f("ix_transcription_job_recording_id"), table_name="transcription_job")
    op.drop_table("transcription_job")
    op.drop_index(op.f("ix_conversation_note_created_at"), table_name="conversation_note")
    op.drop_index(op.f("ix_conversation_note_user_id"), table_name="conversation_note")
    op.drop_index(op.f("ix_conversation_note_recording_id"), table_name="conversation_note")
    op.drop_table("conversation_note")
