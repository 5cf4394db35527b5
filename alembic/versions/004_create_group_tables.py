"""Create chat_group, group_member and group_message tables

Revision ID: 004
Revises: 003
Create Date: 2026-10-14

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "004"
down_revision: str | None = "003"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "chat_group",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("creator_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_chat_group_creator_id"), "chat_group", ["creator_id"])

    op.create_table(
        "group_member",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("group_id", sa.String(length=36), sa.ForeignKey("chat_group.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="member"),
        sa.Column("joined_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("group_id", "user_id", name="uq_group_member"),
    )
    op.create_index(op.f("ix_group_member_group_id"), "group_member", ["group_id"])
    op.create_index(op.f("ix_group_member_user_id"), "group_member", ["user_id"])

    op.create_table(
        "group_message",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("group_id", sa.String(length=36), sa.ForeignKey("chat_group.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("message_type", sa.String(length=16), nullable=False, server_default="text"),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("recording_id", sa.String(length=36), sa.ForeignKey("recording.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_group_message_group_id"), "group_message", ["group_id"])
    op.create_index(op.f("ix_group_message_recording_id"), "group_message", ["recording_id"])
    op.create_index(op.f("ix_group_message_created_at"), "group_message", ["created_at"])


def downgrade() -> None:
    op.drop_index(op.f("ix_group_message_created_at"), table_name="group_message")
    op.drop_index(op.f("ix_group_message_recording_id"), table_name="group_message")
    op.drop_index(op.f("ix_group_message_group_id"), table_name="group_message")
    op.drop_table("group_message")
    op.drop_index(op.f("ix_group_member_user_id"), table_name="group_member")
    op.drop_index(op.f("ix_group_member_group_id"), table_name="group_member")
    op.drop_table("group_member")
    op.drop_index(op.f("ix_chat_group_creator_id"), table_name="chat_group")
    op.drop_table("chat_group")
