"""Create tenant store tables

Revision ID: 8d2b4f6a0c13
Revises:
Create Date: 2026-10-19 09:05:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "8d2b4f6a0c13"
down_revision = None
branch_labels = ("tenant",)
depends_on = None

_OPEN_REPORT = sa.text("status IN ('pending', 'reviewed')")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by", sa.String(36), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "members",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("image", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "discussions",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("created_by", sa.String(36), nullable=False),
        sa.Column("created_by_role", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), server_default="active"),
        sa.Column("reply_count", sa.Integer(), server_default="0"),
        sa.Column("view_count", sa.Integer(), server_default="0"),
        sa.Column("like_count", sa.Integer(), server_default="0"),
        sa.Column("meeting_link", sa.String(500), nullable=True),
        sa.Column("meeting_platform", sa.String(20), nullable=True),
        sa.Column("meeting_scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("meeting_duration_minutes", sa.Integer(), nullable=True),
        sa.Column("last_reply_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("archived_by", sa.String(36), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_discussions_creator_status", "discussions", ["created_by", "status"])
    op.create_index("ix_discussions_type_status", "discussions", ["type", "status"])
    op.create_index("ix_discussions_created_at", "discussions", ["created_at"])
    op.create_index("ix_discussions_meeting", "discussions", ["meeting_scheduled_at", "status"])

    op.create_table(
        "discussion_tags",
        sa.Column(
            "discussion_id",
            sa.Integer(),
            sa.ForeignKey("discussions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("tag", sa.String(50), nullable=False),
        sa.PrimaryKeyConstraint("discussion_id", "tag"),
    )
    op.create_index("ix_discussion_tags_tag", "discussion_tags", ["tag"])

    op.create_table(
        "replies",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("discussion_id", sa.Integer(), sa.ForeignKey("discussions.id"), nullable=False),
        sa.Column("parent_reply_id", sa.Integer(), sa.ForeignKey("replies.id"), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_by", sa.String(36), nullable=False),
        sa.Column("created_by_role", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), server_default="active"),
        sa.Column("like_count", sa.Integer(), server_default="0"),
        sa.Column("sub_reply_count", sa.Integer(), server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_replies_discussion_status", "replies", ["discussion_id", "status"])
    op.create_index("ix_replies_parent_status", "replies", ["parent_reply_id", "status"])
    op.create_index("ix_replies_creator_status", "replies", ["created_by", "status"])
    op.create_index("ix_replies_discussion_created", "replies", ["discussion_id", "created_at"])

    op.create_table(
        "likes",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("liked_by", sa.String(36), nullable=False),
        sa.Column("liked_by_role", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("entity_type", "entity_id", "liked_by", name="uq_likes_entity_user"),
    )
    op.create_index("ix_likes_liked_by", "likes", ["liked_by"])

    op.create_table(
        "pins",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("discussion_id", sa.Integer(), sa.ForeignKey("discussions.id"), nullable=False),
        sa.Column("pinned_by", sa.String(36), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("discussion_id", "pinned_by", name="uq_pins_discussion_user"),
    )
    op.create_index("ix_pins_user_time", "pins", ["pinned_by", "created_at"])

    op.create_table(
        "views",
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("discussion_id", sa.Integer(), sa.ForeignKey("discussions.id"), nullable=False),
        sa.Column("viewed_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("user_id", "discussion_id"),
    )
    op.create_index("ix_views_discussion", "views", ["discussion_id"])

    op.create_table(
        "mentions",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("discussion_id", sa.Integer(), sa.ForeignKey("discussions.id"), nullable=False),
        sa.Column("reply_id", sa.Integer(), sa.ForeignKey("replies.id"), nullable=True),
        sa.Column("mentioned_by", sa.String(36), nullable=False),
        sa.Column("mentioned_by_role", sa.String(20), nullable=False),
        sa.Column("mentioned_user", sa.String(36), nullable=False),
        sa.Column("mentioned_user_role", sa.String(20), nullable=False),
        sa.Column("mention_text", sa.String(300), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_mentions_reply_user", "mentions", ["reply_id", "mentioned_user"])
    op.create_index("ix_mentions_discussion_user", "mentions", ["discussion_id", "mentioned_user"])
    op.create_index("ix_mentions_user_time", "mentions", ["mentioned_user", "created_at"])

    op.create_table(
        "reports",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("report_type", sa.String(30), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("reported_by", sa.String(36), nullable=False),
        sa.Column("reported_by_role", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), server_default="pending"),
        sa.Column("reviewed_by", sa.String(36), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    # One open report per (reporter, entity)
    op.create_index(
        "ux_reports_open_per_reporter",
        "reports",
        ["entity_type", "entity_id", "reported_by"],
        unique=True,
        postgresql_where=_OPEN_REPORT,
        sqlite_where=_OPEN_REPORT,
    )
    op.create_index("ix_reports_entity", "reports", ["entity_type", "entity_id"])
    op.create_index("ix_reports_status_time", "reports", ["status", "created_at"])

    op.create_table(
        "attachments",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("discussion_id", sa.Integer(), sa.ForeignKey("discussions.id"), nullable=False),
        sa.Column("reply_id", sa.Integer(), sa.ForeignKey("replies.id"), nullable=True),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("original_filename", sa.String(255), nullable=False),
        sa.Column("file_url", sa.String(1000), nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("uploaded_by", sa.String(36), nullable=False),
        sa.Column("uploaded_by_role", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), server_default="active"),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by", sa.String(36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_attachments_discussion", "attachments", ["discussion_id", "status"])
    op.create_index("ix_attachments_reply", "attachments", ["reply_id", "status"])


def downgrade() -> None:
    for table in (
        "attachments",
        "reports",
        "mentions",
        "views",
        "pins",
        "likes",
        "replies",
        "discussion_tags",
        "discussions",
        "members",
    ):
        op.drop_table(table)
