"""
agora.database.models — SQLAlchemy 2.0 Data Models
====================================================

Two independent metadata trees, because the two kinds of store are
physically separate databases:

Central store (``CentralBase``):
- tenants          — One row per organization and its tenant database name
- staff_accounts   — Instructors and administrators (all tenants)

Tenant store (``TenantBase``), one database per organization:
- members          — Member accounts local to the tenant
- discussions      — Threads with cached reply/view/like counters
- discussion_tags  — Normalised tag set per discussion
- replies          — Nested replies (``parent_reply_id`` tree)
- likes            — Unique (entity_type, entity_id, liked_by)
- pins             — Unique (discussion_id, pinned_by) personal bookmarks
- views            — Last-viewed timestamp per (user, discussion)
- mentions         — Resolved @mentions per content item
- reports          — Moderation reports, one open report per reporter/entity
- attachments      — Blob metadata (URL only, never bytes)

Account ids are UUID strings so member and staff ids can never collide;
every creator reference still carries the role so the resolver knows which
store to ask.
"""

from __future__ import annotations

import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    PrimaryKeyConstraint,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Timezone-aware *now*; used for every timestamp default."""
    return datetime.now(UTC)


def new_account_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Bases
# ---------------------------------------------------------------------------
class CentralBase(DeclarativeBase):
    """Shared base for central-store models."""


class TenantBase(DeclarativeBase):
    """Shared base for per-tenant models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Role(enum.StrEnum):
    """Account roles.  ``MEMBER`` accounts live in the tenant store."""
    MEMBER = "member"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class TenantStatus(enum.StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class DiscussionType(enum.StrEnum):
    DISCUSSION = "discussion"
    QUESTION = "question"
    CASE_STUDY = "case_study"
    ANNOUNCEMENT = "announcement"
    MEETING = "meeting"


class DiscussionStatus(enum.StrEnum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    REPORTED = "reported"
    DELETED = "deleted"


class ReplyStatus(enum.StrEnum):
    ACTIVE = "active"
    REPORTED = "reported"
    DELETED = "deleted"


class MeetingPlatform(enum.StrEnum):
    GOOGLE_MEET = "google_meet"
    ZOOM = "zoom"
    TEAMS = "teams"
    OTHER = "other"


class EntityType(enum.StrEnum):
    """Content kinds that can be liked, reported or carry attachments."""
    DISCUSSION = "discussion"
    REPLY = "reply"


class ReportType(enum.StrEnum):
    INAPPROPRIATE_CONTENT = "inappropriate_content"
    SPAM = "spam"
    HARASSMENT = "harassment"
    MISLEADING = "misleading"
    OTHER = "other"


class ReportStatus(enum.StrEnum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    RESOLVED = "resolved"


OPEN_REPORT_STATUSES: tuple[str, ...] = (ReportStatus.PENDING.value, ReportStatus.REVIEWED.value)
_OPEN_REPORT_CLAUSE = text("status IN ('pending', 'reviewed')")


class AttachmentStatus(enum.StrEnum):
    ACTIVE = "active"
    DELETED = "deleted"


# ===========================================================================
# Central store
# ===========================================================================
class Tenant(CentralBase):
    """One organization and the name of its isolated database."""
    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    db_name: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=TenantStatus.ACTIVE.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return f"<Tenant key={self.key!r} db={self.db_name!r}>"


class StaffAccount(CentralBase):
    """Instructor / administrator account.  ``tenant_key`` is NULL for super admins."""
    __tablename__ = "staff_accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_account_id)
    tenant_key: Mapped[str | None] = mapped_column(String(64), default=None)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    image: Mapped[str | None] = mapped_column(String(500), default=None)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    __table_args__ = (
        Index("ix_staff_accounts_tenant_role", "tenant_key", "role"),
    )

    def __repr__(self) -> str:
        return f"<StaffAccount id={self.id} role={self.role}>"


# ===========================================================================
# Tenant store
# ===========================================================================
class Member(TenantBase):
    """Member account local to one tenant."""
    __tablename__ = "members"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_account_id)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    image: Mapped[str | None] = mapped_column(String(500), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    def __repr__(self) -> str:
        return f"<Member id={self.id}>"


# ---------------------------------------------------------------------------
# Discussions
# ---------------------------------------------------------------------------
class Discussion(TenantBase):
    __tablename__ = "discussions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    created_by: Mapped[str] = mapped_column(String(36), nullable=False)
    created_by_role: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=DiscussionStatus.ACTIVE.value)

    # Cached counters: only ever changed by server-side arithmetic UPDATEs
    reply_count: Mapped[int] = mapped_column(Integer, default=0)
    view_count: Mapped[int] = mapped_column(Integer, default=0)
    like_count: Mapped[int] = mapped_column(Integer, default=0)

    # Meeting fields (present iff type == meeting)
    meeting_link: Mapped[str | None] = mapped_column(String(500), default=None)
    meeting_platform: Mapped[str | None] = mapped_column(String(20), default=None)
    meeting_scheduled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    meeting_duration_minutes: Mapped[int | None] = mapped_column(Integer, default=None)

    last_reply_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    archived_by: Mapped[str | None] = mapped_column(String(36), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    # Content edits only; counter updates leave it alone
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    deleted_by: Mapped[str | None] = mapped_column(String(36), default=None)

    tag_rows: Mapped[list[DiscussionTag]] = relationship(
        back_populates="discussion", cascade="all, delete-orphan", lazy="selectin"
    )

    __table_args__ = (
        Index("ix_discussions_creator_status", "created_by", "status"),
        Index("ix_discussions_type_status", "type", "status"),
        Index("ix_discussions_created_at", "created_at"),
        Index("ix_discussions_meeting", "meeting_scheduled_at", "status"),
    )

    @property
    def tags(self) -> list[str]:
        return sorted(row.tag for row in self.tag_rows)

    def __repr__(self) -> str:
        return f"<Discussion id={self.id} type={self.type} status={self.status}>"


class DiscussionTag(TenantBase):
    __tablename__ = "discussion_tags"

    discussion_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("discussions.id", ondelete="CASCADE"), nullable=False
    )
    tag: Mapped[str] = mapped_column(String(50), nullable=False)

    discussion: Mapped[Discussion] = relationship(back_populates="tag_rows")

    __table_args__ = (
        PrimaryKeyConstraint("discussion_id", "tag"),
        Index("ix_discussion_tags_tag", "tag"),
    )


# ---------------------------------------------------------------------------
# Replies: a tree rooted at parent_reply_id IS NULL
# ---------------------------------------------------------------------------
class Reply(TenantBase):
    __tablename__ = "replies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    discussion_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("discussions.id"), nullable=False
    )
    parent_reply_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("replies.id"), default=None
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[str] = mapped_column(String(36), nullable=False)
    created_by_role: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=ReplyStatus.ACTIVE.value)
    like_count: Mapped[int] = mapped_column(Integer, default=0)
    sub_reply_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    deleted_by: Mapped[str | None] = mapped_column(String(36), default=None)

    __table_args__ = (
        Index("ix_replies_discussion_status", "discussion_id", "status"),
        Index("ix_replies_parent_status", "parent_reply_id", "status"),
        Index("ix_replies_creator_status", "created_by", "status"),
        Index("ix_replies_discussion_created", "discussion_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Reply id={self.id} discussion={self.discussion_id} "
            f"parent={self.parent_reply_id} status={self.status}>"
        )


# ---------------------------------------------------------------------------
# Engagement
# ---------------------------------------------------------------------------
class Like(TenantBase):
    __tablename__ = "likes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    liked_by: Mapped[str] = mapped_column(String(36), nullable=False)
    liked_by_role: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("entity_type", "entity_id", "liked_by", name="uq_likes_entity_user"),
        Index("ix_likes_liked_by", "liked_by"),
    )


class Pin(TenantBase):
    __tablename__ = "pins"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    discussion_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("discussions.id"), nullable=False
    )
    pinned_by: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("discussion_id", "pinned_by", name="uq_pins_discussion_user"),
        Index("ix_pins_user_time", "pinned_by", "created_at"),
    )


class View(TenantBase):
    """Last time a user opened a discussion.  Overwritten, never appended."""
    __tablename__ = "views"

    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    discussion_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("discussions.id"), nullable=False
    )
    viewed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        PrimaryKeyConstraint("user_id", "discussion_id"),
        Index("ix_views_discussion", "discussion_id"),
    )


class Mention(TenantBase):
    __tablename__ = "mentions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    discussion_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("discussions.id"), nullable=False
    )
    reply_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("replies.id"), default=None
    )
    mentioned_by: Mapped[str] = mapped_column(String(36), nullable=False)
    mentioned_by_role: Mapped[str] = mapped_column(String(20), nullable=False)
    mentioned_user: Mapped[str] = mapped_column(String(36), nullable=False)
    mentioned_user_role: Mapped[str] = mapped_column(String(20), nullable=False)
    mention_text: Mapped[str] = mapped_column(String(300), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_mentions_reply_user", "reply_id", "mentioned_user"),
        Index("ix_mentions_discussion_user", "discussion_id", "mentioned_user"),
        Index("ix_mentions_user_time", "mentioned_user", "created_at"),
    )


# ---------------------------------------------------------------------------
# Moderation
# ---------------------------------------------------------------------------
class Report(TenantBase):
    __tablename__ = "reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    report_type: Mapped[str] = mapped_column(String(30), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    reported_by: Mapped[str] = mapped_column(String(36), nullable=False)
    reported_by_role: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=ReportStatus.PENDING.value)
    reviewed_by: Mapped[str | None] = mapped_column(String(36), default=None)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    admin_notes: Mapped[str | None] = mapped_column(Text, default=None)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        # One open report per (reporter, entity); closed reports may repeat
        Index(
            "ux_reports_open_per_reporter",
            "entity_type",
            "entity_id",
            "reported_by",
            unique=True,
            postgresql_where=_OPEN_REPORT_CLAUSE,
            sqlite_where=_OPEN_REPORT_CLAUSE,
        ),
        Index("ix_reports_entity", "entity_type", "entity_id"),
        Index("ix_reports_status_time", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Report id={self.id} {self.entity_type}:{self.entity_id} status={self.status}>"


class Attachment(TenantBase):
    __tablename__ = "attachments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    discussion_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("discussions.id"), nullable=False
    )
    reply_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("replies.id"), default=None
    )
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    original_filename: Mapped[str] = mapped_column(String(255), nullable=False)
    file_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    uploaded_by: Mapped[str] = mapped_column(String(36), nullable=False)
    uploaded_by_role: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=AttachmentStatus.ACTIVE.value)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    deleted_by: Mapped[str | None] = mapped_column(String(36), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_attachments_discussion", "discussion_id", "status"),
        Index("ix_attachments_reply", "reply_id", "status"),
    )
