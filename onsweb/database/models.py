"""
onsweb.database.models — SQLAlchemy 2.0 Data Models
=====================================================

Tables:
- users                — Accounts (password and/or OAuth)
- content              — Announcements, news and event descriptions
- events               — 1:1 scheduling/registration extension of content
- event_registrations  — Attendee sign-ups, unique per (event, email)
- media                — Uploaded files stored in object storage
- media_tags           — Tag set for each media row
- oauth_states         — One-time OAuth ``state`` tokens
- rate_limit_events    — Sliding-window request journal
"""

from __future__ import annotations

import enum
import uuid
from datetime import UTC, date, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive values (SQLite drops the offset on read)."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class UserRole(enum.StrEnum):
    VISITOR = "visitor"
    MEMBER = "member"
    EDITOR = "editor"
    ADMIN = "admin"


class ContentType(enum.StrEnum):
    ANNOUNCEMENT = "announcement"
    NEWS = "news"
    EVENT = "event"


class MediaType(enum.StrEnum):
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"


class RegistrationStatus(enum.StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


def _enum(cls: type[enum.Enum], name: str) -> Enum:
    """Store enum *values* (lowercase strings) rather than member names."""
    return Enum(
        cls,
        name=name,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
    )


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    # NULL for accounts that only ever signed in through the identity provider
    password_hash: Mapped[str | None] = mapped_column(String(255), default=None)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(40), default=None)
    profile_image: Mapped[str | None] = mapped_column(String(500), default=None)
    role: Mapped[UserRole] = mapped_column(
        _enum(UserRole, "user_role"), default=UserRole.MEMBER, nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_login_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    content: Mapped[list[Content]] = relationship(back_populates="author")

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role}>"


# ---------------------------------------------------------------------------
# Content — generic published item
# ---------------------------------------------------------------------------
class Content(Base):
    __tablename__ = "content"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    type: Mapped[ContentType] = mapped_column(
        _enum(ContentType, "content_type"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    featured_image: Mapped[str | None] = mapped_column(String(500), default=None)
    is_published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    published_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    scheduled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    priority: Mapped[int | None] = mapped_column(Integer, default=None)
    author_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    author: Mapped[User] = relationship(back_populates="content")
    event: Mapped[Event | None] = relationship(
        back_populates="content",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_content_type_published", "type", "is_published"),
        Index("ix_content_priority_created", "priority", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Content id={self.id} type={self.type} slug={self.slug!r}>"


# ---------------------------------------------------------------------------
# Event — scheduling/registration extension of a Content row
# ---------------------------------------------------------------------------
class Event(Base):
    __tablename__ = "events"

    content_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("content.id", ondelete="CASCADE"), primary_key=True
    )
    event_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    time: Mapped[str] = mapped_column(String(5), nullable=False)  # HH:MM
    location: Mapped[str] = mapped_column(String(200), nullable=False)
    max_participants: Mapped[int | None] = mapped_column(Integer, default=None)
    registration_deadline: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    registration_enabled: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )

    content: Mapped[Content] = relationship(back_populates="event")
    registrations: Mapped[list[EventRegistration]] = relationship(
        back_populates="event", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_events_date", "date"),
    )

    def __repr__(self) -> str:
        return f"<Event content={self.content_id} date={self.event_date}>"


class EventRegistration(Base):
    __tablename__ = "event_registrations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    event_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("events.content_id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), default=None
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(40), default=None)
    dietary_restrictions: Mapped[str | None] = mapped_column(String(500), default=None)
    emergency_contact: Mapped[str | None] = mapped_column(String(200), default=None)
    status: Mapped[RegistrationStatus] = mapped_column(
        _enum(RegistrationStatus, "registration_status"),
        default=RegistrationStatus.PENDING,
        nullable=False,
    )
    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    event: Mapped[Event] = relationship(back_populates="registrations")
    user: Mapped[User | None] = relationship()

    __table_args__ = (
        UniqueConstraint("event_id", "email", name="uq_registration_event_email"),
        Index("ix_registrations_event_status", "event_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<EventRegistration event={self.event_id} email={self.email!r}>"


# ---------------------------------------------------------------------------
# Media — files stored in object storage
# ---------------------------------------------------------------------------
class Media(Base):
    """Uploaded file stored in object storage, referenced by public URL.

    Descriptive metadata lives in native columns plus the ``media_tags``
    child table.  ``legacy_metadata`` keeps the raw JSON blob of rows that
    predate the structured columns; :class:`onsweb.services.media_metadata.
    MediaMetadata` knows how to read it.
    """
    __tablename__ = "media"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(String(1000), nullable=False)
    thumbnail_url: Mapped[str | None] = mapped_column(String(1000), default=None)
    type: Mapped[MediaType] = mapped_column(_enum(MediaType, "media_type"), nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    alt_text: Mapped[str | None] = mapped_column(String(300), default=None)
    category: Mapped[str | None] = mapped_column(String(100), default=None)
    legacy_metadata: Mapped[str | None] = mapped_column(Text, default=None)
    event_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("events.content_id", ondelete="SET NULL"), default=None
    )
    uploaded_by_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False
    )
    is_public: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    uploaded_by: Mapped[User] = relationship()
    tags: Mapped[list[MediaTag]] = relationship(
        back_populates="media",
        cascade="all, delete-orphan",
        order_by="MediaTag.tag",
    )

    __table_args__ = (
        Index("ix_media_event_type_created", "event_id", "type", "created_at"),
        Index("ix_media_uploaded_by", "uploaded_by_id"),
    )

    @property
    def tag_names(self) -> list[str]:
        return [t.tag for t in self.tags]

    def __repr__(self) -> str:
        return f"<Media id={self.id} type={self.type} name={self.original_name!r}>"


class MediaTag(Base):
    __tablename__ = "media_tags"

    media_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("media.id", ondelete="CASCADE"), primary_key=True
    )
    tag: Mapped[str] = mapped_column(String(50), primary_key=True)

    media: Mapped[Media] = relationship(back_populates="tags")

    __table_args__ = (
        Index("ix_media_tags_tag", "tag"),
    )

    def __repr__(self) -> str:
        return f"<MediaTag media={self.media_id} tag={self.tag!r}>"


# ---------------------------------------------------------------------------
# OAuthState — durable one-time OAuth state tokens
# ---------------------------------------------------------------------------
class OAuthState(Base):
    __tablename__ = "oauth_states"

    state: Mapped[str] = mapped_column(String(128), primary_key=True)
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    redirect_uri: Mapped[str | None] = mapped_column(String(500), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_oauth_states_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<OAuthState state={self.state[:8]!r}...>"


# ---------------------------------------------------------------------------
# RateLimitEvent — durable sliding-window journal
# ---------------------------------------------------------------------------
class RateLimitEvent(Base):
    __tablename__ = "rate_limit_events"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    bucket: Mapped[str] = mapped_column(String(40), nullable=False)
    caller: Mapped[str] = mapped_column(String(64), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_rate_limit_bucket_caller_ts", "bucket", "caller", "timestamp"),
        Index("ix_rate_limit_ts", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<RateLimitEvent {self.bucket}:{self.caller} ts={self.timestamp}>"
