"""Initial schema: users, content, events, registrations, media, auth state

Revision ID: 0a1c5e7b9d21
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0a1c5e7b9d21"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    """Create every table the API needs."""
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(40), nullable=True),
        sa.Column("profile_image", sa.String(500), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "email_verified", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )

    op.create_table(
        "content",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("slug", sa.String(120), nullable=False, unique=True),
        sa.Column("featured_image", sa.String(500), nullable=True),
        sa.Column(
            "is_published", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=True),
        sa.Column("author_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_content_type_published", "content", ["type", "is_published"])
    op.create_index("ix_content_priority_created", "content", ["priority", "created_at"])

    op.create_table(
        "events",
        sa.Column(
            "content_id",
            sa.String(36),
            sa.ForeignKey("content.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time", sa.String(5), nullable=False),
        sa.Column("location", sa.String(200), nullable=False),
        sa.Column("max_participants", sa.Integer(), nullable=True),
        sa.Column("registration_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "registration_enabled", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
    )
    op.create_index("ix_events_date", "events", ["date"])

    op.create_table(
        "event_registrations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "event_id",
            sa.String(36),
            sa.ForeignKey("events.content_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(40), nullable=True),
        sa.Column("dietary_restrictions", sa.String(500), nullable=True),
        sa.Column("emergency_contact", sa.String(200), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        _timestamp("registered_at"),
        sa.UniqueConstraint("event_id", "email", name="uq_registration_event_email"),
    )
    op.create_index(
        "ix_registrations_event_status", "event_registrations", ["event_id", "status"]
    )

    op.create_table(
        "media",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("original_name", sa.String(255), nullable=False),
        sa.Column("url", sa.String(1000), nullable=False),
        sa.Column("thumbnail_url", sa.String(1000), nullable=True),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("size", sa.BigInteger(), nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("alt_text", sa.String(300), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("legacy_metadata", sa.Text(), nullable=True),
        sa.Column(
            "event_id",
            sa.String(36),
            sa.ForeignKey("events.content_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "uploaded_by_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("created_at"),
    )
    op.create_index(
        "ix_media_event_type_created", "media", ["event_id", "type", "created_at"]
    )
    op.create_index("ix_media_uploaded_by", "media", ["uploaded_by_id"])

    op.create_table(
        "media_tags",
        sa.Column(
            "media_id",
            sa.String(36),
            sa.ForeignKey("media.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("tag", sa.String(50), primary_key=True),
    )
    op.create_index("ix_media_tags_tag", "media_tags", ["tag"])

    op.create_table(
        "oauth_states",
        sa.Column("state", sa.String(128), primary_key=True),
        sa.Column("provider", sa.String(20), nullable=False),
        sa.Column("redirect_uri", sa.String(500), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_oauth_states_created_at", "oauth_states", ["created_at"])

    op.create_table(
        "rate_limit_events",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("bucket", sa.String(40), nullable=False),
        sa.Column("caller", sa.String(64), nullable=False),
        _timestamp("timestamp"),
    )
    op.create_index(
        "ix_rate_limit_bucket_caller_ts",
        "rate_limit_events",
        ["bucket", "caller", "timestamp"],
    )
    op.create_index("ix_rate_limit_ts", "rate_limit_events", ["timestamp"])


def downgrade() -> None:
    """Drop everything, children first."""
    op.drop_index("ix_rate_limit_ts", table_name="rate_limit_events")
    op.drop_index("ix_rate_limit_bucket_caller_ts", table_name="rate_limit_events")
    op.drop_table("rate_limit_events")

    op.drop_index("ix_oauth_states_created_at", table_name="oauth_states")
    op.drop_table("oauth_states")

    op.drop_index("ix_media_tags_tag", table_name="media_tags")
    op.drop_table("media_tags")

    op.drop_index("ix_media_uploaded_by", table_name="media")
    op.drop_index("ix_media_event_type_created", table_name="media")
    op.drop_table("media")

    op.drop_index("ix_registrations_event_status", table_name="event_registrations")
    op.drop_table("event_registrations")

    op.drop_index("ix_events_date", table_name="events")
    op.drop_table("events")

    op.drop_index("ix_content_priority_created", table_name="content")
    op.drop_index("ix_content_type_published", table_name="content")
    op.drop_table("content")

    op.drop_table("users")
