"""
onsweb.services.content_service — Editorial Content
=====================================================

CRUD over :class:`~onsweb.database.models.Content` rows (announcements, news
and the descriptive half of events).

* Bodies are run through :func:`onsweb.text.sanitize_html` on every write.
* Slugs derive from the title; collisions resolve as ``base``, ``base-1``,
  ``base-2``…  The unique index on ``content.slug`` catches a concurrent
  writer that picks the same candidate, surfaced as :class:`ConflictError`.
* ``published_at`` is stamped once, on the first publish, and is never
  overwritten implicitly afterwards.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import Engine, Select, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from onsweb.constants import EDITOR_ROLES
from onsweb.database.engine import get_session
from onsweb.database.models import Content, ContentType, User, as_utc, utcnow
from onsweb.errors import ConflictError, ForbiddenError, NotFoundError
from onsweb.text import candidate_slugs, sanitize_html, sanitize_text, slugify

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers shared with event_service
# ---------------------------------------------------------------------------
def iso_utc(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def serialize_content(content: Content) -> dict[str, Any]:
    author = content.author
    return {
        "id": content.id,
        "type": content.type.value,
        "title": content.title,
        "body": content.body,
        "slug": content.slug,
        "featured_image": content.featured_image,
        "is_published": content.is_published,
        "published_at": iso_utc(content.published_at),
        "scheduled_at": iso_utc(content.scheduled_at),
        "priority": content.priority,
        "author": {"id": author.id, "name": author.name} if author else None,
        "created_at": iso_utc(content.created_at),
        "updated_at": iso_utc(content.updated_at),
    }


def unique_slug(session: Session, title: str, exclude_id: str | None = None) -> str:
    """First free slug for *title*, ignoring the row *exclude_id*."""
    base = slugify(title)
    stmt = select(Content.slug).where(
        or_(Content.slug == base, Content.slug.like(f"{base}-%"))
    )
    if exclude_id is not None:
        stmt = stmt.where(Content.id != exclude_id)
    taken = set(session.scalars(stmt))
    for candidate in candidate_slugs(base):
        if candidate not in taken:
            return candidate
    raise AssertionError("unreachable")


def ensure_can_modify(content: Content, actor: User) -> None:
    """Author, editors and admins may change a row; nobody else."""
    if content.author_id == actor.id or actor.role in EDITOR_ROLES:
        return
    raise ForbiddenError("You do not have permission to modify this content")


def apply_publishing(
    content: Content,
    is_published: bool | None,
    published_at: datetime | None,
    *,
    explicit_published_at: bool,
) -> None:
    """Set the publish flag and stamp ``published_at`` on the first publish."""
    if explicit_published_at:
        content.published_at = published_at
    if is_published is not None:
        content.is_published = is_published
        if is_published and content.published_at is None:
            content.published_at = utcnow()


def flush_or_conflict(session: Session, slug: str) -> None:
    try:
        session.flush()
    except IntegrityError:
        logger.warning("Slug collision on insert: %s", slug)
        raise ConflictError(
            f"Slug '{slug}' is already in use", code="SLUG_CONFLICT"
        ) from None


def search_clause(term: str):
    pattern = f"%{term.strip()}%"
    return or_(Content.title.ilike(pattern), Content.body.ilike(pattern))


def count_rows(session: Session, stmt: Select) -> int:
    return session.scalar(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    ) or 0


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def list_content(
    engine: Engine,
    *,
    type: ContentType | str | None = None,
    is_published: bool | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[dict], int]:
    """Filtered page of content, highest priority first, then newest.

    Returns ``(items, total)`` where *total* counts every matching row.
    """
    stmt = select(Content)
    if type:
        stmt = stmt.where(Content.type == ContentType(type))
    if is_published is not None:
        stmt = stmt.where(Content.is_published == is_published)
    if search and search.strip():
        stmt = stmt.where(search_clause(search))

    with get_session(engine) as session:
        total = count_rows(session, stmt)
        rows = session.scalars(
            stmt.options(selectinload(Content.author))
            .order_by(Content.priority.desc().nulls_last(), Content.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return [serialize_content(c) for c in rows], total


def get_content(engine: Engine, content_id: str) -> dict:
    with get_session(engine) as session:
        content = session.get(Content, content_id)
        if content is None:
            raise NotFoundError("Content not found", code="CONTENT_NOT_FOUND")
        data = serialize_content(content)
        if content.event is not None:
            from onsweb.services.event_service import serialize_event_fields

            data["event"] = serialize_event_fields(session, content.event)
        return data


def list_published_content(
    engine: Engine, type: ContentType | str | None = None, limit: int = 10
) -> list[dict]:
    """Published rows whose ``published_at`` has been reached."""
    stmt = select(Content).where(
        Content.is_published.is_(True),
        Content.published_at <= utcnow(),
    )
    if type:
        stmt = stmt.where(Content.type == ContentType(type))
    with get_session(engine) as session:
        rows = session.scalars(
            stmt.options(selectinload(Content.author))
            .order_by(Content.priority.desc().nulls_last(), Content.published_at.desc())
            .limit(limit)
        ).all()
        return [serialize_content(c) for c in rows]


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
def create_content(engine: Engine, data: dict[str, Any], author_id: str) -> dict:
    """Insert a content row from validated request *data*."""
    with get_session(engine) as session:
        title = sanitize_text(data["title"]) or data["title"]
        content = Content(
            type=ContentType(data["type"]),
            title=title,
            body=sanitize_html(data["body"]),
            slug=unique_slug(session, title),
            featured_image=data.get("featured_image"),
            scheduled_at=data.get("scheduled_at"),
            priority=data.get("priority"),
            author_id=author_id,
        )
        apply_publishing(
            content,
            bool(data.get("is_published", False)),
            data.get("published_at"),
            explicit_published_at=data.get("published_at") is not None,
        )
        session.add(content)
        flush_or_conflict(session, content.slug)
        result = serialize_content(content)

    logger.info("Created %s %s (%s)", result["type"], result["id"], result["slug"])
    return result


_SIMPLE_FIELDS = ("featured_image", "scheduled_at", "priority")


def update_content(engine: Engine, content_id: str, data: dict[str, Any], actor: User) -> dict:
    """Apply the fields present in *data*; a new title regenerates the slug."""
    with get_session(engine) as session:
        content = session.get(Content, content_id)
        if content is None:
            raise NotFoundError("Content not found", code="CONTENT_NOT_FOUND")
        ensure_can_modify(content, actor)
        apply_content_patch(session, content, data)
        flush_or_conflict(session, content.slug)
        return serialize_content(content)


def apply_content_patch(session: Session, content: Content, data: dict[str, Any]) -> None:
    if data.get("title") is not None:
        content.title = sanitize_text(data["title"]) or data["title"]
        content.slug = unique_slug(session, content.title, exclude_id=content.id)
    if data.get("body") is not None:
        content.body = sanitize_html(data["body"])
    for field in _SIMPLE_FIELDS:
        if field in data:
            setattr(content, field, data[field])
    apply_publishing(
        content,
        data.get("is_published"),
        data.get("published_at"),
        explicit_published_at=data.get("published_at") is not None,
    )


def delete_content(engine: Engine, content_id: str, actor: User) -> None:
    """Remove a row; an attached event and its registrations go with it."""
    with get_session(engine) as session:
        content = session.get(Content, content_id)
        if content is None:
            raise NotFoundError("Content not found", code="CONTENT_NOT_FOUND")
        ensure_can_modify(content, actor)
        session.delete(content)
    logger.info("Deleted content %s by %s", content_id, actor.id)
