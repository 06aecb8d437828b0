"""
onsweb.services.event_service — Events & Registration
=======================================================

An event is a ``Content`` row of type ``event`` plus its 1:1 ``Event`` row
(date, time, location, capacity, registration window).  Both are written in
one transaction, share the content id, and are deleted together.

Registration checks run in a fixed order: existence, enabled flag,
deadline, capacity, duplicate email.  The event row is locked
(``SELECT … FOR UPDATE``) while the confirmed count is taken and the new
row inserted, so two concurrent sign-ups cannot both take the last seat.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from sqlalchemy import Engine, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from onsweb.constants import EDITOR_ROLES
from onsweb.database.engine import get_session
from onsweb.database.models import (
    Content,
    ContentType,
    Event,
    EventRegistration,
    RegistrationStatus,
    User,
    as_utc,
    utcnow,
)
from onsweb.errors import (
    AlreadyRegisteredError,
    EventFullError,
    ForbiddenError,
    NotFoundError,
    RegistrationClosedError,
    RegistrationDisabledError,
)
from onsweb.services.content_service import (
    apply_content_patch,
    apply_publishing,
    count_rows,
    ensure_can_modify,
    flush_or_conflict,
    iso_utc,
    search_clause,
    serialize_content,
    unique_slug,
)
from onsweb.text import sanitize_html, sanitize_text

logger = logging.getLogger(__name__)

_EVENT_FIELDS = (
    "time",
    "location",
    "max_participants",
    "registration_deadline",
    "registration_enabled",
)
_NULLABLE_EVENT_FIELDS = frozenset({"max_participants", "registration_deadline"})


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------
def confirmed_count(session: Session, event_id: str) -> int:
    return session.scalar(
        select(func.count())
        .select_from(EventRegistration)
        .where(
            EventRegistration.event_id == event_id,
            EventRegistration.status == RegistrationStatus.CONFIRMED,
        )
    ) or 0


def is_registered(session: Session, event_id: str, email: str) -> bool:
    return session.scalar(
        select(EventRegistration.id).where(
            EventRegistration.event_id == event_id,
            EventRegistration.email == email,
        )
    ) is not None


def serialize_event_fields(session: Session, event: Event) -> dict[str, Any]:
    confirmed = confirmed_count(session, event.content_id)
    spots_left = (
        max(0, event.max_participants - confirmed)
        if event.max_participants is not None
        else None
    )
    return {
        "date": event.event_date.isoformat(),
        "time": event.time,
        "location": event.location,
        "max_participants": event.max_participants,
        "registration_deadline": iso_utc(event.registration_deadline),
        "registration_enabled": event.registration_enabled,
        "confirmed_count": confirmed,
        "spots_left": spots_left,
    }


def serialize_event(session: Session, content: Content) -> dict[str, Any]:
    data = serialize_content(content)
    data["event"] = serialize_event_fields(session, content.event)
    return data


def serialize_registration(reg: EventRegistration) -> dict[str, Any]:
    return {
        "id": reg.id,
        "event_id": reg.event_id,
        "user_id": reg.user_id,
        "name": reg.name,
        "email": reg.email,
        "phone": reg.phone,
        "dietary_restrictions": reg.dietary_restrictions,
        "emergency_contact": reg.emergency_contact,
        "status": reg.status.value,
        "registered_at": iso_utc(reg.registered_at),
    }


def _load_event(session: Session, event_id: str) -> Content:
    content = session.get(Content, event_id)
    if content is None or content.type != ContentType.EVENT or content.event is None:
        raise NotFoundError("Event not found", code="EVENT_NOT_FOUND")
    return content


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def list_events(
    engine: Engine,
    *,
    date_from: date | None = None,
    date_to: date | None = None,
    location: str | None = None,
    registration_enabled: bool | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[dict], int]:
    """Filtered page of events, soonest first.  Returns ``(items, total)``."""
    stmt = (
        select(Content)
        .join(Event, Event.content_id == Content.id)
        .where(Content.type == ContentType.EVENT)
    )
    if date_from is not None:
        stmt = stmt.where(Event.event_date >= date_from)
    if date_to is not None:
        stmt = stmt.where(Event.event_date <= date_to)
    if location and location.strip():
        stmt = stmt.where(Event.location.ilike(f"%{location.strip()}%"))
    if registration_enabled is not None:
        stmt = stmt.where(Event.registration_enabled == registration_enabled)
    if search and search.strip():
        stmt = stmt.where(search_clause(search))

    with get_session(engine) as session:
        total = count_rows(session, stmt)
        rows = session.scalars(
            stmt.options(selectinload(Content.author), selectinload(Content.event))
            .order_by(Event.event_date.asc(), Event.time.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return [serialize_event(session, c) for c in rows], total


def get_event(engine: Engine, event_id: str) -> dict:
    with get_session(engine) as session:
        return serialize_event(session, _load_event(session, event_id))


def list_published_events(engine: Engine, limit: int = 10) -> list[dict]:
    """Published events dated today or later, soonest first."""
    now = utcnow()
    stmt = (
        select(Content)
        .join(Event, Event.content_id == Content.id)
        .where(
            Content.type == ContentType.EVENT,
            Content.is_published.is_(True),
            Content.published_at <= now,
            Event.event_date >= now.date(),
        )
        .options(selectinload(Content.author), selectinload(Content.event))
        .order_by(Event.event_date.asc(), Event.time.asc())
        .limit(limit)
    )
    with get_session(engine) as session:
        return [serialize_event(session, c) for c in session.scalars(stmt)]


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
def create_event(engine: Engine, data: dict[str, Any], author_id: str) -> dict:
    """Insert the content row and its event row in a single transaction."""
    with get_session(engine) as session:
        title = sanitize_text(data["title"]) or data["title"]
        content = Content(
            type=ContentType.EVENT,
            title=title,
            body=sanitize_html(data["description"]),
            slug=unique_slug(session, title),
            featured_image=data.get("featured_image"),
            scheduled_at=data.get("scheduled_at"),
            author_id=author_id,
        )
        apply_publishing(
            content,
            bool(data.get("is_published", False)),
            data.get("published_at"),
            explicit_published_at=data.get("published_at") is not None,
        )
        content.event = Event(
            event_date=data["date"],
            time=data["time"],
            location=sanitize_text(data["location"]) or data["location"],
            max_participants=data.get("max_participants"),
            registration_deadline=data.get("registration_deadline"),
            registration_enabled=data.get("registration_enabled", True),
        )
        session.add(content)
        flush_or_conflict(session, content.slug)
        result = serialize_event(session, content)

    logger.info("Created event %s on %s", result["id"], result["event"]["date"])
    return result


def update_event(engine: Engine, event_id: str, data: dict[str, Any], actor: User) -> dict:
    """Patch content fields (``description`` maps to the body) and event fields."""
    patch = dict(data)
    if "description" in patch:
        patch["body"] = patch.pop("description")

    with get_session(engine) as session:
        content = _load_event(session, event_id)
        ensure_can_modify(content, actor)
        apply_content_patch(session, content, patch)

        event = content.event
        if patch.get("date") is not None:
            event.event_date = patch["date"]
        for field in _EVENT_FIELDS:
            if field not in patch:
                continue
            if patch[field] is None and field not in _NULLABLE_EVENT_FIELDS:
                continue
            setattr(event, field, patch[field])

        flush_or_conflict(session, content.slug)
        return serialize_event(session, content)


def delete_event(engine: Engine, event_id: str, actor: User) -> None:
    with get_session(engine) as session:
        content = _load_event(session, event_id)
        ensure_can_modify(content, actor)
        session.delete(content)
    logger.info("Deleted event %s by %s", event_id, actor.id)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------
def register_for_event(
    engine: Engine,
    event_id: str,
    attendee: dict[str, Any],
    user_id: str | None = None,
) -> dict:
    """Sign *attendee* up for an event and return the confirmed registration.

    Raises, in check order: :class:`NotFoundError`,
    :class:`RegistrationDisabledError`, :class:`RegistrationClosedError`,
    :class:`EventFullError`, :class:`AlreadyRegisteredError`.
    """
    email = attendee["email"].strip().lower()
    try:
        with get_session(engine) as session:
            event = session.scalar(
                select(Event).where(Event.content_id == event_id).with_for_update()
            )
            if event is None:
                raise NotFoundError("Event not found", code="EVENT_NOT_FOUND")
            if not event.registration_enabled:
                raise RegistrationDisabledError(
                    "Registration is not enabled for this event"
                )
            deadline = as_utc(event.registration_deadline)
            if deadline is not None and utcnow() > deadline:
                raise RegistrationClosedError("Registration deadline has passed")
            if (
                event.max_participants is not None
                and confirmed_count(session, event_id) >= event.max_participants
            ):
                raise EventFullError("Event is full")

            if is_registered(session, event_id, email):
                raise AlreadyRegisteredError("Email is already registered for this event")

            reg = EventRegistration(
                event_id=event_id,
                user_id=user_id,
                name=sanitize_text(attendee["name"]) or attendee["name"],
                email=email,
                phone=attendee.get("phone"),
                dietary_restrictions=sanitize_text(attendee.get("dietary_restrictions")),
                emergency_contact=sanitize_text(attendee.get("emergency_contact")),
                status=RegistrationStatus.CONFIRMED,
            )
            session.add(reg)
            session.flush()
            result = serialize_registration(reg)
    except IntegrityError:
        # Only a concurrent insert of the same (event, email) is a 409
        with get_session(engine) as session:
            if not is_registered(session, event_id, email):
                raise
        raise AlreadyRegisteredError(
            "Email is already registered for this event"
        ) from None

    logger.info("Registration %s confirmed for event %s", result["id"], event_id)
    return result


def list_registrations(
    engine: Engine,
    event_id: str,
    actor: User,
    *,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[dict], int]:
    """Registrations for one event, newest first; author/editor/admin only."""
    with get_session(engine) as session:
        content = _load_event(session, event_id)
        if content.author_id != actor.id and actor.role not in EDITOR_ROLES:
            raise ForbiddenError("You do not have permission to view registrations")

        stmt = select(EventRegistration).where(EventRegistration.event_id == event_id)
        total = count_rows(session, stmt)
        rows = session.scalars(
            stmt.order_by(EventRegistration.registered_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return [serialize_registration(r) for r in rows], total
