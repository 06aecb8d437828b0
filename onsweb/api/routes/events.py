"""
onsweb.api.routes.events — Event CRUD & registration
======================================================
"""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from onsweb.api.deps import get_current_user, get_engine, optional_user, require_editor
from onsweb.api.rate_limit import rate_limit
from onsweb.api.responses import ok, paginated
from onsweb.api.schemas import EventCreate, EventUpdate, RegistrationCreate, dump_body
from onsweb.constants import (
    CONTENT_CREATION_LIMIT,
    DEFAULT_PAGE_SIZE,
    EVENT_REGISTRATION_LIMIT,
    GENERAL_LIMIT,
    MAX_PAGE_SIZE,
)
from onsweb.database.models import User
from onsweb.services import event_service

router = APIRouter(
    prefix="/events",
    tags=["events"],
    dependencies=[Depends(rate_limit(GENERAL_LIMIT))],
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
@router.get("")
def list_events(
    date_from: date | None = None,
    date_to: date | None = None,
    location: str | None = Query(None, max_length=200),
    registration_enabled: bool | None = None,
    search: str | None = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    engine: Engine = Depends(get_engine),
):
    items, total = event_service.list_events(
        engine,
        date_from=date_from,
        date_to=date_to,
        location=location,
        registration_enabled=registration_enabled,
        search=search,
        page=page,
        limit=limit,
    )
    return paginated(items, page=page, limit=limit, total=total)


@router.get("/upcoming")
def upcoming_events(
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    engine: Engine = Depends(get_engine),
):
    """Published events dated today or later."""
    return ok(event_service.list_published_events(engine, limit))


@router.get("/{event_id}")
def get_event(event_id: str, engine: Engine = Depends(get_engine)):
    return ok(event_service.get_event(engine, event_id))


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
@router.post(
    "",
    status_code=201,
    dependencies=[Depends(rate_limit(CONTENT_CREATION_LIMIT))],
)
def create_event(
    body: EventCreate,
    user: User = Depends(require_editor),
    engine: Engine = Depends(get_engine),
):
    event = event_service.create_event(engine, dump_body(body), user.id)
    return ok(event, message="Event created successfully")


@router.put("/{event_id}")
def update_event(
    event_id: str,
    body: EventUpdate,
    user: User = Depends(require_editor),
    engine: Engine = Depends(get_engine),
):
    event = event_service.update_event(
        engine, event_id, dump_body(body, partial=True), user
    )
    return ok(event, message="Event updated successfully")


@router.delete("/{event_id}")
def delete_event(
    event_id: str,
    user: User = Depends(require_editor),
    engine: Engine = Depends(get_engine),
):
    event_service.delete_event(engine, event_id, user)
    return ok(None, message="Event deleted successfully")


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------
@router.post(
    "/{event_id}/register",
    status_code=201,
    dependencies=[Depends(rate_limit(EVENT_REGISTRATION_LIMIT))],
)
def register_for_event(
    event_id: str,
    body: RegistrationCreate,
    user: User | None = Depends(optional_user),
    engine: Engine = Depends(get_engine),
):
    """Register a member or a guest; signed-in users get the row linked."""
    registration = event_service.register_for_event(
        engine, event_id, dump_body(body), user.id if user else None
    )
    return ok(registration, message="Successfully registered for event")


@router.get("/{event_id}/registrations")
def list_registrations(
    event_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    user: User = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    items, total = event_service.list_registrations(
        engine, event_id, user, page=page, limit=limit
    )
    return paginated(items, page=page, limit=limit, total=total)
