"""
onsweb.api.routes.content — Announcements & news CRUD
=======================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from onsweb.api.deps import get_engine, require_editor
from onsweb.api.rate_limit import rate_limit
from onsweb.api.responses import ok, paginated
from onsweb.api.schemas import ContentCreate, ContentUpdate, dump_body
from onsweb.constants import (
    CONTENT_CREATION_LIMIT,
    DEFAULT_PAGE_SIZE,
    GENERAL_LIMIT,
    MAX_PAGE_SIZE,
)
from onsweb.database.models import ContentType, User
from onsweb.services import content_service

router = APIRouter(
    prefix="/content",
    tags=["content"],
    dependencies=[Depends(rate_limit(GENERAL_LIMIT))],
)
logger = logging.getLogger(__name__)


@router.get("")
def list_content(
    type: ContentType | None = None,
    is_published: bool | None = None,
    search: str | None = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    engine: Engine = Depends(get_engine),
):
    """Paginated content list with optional type/published/search filters."""
    items, total = content_service.list_content(
        engine,
        type=type,
        is_published=is_published,
        search=search,
        page=page,
        limit=limit,
    )
    return paginated(items, page=page, limit=limit, total=total)


@router.get("/published")
def list_published(
    type: ContentType | None = None,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    engine: Engine = Depends(get_engine),
):
    return ok(content_service.list_published_content(engine, type, limit))


@router.get("/{content_id}")
def get_content(content_id: str, engine: Engine = Depends(get_engine)):
    return ok(content_service.get_content(engine, content_id))


@router.post(
    "",
    status_code=201,
    dependencies=[Depends(rate_limit(CONTENT_CREATION_LIMIT))],
)
def create_content(
    body: ContentCreate,
    user: User = Depends(require_editor),
    engine: Engine = Depends(get_engine),
):
    content = content_service.create_content(engine, dump_body(body), user.id)
    return ok(content, message="Content created successfully")


@router.put("/{content_id}")
def update_content(
    content_id: str,
    body: ContentUpdate,
    user: User = Depends(require_editor),
    engine: Engine = Depends(get_engine),
):
    content = content_service.update_content(
        engine, content_id, dump_body(body, partial=True), user
    )
    return ok(content, message="Content updated successfully")


@router.delete("/{content_id}")
def delete_content(
    content_id: str,
    user: User = Depends(require_editor),
    engine: Engine = Depends(get_engine),
):
    content_service.delete_content(engine, content_id, user)
    return ok(None, message="Content deleted successfully")
