"""
onsweb.api.routes.media — Media upload, galleries & library management
========================================================================

Every route requires a signed-in user; uploads and edits require a member.
Static paths (``/bulk``, ``/search``, ``/tags``, ``/statistics``) are
declared before ``/{media_id}`` so they are matched first.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from onsweb.api.deps import get_current_user, get_media_service, require_member
from onsweb.api.rate_limit import rate_limit
from onsweb.api.responses import ok
from onsweb.api.schemas import BulkDeleteRequest, MediaMetadataUpdate, dump_body
from onsweb.constants import (
    GALLERY_PAGE_SIZE,
    GENERAL_LIMIT,
    MAX_FILES_PER_BATCH,
    MAX_PAGE_SIZE,
    MEDIA_UPLOAD_LIMIT,
    VIDEO_GALLERY_PAGE_SIZE,
)
from onsweb.database.engine import run_db
from onsweb.database.models import MediaType, User
from onsweb.errors import InputValidationError, NotFoundError
from onsweb.services.media_metadata import MediaMetadata
from onsweb.services.media_service import MediaFile, MediaService, UploadOptions

router = APIRouter(
    prefix="/media",
    tags=["media"],
    dependencies=[Depends(rate_limit(GENERAL_LIMIT)), Depends(get_current_user)],
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
async def _read(upload: UploadFile) -> MediaFile:
    data = await upload.read()
    return MediaFile(
        filename=upload.filename or "upload",
        content_type=(upload.content_type or "application/octet-stream").lower(),
        data=data,
    )


def _form_options(
    event_id: str | None,
    is_public: bool,
    generate_thumbnail: bool,
    metadata: str | None,
    tags: str | None,
    description: str | None,
    alt_text: str | None,
    category: str | None,
) -> UploadOptions:
    """Combine the JSON ``metadata`` field with the individual form fields."""
    patch: dict = {}
    if tags is not None:
        patch["tags"] = [t for t in tags.split(",") if t.strip()]
    for name, value in (
        ("description", description),
        ("alt_text", alt_text),
        ("category", category),
    ):
        if value is not None:
            patch[name] = value
    return UploadOptions(
        event_id=event_id or None,
        is_public=is_public,
        generate_thumbnail=generate_thumbnail,
        metadata=MediaMetadata.from_raw(metadata).merge(patch),
    )


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------
@router.post(
    "/upload",
    status_code=201,
    dependencies=[Depends(rate_limit(MEDIA_UPLOAD_LIMIT))],
)
async def upload_media(
    file: UploadFile = File(...),
    event_id: str | None = Form(None),
    is_public: bool = Form(False),
    generate_thumbnail: bool = Form(True),
    metadata: str | None = Form(None),
    tags: str | None = Form(None),
    description: str | None = Form(None),
    alt_text: str | None = Form(None),
    category: str | None = Form(None),
    user: User = Depends(require_member),
    service: MediaService = Depends(get_media_service),
):
    """Upload one image, video or document."""
    options = _form_options(
        event_id, is_public, generate_thumbnail, metadata, tags, description, alt_text, category
    )
    media_file = await _read(file)
    media = await run_db(service.upload_file, media_file, user.id, options)
    return ok(media, message="File uploaded successfully")


@router.post(
    "/upload/multiple",
    status_code=201,
    dependencies=[Depends(rate_limit(MEDIA_UPLOAD_LIMIT))],
)
async def upload_multiple(
    files: list[UploadFile] = File(...),
    event_id: str | None = Form(None),
    is_public: bool = Form(False),
    generate_thumbnail: bool = Form(True),
    metadata: str | None = Form(None),
    tags: str | None = Form(None),
    description: str | None = Form(None),
    alt_text: str | None = Form(None),
    category: str | None = Form(None),
    user: User = Depends(require_member),
    service: MediaService = Depends(get_media_service),
):
    """Upload a batch; each file succeeds or fails on its own."""
    if len(files) > MAX_FILES_PER_BATCH:
        raise InputValidationError(
            f"At most {MAX_FILES_PER_BATCH} files per upload",
            code="TOO_MANY_FILES",
            details={"max_files": MAX_FILES_PER_BATCH, "received": len(files)},
        )
    options = _form_options(
        event_id, is_public, generate_thumbnail, metadata, tags, description, alt_text, category
    )
    media_files = [await _read(f) for f in files]
    result = await run_db(service.upload_multiple_files, media_files, user.id, options)
    message = f"{len(result['uploaded'])} of {len(media_files)} files uploaded"
    return ok(result, message=message)


@router.post("/validate")
async def validate_upload(
    file: UploadFile = File(...),
    service: MediaService = Depends(get_media_service),
):
    """Run the upload checks without storing anything."""
    media_file = await _read(file)
    result = await run_db(service.validate_file_for_upload, media_file)
    return ok(result)


# ---------------------------------------------------------------------------
# Library queries
# ---------------------------------------------------------------------------
@router.get("/search")
def search_media(
    q: str = Query(..., min_length=1, max_length=200),
    type: MediaType | None = None,
    event_id: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(GALLERY_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    service: MediaService = Depends(get_media_service),
):
    return ok(
        service.search_media(q, type=type, event_id=event_id, page=page, limit=limit)
    )


@router.get("/tags")
def media_by_tags(
    tags: str = Query(..., min_length=1, description="Comma-separated tag list"),
    event_id: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(GALLERY_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    service: MediaService = Depends(get_media_service),
):
    """Media carrying any of the given tags."""
    wanted = [t for t in tags.split(",") if t.strip()]
    return ok(
        service.get_media_by_tags(wanted, event_id=event_id, page=page, limit=limit)
    )


@router.get("/statistics")
def media_statistics(
    uploader_id: str | None = None,
    event_id: str | None = None,
    type: MediaType | None = None,
    service: MediaService = Depends(get_media_service),
):
    return ok(
        service.get_media_statistics(uploader_id=uploader_id, event_id=event_id, type=type)
    )


@router.delete("/bulk")
def bulk_delete(
    body: BulkDeleteRequest,
    user: User = Depends(require_member),
    service: MediaService = Depends(get_media_service),
):
    result = service.bulk_delete_media(body.ids, user.id)
    message = f"{len(result['deleted'])} of {len(body.ids)} files deleted"
    return ok(result, message=message)


# ---------------------------------------------------------------------------
# Galleries
# ---------------------------------------------------------------------------
@router.get("/gallery/{event_id}")
def event_gallery(
    event_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(GALLERY_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    service: MediaService = Depends(get_media_service),
):
    return ok(service.get_event_gallery(event_id, page, limit))


@router.get("/gallery/{event_id}/photos")
def photo_gallery(
    event_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(GALLERY_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    service: MediaService = Depends(get_media_service),
):
    return ok(service.get_photo_gallery(event_id, page, limit))


@router.get("/gallery/{event_id}/videos")
def video_gallery(
    event_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(VIDEO_GALLERY_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    service: MediaService = Depends(get_media_service),
):
    return ok(service.get_video_gallery(event_id, page, limit))


# ---------------------------------------------------------------------------
# Single item
# ---------------------------------------------------------------------------
@router.get("/{media_id}")
def get_media(
    media_id: str,
    size: str = "original",
    service: MediaService = Depends(get_media_service),
):
    media = service.get_media(media_id, size)
    if media is None:
        raise NotFoundError("Media not found", code="MEDIA_NOT_FOUND")
    return ok(media)


@router.get("/{media_id}/download")
def download_media(
    media_id: str,
    user: User = Depends(get_current_user),
    service: MediaService = Depends(get_media_service),
):
    return ok(service.get_download_url(media_id, user.id))


@router.put("/{media_id}")
def update_media(
    media_id: str,
    body: MediaMetadataUpdate,
    user: User = Depends(require_member),
    service: MediaService = Depends(get_media_service),
):
    media = service.update_media_metadata(media_id, dump_body(body, partial=True), user.id)
    return ok(media, message="Media updated successfully")


@router.delete("/{media_id}")
def delete_media(
    media_id: str,
    user: User = Depends(require_member),
    service: MediaService = Depends(get_media_service),
):
    service.delete_media(media_id, user.id)
    return ok(None, message="Media deleted successfully")
