"""
onsweb.services.media_service — Media Library
===============================================

Validates uploaded files, writes them to object storage, and keeps a
queryable ``media`` row per file.

Upload pipeline (per file):

1. Classify the declared mime type against the image/video/document
   allow-lists, then enforce that type's byte limit.  Nothing is written
   when either check fails.
2. Images are re-encoded to JPEG (max 1920×1080) and, unless disabled, a
   300×300 thumbnail is stored at ``media/thumbnails/<filename>``.
3. The primary object goes to ``media/<type>s/<uuid><ext>``.  Images are
   served through the CDN; other types get a signed storage URL.
4. The row is inserted last.  If that insert fails the stored objects are
   left behind and logged; there is no compensating delete.

Deletion runs the other way round: storage objects first, then the row.
"""

from __future__ import annotations

import logging
import mimetypes
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import PurePosixPath
from typing import Any

from sqlalchemy import Engine, Select, func, or_, select
from sqlalchemy.orm import Session, selectinload

from onsweb.constants import (
    ADMIN_ROLES,
    ALLOWED_MIME_TYPES,
    DEFAULT_VIDEO_BITRATE_BPS,
    IMAGE_SIZES,
    MAX_FILE_SIZE,
    MEMBER_ROLES,
    MP4_BITRATE_BPS,
    SIGNED_URL_TTL_SECONDS,
    VIDEO_STORY_TTL_DAYS,
)
from onsweb.database.engine import get_session
from onsweb.database.models import Event, Media, MediaTag, MediaType, User, as_utc
from onsweb.errors import (
    AppError,
    FileTooLargeError,
    ForbiddenError,
    InputValidationError,
    NotFoundError,
    UnauthorizedError,
    UnsupportedMediaTypeError,
)
from onsweb.services.image_cdn import ImageCdn
from onsweb.services.image_processing import make_thumbnail, probe_image, resize_image
from onsweb.services.media_metadata import MediaMetadata, normalize_tags
from onsweb.services.storage import ObjectStorage
from onsweb.text import sanitize_filename, sanitize_text

logger = logging.getLogger(__name__)

THUMBNAIL_PREFIX = "media/thumbnails/"


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class MediaFile:
    """An uploaded file, fully read into memory."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True, slots=True)
class UploadOptions:
    event_id: str | None = None
    is_public: bool = False
    generate_thumbnail: bool = True
    metadata: MediaMetadata = field(default_factory=MediaMetadata)


@dataclass(frozen=True, slots=True)
class MediaPolicy:
    allowed_mime_types: dict[MediaType, frozenset[str]]
    max_file_size: dict[MediaType, int]
    signed_url_seconds: int = SIGNED_URL_TTL_SECONDS


MEDIA_POLICY = MediaPolicy(ALLOWED_MIME_TYPES, MAX_FILE_SIZE)


def primary_key(media_type: MediaType, filename: str) -> str:
    return f"media/{media_type.value}s/{filename}"


def thumbnail_key(filename: str) -> str:
    return f"{THUMBNAIL_PREFIX}{filename}"


def estimate_duration(size: int, mime_type: str) -> int:
    """Rough playback length in seconds from file size and container bitrate."""
    bitrate = MP4_BITRATE_BPS if "mp4" in mime_type else DEFAULT_VIDEO_BITRATE_BPS
    return round(size * 8 / bitrate)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------
class MediaService:
    def __init__(
        self,
        engine: Engine,
        storage: ObjectStorage,
        cdn: ImageCdn,
        policy: MediaPolicy = MEDIA_POLICY,
    ) -> None:
        self.engine = engine
        self.storage = storage
        self.cdn = cdn
        self.policy = policy

    # -- validation -------------------------------------------------------
    def classify(self, mime_type: str) -> MediaType:
        mime_type = (mime_type or "").lower()
        for media_type, allowed in self.policy.allowed_mime_types.items():
            if mime_type in allowed:
                return media_type
        raise UnsupportedMediaTypeError(
            f"File type {mime_type or 'unknown'} is not allowed",
            details={"mime_type": mime_type},
        )

    def check_size(self, media_type: MediaType, size: int) -> None:
        limit = self.policy.max_file_size[media_type]
        if size > limit:
            raise FileTooLargeError(
                f"File too large. Maximum size for {media_type.value} files is "
                f"{limit // (1024 * 1024)}MB",
                details={"max_size": limit, "size": size},
            )

    def validate_file_for_upload(self, file: MediaFile) -> dict[str, Any]:
        """Dry run of the upload checks, plus a decode probe for images.

        Every failing check contributes its own message to ``errors``.
        """
        errors: list[str] = []
        media_type: MediaType | None = None
        try:
            media_type = self.classify(file.content_type)
        except AppError as exc:
            errors.append(exc.message)

        if media_type is not None:
            checks = [lambda: self.check_size(media_type, file.size)]
            if media_type == MediaType.IMAGE:
                checks.append(lambda: probe_image(file.data))
            for check in checks:
                try:
                    check()
                except AppError as exc:
                    errors.append(exc.message)
        return {
            "is_valid": not errors,
            "errors": errors,
            "media_type": media_type.value if media_type else None,
        }

    # -- serialization ----------------------------------------------------
    def serialize(self, media: Media, *, url: str | None = None) -> dict[str, Any]:
        uploader = media.uploaded_by
        return {
            "id": media.id,
            "filename": media.filename,
            "original_name": media.original_name,
            "url": url or media.url,
            "thumbnail_url": media.thumbnail_url,
            "type": media.type.value,
            "size": media.size,
            "mime_type": media.mime_type,
            "is_public": media.is_public,
            "event_id": media.event_id,
            "uploaded_by": {"id": uploader.id, "name": uploader.name} if uploader else None,
            "created_at": as_utc(media.created_at).isoformat() if media.created_at else None,
            **MediaMetadata.for_media(media).to_dict(),
        }

    def _serialize_video(self, media: Media) -> dict[str, Any]:
        data = self.serialize(media)
        created = as_utc(media.created_at)
        data["duration"] = estimate_duration(media.size, media.mime_type)
        data["auto_play"] = True
        data["expires_at"] = (
            (created + timedelta(days=VIDEO_STORY_TTL_DAYS)).isoformat() if created else None
        )
        return data

    # -- upload -----------------------------------------------------------
    def upload_file(
        self, file: MediaFile, uploader_id: str, options: UploadOptions | None = None
    ) -> dict[str, Any]:
        options = options or UploadOptions()
        media_type = self.classify(file.content_type)
        self.check_size(media_type, file.size)

        if options.event_id is not None:
            with get_session(self.engine) as session:
                if session.get(Event, options.event_id) is None:
                    raise NotFoundError("Event not found", code="EVENT_NOT_FOUND")

        body, content_type = file.data, file.content_type
        thumb_body: bytes | None = None
        if media_type == MediaType.IMAGE:
            body, content_type = resize_image(file.data), "image/jpeg"
            if options.generate_thumbnail:
                thumb_body = make_thumbnail(file.data)
            ext = ".jpg"
        else:
            ext = self._extension(file)

        filename = f"{uuid.uuid4()}{ext}"
        key = primary_key(media_type, filename)

        thumbnail_url = None
        if thumb_body is not None:
            self.storage.put(thumbnail_key(filename), thumb_body, "image/jpeg")
            thumbnail_url = self.cdn.url_for(thumbnail_key(filename))
        self.storage.put(key, body, content_type)

        if media_type == MediaType.IMAGE:
            url = self.cdn.url_for(key)
        else:
            url = self.storage.signed_url(key, self.policy.signed_url_seconds)

        meta = options.metadata
        try:
            with get_session(self.engine) as session:
                media = Media(
                    filename=filename,
                    original_name=sanitize_filename(file.filename),
                    url=url,
                    thumbnail_url=thumbnail_url,
                    type=media_type,
                    size=file.size,
                    mime_type=file.content_type.lower(),
                    description=sanitize_text(meta.description),
                    alt_text=sanitize_text(meta.alt_text),
                    category=sanitize_text(meta.category),
                    event_id=options.event_id,
                    uploaded_by_id=uploader_id,
                    is_public=options.is_public,
                    tags=[MediaTag(tag=t) for t in sorted(normalize_tags(meta.tags))],
                )
                session.add(media)
                session.flush()
                result = self.serialize(media)
        except Exception:
            logger.warning(
                "Media row insert failed; stored object %s is now orphaned", key
            )
            raise

        logger.info("Uploaded %s %s (%d bytes) by %s", media_type, key, file.size, uploader_id)
        return result

    @staticmethod
    def _extension(file: MediaFile) -> str:
        suffix = PurePosixPath(sanitize_filename(file.filename)).suffix.lower()
        if suffix:
            return suffix
        return mimetypes.guess_extension(file.content_type) or ""

    def upload_multiple_files(
        self,
        files: list[MediaFile],
        uploader_id: str,
        options: UploadOptions | None = None,
    ) -> dict[str, list]:
        """Upload each file independently; one failure does not stop the rest."""
        uploaded: list[dict] = []
        failed: list[dict] = []
        for file in files:
            try:
                uploaded.append(self.upload_file(file, uploader_id, options))
            except AppError as exc:
                failed.append({"filename": file.filename, "error": exc.message})
        return {"uploaded": uploaded, "failed": failed}

    # -- lookups ----------------------------------------------------------
    def get_media(self, media_id: str, size: str = "original") -> dict[str, Any] | None:
        if size not in IMAGE_SIZES:
            raise InputValidationError(
                f"Unknown image size: {size}", details={"allowed": list(IMAGE_SIZES)}
            )
        with get_session(self.engine) as session:
            media = session.get(Media, media_id)
            if media is None:
                return None
            url = media.url
            if media.type == MediaType.IMAGE and size != "original":
                url = self.cdn.transform(url, size)
            return self.serialize(media, url=url)

    def _paginate(
        self, session: Session, stmt: Select, page: int, limit: int
    ) -> tuple[list[Media], int]:
        total = session.scalar(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        ) or 0
        rows = session.scalars(
            stmt.options(selectinload(Media.uploaded_by), selectinload(Media.tags))
            .order_by(Media.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return list(rows), total

    @staticmethod
    def _page_result(items: list[dict], total: int, page: int, limit: int) -> dict[str, Any]:
        total_pages = -(-total // limit) if limit else 0
        return {
            "items": items,
            "total_count": total,
            "has_more": page * limit < total,
            "current_page": page,
            "total_pages": total_pages,
        }

    def _gallery(
        self, event_id: str, media_type: MediaType | None, page: int, limit: int
    ) -> dict[str, Any]:
        stmt = select(Media).where(Media.event_id == event_id)
        if media_type is not None:
            stmt = stmt.where(Media.type == media_type)
        with get_session(self.engine) as session:
            rows, total = self._paginate(session, stmt, page, limit)
            serialize = (
                self._serialize_video if media_type == MediaType.VIDEO else self.serialize
            )
            return self._page_result([serialize(m) for m in rows], total, page, limit)

    def get_event_gallery(self, event_id: str, page: int = 1, limit: int = 20) -> dict:
        return self._gallery(event_id, None, page, limit)

    def get_photo_gallery(self, event_id: str, page: int = 1, limit: int = 20) -> dict:
        return self._gallery(event_id, MediaType.IMAGE, page, limit)

    def get_video_gallery(self, event_id: str, page: int = 1, limit: int = 10) -> dict:
        """Video gallery in story format: each item carries an estimated
        ``duration``, ``auto_play`` and an informational ``expires_at``."""
        result = self._gallery(event_id, MediaType.VIDEO, page, limit)
        result["story_format"] = True
        return result

    def search_media(
        self,
        query: str,
        *,
        type: MediaType | str | None = None,
        event_id: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict[str, Any]:
        """Case-insensitive substring search over names, descriptive fields and tags."""
        pattern = f"%{query.strip()}%"
        stmt = select(Media).where(
            or_(
                Media.original_name.ilike(pattern),
                Media.description.ilike(pattern),
                Media.alt_text.ilike(pattern),
                Media.category.ilike(pattern),
                Media.legacy_metadata.ilike(pattern),
                Media.tags.any(MediaTag.tag.ilike(pattern)),
            )
        )
        if type:
            stmt = stmt.where(Media.type == MediaType(type))
        if event_id:
            stmt = stmt.where(Media.event_id == event_id)
        with get_session(self.engine) as session:
            rows, total = self._paginate(session, stmt, page, limit)
            return self._page_result([self.serialize(m) for m in rows], total, page, limit)

    def get_media_by_tags(
        self,
        tags: list[str],
        *,
        event_id: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict[str, Any]:
        """Media carrying ANY of *tags* (exact tag match)."""
        wanted = normalize_tags(tags)
        if not wanted:
            raise InputValidationError("At least one tag is required")
        stmt = select(Media).where(Media.tags.any(MediaTag.tag.in_(wanted)))
        if event_id:
            stmt = stmt.where(Media.event_id == event_id)
        with get_session(self.engine) as session:
            rows, total = self._paginate(session, stmt, page, limit)
            return self._page_result([self.serialize(m) for m in rows], total, page, limit)

    def get_media_statistics(
        self,
        *,
        uploader_id: str | None = None,
        event_id: str | None = None,
        type: MediaType | str | None = None,
    ) -> dict[str, Any]:
        conditions = []
        if uploader_id:
            conditions.append(Media.uploaded_by_id == uploader_id)
        if event_id:
            conditions.append(Media.event_id == event_id)
        if type:
            conditions.append(Media.type == MediaType(type))

        with get_session(self.engine) as session:
            rows = session.execute(
                select(Media.type, func.count(Media.id), func.coalesce(func.sum(Media.size), 0))
                .where(*conditions)
                .group_by(Media.type)
                .order_by(Media.type)
            ).all()

        breakdown = [
            {"type": media_type.value, "count": count, "total_size": int(total_size)}
            for media_type, count, total_size in rows
        ]
        return {
            "total_count": sum(b["count"] for b in breakdown),
            "total_size": sum(b["total_size"] for b in breakdown),
            "type_breakdown": breakdown,
        }

    # -- ownership-gated operations ----------------------------------------
    @staticmethod
    def _actor(session: Session, user_id: str) -> User:
        user = session.get(User, user_id)
        if user is None:
            raise UnauthorizedError("User not found")
        return user

    def _owned(self, session: Session, media_id: str, user_id: str) -> Media:
        media = session.get(Media, media_id)
        if media is None:
            raise NotFoundError("Media not found", code="MEDIA_NOT_FOUND")
        actor = self._actor(session, user_id)
        if media.uploaded_by_id != actor.id and actor.role not in ADMIN_ROLES:
            raise ForbiddenError("You can only modify media you uploaded")
        return media

    def delete_media(self, media_id: str, user_id: str) -> None:
        """Remove the stored object, its thumbnail, then the row."""
        with get_session(self.engine) as session:
            media = self._owned(session, media_id, user_id)
            self.storage.delete(primary_key(media.type, media.filename))
            if media.thumbnail_url:
                self.storage.delete(thumbnail_key(media.filename))
            session.delete(media)
        logger.info("Deleted media %s by %s", media_id, user_id)

    def bulk_delete_media(self, media_ids: list[str], user_id: str) -> dict[str, list]:
        deleted: list[str] = []
        failed: list[dict] = []
        for media_id in media_ids:
            try:
                self.delete_media(media_id, user_id)
                deleted.append(media_id)
            except AppError as exc:
                failed.append({"id": media_id, "error": exc.message})
        return {"deleted": deleted, "failed": failed}

    def update_media_metadata(
        self, media_id: str, patch: dict[str, Any], user_id: str
    ) -> dict[str, Any]:
        """Merge *patch* into the row's metadata; tags are replaced as a set."""
        with get_session(self.engine) as session:
            media = self._owned(session, media_id, user_id)
            merged = MediaMetadata.for_media(media).merge(patch)

            media.description = sanitize_text(merged.description)
            media.alt_text = sanitize_text(merged.alt_text)
            media.category = sanitize_text(merged.category)
            if "tags" in patch or (media.legacy_metadata and not media.tags):
                existing = {t.tag: t for t in media.tags}
                media.tags = [existing.get(t) or MediaTag(tag=t) for t in sorted(merged.tags)]
            media.legacy_metadata = None
            if "is_public" in patch and patch["is_public"] is not None:
                media.is_public = bool(patch["is_public"])
            session.flush()
            return self.serialize(media)

    def get_download_url(self, media_id: str, user_id: str) -> dict[str, Any]:
        """Signed URL (one hour by default) for public media, the uploader, or any member."""
        with get_session(self.engine) as session:
            media = session.get(Media, media_id)
            if media is None:
                raise NotFoundError("Media not found", code="MEDIA_NOT_FOUND")
            actor = self._actor(session, user_id)
            allowed = (
                media.is_public
                or media.uploaded_by_id == actor.id
                or actor.role in MEMBER_ROLES
            )
            if not allowed:
                raise ForbiddenError("Access denied", code="ACCESS_DENIED")
            key = primary_key(media.type, media.filename)
            original_name = media.original_name

        return {
            "download_url": self.storage.signed_url(key, self.policy.signed_url_seconds),
            "filename": original_name,
            "expires_in": self.policy.signed_url_seconds,
        }
