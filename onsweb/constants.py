"""
onsweb.constants — Shared Constants
=====================================

Single source of truth for media policy, CDN presets, role groups and
rate-limit policies.  Import from here instead of duplicating in services
and routes.
"""

from __future__ import annotations

from dataclasses import dataclass

from onsweb.database.models import MediaType, UserRole

# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------
MEMBER_ROLES: frozenset[UserRole] = frozenset(
    {UserRole.MEMBER, UserRole.EDITOR, UserRole.ADMIN}
)
EDITOR_ROLES: frozenset[UserRole] = frozenset({UserRole.EDITOR, UserRole.ADMIN})
ADMIN_ROLES: frozenset[UserRole] = frozenset({UserRole.ADMIN})


# ---------------------------------------------------------------------------
# Media upload policy
# ---------------------------------------------------------------------------
ALLOWED_MIME_TYPES: dict[MediaType, frozenset[str]] = {
    MediaType.IMAGE: frozenset({"image/jpeg", "image/png", "image/webp", "image/gif"}),
    MediaType.VIDEO: frozenset({"video/mp4", "video/webm", "video/quicktime"}),
    MediaType.DOCUMENT: frozenset({
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    }),
}

MAX_FILE_SIZE: dict[MediaType, int] = {
    MediaType.IMAGE: 10 * 1024 * 1024,      # 10 MB
    MediaType.VIDEO: 100 * 1024 * 1024,     # 100 MB
    MediaType.DOCUMENT: 50 * 1024 * 1024,   # 50 MB
}

MAX_FILES_PER_BATCH = 10

# Re-encoded primary image: longest edges bounded, never enlarged
IMAGE_MAX_WIDTH = 1920
IMAGE_MAX_HEIGHT = 1080
IMAGE_QUALITY = 90

THUMBNAIL_SIZE = (300, 300)
THUMBNAIL_QUALITY = 80

SIGNED_URL_TTL_SECONDS = 3600
VIDEO_STORY_TTL_DAYS = 30

# Bitrates used to estimate playback duration from file size
MP4_BITRATE_BPS = 1_000_000
DEFAULT_VIDEO_BITRATE_BPS = 800_000


# ---------------------------------------------------------------------------
# CDN transformation presets
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ImagePreset:
    width: int
    height: int
    crop: str
    quality: int

    def as_transform(self) -> str:
        """Render as an ImageKit ``tr`` parameter value."""
        return f"w-{self.width},h-{self.height},c-{self.crop},q-{self.quality}"


IMAGE_PRESETS: dict[str, ImagePreset] = {
    "thumbnail": ImagePreset(300, 300, "maintain_ratio", 80),
    "medium": ImagePreset(800, 600, "maintain_ratio", 85),
    "large": ImagePreset(1200, 900, "maintain_ratio", 90),
}

IMAGE_SIZES: tuple[str, ...] = ("thumbnail", "medium", "large", "original")


# ---------------------------------------------------------------------------
# Rate-limit policies
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RateLimitPolicy:
    bucket: str
    max_requests: int
    window_seconds: int


GENERAL_LIMIT = RateLimitPolicy("general", 100, 15 * 60)
AUTH_LIMIT = RateLimitPolicy("auth", 10, 15 * 60)
CONTENT_CREATION_LIMIT = RateLimitPolicy("content_creation", 50, 60 * 60)
MEDIA_UPLOAD_LIMIT = RateLimitPolicy("media_upload", 20, 60 * 60)
EVENT_REGISTRATION_LIMIT = RateLimitPolicy("event_registration", 10, 60 * 60)


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------
DEFAULT_PAGE_SIZE = 10
GALLERY_PAGE_SIZE = 20
VIDEO_GALLERY_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def page_meta(page: int, limit: int, total: int) -> dict:
    """Offset-pagination summary used by every list envelope."""
    total_pages = -(-total // limit) if limit else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }
