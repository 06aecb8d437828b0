"""
onsweb.services.image_processing — Pillow Resize & Thumbnail
==============================================================
"""

from __future__ import annotations

from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

from onsweb.constants import (
    IMAGE_MAX_HEIGHT,
    IMAGE_MAX_WIDTH,
    IMAGE_QUALITY,
    THUMBNAIL_QUALITY,
    THUMBNAIL_SIZE,
)
from onsweb.errors import InputValidationError


def _open(data: bytes) -> Image.Image:
    try:
        img = Image.open(BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise InputValidationError(
            "File is not a readable image", code="INVALID_IMAGE"
        ) from exc
    img = ImageOps.exif_transpose(img)
    # JPEG has no alpha channel or palette
    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    return img


def _to_jpeg(img: Image.Image, quality: int) -> bytes:
    out = BytesIO()
    img.save(out, format="JPEG", quality=quality, optimize=True)
    return out.getvalue()


def probe_image(data: bytes) -> tuple[int, int]:
    """Decode *data* fully and return ``(width, height)``.

    Raises :class:`InputValidationError` for corrupt or non-image bytes.
    """
    img = _open(data)
    return img.size


def resize_image(data: bytes) -> bytes:
    """Re-encode as JPEG within 1920×1080, keeping aspect; never enlarges."""
    img = _open(data)
    img.thumbnail((IMAGE_MAX_WIDTH, IMAGE_MAX_HEIGHT), Image.Resampling.LANCZOS)
    return _to_jpeg(img, IMAGE_QUALITY)


def make_thumbnail(data: bytes) -> bytes:
    """Center-cropped 300×300 JPEG."""
    img = ImageOps.fit(_open(data), THUMBNAIL_SIZE, Image.Resampling.LANCZOS)
    return _to_jpeg(img, THUMBNAIL_QUALITY)
