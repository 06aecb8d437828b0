"""
onsweb.services.media_metadata — Descriptive Media Metadata
=============================================================

Tags, description, alt text and category for a media row.

Older rows carry a JSON blob in ``media.legacy_metadata`` in one of two
shapes: a bare tag array (``["a", "b"]``) or an object
(``{"tags": [...], "description": ..., "altText": ..., "category": ...}``).
:meth:`MediaMetadata.from_raw` reads either, and anything else degrades to
empty metadata rather than failing the request.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any

logger = logging.getLogger(__name__)

MAX_TAG_LENGTH = 50

# Legacy blobs used camelCase keys
_KEY_ALIASES = {
    "description": ("description",),
    "alt_text": ("alt_text", "altText"),
    "category": ("category",),
}


def normalize_tags(raw: Any) -> list[str]:
    """Trimmed, lowercased, de-duplicated tags in first-seen order."""
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, (list, tuple, set)):
        return []
    seen: dict[str, None] = {}
    for item in raw:
        if not isinstance(item, str):
            continue
        tag = item.strip().lower()[:MAX_TAG_LENGTH]
        if tag:
            seen.setdefault(tag, None)
    return list(seen)


def _opt_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


@dataclass(frozen=True, slots=True)
class MediaMetadata:
    tags: list[str] = field(default_factory=list)
    description: str | None = None
    alt_text: str | None = None
    category: str | None = None

    @classmethod
    def from_raw(cls, raw: Any) -> MediaMetadata:
        """Parse a legacy blob: JSON text, a list of tags, a dict, or ``None``."""
        if raw is None:
            return cls()
        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except (json.JSONDecodeError, UnicodeDecodeError):
                logger.debug("Unparseable legacy metadata: %r", raw[:80])
                return cls()
        if isinstance(raw, list):
            return cls(tags=normalize_tags(raw))
        if not isinstance(raw, dict):
            return cls()

        values: dict[str, str | None] = {}
        for name, keys in _KEY_ALIASES.items():
            values[name] = next(
                (v for v in (_opt_str(raw.get(k)) for k in keys) if v is not None), None
            )
        return cls(tags=normalize_tags(raw.get("tags")), **values)

    @classmethod
    def for_media(cls, media) -> MediaMetadata:
        """Structured columns first, legacy blob for whatever they leave empty."""
        legacy = cls.from_raw(media.legacy_metadata)
        return cls(
            tags=media.tag_names or legacy.tags,
            description=media.description or legacy.description,
            alt_text=media.alt_text or legacy.alt_text,
            category=media.category or legacy.category,
        )

    def merge(self, patch: dict[str, Any]) -> MediaMetadata:
        """Fields present in *patch* replace ours; tags are replaced as a set."""
        changes: dict[str, Any] = {}
        if "tags" in patch:
            changes["tags"] = normalize_tags(patch["tags"] or [])
        for name in ("description", "alt_text", "category"):
            if name in patch:
                changes[name] = _opt_str(patch[name])
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tags": list(self.tags),
            "description": self.description,
            "alt_text": self.alt_text,
            "category": self.category,
        }
