"""
onsweb.services.image_cdn — ImageKit URL Builder
==================================================

ImageKit fronts the media bucket: an object stored at ``media/images/x.jpg``
is served from ``<IMAGEKIT_URL_ENDPOINT>/images/x.jpg`` and resized on the
fly through the ``tr`` query parameter.  Without an endpoint, URLs fall back
to signed storage links, which are never transformed.
"""

from __future__ import annotations

import os

from onsweb.constants import IMAGE_PRESETS
from onsweb.services.storage import ObjectStorage

MEDIA_PREFIX = "media/"


class ImageCdn:
    def __init__(self, endpoint: str | None, storage: ObjectStorage) -> None:
        self.endpoint = endpoint.rstrip("/") if endpoint else None
        self.storage = storage

    @classmethod
    def from_env(cls, storage: ObjectStorage) -> ImageCdn:
        return cls(os.getenv("IMAGEKIT_URL_ENDPOINT", "").strip() or None, storage)

    def url_for(self, key: str) -> str:
        """Public URL for a stored image *key*."""
        if not self.endpoint:
            return self.storage.signed_url(key)
        return f"{self.endpoint}/{key.removeprefix(MEDIA_PREFIX)}"

    def transform(self, url: str, size: str) -> str:
        """Apply the named preset to a CDN *url*; other URLs pass through."""
        preset = IMAGE_PRESETS.get(size)
        if preset is None or not self.endpoint or not url.startswith(self.endpoint):
            return url
        sep = "&" if "?" in url else "?"
        return f"{url}{sep}tr={preset.as_transform()}"
