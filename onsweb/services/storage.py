"""
onsweb.services.storage — S3-Compatible Object Storage
========================================================

boto3 client for the media bucket (Cloudflare R2 in production, any S3 API
works).  Built once at startup from the ``R2_*`` environment variables and
injected into :class:`~onsweb.services.media_service.MediaService`.

When credentials are missing the instance still constructs, but every
operation raises :class:`StorageNotConfiguredError` (HTTP 503) so the
misconfiguration is reported distinctly from a failed upload.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from onsweb.constants import SIGNED_URL_TTL_SECONDS
from onsweb.errors import StorageError, StorageNotConfiguredError

logger = logging.getLogger(__name__)


class ObjectStorage:
    def __init__(self, client: Any | None, bucket: str | None) -> None:
        self._client = client
        self.bucket = bucket

    @classmethod
    def from_env(cls) -> ObjectStorage:
        endpoint = os.getenv("R2_ENDPOINT_URL", "").strip()
        access_key = os.getenv("R2_ACCESS_KEY_ID", "").strip()
        secret_key = os.getenv("R2_SECRET_ACCESS_KEY", "").strip()
        bucket = os.getenv("R2_BUCKET_NAME", "").strip()

        if not (endpoint and access_key and secret_key and bucket):
            logger.warning(
                "Object storage is not configured (R2_* env vars missing); "
                "media endpoints will return 503."
            )
            return cls(None, None)

        client = boto3.client(
            "s3",
            endpoint_url=endpoint,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name="auto",
            config=BotoConfig(signature_version="s3v4"),
        )
        logger.info("Object storage ready → bucket %s", bucket)
        return cls(client, bucket)

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    def _require(self):
        if self._client is None:
            raise StorageNotConfiguredError(
                "File storage is not configured on this server"
            )
        return self._client

    # -- operations -------------------------------------------------------
    def put(self, key: str, data: bytes, content_type: str) -> None:
        client = self._require()
        try:
            client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (ClientError, BotoCoreError) as exc:
            logger.error("Upload of %s failed: %s", key, exc)
            raise StorageError("Failed to store file") from exc

    def delete(self, key: str) -> None:
        client = self._require()
        try:
            client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            logger.error("Delete of %s failed: %s", key, exc)
            raise StorageError("Failed to delete file") from exc

    def signed_url(self, key: str, expires_in: int = SIGNED_URL_TTL_SECONDS) -> str:
        client = self._require()
        try:
            return client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("Signing %s failed: %s", key, exc)
            raise StorageError("Failed to generate file URL") from exc
