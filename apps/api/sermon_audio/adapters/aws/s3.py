"""S3-backed object storage."""

from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from sermon_audio.adapters.aws.base import ObjectStorage
from sermon_audio.adapters.aws.clients import AwsClientFactory
from sermon_audio.core.config import Settings
from sermon_audio.core.logging_safety import safe_log_identifier
from sermon_audio.errors import MalformedDataError, StoreError

logger = logging.getLogger(__name__)


class S3ObjectStorage(ObjectStorage):
    """Object storage in the region named by one setting, resolved on each call."""

    def __init__(self, *, settings: Settings, client_factory: AwsClientFactory, region_setting: str) -> None:
        self._settings = settings
        self._client_factory = client_factory
        self._region_setting = region_setting

    def size_of(self, bucket: str, key: str) -> int:
        client = self._client()
        try:
            response = client.head_object(Bucket=bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            logger.warning(
                "s3.head_failed bucket=%s key=%s error=%s",
                bucket,
                safe_log_identifier(key, prefix="key"),
                type(exc).__name__,
            )
            raise StoreError("Failed to probe the object size.", details={"bucket": bucket}) from exc

        size = response.get("ContentLength")
        if not isinstance(size, int) or size < 0:
            raise MalformedDataError("Object size probe returned no valid content length.")
        return size

    def read_text(self, bucket: str, key: str) -> str:
        client = self._client()
        try:
            response = client.get_object(Bucket=bucket, Key=key)
            body = response.get("Body")
            if body is None:
                raise MalformedDataError("The object body is missing.")
            data = body.read()
        except (BotoCoreError, ClientError) as exc:
            logger.warning(
                "s3.get_failed bucket=%s key=%s error=%s",
                bucket,
                safe_log_identifier(key, prefix="key"),
                type(exc).__name__,
            )
            raise StoreError("Failed to read the object.", details={"bucket": bucket}) from exc

        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedDataError("The object body is not valid UTF-8.") from exc

    def _client(self) -> Any:
        return self._client_factory.client("s3", self._settings.require(self._region_setting))


__all__ = ["S3ObjectStorage"]
