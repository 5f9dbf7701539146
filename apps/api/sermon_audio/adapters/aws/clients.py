"""boto3 client construction."""

from __future__ import annotations

import logging
import threading
from typing import Any

import boto3
from botocore.config import Config

from sermon_audio.adapters.aws.credentials import CredentialProvider
from sermon_audio.core.config import Settings

logger = logging.getLogger(__name__)


class AwsClientFactory:
    """Creates one boto3 client per (service, region) and keeps it."""

    def __init__(self, *, settings: Settings, credential_provider: CredentialProvider) -> None:
        self._settings = settings
        self._credential_provider = credential_provider
        self._clients: dict[tuple[str, str], Any] = {}
        self._lock = threading.Lock()

    def client(self, service: str, region: str) -> Any:
        key = (service, region)
        with self._lock:
            existing = self._clients.get(key)
            if existing is not None:
                return existing

            config_kwargs: dict[str, Any] = {"retries": {"max_attempts": 1, "mode": "standard"}}
            connect_timeout = self._settings.connect_timeout_seconds()
            if connect_timeout is not None:
                config_kwargs["connect_timeout"] = connect_timeout
            endpoint_timeout = self._settings.endpoint_timeout_seconds()
            if endpoint_timeout is not None:
                config_kwargs["read_timeout"] = endpoint_timeout

            client_kwargs: dict[str, Any] = {"region_name": region, "config": Config(**config_kwargs)}
            credentials = self._credential_provider.get_credentials()
            if credentials is not None:
                client_kwargs["aws_access_key_id"] = credentials.access_key
                client_kwargs["aws_secret_access_key"] = credentials.secret_key

            created = boto3.client(service, **client_kwargs)
            self._clients[key] = created
            logger.info(
                "aws.client_created service=%s region=%s credentials=%s",
                service,
                region,
                "file" if credentials is not None else "ambient",
            )
            return created


__all__ = ["AwsClientFactory"]
