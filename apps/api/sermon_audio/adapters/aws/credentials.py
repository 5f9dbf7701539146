"""Long-lived AWS credential loading."""

from __future__ import annotations

import json
import logging
import threading

from botocore.credentials import Credentials

from sermon_audio.core.config import Settings
from sermon_audio.errors import ConfigurationError

logger = logging.getLogger(__name__)

_ACCESS_KEY_FIELD = "access-key"
_SECRET_KEY_FIELD = "secret-key"


class CredentialProvider:
    """Loads the access/secret pair from a JSON file and caches it.

    The file looks like ``{"access-key": "...", "secret-key": "..."}``. When
    no path is configured, ``get_credentials`` returns None and AWS clients
    fall back to ambient credential discovery. A failed load is not cached,
    so fixing the file takes effect without a restart.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._credentials: Credentials | None = None
        self._lock = threading.Lock()

    def get_credentials(self) -> Credentials | None:
        if self._credentials is not None:
            return self._credentials

        path = (self._settings.aws_credentials_file_path or "").strip()
        if not path:
            return None

        with self._lock:
            if self._credentials is None:
                self._credentials = _load_credentials_file(path)
                logger.info("aws.credentials_loaded source=file")
        return self._credentials


def _load_credentials_file(path: str) -> Credentials:
    try:
        with open(path, encoding="utf-8") as handle:
            raw = handle.read()
    except OSError as exc:
        logger.warning("aws.credentials_rejected reason=unreadable_file error=%s", type(exc).__name__)
        raise ConfigurationError("Failed to read the AWS credentials file.") from exc

    try:
        data = json.loads(raw)
    except ValueError as exc:
        logger.warning("aws.credentials_rejected reason=invalid_json")
        raise ConfigurationError("The AWS credentials file does not contain valid JSON.") from exc

    if not isinstance(data, dict):
        logger.warning("aws.credentials_rejected reason=not_an_object")
        raise ConfigurationError("The AWS credentials file does not contain a JSON object.")

    values = {}
    for name in (_ACCESS_KEY_FIELD, _SECRET_KEY_FIELD):
        value = data.get(name)
        if not isinstance(value, str) or not value:
            logger.warning("aws.credentials_rejected reason=invalid_field field=%s", name)
            raise ConfigurationError(
                f'The AWS credentials file has a missing or invalid "{name}" value.',
                details={"field": name},
            )
        values[name] = value

    return Credentials(access_key=values[_ACCESS_KEY_FIELD], secret_key=values[_SECRET_KEY_FIELD])


__all__ = ["CredentialProvider"]
