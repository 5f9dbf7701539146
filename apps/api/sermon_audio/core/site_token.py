"""Shared-secret token presented by the job workers when announcing results."""

from __future__ import annotations

import threading

from sermon_audio.core.config import Settings
from sermon_audio.errors import ConfigurationError


class SiteTokenProvider:
    """Reads the announcement token from ``site_token_file_path`` once."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._token: str | None = None
        self._lock = threading.Lock()

    def get_token(self) -> str:
        if self._token is not None:
            return self._token

        path = (self._settings.site_token_file_path or "").strip()
        if not path:
            raise ConfigurationError('The "site_token_file_path" setting is missing or empty.')

        with self._lock:
            if self._token is None:
                try:
                    with open(path, encoding="utf-8") as handle:
                        token = handle.read().strip()
                except OSError as exc:
                    raise ConfigurationError("Failed to read the site token file.") from exc
                if not token:
                    raise ConfigurationError("The site token file is empty.")
                self._token = token
        return self._token
