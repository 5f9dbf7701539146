"""Transcript rendering service layer."""

from __future__ import annotations

import html
import logging
import random

from sermon_audio.adapters.aws.base import ObjectStorage
from sermon_audio.core.config import Settings
from sermon_audio.core.logging_safety import safe_log_identifier
from sermon_audio.domain.segmentation import segments_to_paragraphs
from sermon_audio.domain.transcript_xml import parse_transcript_xml
from sermon_audio.errors import ConfigurationError
from sermon_audio.services.reconciliation import DEBUG_TRANSCRIPT_SUB_KEY

logger = logging.getLogger(__name__)


class TranscriptRenderer:
    """Downloads a finished transcription and renders it as HTML paragraphs."""

    def __init__(
        self,
        *,
        settings: Settings,
        storage: ObjectStorage | None,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings
        self._storage = storage
        self._rng = rng

    def render_html(self, sub_key: str) -> str:
        if self._settings.debug_mode and sub_key == DEBUG_TRANSCRIPT_SUB_KEY:
            return ""
        if self._storage is None:
            raise ConfigurationError("No object storage is configured for transcriptions.")

        bucket = self._settings.require("transcription_bucket_name")
        key_prefix = self._settings.require("transcription_key_prefix")
        document = self._storage.read_text(bucket, key_prefix + sub_key)
        segments = parse_transcript_xml(document)

        rendered = "\n".join(
            f"<p>{html.escape(paragraph)}</p>" for paragraph in segments_to_paragraphs(segments, self._rng)
        )
        logger.info(
            "transcript.rendered sub_key=%s segments=%s",
            safe_log_identifier(sub_key, prefix="tkey"),
            len(segments),
        )
        return rendered
