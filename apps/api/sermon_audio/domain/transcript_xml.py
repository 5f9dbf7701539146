"""Parsing of transcription XML documents into merged segments."""

from __future__ import annotations

import math
from xml.etree import ElementTree

from sermon_audio.domain.segmentation import MIN_SEGMENT_GAP, TranscriptSegment, is_sentence_end
from sermon_audio.errors import MalformedDataError


def parse_transcript_xml(document: str) -> list[TranscriptSegment]:
    """Parse ``<transcription><segment start=".." end="..">text</segment>...``.

    Tag and attribute names are matched case-insensitively. Negative starts
    are clamped to zero and every segment is forced to start no earlier than
    the previous one ended; segments left with no duration or no text are
    dropped. A segment is appended to its predecessor when the predecessor
    does not end a sentence, or when the pause between them is shorter than
    ``MIN_SEGMENT_GAP``.
    """
    document = document.strip()
    if not document:
        return []

    try:
        root = ElementTree.fromstring(document)
    except ElementTree.ParseError as exc:
        raise MalformedDataError("Transcription XML could not be parsed.") from exc
    if root.tag.lower() != "transcription":
        raise MalformedDataError("Transcription XML does not have a <transcription> root element.")

    segments: list[TranscriptSegment] = []
    current_start = 0.0
    current_end = 0.0
    current_text = ""
    for index, element in enumerate(root):
        if not isinstance(element.tag, str) or element.tag.lower() != "segment" or len(element):
            raise MalformedDataError(
                "Transcription XML has an invalid <transcription> child element.",
                details={"index": index},
            )

        start, end = _segment_bounds(element, index)
        start = max(start, 0.0)
        if start < current_end:
            start = current_end
        if end <= start:
            continue

        text = (element.text or "").strip()
        if not text:
            continue

        if not current_text:
            current_start, current_end, current_text = start, end, text
        elif not is_sentence_end(current_text) or start - current_end < MIN_SEGMENT_GAP:
            current_end = end
            current_text = f"{current_text} {text}"
        else:
            segments.append(TranscriptSegment(start=current_start, end=current_end, text=current_text))
            current_start, current_end, current_text = start, end, text

    if current_text:
        segments.append(TranscriptSegment(start=current_start, end=current_end, text=current_text))
    return segments


def _segment_bounds(element: ElementTree.Element, index: int) -> tuple[float, float]:
    attributes = {name.lower(): value for name, value in element.attrib.items()}
    raw_start = attributes.get("start")
    raw_end = attributes.get("end")
    if raw_start is None or raw_end is None:
        raise MalformedDataError(
            '<segment> element is missing "start" and/or "end" attributes.',
            details={"index": index},
        )
    try:
        start = float(raw_start)
        end = float(raw_end)
    except ValueError as exc:
        raise MalformedDataError(
            '<segment> element has non-numeric "start" and/or "end" attributes.',
            details={"index": index},
        ) from exc
    if not math.isfinite(start) or not math.isfinite(end):
        raise MalformedDataError(
            '<segment> element has non-finite "start" and/or "end" attributes.',
            details={"index": index},
        )
    return start, end
