"""Grouping of time-coded transcript segments into display paragraphs.

Paragraph breaks are placed at pauses. A single pause threshold is chosen
for the whole transcript by binary search over the observed gaps: the search
first minimizes the word mass that lands in pathologically short or long
paragraphs, then pulls the paragraph count towards ``TARGET_PARAGRAPH_WORDS``
on average. Paragraphs that still exceed ``MAX_PARAGRAPH_WORDS`` are split at
sentence ends into pieces of randomized size around the target.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
import math
import random
import re

from sermon_audio.errors import SegmentationError

MIN_PARAGRAPH_WORDS = 30
MAX_PARAGRAPH_WORDS = 700
TARGET_PARAGRAPH_WORDS = 75
SPLIT_FLUCTUATION = 50
# Segments closer together than this are merged during ingestion.
MIN_SEGMENT_GAP = 0.05

_EPSILON = 1e-4
_SENTENCE_BREAKS = frozenset(".!?")
_SENTENCE_PATTERN = re.compile(r"(?:.*?[.!?]+\s)|(?:.+$)", re.DOTALL)
_WHITESPACE_RUN = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class TranscriptSegment:
    start: float
    end: float
    text: str

    def __post_init__(self) -> None:
        if not math.isfinite(self.start) or self.start < 0:
            raise ValueError("segment start must be a finite, non-negative number")
        if not math.isfinite(self.end) or self.end < self.start:
            raise ValueError("segment end must be finite and not before its start")
        if not self.text or self.text != self.text.strip():
            raise ValueError("segment text must be non-empty and trimmed")


@dataclass(frozen=True, slots=True)
class ParagraphSpan:
    """Inclusive segment index range of one paragraph, before splitting."""

    first: int
    last: int
    word_count: int


def estimate_word_count(text: str) -> int:
    return len(_WHITESPACE_RUN.findall(text)) + 1


def is_sentence_end(text: str) -> bool:
    return bool(text) and text[-1] in _SENTENCE_BREAKS


def choose_paragraph_gap(gaps: Sequence[float], word_counts: Sequence[int]) -> float:
    """Return the pause threshold; a gap strictly above it ends a paragraph.

    ``gaps[i]`` is the pause between segments ``i`` and ``i + 1``, so there
    is one fewer gap than word counts.
    """
    if len(word_counts) != len(gaps) + 1:
        raise ValueError("expected exactly one more word count than gaps")
    if not gaps:
        return math.inf

    candidates = sorted(set(gaps))
    # Sentinel above every gap: the single-paragraph extreme.
    candidates.append(candidates[-1] + 1)
    total_words = sum(word_counts)

    low = 0
    high = len(candidates) - 1
    while low < high:
        # Floor midpoint: smaller thresholds (more, shorter paragraphs) are
        # tried first, so ties settle on the larger paragraphs.
        probe = (low + high) // 2
        short_words, long_words, count = _measure(gaps, word_counts, candidates[probe] - _EPSILON)
        if short_words > long_words:
            low = probe + 1 if low == probe else probe
        elif long_words == 0:
            diff = total_words - TARGET_PARAGRAPH_WORDS * count
            if diff > _EPSILON:
                high = probe
            elif diff < -_EPSILON:
                low = probe + 1 if low == probe else probe
            else:
                low = high = probe
        else:
            high = probe

    return candidates[low] - _EPSILON


def _measure(gaps: Sequence[float], word_counts: Sequence[int], threshold: float) -> tuple[int, int, int]:
    short_words = 0
    long_words = 0
    count = 0
    current = 0
    last = len(word_counts) - 1
    for index, words in enumerate(word_counts):
        current += words
        if index == last or gaps[index] > threshold:
            if current < MIN_PARAGRAPH_WORDS:
                short_words += current
            elif current > MAX_PARAGRAPH_WORDS:
                long_words += current
            count += 1
            current = 0
    return short_words, long_words, count


def paragraph_spans(segments: Sequence[TranscriptSegment]) -> list[ParagraphSpan]:
    """Deterministic paragraph boundaries, before any oversized paragraph is split."""
    if not segments:
        return []

    word_counts = [estimate_word_count(segment.text) for segment in segments]
    gaps = [segments[i + 1].start - segments[i].end for i in range(len(segments) - 1)]
    threshold = choose_paragraph_gap(gaps, word_counts)

    spans: list[ParagraphSpan] = []
    first = 0
    current = 0
    last = len(segments) - 1
    for index, words in enumerate(word_counts):
        current += words
        if index == last or gaps[index] > threshold:
            spans.append(ParagraphSpan(first=first, last=index, word_count=current))
            first = index + 1
            current = 0
    return spans


def segments_to_paragraphs(
    segments: Iterable[TranscriptSegment],
    rng: random.Random | None = None,
) -> Iterator[str]:
    """Yield paragraph strings in transcript order.

    The segments must be ordered and already merged by ingestion. The output
    is plain text; callers escape it for display.
    """
    ordered = list(segments)
    if not ordered:
        return
    if rng is None:
        rng = random.Random()

    for span in paragraph_spans(ordered):
        members = ordered[span.first : span.last + 1]
        if span.word_count > MAX_PARAGRAPH_WORDS:
            yield from _split_long_paragraph(members, span.word_count, rng)
        else:
            yield " ".join(segment.text for segment in members)


def _next_split_target(remaining_words: int, rng: random.Random) -> int:
    target = round(
        rng.triangular(
            TARGET_PARAGRAPH_WORDS - SPLIT_FLUCTUATION,
            TARGET_PARAGRAPH_WORDS + SPLIT_FLUCTUATION,
            TARGET_PARAGRAPH_WORDS,
        )
    )
    target = max(target, MIN_PARAGRAPH_WORDS)
    if remaining_words - target < MIN_PARAGRAPH_WORDS:
        # Let the final piece absorb what would otherwise be a runt.
        target = max(remaining_words, 1)
    return target


def _split_long_paragraph(
    members: Sequence[TranscriptSegment],
    total_words: int,
    rng: random.Random,
) -> Iterator[str]:
    remaining = total_words
    target = _next_split_target(remaining, rng)
    sentences: list[str] = []
    piece_words = 0
    for sentence, words in iter_sentences(members):
        sentences.append(sentence)
        piece_words += words
        if piece_words >= target:
            yield " ".join(sentences)
            remaining -= piece_words
            sentences = []
            piece_words = 0
            target = _next_split_target(remaining, rng)
    if sentences:
        yield " ".join(sentences)


def iter_sentences(members: Sequence[TranscriptSegment]) -> Iterator[tuple[str, int]]:
    """Yield ``(sentence, word_count)`` across segment boundaries.

    A sentence left open at the end of one segment continues into the next.
    """
    running: list[str] = []
    running_words = 0
    for segment in members:
        segment_words = estimate_word_count(segment.text)
        pieces = [match.group(0).strip() for match in _SENTENCE_PATTERN.finditer(segment.text)]
        if not pieces or not all(pieces):
            raise SegmentationError("Sentence matching produced no usable pieces for a segment.")
        whole = len(pieces) == 1

        index = 0
        if running and (not whole or is_sentence_end(pieces[0])):
            words = segment_words if whole else estimate_word_count(pieces[0])
            yield " ".join([*running, pieces[0]]), running_words + words
            running = []
            running_words = 0
            index = 1

        last = len(pieces) - 1
        while index < last:
            yield pieces[index], estimate_word_count(pieces[index])
            index += 1

        if index == last:
            tail = pieces[last]
            words = segment_words if whole else estimate_word_count(tail)
            if is_sentence_end(tail):
                yield tail, words
            else:
                running.append(tail)
                running_words += words

    if running:
        yield " ".join(running), running_words
