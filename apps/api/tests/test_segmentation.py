"""Transcript paragraph segmentation tests."""

from __future__ import annotations

import random
import unittest

from sermon_audio.domain.segmentation import (
    MAX_PARAGRAPH_WORDS,
    MIN_PARAGRAPH_WORDS,
    TranscriptSegment,
    choose_paragraph_gap,
    estimate_word_count,
    iter_sentences,
    paragraph_spans,
    segments_to_paragraphs,
)


def _sentence(index: int, words: int = 10) -> str:
    return " ".join(f"w{index}x{n}" for n in range(words - 1)) + f" end{index}."


def _timed(texts: list[str], gaps: list[float]) -> list[TranscriptSegment]:
    segments = []
    clock = 0.0
    for index, text in enumerate(texts):
        start = clock
        end = start + 5.0
        segments.append(TranscriptSegment(start=start, end=end, text=text))
        clock = end + (gaps[index] if index < len(gaps) else 0.0)
    return segments


class WordCountTests(unittest.TestCase):
    def test_word_count_is_whitespace_runs_plus_one(self) -> None:
        self.assertEqual(estimate_word_count("Hi"), 1)
        self.assertEqual(estimate_word_count("Hi guys!"), 2)
        self.assertEqual(estimate_word_count("a  b\n\tc"), 3)


class ParagraphTests(unittest.TestCase):
    def test_empty_input_yields_nothing(self) -> None:
        self.assertEqual(list(segments_to_paragraphs([])), [])
        self.assertEqual(paragraph_spans([]), [])

    def test_single_short_segment_is_one_paragraph(self) -> None:
        segments = [TranscriptSegment(start=0.0, end=1.0, text="Hi guys!")]
        self.assertEqual(list(segments_to_paragraphs(segments)), ["Hi guys!"])

    def test_close_segments_stay_together(self) -> None:
        segments = [
            TranscriptSegment(start=0.0, end=2.0, text="Hello there."),
            TranscriptSegment(start=2.01, end=4.0, text="How are you?"),
        ]
        self.assertEqual(list(segments_to_paragraphs(segments)), ["Hello there. How are you?"])

    def test_long_pauses_separate_paragraphs(self) -> None:
        texts = [_sentence(i, words=40) for i in range(4)]
        segments = _timed(texts, gaps=[0.2, 6.0, 0.3])

        paragraphs = list(segments_to_paragraphs(segments))

        self.assertEqual(paragraphs, [f"{texts[0]} {texts[1]}", f"{texts[2]} {texts[3]}"])

    def test_uniform_short_transcript_is_one_paragraph(self) -> None:
        texts = [_sentence(i, words=5) for i in range(6)]
        segments = _timed(texts, gaps=[1.0] * 5)
        self.assertEqual(len(list(segments_to_paragraphs(segments))), 1)

    def test_round_trip_keeps_every_word_in_order(self) -> None:
        rng = random.Random(7)
        texts = [_sentence(i, words=rng.randint(3, 30)) for i in range(60)]
        gaps = [rng.choice([0.1, 0.3, 0.8, 2.5]) for _ in range(59)]
        segments = _timed(texts, gaps)

        paragraphs = list(segments_to_paragraphs(segments, random.Random(1)))

        self.assertEqual(" ".join(paragraphs).split(), " ".join(texts).split())
        self.assertGreater(len(paragraphs), 1)

    def test_paragraph_boundaries_are_deterministic(self) -> None:
        rng = random.Random(11)
        texts = [_sentence(i, words=rng.randint(5, 25)) for i in range(40)]
        gaps = [rng.uniform(0.05, 3.0) for _ in range(39)]
        segments = _timed(texts, gaps)

        self.assertEqual(paragraph_spans(segments), paragraph_spans(list(segments)))
        self.assertEqual(
            list(segments_to_paragraphs(segments, random.Random(3))),
            list(segments_to_paragraphs(segments, random.Random(3))),
        )

    def test_oversized_paragraph_is_split_at_sentence_ends(self) -> None:
        text = " ".join(_sentence(i) for i in range(100))
        segments = [TranscriptSegment(start=0.0, end=600.0, text=text)]
        self.assertEqual(estimate_word_count(text), 1000)

        paragraphs = list(segments_to_paragraphs(segments, random.Random(5)))

        self.assertGreaterEqual(len(paragraphs), 2)
        for paragraph in paragraphs[:-1]:
            self.assertGreaterEqual(estimate_word_count(paragraph), MIN_PARAGRAPH_WORDS)
            self.assertLessEqual(estimate_word_count(paragraph), MAX_PARAGRAPH_WORDS)
        for paragraph in paragraphs:
            self.assertTrue(paragraph.endswith("."))
        self.assertEqual(" ".join(paragraphs).split(), text.split())

    def test_paragraph_within_limit_is_not_split(self) -> None:
        text = " ".join(_sentence(i) for i in range(60))
        segments = [TranscriptSegment(start=0.0, end=300.0, text=text)]
        self.assertEqual(list(segments_to_paragraphs(segments, random.Random(5))), [text])


class GapSelectionTests(unittest.TestCase):
    def test_no_gaps_means_no_breaks(self) -> None:
        self.assertEqual(choose_paragraph_gap([], [12]), float("inf"))

    def test_mismatched_lengths_are_rejected(self) -> None:
        with self.assertRaises(ValueError):
            choose_paragraph_gap([1.0, 2.0], [10, 10])

    def test_threshold_separates_large_gap(self) -> None:
        threshold = choose_paragraph_gap([0.2, 6.0, 0.3], [40, 40, 40, 40])
        self.assertGreaterEqual(threshold, 0.3 - 1e-3)
        self.assertLess(threshold, 6.0)


class SentenceTests(unittest.TestCase):
    def test_open_sentence_continues_into_next_segment(self) -> None:
        members = [
            TranscriptSegment(start=0.0, end=1.0, text="We read today from"),
            TranscriptSegment(start=1.0, end=2.0, text="John ten. The shepherd knows"),
            TranscriptSegment(start=2.0, end=3.0, text="his sheep."),
        ]
        sentences = list(iter_sentences(members))
        self.assertEqual(
            [sentence for sentence, _ in sentences],
            ["We read today from John ten.", "The shepherd knows his sheep."],
        )
        self.assertEqual([words for _, words in sentences], [6, 5])

    def test_trailing_open_sentence_is_flushed(self) -> None:
        members = [TranscriptSegment(start=0.0, end=1.0, text="Amen. And so")]
        self.assertEqual([s for s, _ in iter_sentences(members)], ["Amen.", "And so"])


class SegmentValidationTests(unittest.TestCase):
    def test_invalid_segments_are_rejected(self) -> None:
        cases = [
            {"start": -1.0, "end": 1.0, "text": "a"},
            {"start": 2.0, "end": 1.0, "text": "a"},
            {"start": 0.0, "end": float("nan"), "text": "a"},
            {"start": 0.0, "end": 1.0, "text": ""},
            {"start": 0.0, "end": 1.0, "text": " a "},
        ]
        for fields in cases:
            with self.subTest(fields=fields):
                with self.assertRaises(ValueError):
                    TranscriptSegment(**fields)


if __name__ == "__main__":
    unittest.main()
