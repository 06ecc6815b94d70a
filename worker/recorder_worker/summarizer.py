from __future__ import annotations

import re
from collections.abc import Sequence

from recorder_worker.segmenter import SEGMENT_GAP_MS, segment_by_topic
from recorder_worker.stopwords import STOP_WORDS, is_stop_word
from recorder_worker.types import SummaryResult, TranscriptFragment

EMPTY_MEETING_SUMMARY = "No transcriptions available for this meeting."
NO_SENTENCES_SUMMARY = "Meeting recording in progress."

_SENTENCE_BREAK = re.compile(r"[.!?]+")
_ACTION_PATTERNS = (
    re.compile(r"(?:need to|must|should|will|have to|going to)\s+[^.!?]+", re.IGNORECASE),
    re.compile(r"(?:action item|task|todo|follow up):\s*[^.!?]+", re.IGNORECASE),
    re.compile(r"(?:assign|assigned to|responsible for)\s+[^.!?]+", re.IGNORECASE),
)


def split_sentences(text: str, min_length: int = 20) -> list[str]:
    pieces = (piece.strip() for piece in _SENTENCE_BREAK.split(text))
    return [piece for piece in pieces if len(piece) > min_length]


class MeetingSummarizer:
    """Extractive meeting summarizer.

    Holds no per-call state, so one instance can be shared between concurrent
    jobs. Every method returns a well-formed value for empty or sentence-less
    input instead of raising.
    """

    def __init__(
        self,
        *,
        stop_words: frozenset[str] = STOP_WORDS,
        summary_sentences: int = 3,
        max_key_points: int = 5,
        max_action_items: int = 5,
        segment_gap_ms: int = SEGMENT_GAP_MS,
    ) -> None:
        self._stop_words = stop_words
        self._summary_sentences = summary_sentences
        self._max_key_points = max_key_points
        self._max_action_items = max_action_items
        self._segment_gap_ms = segment_gap_ms

    def generate_summary(self, fragments: Sequence[TranscriptFragment]) -> SummaryResult:
        if not fragments:
            return SummaryResult(summary=EMPTY_MEETING_SUMMARY, key_points=[], action_items=[])

        full_text = self._join_text(fragments)
        return SummaryResult(
            summary=self.extractive_summary(full_text, self._summary_sentences),
            key_points=self.extract_key_points(fragments),
            action_items=self.extract_action_items(full_text),
        )

    def extractive_summary(self, full_text: str, max_sentences: int = 3) -> str:
        sentences = split_sentences(full_text)
        if not sentences:
            return NO_SENTENCES_SUMMARY

        scored = [
            (index, sentence, self._score_sentence(sentence))
            for index, sentence in enumerate(sentences)
        ]
        scored.sort(key=lambda item: (-item[2], item[0]))

        top = scored[: min(max_sentences, len(scored))]
        return ". ".join(item[1] for item in top) + "."

    def extract_key_points(self, fragments: Sequence[TranscriptFragment]) -> list[str]:
        segments = segment_by_topic(fragments, gap_ms=self._segment_gap_ms)
        key_points: list[str] = []
        for segment in segments[: self._max_key_points]:
            sentences = split_sentences(self._join_text(segment))
            if sentences:
                key_points.append(sentences[0])
        return key_points

    def extract_action_items(self, full_text: str) -> list[str]:
        # dict keeps first-seen order while deduplicating
        items: dict[str, None] = {}
        for pattern in _ACTION_PATTERNS:
            for match in pattern.finditer(full_text):
                item = match.group(0).strip()
                if 10 < len(item) < 200:
                    items.setdefault(item, None)
        return list(items)[: self._max_action_items]

    def _score_sentence(self, sentence: str) -> float:
        words = sentence.lower().split()
        if not words:
            return 0.0
        important = [
            word for word in words if len(word) > 4 and not is_stop_word(word, self._stop_words)
        ]
        return len(important) / len(words)

    @staticmethod
    def _join_text(fragments: Sequence[TranscriptFragment]) -> str:
        return " ".join(fragment.preferred_text for fragment in fragments)
