from __future__ import annotations

import random
from dataclasses import dataclass

CANNED_PHRASES = (
    "Hello, how are you doing today?",
    "This is a test of the transcription system.",
    "The meeting is now in progress.",
    "Please share your thoughts on this topic.",
    "Let me know if you have any questions.",
    "We need to discuss the project timeline.",
    "Thank you for your input.",
)


@dataclass(frozen=True)
class TranscribedChunk:
    text: str
    timestamp_start: int
    timestamp_end: int
    confidence: float


class MockTranscriber:
    """Stand-in recognizer that occasionally emits a canned phrase for an audio chunk.

    Chunks are assumed to be 16 kHz mono float32 PCM, which only matters for the
    reported end timestamp.
    """

    provider = "mock"

    def __init__(
        self,
        *,
        seed: int | None = None,
        emit_probability: float = 0.3,
        sample_rate: int = 16_000,
    ) -> None:
        self._random = random.Random(seed)
        self._emit_probability = emit_probability
        self._sample_rate = sample_rate

    def transcribe_chunk(self, audio: bytes, timestamp_ms: int) -> TranscribedChunk | None:
        if not audio:
            return None
        if self._random.random() >= self._emit_probability:
            return None

        samples = len(audio) // 4
        duration_ms = samples * 1000 // self._sample_rate
        return TranscribedChunk(
            text=self._random.choice(CANNED_PHRASES),
            timestamp_start=timestamp_ms,
            timestamp_end=timestamp_ms + duration_ms,
            confidence=round(0.85 + self._random.random() * 0.15, 3),
        )
