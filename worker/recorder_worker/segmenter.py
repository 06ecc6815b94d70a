from __future__ import annotations

from collections.abc import Sequence

from recorder_worker.types import TranscriptFragment

SEGMENT_GAP_MS = 10_000


def segment_by_topic(
    fragments: Sequence[TranscriptFragment],
    gap_ms: int = SEGMENT_GAP_MS,
) -> list[list[TranscriptFragment]]:
    """Group time-ordered fragments into runs separated by silences longer than ``gap_ms``.

    Input order is trusted; fragments are never re-sorted. The split check only
    applies once a previous fragment has a non-zero end, so the first fragment
    always opens the first segment.
    """
    segments: list[list[TranscriptFragment]] = []
    current: list[TranscriptFragment] = []
    last_end = 0

    for fragment in fragments:
        if last_end and current and fragment.timestamp_start - last_end > gap_ms:
            segments.append(current)
            current = []

        current.append(fragment)
        last_end = fragment.timestamp_end

    if current:
        segments.append(current)

    return segments
