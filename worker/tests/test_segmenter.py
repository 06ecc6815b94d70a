from __future__ import annotations

from recorder_worker.segmenter import segment_by_topic
from recorder_worker.types import TranscriptFragment


def _fragment(start: int, end: int, text: str = "Some words were spoken here today") -> TranscriptFragment:
    return TranscriptFragment(original_text=text, timestamp_start=start, timestamp_end=end)


def test_gap_over_threshold_starts_new_segment() -> None:
    first = _fragment(0, 1000)
    second = _fragment(1200, 2000)
    third = _fragment(15000, 16000)

    segments = segment_by_topic([first, second, third])

    assert segments == [[first, second], [third]]


def test_gap_under_threshold_stays_in_one_segment() -> None:
    first = _fragment(0, 1000)
    second = _fragment(5000, 6000)

    assert segment_by_topic([first, second]) == [[first, second]]


def test_gap_exactly_at_threshold_does_not_split() -> None:
    first = _fragment(0, 1000)
    second = _fragment(11000, 12000)

    assert segment_by_topic([first, second]) == [[first, second]]


def test_first_fragment_never_splits_even_with_late_start() -> None:
    first = _fragment(500_000, 501_000)
    second = _fragment(502_000, 503_000)

    assert segment_by_topic([first, second]) == [[first, second]]


def test_zero_end_cursor_suppresses_split() -> None:
    first = _fragment(0, 0)
    second = _fragment(30_000, 31_000)

    assert segment_by_topic([first, second]) == [[first, second]]


def test_input_order_is_not_resorted() -> None:
    late = _fragment(40_000, 41_000)
    early = _fragment(0, 1000)

    segments = segment_by_topic([late, early])

    assert segments == [[late, early]]


def test_empty_input_yields_no_segments() -> None:
    assert segment_by_topic([]) == []


def test_custom_gap() -> None:
    first = _fragment(0, 1000)
    second = _fragment(3500, 4000)

    assert len(segment_by_topic([first, second], gap_ms=2000)) == 2
