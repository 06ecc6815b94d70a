from __future__ import annotations

from recorder_worker.stopwords import STOP_WORDS, is_stop_word
from recorder_worker.summarizer import (
    EMPTY_MEETING_SUMMARY,
    NO_SENTENCES_SUMMARY,
    MeetingSummarizer,
    split_sentences,
)
from recorder_worker.types import SummaryResult, TranscriptFragment


def _fragment(
    text: str,
    start: int,
    end: int,
    translated: str | None = None,
) -> TranscriptFragment:
    return TranscriptFragment(
        original_text=text,
        translated_text=translated,
        timestamp_start=start,
        timestamp_end=end,
        confidence=0.9,
    )


def _meeting() -> list[TranscriptFragment]:
    return [
        _fragment("We reviewed the quarterly launch timeline with engineering.", 0, 4000),
        _fragment("Engineering needs to finalize API pagination by Friday.", 4500, 8000),
        _fragment("Design should deliver the onboarding copy tomorrow.", 30000, 33000),
        _fragment("Action item: Maria will prepare the release checklist.", 33500, 36000),
    ]


def test_empty_input_returns_fixed_fallback() -> None:
    result = MeetingSummarizer().generate_summary([])

    assert result == SummaryResult(summary=EMPTY_MEETING_SUMMARY, key_points=[], action_items=[])
    assert result.summary == "No transcriptions available for this meeting."


def test_generate_summary_is_deterministic() -> None:
    summarizer = MeetingSummarizer()

    first = summarizer.generate_summary(_meeting())
    second = summarizer.generate_summary(_meeting())

    assert first == second
    assert first.summary.endswith(".")
    assert first.key_points == [
        "We reviewed the quarterly launch timeline with engineering",
        "Design should deliver the onboarding copy tomorrow",
    ]
    assert "should deliver the onboarding copy tomorrow" in first.action_items


def test_short_sentences_yield_in_progress_summary() -> None:
    summarizer = MeetingSummarizer()

    assert summarizer.extractive_summary("Hi. Ok. Go now.") == NO_SENTENCES_SUMMARY
    result = summarizer.generate_summary([_fragment("Hi. Ok. Go now.", 0, 1000)])
    assert result.summary == "Meeting recording in progress."
    assert result.key_points == []


def test_split_sentences_drops_pieces_of_twenty_chars_or_less() -> None:
    text = "Exactly twenty chars! This sentence is clearly longer than twenty?! Short one."
    assert split_sentences(text) == ["This sentence is clearly longer than twenty"]


def test_extractive_summary_orders_by_score_then_position() -> None:
    text = (
        "It is the one that we had to do in a way. "
        "Quarterly revenue projections exceeded expectations significantly. "
        "The second tie sentence here is fine too. "
        "The first tie sentence here is fine also."
    )

    summary = MeetingSummarizer().extractive_summary(text, max_sentences=2)

    assert summary == (
        "Quarterly revenue projections exceeded expectations significantly. "
        "The second tie sentence here is fine too."
    )


def test_extractive_summary_returns_all_when_fewer_than_requested() -> None:
    text = "Budget approval arrived from finance yesterday."
    assert MeetingSummarizer().extractive_summary(text, 3) == "Budget approval arrived from finance yesterday."


def test_translated_text_is_preferred() -> None:
    fragments = [
        _fragment(
            "Ons moet die begroting voor Vrydag finaliseer.",
            0,
            2000,
            translated="We must finalize the budget before Friday.",
        )
    ]

    result = MeetingSummarizer().generate_summary(fragments)

    assert result.summary == "We must finalize the budget before Friday."
    assert result.action_items == ["must finalize the budget before Friday"]


def test_missing_text_never_raises() -> None:
    fragments = [_fragment("", 0, 1000), _fragment("   ", 1000, 2000, translated="")]

    result = MeetingSummarizer().generate_summary(fragments)

    assert result.summary == NO_SENTENCES_SUMMARY
    assert result.key_points == []
    assert result.action_items == []


def test_action_items_are_deduplicated() -> None:
    text = "We need to finalize the budget. " * 8

    items = MeetingSummarizer().extract_action_items(text)

    assert items == ["need to finalize the budget"]


def test_action_items_are_capped_at_five_in_first_seen_order() -> None:
    text = (
        "We need to book the venue. "
        "Paul must send the invoice today. "
        "Anna should review the contract draft. "
        "We have to hire two engineers. "
        "They are going to migrate the database. "
        "Sam will update the roadmap slides."
    )

    items = MeetingSummarizer().extract_action_items(text)

    assert items == [
        "need to book the venue",
        "must send the invoice today",
        "should review the contract draft",
        "have to hire two engineers",
        "going to migrate the database",
    ]


def test_action_item_markers_and_assignments() -> None:
    text = "TODO: circulate meeting minutes. Sarah is responsible for vendor outreach!"

    items = MeetingSummarizer().extract_action_items(text)

    assert items == ["TODO: circulate meeting minutes", "responsible for vendor outreach"]


def test_action_item_length_bounds_are_exclusive() -> None:
    summarizer = MeetingSummarizer()

    ten = "must do it"
    eleven = "must do its"
    assert len(ten) == 10 and len(eleven) == 11
    assert summarizer.extract_action_items(f"{ten}.") == []
    assert summarizer.extract_action_items(f"{eleven}.") == [eleven]

    long_199 = "must " + "x" * 194
    long_200 = "must " + "x" * 195
    assert len(long_199) == 199 and len(long_200) == 200
    assert summarizer.extract_action_items(f"{long_199}.") == [long_199]
    assert summarizer.extract_action_items(f"{long_200}.") == []


def test_key_points_capped_at_five_in_segment_order() -> None:
    fragments = [
        _fragment(
            f"Topic number {index} covered the detailed plan. Another sentence for topic {index} follows.",
            index * 60_000 + 1,
            index * 60_000 + 5_000,
        )
        for index in range(8)
    ]

    key_points = MeetingSummarizer().extract_key_points(fragments)

    assert key_points == [f"Topic number {index} covered the detailed plan" for index in range(5)]


def test_key_points_skip_segments_without_sentences() -> None:
    fragments = [
        _fragment("Okay.", 1, 1000),
        _fragment("The migration plan needs a second review.", 20_000, 25_000),
    ]

    assert MeetingSummarizer().extract_key_points(fragments) == ["The migration plan needs a second review"]


def test_stop_words_are_case_insensitive_and_immutable() -> None:
    assert is_stop_word("Should")
    assert not is_stop_word("budget")
    assert isinstance(STOP_WORDS, frozenset)
    assert len(STOP_WORDS) == 36


def test_custom_stop_words_change_scoring() -> None:
    text = "Quarterly budget review happened today. Unrelated small chat about weather happened."
    default = MeetingSummarizer().extractive_summary(text, 1)
    custom = MeetingSummarizer(stop_words=frozenset({"quarterly", "budget", "review", "happened", "today"}))

    assert default == "Quarterly budget review happened today."
    assert custom.extractive_summary(text, 1) == "Unrelated small chat about weather happened."
