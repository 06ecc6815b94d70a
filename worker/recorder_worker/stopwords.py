from __future__ import annotations

STOP_WORDS: frozenset[str] = frozenset(
    {
        "the",
        "is",
        "at",
        "which",
        "on",
        "a",
        "an",
        "and",
        "or",
        "but",
        "in",
        "with",
        "to",
        "for",
        "of",
        "as",
        "by",
        "that",
        "this",
        "it",
        "from",
        "be",
        "are",
        "was",
        "were",
        "been",
        "have",
        "has",
        "had",
        "do",
        "does",
        "did",
        "will",
        "would",
        "could",
        "should",
    }
)


def is_stop_word(word: str, stop_words: frozenset[str] = STOP_WORDS) -> bool:
    return word.lower() in stop_words
