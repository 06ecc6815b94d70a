from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

import requests
import structlog

logger = structlog.get_logger(__name__)

ENGLISH_CODES = frozenset({"en", "en-GB"})

_AFRIKAANS_PATTERNS = (
    re.compile(r"\b(is|die|en|van|vir|met|nie|het|aan|by)\b", re.IGNORECASE),
    re.compile(r"\b(ek|jy|hy|sy|ons|julle|hulle)\b", re.IGNORECASE),
)


@dataclass(frozen=True)
class TranslationResult:
    translated_text: str
    detected_language: str
    confidence: float


def detect_language(text: str) -> str:
    # a hit on a pattern weighs 2: the matched word plus its captured group
    score = sum(2 for pattern in _AFRIKAANS_PATTERNS if pattern.search(text))
    return "af" if score > 2 else "en"


class TranslationService:
    """Translates fragments into UK English.

    Results are cached per instance, keyed by ``(text, target_language)``.
    Lookup failures fall back to the untranslated text and are not cached.
    """

    def __init__(
        self,
        *,
        base_url: str = "https://translate.googleapis.com/translate_a/single",
        timeout_seconds: float = 10.0,
    ) -> None:
        self._base_url = base_url
        self._timeout = timeout_seconds
        self._cache: dict[tuple[str, str], TranslationResult] = {}

    def translate(self, text: str, target_language: str = "en-GB") -> TranslationResult:
        key = (text, target_language)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        detected = detect_language(text)
        if detected in ENGLISH_CODES:
            result = TranslationResult(translated_text=text, detected_language=detected, confidence=1.0)
            self._cache[key] = result
            return result

        try:
            translated = self._translate_text(text, detected, target_language)
        except (requests.RequestException, ValueError) as exc:
            logger.warning("translation_failed", source_language=detected, error=str(exc))
            return TranslationResult(translated_text=text, detected_language="unknown", confidence=0.0)

        result = TranslationResult(translated_text=translated, detected_language=detected, confidence=0.85)
        self._cache[key] = result
        return result

    def clear_cache(self) -> None:
        self._cache.clear()

    def _translate_text(self, text: str, source_language: str, target_language: str) -> str:
        response = requests.get(
            self._base_url,
            params={"client": "gtx", "sl": source_language, "tl": target_language, "dt": "t", "q": text},
            timeout=self._timeout,
        )
        response.raise_for_status()
        data: Any = response.json()
        try:
            translated = data[0][0][0]
        except (IndexError, KeyError, TypeError):
            return text
        return translated or text
