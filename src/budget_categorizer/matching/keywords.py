"""
Keyword matching with graduated confidence.

Tiers are tried in strict order and the first success wins:

1. exact phrase   multi-word keyword found as a contiguous phrase
2. whole word     single-word keyword equal to a token
3. stemmed        stems of the keyword equal stems of a token window
4. substring      keyword inside a longer word, only when whitelisted

Within a tier the first keyword in list order wins. The original text is tried
before the translated text.
"""
from collections import Counter
from collections.abc import Callable, Sequence
from functools import lru_cache
from threading import Lock
from typing import NamedTuple

from budget_categorizer.logger import get_logger
from budget_categorizer.matching.ambiguity import AmbiguityGuard, enclosing_span
from budget_categorizer.matching.normalizer import phrase_form, stem_tokens
from budget_categorizer.models import MatchResult, MatchType

logger = get_logger(__name__)

USABLE_CONFIDENCE = 0.5
LONG_KEYWORD_LENGTH = 5
LONG_KEYWORD_BONUS = 0.05

TIER_CONFIDENCE: dict[MatchType, tuple[float, float]] = {
    # (base, ceiling)
    MatchType.EXACT_PHRASE: (0.95, 1.0),
    MatchType.WHOLE_WORD: (0.85, 0.9),
    MatchType.STEMMED: (0.6, 0.65),
    MatchType.SUBSTRING: (0.55, 0.55),
}

_TIER_DESCRIPTIONS = {
    MatchType.EXACT_PHRASE: "exact phrase",
    MatchType.WHOLE_WORD: "whole word",
    MatchType.STEMMED: "word variation",
    MatchType.SUBSTRING: "whitelisted substring",
}

STAT_KEYS = (
    "total_attempts",
    "exact_phrase_matches",
    "whole_word_matches",
    "stemmed_matches",
    "substring_matches",
    "translated_matches",
    "no_matches",
    "false_positives_blocked",
)


class PreparedKeyword(NamedTuple):
    original: str
    phrase: str
    tokens: list[str]
    stems: list[str]


class PreparedText(NamedTuple):
    phrase: str
    tokens: list[str]
    stems: list[str]


def tier_confidence(match_type: MatchType, keyword: str) -> float:
    base, ceiling = TIER_CONFIDENCE[match_type]
    if len(phrase_form(keyword)) > LONG_KEYWORD_LENGTH:
        return round(min(base + LONG_KEYWORD_BONUS, ceiling), 2)
    return base


def is_usable(result: MatchResult, threshold: float = USABLE_CONFIDENCE) -> bool:
    return result.has_matches and result.confidence > threshold


class MatchStats:
    """
    Running counters for a matcher. One matcher is shared by the batch worker
    threads, so every update goes through the lock.

    ``total_attempts`` counts calls with usable input. Each of those ends in
    exactly one tier counter or in ``no_matches``; ``translated_matches`` also
    counts the hits found in translated text.
    """

    def __init__(self) -> None:
        self.lock = Lock()
        self._counts: Counter[str] = Counter()

    def increment(self, key: str) -> None:
        with self.lock:
            self._counts[key] += 1

    def snapshot(self) -> dict[str, int]:
        with self.lock:
            return {key: self._counts[key] for key in STAT_KEYS}

    def reset(self) -> None:
        with self.lock:
            self._counts.clear()


class KeywordMatcher:
    def __init__(self, guard: AmbiguityGuard | None = None):
        self.guard = guard if guard is not None else AmbiguityGuard.default()
        self._stats = MatchStats()
        self._tiers: list[tuple[MatchType, Callable[[PreparedText, PreparedKeyword], str | None]]] = [
            (MatchType.EXACT_PHRASE, self._exact_phrase),
            (MatchType.WHOLE_WORD, self._whole_word),
            (MatchType.STEMMED, self._stemmed),
            (MatchType.SUBSTRING, self._substring),
        ]

    def match_keywords(
        self,
        original_text: str | None,
        translated_text: str | None,
        keywords: Sequence[str] | None,
    ) -> MatchResult:
        prepared = self._prepare_keywords(keywords or [])
        original = self._prepare_text(original_text)
        if not original.phrase or not prepared:
            return MatchResult(reasoning="Missing text or keywords")
        self._stats.increment("total_attempts")

        sources: list[tuple[str, PreparedText]] = [("original", original)]
        translated = self._prepare_text(translated_text)
        if translated.phrase and translated.phrase != original.phrase:
            sources.append(("translated", translated))

        for source, text in sources:
            result = self._match_text(text, prepared, source)
            if result is not None:
                logger.debug(
                    "[KEYWORD] '%s' -> %s (confidence: %.2f)",
                    result.matched_keyword,
                    result.match_type.value,
                    result.confidence,
                )
                self._stats.increment(f"{result.match_type.value.replace('-', '_')}_matches")
                if source == "translated":
                    self._stats.increment("translated_matches")
                return result

        self._stats.increment("no_matches")
        return MatchResult(reasoning="No valid keyword matches found")

    def stats(self) -> dict[str, int]:
        return self._stats.snapshot()

    def reset_stats(self) -> None:
        self._stats.reset()

    def _match_text(
        self,
        text: PreparedText,
        keywords: list[PreparedKeyword],
        source: str,
    ) -> MatchResult | None:
        for match_type, strategy in self._tiers:
            for keyword in keywords:
                matched_text = strategy(text, keyword)
                if matched_text is None:
                    continue
                confidence = tier_confidence(match_type, keyword.phrase)
                return MatchResult(
                    has_matches=True,
                    confidence=confidence,
                    match_type=match_type,
                    reasoning=(
                        f'Matched keyword "{keyword.original}" as '
                        f'{_TIER_DESCRIPTIONS[match_type]} ("{matched_text}") in {source} text'
                    ),
                    matched_keyword=keyword.original,
                    matched_text=matched_text,
                    source=source,
                )
        return None

    def _exact_phrase(self, text: PreparedText, keyword: PreparedKeyword) -> str | None:
        if len(keyword.tokens) < 2:
            return None
        start = text.phrase.find(keyword.phrase)
        while start != -1:
            end = start + len(keyword.phrase)
            candidate = enclosing_span(text.phrase, start, end)
            if not self.guard.is_false_positive(candidate, keyword.phrase, text.phrase):
                return candidate
            self._stats.increment("false_positives_blocked")
            start = text.phrase.find(keyword.phrase, start + 1)
        return None

    def _whole_word(self, text: PreparedText, keyword: PreparedKeyword) -> str | None:
        if len(keyword.tokens) != 1:
            return None
        if keyword.phrase in text.tokens:
            return keyword.phrase
        return None

    def _stemmed(self, text: PreparedText, keyword: PreparedKeyword) -> str | None:
        width = len(keyword.stems)
        if width == 0 or width > len(text.stems):
            return None
        for index in range(len(text.stems) - width + 1):
            if text.stems[index:index + width] != keyword.stems:
                continue
            window = text.tokens[index:index + width]
            if all(
                self.guard.is_valid_variant(word, key)
                for word, key in zip(window, keyword.tokens)
            ):
                return " ".join(window)
            logger.debug("[KEYWORD] Stemmed variant rejected: '%s' for '%s'", " ".join(window), keyword.phrase)
            self._stats.increment("false_positives_blocked")
        return None

    def _substring(self, text: PreparedText, keyword: PreparedKeyword) -> str | None:
        if len(keyword.tokens) != 1:
            return None
        start = text.phrase.find(keyword.phrase)
        while start != -1:
            candidate = enclosing_span(text.phrase, start, start + len(keyword.phrase))
            if not self.guard.is_false_positive(candidate, keyword.phrase, text.phrase):
                return candidate
            self._stats.increment("false_positives_blocked")
            start = text.phrase.find(keyword.phrase, start + 1)
        return None

    @staticmethod
    def _prepare_text(text: str | None) -> PreparedText:
        phrase = phrase_form(text)
        tokens = phrase.split(" ") if phrase else []
        return PreparedText(phrase=phrase, tokens=tokens, stems=stem_tokens(tokens))

    @staticmethod
    def _prepare_keywords(keywords: Sequence[str]) -> list[PreparedKeyword]:
        prepared: list[PreparedKeyword] = []
        for keyword in keywords:
            phrase = phrase_form(keyword)
            if not phrase:
                continue
            tokens = phrase.split(" ")
            prepared.append(PreparedKeyword(
                original=keyword,
                phrase=phrase,
                tokens=tokens,
                stems=stem_tokens(tokens),
            ))
        return prepared


@lru_cache(maxsize=1)
def default_matcher() -> KeywordMatcher:
    return KeywordMatcher()


def match_keywords(
    original_text: str | None,
    translated_text: str | None,
    keywords: Sequence[str] | None,
) -> MatchResult:
    return default_matcher().match_keywords(original_text, translated_text, keywords)
