"""
False-positive guard for short keywords.

Short, semantically loaded keywords (Hebrew "מס" for tax, English "car") are
frequent accidental substrings of unrelated longer words. A hit is
accepted only when the keyword stands as a whole word, or when the keyword is
explicitly whitelisted for substring matching and the enclosing word is not a
known false positive. The table itself is data, loaded from JSON.
"""
import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from budget_categorizer.logger import get_logger
from budget_categorizer.matching.normalizer import contains_script, is_word_char, normalize, phrase_form

logger = get_logger(__name__)

DEFAULT_TABLE_PATH = os.path.join(os.path.dirname(__file__), "data", "ambiguity.json")

# Keywords this short only accept plain inflections in the stemmed tier.
SHORT_KEYWORD_LENGTH = 3


@dataclass(frozen=True)
class AmbiguityEntry:
    keyword: str
    script: str = "latin"
    substring_allowed: bool = False
    false_positives: frozenset[str] = field(default_factory=frozenset)


def enclosing_span(text: str, start: int, end: int) -> str:
    """Widen ``text[start:end]`` to the surrounding word boundaries."""
    while start > 0 and is_word_char(text[start - 1]):
        start -= 1
    while end < len(text) and is_word_char(text[end]):
        end += 1
    return text[start:end]


def _short_variants(keyword: str) -> set[str]:
    variants = {keyword, f"{keyword}s", f"{keyword}es", f"{keyword}ed", f"{keyword}ing"}
    if keyword:
        doubled = keyword + keyword[-1]
        variants.update({f"{doubled}ing", f"{doubled}ed"})
    return variants


class AmbiguityGuard:
    def __init__(self, entries: Mapping[str, AmbiguityEntry] | None = None):
        self._entries: dict[str, AmbiguityEntry] = {}
        for keyword, entry in (entries or {}).items():
            self._entries[normalize(keyword)] = entry

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "AmbiguityGuard":
        entries: dict[str, AmbiguityEntry] = {}
        for keyword, options in raw.items():
            key = normalize(keyword)
            if not key:
                continue
            options = options or {}
            script = str(options.get("script", "latin"))
            if not contains_script(key, script):
                logger.warning("[KEYWORD] Ambiguity entry '%s' is not %s script", key, script)
            entries[key] = AmbiguityEntry(
                keyword=key,
                script=script,
                substring_allowed=bool(options.get("substring_allowed", False)),
                false_positives=frozenset(
                    normalize(word) for word in options.get("false_positives", []) if word
                ),
            )
        return cls(entries)

    @classmethod
    def from_file(cls, path: str) -> "AmbiguityGuard":
        with open(path, encoding="utf-8") as handle:
            raw = json.load(handle)
        guard = cls.from_mapping(raw)
        logger.info("[KEYWORD] Loaded %s ambiguity entries from %s", len(guard), path)
        return guard

    @classmethod
    def default(cls) -> "AmbiguityGuard":
        return cls.from_file(DEFAULT_TABLE_PATH)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, keyword: object) -> bool:
        return isinstance(keyword, str) and normalize(keyword) in self._entries

    def entry(self, keyword: str) -> AmbiguityEntry | None:
        return self._entries.get(normalize(keyword))

    def is_whitelisted(self, keyword: str) -> bool:
        entry = self.entry(keyword)
        return bool(entry and entry.substring_allowed)

    def is_false_positive(self, candidate: str, keyword: str, full_text: str) -> bool:
        """
        Decide whether a raw hit of ``keyword`` must be rejected.

        ``candidate`` is the word span enclosing the hit. A candidate equal to the
        keyword is a whole-word hit and always accepted.
        """
        span = phrase_form(candidate)
        key = phrase_form(keyword)
        if not span or not key or key not in span:
            return True
        if span not in phrase_form(full_text):
            return True
        if span == key:
            return False

        entry = self.entry(key)
        if entry is None or not entry.substring_allowed:
            logger.debug("[KEYWORD] Substring hit blocked: '%s' inside '%s'", key, span)
            return True
        if span in entry.false_positives or any(
            word in entry.false_positives for word in span.split(" ")
        ):
            logger.debug("[KEYWORD] Known false positive blocked: '%s' inside '%s'", key, span)
            return True
        return False

    def is_valid_variant(self, word: str, keyword: str) -> bool:
        """Validate a stem-equal word against the keyword it was matched to."""
        matched = normalize(word)
        key = normalize(keyword)
        if matched == key:
            return True
        entry = self._entries.get(key)
        if entry and matched in entry.false_positives:
            return False
        if len(key) <= SHORT_KEYWORD_LENGTH:
            return matched in _short_variants(key)
        return True
