import json
import os
import threading
from decimal import Decimal
from time import monotonic
from typing import Any

from openai import OpenAI

from budget_categorizer.integration.suggestion import SuggestionProvider
from budget_categorizer.logger import get_logger
from budget_categorizer.matching.normalizer import normalize
from budget_categorizer.models import AISuggestion, Category

logger = get_logger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_CACHE_TTL_SECONDS = 300.0

_NULL_VALUES = {"", "null", "none", "uncategorized"}


def extract_output_text(response: object) -> str | None:
    output_text = getattr(response, "output_text", None)
    if output_text:
        return output_text

    output = getattr(response, "output", None)
    if not output:
        return None

    parts: list[str] = []
    for item in output:
        content = getattr(item, "content", None)
        if not content:
            continue
        for block in content:
            block_type = getattr(block, "type", None)
            if block_type in {"output_text", "text"}:
                text = getattr(block, "text", None)
                if text:
                    parts.append(text)

    if parts:
        return "".join(parts)
    return None


def format_taxonomy(taxonomy: list[Category]) -> str:
    lines: list[str] = []
    for category in taxonomy:
        line = f"- id={category.id} | {category.name} ({category.type.value})"
        if category.keywords:
            line += f" keywords: {', '.join(category.keywords)}"
        lines.append(line)
        for sub in category.sub_categories:
            sub_line = f"  - id={sub.id} | {sub.name}"
            if sub.keywords:
                sub_line += f" keywords: {', '.join(sub.keywords)}"
            lines.append(sub_line)
    return "\n".join(lines)


def _clean_id(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if text.lower() in _NULL_VALUES:
        return None
    return text


def parse_suggestion(raw_text: str | None) -> AISuggestion:
    if not raw_text:
        return AISuggestion()
    text = raw_text.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        logger.warning(f"[AI] Could not parse provider response: {raw_text[:200]}")
        return AISuggestion()
    if not isinstance(payload, dict):
        return AISuggestion()

    confidence = payload.get("confidence")
    try:
        confidence = None if confidence is None else max(0.0, min(float(confidence), 1.0))
    except (TypeError, ValueError):
        confidence = None

    reasoning = payload.get("reasoning")
    return AISuggestion(
        category_id=_clean_id(payload.get("category_id")),
        sub_category_id=_clean_id(payload.get("sub_category_id")),
        confidence=confidence,
        reasoning=str(reasoning).strip() if reasoning else None,
    )


class OpenAISuggestionProvider(SuggestionProvider):
    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        cache_ttl: float = DEFAULT_CACHE_TTL_SECONDS,
    ):
        self.client = OpenAI(
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            base_url=base_url or os.getenv("OPENAI_BASE_URL") or None,
            timeout=timeout,
            max_retries=0,
        )
        self.model = model
        self._cache_ttl = max(0.0, cache_ttl)
        self._cache: dict[tuple[Any, ...], tuple[float, AISuggestion]] = {}
        self._cache_lock = threading.Lock()

    def suggest(
        self,
        description: str,
        amount: Decimal,
        taxonomy: list[Category],
        user_id: str,
        raw_category_hint: str | None = None,
        memo_hint: str | None = None,
    ) -> AISuggestion:
        if not description or not taxonomy:
            return AISuggestion()

        cache_key = self._cache_key(description, amount, taxonomy, user_id, raw_category_hint, memo_hint)
        cached = self._get_cached(cache_key)
        if cached is not None:
            logger.debug(f"[AI] Cache hit for '{description[:50]}'")
            return cached

        hints = ""
        if raw_category_hint:
            hints += f"\nBank category label: {raw_category_hint}"
        if memo_hint:
            hints += f"\nMemo: {memo_hint}"

        prompt = f"""
        Categorize this bank transaction into one of the user's categories.
        Description: {description}
        Amount: {amount}{hints}

        Categories (sub-categories indented):
        {format_taxonomy(taxonomy)}

        Negative amounts are usually expenses, positive amounts income or transfers.
        Expense categories need a sub-category id; Income and Transfer categories do not.
        Return ONLY a JSON object with keys "category_id", "sub_category_id",
        "confidence" (0-1) and "reasoning". Use null for category_id if unsure.
        """

        response = self.client.responses.create(
            model=self.model,
            instructions="You are a helpful financial assistant.",
            input=prompt,
            temperature=0.0,
        )
        suggestion = parse_suggestion(extract_output_text(response))
        self._store(cache_key, suggestion)
        return suggestion

    @staticmethod
    def _cache_key(
        description: str,
        amount: Decimal,
        taxonomy: list[Category],
        user_id: str,
        raw_category_hint: str | None,
        memo_hint: str | None,
    ) -> tuple[Any, ...]:
        fingerprint = tuple(
            (c.id, c.name, tuple((s.id, s.name) for s in c.sub_categories))
            for c in taxonomy
        )
        return (
            user_id,
            normalize(description),
            str(amount),
            normalize(raw_category_hint),
            normalize(memo_hint),
            fingerprint,
        )

    def _get_cached(self, key: tuple[Any, ...]) -> AISuggestion | None:
        if self._cache_ttl <= 0:
            return None
        with self._cache_lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            expires_at, suggestion = entry
            if monotonic() >= expires_at:
                del self._cache[key]
                return None
            return suggestion.model_copy()

    def _store(self, key: tuple[Any, ...], suggestion: AISuggestion) -> None:
        if self._cache_ttl <= 0:
            return
        with self._cache_lock:
            self._cache[key] = (monotonic() + self._cache_ttl, suggestion.model_copy())
