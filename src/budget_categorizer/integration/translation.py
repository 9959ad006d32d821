import re
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict

from openai import OpenAI

from budget_categorizer.integration.openai_provider import extract_output_text
from budget_categorizer.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CACHE_SIZE = 1000

_AMOUNT_RE = re.compile(r"[₪$€£¥]\s*\d+(?:[.,]\d+)?")
_CURRENCY_RE = re.compile(r"\s+[₪$€£¥]\s*")
_DATE_RES = (
    re.compile(r"\b\d{1,2}[./-]\d{1,2}[./-]\d{2,4}\b"),
    re.compile(r"\b\d{1,2}[./-]\d{4}\b"),
    re.compile(r"\b\d{4}[./-]\d{1,2}[./-]\d{1,2}\b"),
)
_NUMBER_RE = re.compile(r"\b\d+(?:[.,]\d+)?\b")
_SYMBOLS_RE = re.compile(r"[-_=+*/\\|<>{}\[\]()]")
_TRAILING_PUNCT_RE = re.compile(r"\s*[.,]+\s*$")
_WHITESPACE_RE = re.compile(r"\s+")
_LATIN_ONLY_RE = re.compile(r"^[a-zA-Z0-9\s.,!?;:'\"-]+$")


def extract_translatable_text(text: str | None) -> str | None:
    """
    Strip amounts, dates, numbers and symbols from ``text``.

    Returns None when nothing worth translating remains, including text that is
    already plain Latin script.
    """
    if not text:
        return None
    clean = _AMOUNT_RE.sub("", text)
    clean = _CURRENCY_RE.sub(" ", clean)
    for pattern in _DATE_RES:
        clean = pattern.sub("", clean)
    clean = _NUMBER_RE.sub("", clean)
    clean = _SYMBOLS_RE.sub(" ", clean)
    clean = _TRAILING_PUNCT_RE.sub("", clean)
    clean = _WHITESPACE_RE.sub(" ", clean).strip()

    if len(clean) < 2:
        return None
    if _LATIN_ONLY_RE.match(clean):
        return None
    return clean


class Translator(ABC):
    @abstractmethod
    def translate(self, text: str) -> str:
        """Return an English rendering of ``text`` (or ``text`` itself)."""
        pass


class IdentityTranslator(Translator):
    def translate(self, text: str) -> str:
        return text


class LLMTranslator(Translator):
    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        target_language: str = "English",
        timeout: float = 10.0,
    ):
        self.client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=1)
        self.model = model
        self.target_language = target_language

    def translate(self, text: str) -> str:
        response = self.client.responses.create(
            model=self.model,
            instructions=(
                f"Translate bank transaction text to {self.target_language}. "
                "Return ONLY the translation."
            ),
            input=text,
            temperature=0.0,
        )
        translated = extract_output_text(response)
        if not translated:
            return text
        return translated.strip()


class CachingTranslator(Translator):
    """Bounded LRU in front of another translator; failures return the input."""

    def __init__(self, inner: Translator, max_size: int = DEFAULT_CACHE_SIZE):
        self.inner = inner
        self.max_size = max_size
        self._cache: OrderedDict[str, str] = OrderedDict()
        self._lock = threading.Lock()

    def translate(self, text: str) -> str:
        translatable = extract_translatable_text(text)
        if not translatable:
            return text

        with self._lock:
            cached = self._cache.get(text)
            if cached is not None:
                self._cache.move_to_end(text)
                return cached

        try:
            result = self.inner.translate(translatable)
        except Exception as e:
            logger.warning(f"Translation failed for '{text}': {e}")
            return text

        translated = text
        if result and result != translatable:
            # Keep amounts and dates in place when the translatable part is contiguous.
            translated = text.replace(translatable, result) if translatable in text else result

        with self._lock:
            self._cache[text] = translated
            self._cache.move_to_end(text)
            while len(self._cache) > self.max_size:
                self._cache.popitem(last=False)
        return translated

    def __len__(self) -> int:
        return len(self._cache)
