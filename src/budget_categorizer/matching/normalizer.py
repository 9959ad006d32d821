"""
Text normalization seams used by the keyword matcher and the history store.

normalize -> tokenize -> stem. The text functions are total: ``None`` or empty input
yields an empty result instead of raising.
"""
import re
import unicodedata
from functools import lru_cache

import nltk
from nltk.corpus import stopwords
from nltk.stem import PorterStemmer

_WHITESPACE_RE = re.compile(r"\s+")
# Runs of letters/digits in any script; underscore counts as punctuation.
_TOKEN_RE = re.compile(r"[^\W_]+")

_SCRIPT_PATTERNS = {
    "hebrew": re.compile("[\u0590-\u05FF]"),
    "latin": re.compile(r"[a-zA-Z]"),
}

_stemmer = PorterStemmer()


def normalize(text: str | None) -> str:
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    return _WHITESPACE_RE.sub(" ", stripped.casefold()).strip()


def tokenize(text: str | None) -> list[str]:
    normalized = normalize(text)
    if not normalized:
        return []
    return _TOKEN_RE.findall(normalized)


def phrase_form(text: str | None) -> str:
    """Tokens joined by single spaces, so punctuation never splits a phrase."""
    return " ".join(tokenize(text))


@lru_cache(maxsize=4096)
def stem(token: str) -> str:
    if not token:
        return ""
    # Porter only makes sense for Latin script; other scripts pass through.
    if not (token.isascii() and token.isalpha()):
        return token
    return _stemmer.stem(token.lower())


def stem_tokens(tokens: list[str]) -> list[str]:
    return [stem(token) for token in tokens]


def contains_script(text: str | None, script: str) -> bool:
    if not text:
        return False
    pattern = _SCRIPT_PATTERNS.get(script.lower())
    if pattern is None:
        return False
    return bool(pattern.search(text))


def is_word_char(char: str) -> bool:
    return char.isalnum()


@lru_cache(maxsize=None)
def english_stopwords() -> frozenset[str]:
    """NLTK's English stopword list, fetched on first use when not installed."""
    try:
        nltk.data.find("corpora/stopwords")
    except LookupError:
        nltk.download("stopwords", quiet=True)
    return frozenset(stopwords.words("english"))
