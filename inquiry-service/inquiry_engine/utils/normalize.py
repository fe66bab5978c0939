import re
import unicodedata
from typing import List, Set

HEBREW_START = 0x0590
HEBREW_END = 0x05FF

_HEBREW_CLASS = "֐-׿"

# Anything that is not Hebrew, a word character or whitespace
_NON_TOKEN_RE = re.compile(r"[^" + _HEBREW_CLASS + r"\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_query(query: str) -> str:
    """
    Normalizes query text for matching.
    - Lowercases.
    - Normalizes unicode (NFC).
    - Collapses whitespace.
    """
    q = unicodedata.normalize("NFC", query.lower())
    q = _WHITESPACE_RE.sub(" ", q).strip()
    return q


def normalize_cache_text(query: str) -> str:
    """
    Cache-key normalization: lowercase, strip non-Hebrew/non-word
    characters, collapse whitespace.
    "קו 408 - שינוי מסלול?!" and "קו 408 שינוי  מסלול" share one key.
    """
    if not query:
        return ""
    q = normalize_query(query)
    q = _NON_TOKEN_RE.sub(" ", q)
    return _WHITESPACE_RE.sub(" ", q).strip()


def tokenize(text: str) -> List[str]:
    """
    Tokenize for lexical similarity.

    Non-Hebrew, non-word characters become spaces; tokens of length ≤ 1
    are dropped.
    """
    if not text or not isinstance(text, str):
        return []
    text = _NON_TOKEN_RE.sub(" ", text.lower())
    return [t for t in text.split() if len(t) > 1]


def token_set(text: str) -> Set[str]:
    return set(tokenize(text))


def is_hebrew_char(ch: str) -> bool:
    return HEBREW_START <= ord(ch) <= HEBREW_END


def hebrew_ratio(text: str) -> float:
    """Fraction of ALL characters (spaces and punctuation included) in the Hebrew block."""
    if not text:
        return 0.0
    return sum(1 for ch in text if is_hebrew_char(ch)) / len(text)
