"""
line_matcher.py — Boundary-safe detection of transit line identifiers.

A line "30" is genuinely present in "קו 30 לא מגיע" or "קווים 30, 40",
but NOT in "קו 630" or "בקו 1305". Plain substring search gets this wrong.

Boundaries are ASCII word boundaries: Hebrew letters count as non-word
characters, so "קו30" still contains line 30 while "4408" never contains 408.

Shared by:
    signal_extractor.py → extract_line_numbers() (over-collecting candidate lines)
    fusion_ranker.py    → shared-line fractions and boosts
    response_validator  → relevance terms
"""

import re
from functools import lru_cache
from typing import Iterable, List, Union

LINE_WORD = "קו"
LINES_WORD = "קווים"

MIN_LINE = 1
MAX_LINE = 999

# Extraction patterns, applied in this order. The bare-number pattern
# over-collects (any 2–3 digit number); precision comes from matches().
_EXTRACTION_PATTERNS = [
    re.compile(LINE_WORD + r"\s*([0-9]+)"),
    re.compile(r"line\s*([0-9]+)", re.IGNORECASE),
    re.compile(r"\b([0-9]{2,3})\b", re.ASCII),
]


def extract_line_numbers(text: str) -> List[int]:
    """
    Collect candidate line numbers from Hebrew/English text.

    Keeps values in [1, 999], de-duplicated in first-seen order.

    Examples:
        "קו 408 שינוי מסלול"        → [408]
        "line 12 and קו 30"        → [30, 12]
        "בקו 1305"                 → []   (1305 out of range, no 2–3 digit token)
    """
    if not text:
        return []

    found: List[int] = []
    for pattern in _EXTRACTION_PATTERNS:
        for m in pattern.finditer(text):
            num = int(m.group(1))
            if MIN_LINE <= num <= MAX_LINE and num not in found:
                found.append(num)
    return found


@lru_cache(maxsize=1024)
def _patterns_for(line: str):
    escaped = re.escape(line)
    return (
        re.compile(r"\b" + escaped + r"\b", re.ASCII),
        re.compile(LINE_WORD + r"\s+" + escaped + r"\b", re.ASCII),
        re.compile(LINES_WORD + r"[^0-9]*" + escaped + r"\b", re.ASCII),
    )


def _normalize_line(line: Union[int, str]) -> str:
    line_str = str(line).strip()
    if line_str.isdigit():
        return str(int(line_str))
    return line_str


class LineNumberMatcher:
    """
    Decide whether a target line identifier is genuinely present in a text.

    Accepts when any rule matches:
        1. N bounded by word boundaries anywhere
        2. "קו" + whitespace + N
        3. "קווים" + non-digit filler + N   (enumerations: "קווים 30, 40")
    """

    def matches(self, text: str, line: Union[int, str]) -> bool:
        if not text:
            return False
        target = _normalize_line(line)
        if not target:
            return False
        return any(p.search(text) for p in _patterns_for(target))

    def shared_lines(self, query_lines: Iterable[int], text: str) -> List[int]:
        """Query lines that are genuinely present in text, in query order."""
        return [n for n in query_lines if self.matches(text, n)]
