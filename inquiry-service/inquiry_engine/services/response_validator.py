"""
response_validator.py — Acceptance gate for generated replies.

PIPELINE POSITION:
    Rank → Generate → **Validate** → (retry once, conservative prompt) → Cache → Return

CHECKS (each deducts from 100; some force rejection):
    1. Length        < 100 chars                         → −20
    2. Language      Hebrew-block ratio < 0.7            → −30, forces invalid
    3. Relevance     < 50% of inquiry key terms present  → −25
    4. Hallucination line N not in the line registry     → −15 per line, forces invalid
    5. Structure     greeting / ≥2 sentences / signature → −10

    is_valid = score ≥ 60 and no forcing check failed

Deterministic and stateless for a fixed registry: identical
(response, inquiry) input always yields an identical ValidationResult.
"""

import json
import logging
import os
import re
from typing import Iterable, List, Optional, Sequence

from inquiry_engine.core.config import ValidationConfig
from inquiry_engine.core.errors import CorpusUnavailable
from inquiry_engine.core.models import HistoricalRecord, ValidationResult
from inquiry_engine.services.line_matcher import (
    LINE_WORD,
    LINES_WORD,
    LineNumberMatcher,
    extract_line_numbers,
)
from inquiry_engine.services.signal_extractor import EntitySignalExtractor
from inquiry_engine.utils.normalize import hebrew_ratio

logger = logging.getLogger(__name__)

GREETING = "שלום"
SIGNATURE = "בברכה"

DOMAIN_KEYWORDS = (
    "קו", "תחנה", "אוטובוס", "מסלול", "תדירות", "נהג", "לוח זמנים",
    "רכבת קלה", "נסיעה", "איחור", "רב קו",
)

MIN_SENTENCES = 2
MIN_SENTENCE_LENGTH = 10

_SENTENCE_SPLIT_RE = re.compile(r"[.!?\n]+")

# "קו 30", "line 30", and enumerations such as "קווים 30, 40 ו-52" or "lines 30, 40"
_ENUM_TAIL = r"\s*([0-9]+(?:\s*(?:,|ו-?|-|and|&)\s*[0-9]+)*)"
_LINE_MENTION_RE = re.compile(LINE_WORD + r"(?!ים)\s*([0-9]+)")
_ENGLISH_LINE_MENTION_RE = re.compile(r"\bline\s*([0-9]+)", re.IGNORECASE)
_LINES_ENUM_RE = re.compile(LINES_WORD + _ENUM_TAIL, re.IGNORECASE)
_ENGLISH_LINES_ENUM_RE = re.compile(r"\blines" + _ENUM_TAIL, re.IGNORECASE)
_DIGITS_RE = re.compile(r"[0-9]+")


def extract_line_mentions(text: str) -> List[int]:
    """Every line number the text asserts as a line, in first-seen order."""
    if not text:
        return []
    mentions: List[int] = []

    def _add(num: int):
        if num not in mentions:
            mentions.append(num)

    for m in _LINE_MENTION_RE.finditer(text):
        _add(int(m.group(1)))
    for m in _ENGLISH_LINE_MENTION_RE.finditer(text):
        _add(int(m.group(1)))
    for enum_re in (_LINES_ENUM_RE, _ENGLISH_LINES_ENUM_RE):
        for m in enum_re.finditer(text):
            for num in _DIGITS_RE.findall(m.group(1)):
                _add(int(num))
    return mentions


# ===================================================================
# LINE REGISTRY
# ===================================================================

class LineRegistry:
    """Authoritative set of line identifiers in service."""

    def __init__(self, lines: Iterable[int] = ()):
        self._lines = frozenset(int(n) for n in lines)

    def is_valid_line(self, n: int) -> bool:
        return int(n) in self._lines

    def __len__(self) -> int:
        return len(self._lines)

    def __contains__(self, n) -> bool:
        return self.is_valid_line(n)

    @classmethod
    def from_json_file(cls, path: str) -> "LineRegistry":
        """
        Load a registry file: either a JSON list of ids or {"lines": [...]}.
        """
        if not os.path.exists(path):
            raise CorpusUnavailable(f"Line registry not found at {path}")
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise CorpusUnavailable(f"Failed to read line registry {path}: {e}") from e
        lines = data.get("lines", []) if isinstance(data, dict) else data
        return cls(lines)

    @classmethod
    def from_records(
        cls,
        records: Sequence[HistoricalRecord],
        matcher: Optional[LineNumberMatcher] = None,
    ) -> "LineRegistry":
        """
        Derive the registry from official records: a line counts only when
        it appears as an explicit line mention and the boundary matcher
        confirms it.
        """
        matcher = matcher or LineNumberMatcher()
        lines = set()
        for record in records:
            if not record.is_official:
                continue
            text = record.full_text
            for n in extract_line_mentions(text):
                if n in record.line_numbers and matcher.matches(text, n):
                    lines.add(n)
        logger.info(f"[REGISTRY] Derived {len(lines)} line ids from {len(records)} records")
        return cls(lines)


# ===================================================================
# VALIDATOR
# ===================================================================

class ResponseValidator:
    """
    Methods:
        validate(): score one generated response against its inquiry
        key_terms(): the relevance terms extracted from an inquiry
    """

    def __init__(
        self,
        registry: LineRegistry,
        config: Optional[ValidationConfig] = None,
        extractor: Optional[EntitySignalExtractor] = None,
        domain_keywords: Sequence[str] = DOMAIN_KEYWORDS,
    ):
        self.registry = registry
        self.config = config or ValidationConfig()
        self.extractor = extractor or EntitySignalExtractor()
        self.domain_keywords = tuple(domain_keywords)

    def validate(self, response: str, inquiry: str) -> ValidationResult:
        cfg = self.config
        response = response or ""
        score = 100
        forced_invalid = False
        issues: List[str] = []

        # 1️⃣ LENGTH
        if len(response) < cfg.min_length:
            score -= cfg.length_penalty
            issues.append(f"response too short ({len(response)} < {cfg.min_length} chars)")

        # 2️⃣ LANGUAGE: forces invalid
        ratio = hebrew_ratio(response)
        if ratio < cfg.min_hebrew_ratio:
            score -= cfg.language_penalty
            forced_invalid = True
            issues.append(f"hebrew ratio {ratio:.2f} below {cfg.min_hebrew_ratio}")

        # 3️⃣ RELEVANCE
        terms = self.key_terms(inquiry)
        if terms:
            present = [t for t in terms if t in response]
            if len(present) / len(terms) < cfg.min_relevance_ratio:
                score -= cfg.relevance_penalty
                missing = [t for t in terms if t not in present]
                issues.append(f"low relevance, missing terms: {', '.join(missing)}")

        # 4️⃣ HALLUCINATION: forces invalid
        unknown = [n for n in extract_line_mentions(response) if not self.registry.is_valid_line(n)]
        if unknown:
            score -= cfg.hallucination_penalty * len(unknown)
            forced_invalid = True
            issues.append(
                f"unknown line numbers: {', '.join(str(n) for n in unknown)}"
            )

        # 5️⃣ STRUCTURE
        structure_issues = self._structure_issues(response)
        if structure_issues:
            score -= cfg.structure_penalty
            issues.append(f"structure: {', '.join(structure_issues)}")

        score = max(0, min(100, score))
        is_valid = score >= cfg.pass_score and not forced_invalid

        if not is_valid:
            logger.warning(f"[VALIDATOR] Rejected (score={score}): {issues}")
        return ValidationResult(is_valid=is_valid, score=score, issues=issues)

    def key_terms(self, inquiry: str) -> List[str]:
        """Line numbers, known locations and domain keywords found in the inquiry."""
        if not inquiry:
            return []
        terms: List[str] = [str(n) for n in extract_line_numbers(inquiry)]
        for loc in self.extractor.extract_locations(inquiry):
            if loc not in terms:
                terms.append(loc)
        for kw in self.domain_keywords:
            if kw in inquiry and kw not in terms:
                terms.append(kw)
        return terms

    # ===============================================================
    # PRIVATE HELPERS
    # ===============================================================

    @staticmethod
    def _structure_issues(response: str) -> List[str]:
        issues = []
        if not response.lstrip().startswith(GREETING):
            issues.append("missing greeting")
        sentences = [
            s for s in _SENTENCE_SPLIT_RE.split(response)
            if len(s.strip()) > MIN_SENTENCE_LENGTH
        ]
        if len(sentences) < MIN_SENTENCES:
            issues.append(f"fewer than {MIN_SENTENCES} sentences")
        if SIGNATURE not in response:
            issues.append("missing signature")
        return issues
