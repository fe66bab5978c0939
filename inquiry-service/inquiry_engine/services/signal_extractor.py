"""
signal_extractor.py — Inquiry text → QuerySignals

Parses a free-text citizen inquiry into structured signals:
    line_numbers  — candidate transit lines (over-collected, see line_matcher.py)
    locations     — places from a fixed gazetteer (exact substring, no fuzzy)
    problem_type  — coarse category from ordered keyword rules
    keywords      — residual content words (≤ 5)

Output feeds ScoreFusionRanker (structured-first mode) and
ConversationContext (topic frequency).
"""

import re
from typing import Iterable, List, Optional, Sequence, Tuple

from inquiry_engine.core.models import QuerySignals
from inquiry_engine.services.line_matcher import extract_line_numbers


# ===================================================================
# GAZETTEER
# ===================================================================

DEFAULT_LOCATIONS: Tuple[str, ...] = (
    "ירושלים", "בית שמש", "רמת אברהם", "רמת בית שמש", "מבשרת ציון",
    "גבעת שאול", "רמות", "פסגת זאב", "נווה יעקב", "גילה", "תלפיות",
    "ארמון הנציב", "קטמון", "בית הכרם", "קריית יובל", "הר חומה",
    "עין כרם", "מלחה", "רחביה", "בקעה", "מאה שערים", "רמת שלמה",
    "הר נוף", "גבעת זאב", "מעלה אדומים", "בית שמש ג'", "רמה ג'",
    "התחנה המרכזית", "תחנה מרכזית", "הדסה", "הר הצופים", "גבעת רם",
    "שער שכם", "העיר העתיקה", "מודיעין", "ביתר עילית", "תל אביב",
)


# ===================================================================
# PROBLEM-TYPE RULES (ordered, first match wins)
# ===================================================================

DEFAULT_PROBLEM_RULES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("שינוי מסלול", "מסלול", "הסטה", "הסטת"), "route_change"),
    (("תדירות", "תדירויות", "הגברת תדירות"), "frequency"),
    (("קו חדש", "הוספת קו", "קו ישיר"), "new_line"),
    (("לא הגיע", "לא מגיע", "לא עצר", "לא עוצר", "דילג", "פספס"), "no_show"),
    (("לוח זמנים", "לוחות זמנים", "איחור", "איחורים", "מאחר", "שעות"), "schedule"),
    (("תחנה", "תחנות", "תחנת"), "stop"),
    (("נהג", "נהגת", "נהגים", "התנהגות"), "driver_behavior"),
    (("צפיפות", "עומס", "עמוס", "דחוס"), "crowding"),
    (("נגישות", "כיסא גלגלים", "עגלת", "רמפה"), "accessibility"),
    (("כרטיס", "רב קו", "תשלום", "תעריף"), "fare"),
)

# Second pass: a leading phrase in the first PREFIX_WINDOW characters
DEFAULT_PREFIX_RULES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("תלונה", "תלונה על"), "complaint"),
    (("בקשה", "מבקש", "מבקשת", "אבקש"), "request"),
    (("שאלה", "בירור", "רציתי לברר"), "inquiry"),
)

PREFIX_WINDOW = 50

MAX_KEYWORDS = 5
MIN_KEYWORD_LENGTH = 3

STOP_WORDS = frozenset({
    "של", "את", "על", "עם", "זה", "זו", "זאת", "לא", "כי", "אני", "גם",
    "או", "אם", "יש", "אין", "הוא", "היא", "הם", "מה", "כל", "עד", "רק",
    "אבל", "כמו", "היה", "היתה", "יותר", "מאוד", "אנחנו", "שלי", "שלנו",
    "אשר", "בין", "אחרי", "לפני", "כאשר", "איך", "למה", "מתי", "איפה",
    "the", "and", "for", "with", "this", "that", "from", "line",
})

_TOKEN_STRIP_RE = re.compile(r"^[^\w֐-׿]+|[^\w֐-׿']+$")


class EntitySignalExtractor:
    """
    Rule-based extractor. Tables are injectable for tests and for
    deployments covering other regions.
    """

    def __init__(
        self,
        locations: Optional[Iterable[str]] = None,
        problem_rules: Optional[Sequence[Tuple[Tuple[str, ...], str]]] = None,
        prefix_rules: Optional[Sequence[Tuple[Tuple[str, ...], str]]] = None,
        stop_words: Optional[Iterable[str]] = None,
    ):
        # Longest names first so "רמת בית שמש" is seen before "בית שמש"
        self.locations: List[str] = sorted(
            set(locations if locations is not None else DEFAULT_LOCATIONS),
            key=len,
            reverse=True,
        )
        self.problem_rules = tuple(problem_rules if problem_rules is not None else DEFAULT_PROBLEM_RULES)
        self.prefix_rules = tuple(prefix_rules if prefix_rules is not None else DEFAULT_PREFIX_RULES)
        self.stop_words = frozenset(stop_words) if stop_words is not None else STOP_WORDS

    # ==================================================================
    # PUBLIC API
    # ==================================================================

    def extract(self, text: str) -> QuerySignals:
        if not text or not text.strip():
            return QuerySignals()

        line_numbers = extract_line_numbers(text)
        locations = self.extract_locations(text)
        problem_type = self.classify_problem(text)
        keywords = self._residual_keywords(text, line_numbers, locations)

        return QuerySignals(
            line_numbers=line_numbers,
            locations=locations,
            problem_type=problem_type,
            keywords=keywords,
        )

    def extract_locations(self, text: str) -> List[str]:
        """Gazetteer places contained in text, ordered by first appearance."""
        if not text:
            return []
        hits = []
        claimed: List[Tuple[int, int]] = []
        for place in self.locations:
            first = None
            pos = text.find(place)
            while pos >= 0:
                end = pos + len(place)
                # An occurrence inside a longer name already found does not count
                if not any(start <= pos and end <= stop for start, stop in claimed):
                    claimed.append((pos, end))
                    if first is None:
                        first = pos
                pos = text.find(place, pos + 1)
            if first is not None:
                hits.append((first, place))
        hits.sort(key=lambda h: h[0])
        return [place for _, place in hits]

    def classify_problem(self, text: str) -> Optional[str]:
        """
        First matching keyword rule wins. If none matched, check whether
        the inquiry OPENS with a category phrase. Unmatched → None.
        """
        if not text:
            return None
        lowered = text.lower()
        for keywords, label in self.problem_rules:
            if any(k in lowered for k in keywords):
                return label

        head = lowered[:PREFIX_WINDOW].lstrip()
        for prefixes, label in self.prefix_rules:
            if any(head.startswith(p) for p in prefixes):
                return label
        return None

    # ==================================================================
    # PRIVATE HELPERS
    # ==================================================================

    def _residual_keywords(
        self, text: str, line_numbers: List[int], locations: List[str]
    ) -> List[str]:
        line_tokens = {str(n) for n in line_numbers}
        location_words = {w for place in locations for w in place.split()}

        keywords: List[str] = []
        for raw in text.lower().split():
            token = _TOKEN_STRIP_RE.sub("", raw)
            if len(token) < MIN_KEYWORD_LENGTH:
                continue
            if token in self.stop_words:
                continue
            if token in line_tokens or token in location_words:
                continue
            if token.isdigit():
                continue
            if token in keywords:
                continue
            keywords.append(token)
            if len(keywords) == MAX_KEYWORDS:
                break
        return keywords
