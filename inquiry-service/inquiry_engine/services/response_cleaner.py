"""
response_cleaner.py — Prepare historical responses for reuse.

Historical answers in the source spreadsheet were written by staff and
often carry internal chatter: greetings addressed to colleagues, approval
notes ("מענה מאושר ע"י ..."), drafting remarks and truncation dots.
Before a record enters the corpus, or before a historical response is
returned as a fallback answer, it is cleaned here.

Also hosts the spreadsheet row adapter (records_from_rows), which keeps
only rows whose response reads like an official reply.
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence

from inquiry_engine.core.models import HistoricalRecord

logger = logging.getLogger(__name__)

# ===================================================================
# OFFICIAL RESPONSE DETECTION
# ===================================================================

OFFICIAL_KEYWORDS = (
    "שלום רב", "בברכה", "פנייתך", "בקשתך", "אנו", "אנא", "נא",
    "אנו מתנצלים", "לצערנו", "בהתאם ל", "נבחן", "נבחנה", "הוחלט", "אושר", "משרדנו",
)

_QUOTES_RE = re.compile(r"['‘’\"“”״]")
_WHITESPACE_RE = re.compile(r"\s+")


def _normalize_quotes(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", _QUOTES_RE.sub('"', text))


def contains_official_keywords(text: str, keywords: Sequence[str] = OFFICIAL_KEYWORDS) -> bool:
    """True when text contains at least one official-reply phrase."""
    if not text:
        return False
    normalized = _normalize_quotes(text)
    return any(_normalize_quotes(k) in normalized for k in keywords)


# ===================================================================
# CLEANING RULES (applied in order)
# ===================================================================

# Staff names and internal greetings
_STAFF_PATTERNS = [
    r"היי ראובן", r"ראובן", r"אריאלה", r"אורי שלום", r"הי קרן", r"הי איל",
    r"אורי", r"קרן", r"איל",
]

# Drafting notes and system boilerplate
_INTERNAL_NOTE_PATTERNS = [
    r"Based on existing system data[^.]*\.",
    r"בהתבסס על מידע קיים במערכת[:.]\s*",
    r"במערכת[^.]*\.",
    r"מענה מאושר ע[\"']י [א-ת]+[:.]?\s*",
    r"האם ניתן להשתמש במענה הזה\?",
    r"להבנתי צריך להעביר את הפניה הזו ל",
    r"כתבתי לאחרונה תשובות על",
    r"אנא אתרו ובמידת[^.]*\.",
    r"מוצעת התשובה הבאה:",
    r"\.{3,}",
]

# Second pass: leftovers at the start of the text and approval phrases
_LEADING_PATTERNS = [
    r"^בדומה לפניה אחרת,?\s*",
    r"^להבנתי\s*",
    r"^[הו][יא]ם?\s+[א-ת]+,?\s*",
    r"^\s*[:.-]+\s*",
    r"מאושר\s+ע[\"']י\s+[א-ת]+\s*",
    r"תחזירו אלי להתאמות\s*",
    r"^אנא\s+",
    r"בעיה זו\s+",
]

_FIRST_PASS = [re.compile(p, re.IGNORECASE) for p in _STAFF_PATTERNS + _INTERNAL_NOTE_PATTERNS]
_SECOND_PASS = [re.compile(p, re.IGNORECASE) for p in _LEADING_PATTERNS]

_HEBREW_LETTER_RE = re.compile(r"[א-ת]")

MIN_CLEANED_LENGTH = 20


def clean_historical_response(response: Optional[str]) -> str:
    """
    Strip internal references from a staff-written response.

    Returns "" when what remains is shorter than 20 characters or has no
    Hebrew letters. Does not add a greeting or signature.
    """
    if not response:
        return ""

    cleaned = response
    for pattern in _FIRST_PASS:
        cleaned = pattern.sub("", cleaned)
    cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()

    for pattern in _SECOND_PASS:
        cleaned = pattern.sub("", cleaned)
    cleaned = cleaned.strip()

    if len(cleaned) < MIN_CLEANED_LENGTH or not _HEBREW_LETTER_RE.search(cleaned):
        return ""
    return cleaned


# ===================================================================
# SPREADSHEET ROW ADAPTER
# ===================================================================

ID_COLUMN = "מזהה פניה"
INQUIRY_COLUMNS = ("הפניה", "תמצית", "נושא")
RESPONSE_COLUMN = "תיאור"
CREATED_COLUMN = "נוצר ב:"


def records_from_rows(rows: Iterable[Sequence[str]]) -> List[HistoricalRecord]:
    """
    Adapt spreadsheet rows (first row = headers) into HistoricalRecords.

    A row is kept only when it has both an inquiry and a response and the
    response contains an official-reply phrase. row_number is the row's
    index in the sheet (header = 0).
    """
    rows = list(rows)
    if not rows:
        return []

    headers = [str(h).strip() for h in rows[0]]
    records: List[HistoricalRecord] = []
    skipped = 0

    for i, row in enumerate(rows[1:], start=1):
        if not row:
            continue
        entry: Dict[str, str] = {
            header: (str(row[idx]) if idx < len(row) and row[idx] is not None else "")
            for idx, header in enumerate(headers)
        }

        inquiry_text = next((entry[c] for c in INQUIRY_COLUMNS if entry.get(c)), "").strip()
        response_text = entry.get(RESPONSE_COLUMN, "").strip()

        if not inquiry_text or not response_text or not contains_official_keywords(response_text):
            skipped += 1
            continue

        records.append(
            HistoricalRecord(
                id=entry.get(ID_COLUMN) or f"CASE_{i}",
                inquiry_text=inquiry_text,
                response_text=clean_historical_response(response_text),
                created_date=entry.get(CREATED_COLUMN, ""),
                is_official=True,
                row_number=i,
            )
        )

    logger.info(f"[INGEST] Kept {len(records)} rows, skipped {skipped}")
    return records
