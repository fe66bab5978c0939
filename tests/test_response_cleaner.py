"""
test_response_cleaner.py - Tests for historical response cleaning and row ingestion
"""
from inquiry_engine.services.response_cleaner import (
    clean_historical_response,
    contains_official_keywords,
    records_from_rows,
)


class TestOfficialKeywords:

    def test_detects_official_phrase(self):
        assert contains_official_keywords("שלום רב, פנייתך התקבלה")

    def test_plain_text_rejected(self):
        assert not contains_official_keywords("טקסט רגיל")
        assert not contains_official_keywords("")

    def test_whitespace_normalized(self):
        assert contains_official_keywords("שלום   רב")


class TestCleanHistoricalResponse:

    def test_strips_approval_note_and_truncation(self):
        raw = 'מענה מאושר ע"י דני: שלום רב, פנייתך בנושא התחבורה התקבלה ונבדקה בקפידה...'
        assert clean_historical_response(raw) == "שלום רב, פנייתך בנושא התחבורה התקבלה ונבדקה בקפידה"

    def test_strips_drafting_notes(self):
        raw = "מוצעת התשובה הבאה: שלום רב, הבקשה להוספת תחנה נבחנה והוחלט לאשר אותה."
        cleaned = clean_historical_response(raw)
        assert cleaned.startswith("שלום רב")
        assert "מוצעת" not in cleaned

    def test_too_short_returns_empty(self):
        assert clean_historical_response("שלום רב") == ""

    def test_no_hebrew_returns_empty(self):
        assert clean_historical_response("this reply has no hebrew letters at all") == ""

    def test_none(self):
        assert clean_historical_response(None) == ""


class TestRecordsFromRows:

    def test_keeps_official_rows_only(self):
        rows = [
            ["מזהה פניה", "הפניה", "תמצית", "תיאור", "נוצר ב:"],
            ["CAS-1", "קו 408 שינוי מסלול", "", "שלום רב, פנייתך בנושא שינוי מסלול קו 408 התקבלה ונבדקת. בברכה", "2024-01-01"],
            ["CAS-2", "בקשה", "", "טקסט פנימי בלבד", ""],
            ["", "", "תמצית הפנייה על תחנה", "שלום רב, בקשתך התקבלה ותיבחן בהקדם. בברכה", ""],
            ["CAS-4", "", "", "שלום רב, פנייתך התקבלה. בברכה", ""],
            ["CAS-5"],
            [],
        ]
        records = records_from_rows(rows)
        assert [r.id for r in records] == ["CAS-1", "CASE_3"]
        assert [r.row_number for r in records] == [1, 3]
        assert records[0].created_date == "2024-01-01"
        assert 408 in records[0].line_numbers
        assert records[1].inquiry_text == "תמצית הפנייה על תחנה"

    def test_empty_sheet(self):
        assert records_from_rows([]) == []
