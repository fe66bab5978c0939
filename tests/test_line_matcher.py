"""
test_line_matcher.py - Tests for boundary-safe line number detection

Covers extract_line_numbers() and LineNumberMatcher.matches().
"""
import pytest

from inquiry_engine.services.line_matcher import LineNumberMatcher, extract_line_numbers


BOUNDARY_CASES = [
    ("קו 30 לא מגיע", "30", True),
    ("קו 630 מגיע", "30", False),
    ("הוספת תחנה בנסיעת קו 408", "408", True),
    ("קווים 30, 40", "30", True),
    ("בקו 1305", "30", False),
    ("30", "30", True),
    ("630", "30", False),
    ("קו 408 של חברת", "408", True),
    ("4408", "408", False),
]


class TestLineNumberMatcher:

    def setup_method(self):
        self.matcher = LineNumberMatcher()

    @pytest.mark.parametrize("text,line,expected", BOUNDARY_CASES)
    def test_boundary_table(self, text, line, expected):
        assert self.matcher.matches(text, line) is expected

    def test_accepts_int_line(self):
        assert self.matcher.matches("קו 30 לא מגיע", 30)

    def test_hebrew_letter_is_a_boundary(self):
        """'קו30' with no space still contains line 30."""
        assert self.matcher.matches("קו30 איחר", "30")

    def test_enumeration_later_entry(self):
        assert self.matcher.matches("קווים 30, 40 ו-52", "52")

    def test_empty_inputs(self):
        assert not self.matcher.matches("", "30")
        assert not self.matcher.matches("קו 30", "")

    def test_shared_lines_keeps_query_order(self):
        text = "קווים 40 ו-30 עמוסים"
        assert self.matcher.shared_lines([30, 99, 40], text) == [30, 40]

    def test_shared_lines_rejects_embedded_digits(self):
        assert self.matcher.shared_lines([30], "קו 630 מגיע") == []


class TestExtractLineNumbers:

    def test_hebrew_line(self):
        assert extract_line_numbers("קו 408 שינוי מסלול") == [408]

    def test_pattern_order_then_dedup(self):
        # Hebrew pattern runs first, then English, then bare numbers
        assert extract_line_numbers("line 12 and קו 30") == [30, 12]

    def test_english_case_insensitive(self):
        assert extract_line_numbers("LINE 5 is late") == [5]

    def test_out_of_range_dropped(self):
        assert extract_line_numbers("בקו 1305") == []
        assert extract_line_numbers("קו 0") == []

    def test_bare_numbers_over_collected(self):
        assert extract_line_numbers("התחנה ברחוב 12 ליד 480") == [12, 480]

    def test_empty(self):
        assert extract_line_numbers("") == []
        assert extract_line_numbers(None) == []
