"""
test_response_validator.py - Tests for reply validation and the line registry
"""
import json

import pytest

from inquiry_engine.core.errors import CorpusUnavailable
from inquiry_engine.core.models import HistoricalRecord
from inquiry_engine.services.response_validator import (
    LineRegistry,
    ResponseValidator,
    extract_line_mentions,
)

from conftest import GOOD_RESPONSE

INQUIRY = "קו 408 שינוי מסלול"


class TestLineMentions:

    def test_hebrew_and_english(self):
        assert extract_line_mentions("קו 30 ו-line 12") == [30, 12]

    def test_enumeration(self):
        assert extract_line_mentions("קווים 30, 40 ו-52 עמוסים") == [30, 40, 52]

    def test_bare_numbers_are_not_mentions(self):
        assert extract_line_mentions("התקשרו למוקד 106") == []

    def test_english_enumeration(self):
        assert extract_line_mentions("lines 30, 777 and 52 are late") == [30, 777, 52]
        assert extract_line_mentions("Line 12 and line 14") == [12, 14]


class TestResponseValidator:

    def setup_method(self):
        self.validator = ResponseValidator(LineRegistry([408, 426]))

    def test_good_response_passes(self):
        result = self.validator.validate(GOOD_RESPONSE, INQUIRY)
        assert result.is_valid
        assert result.score == 100
        assert result.issues == []

    def test_deterministic(self):
        first = self.validator.validate(GOOD_RESPONSE, INQUIRY)
        second = self.validator.validate(GOOD_RESPONSE, INQUIRY)
        assert first == second

    def test_unregistered_line_is_invalid(self):
        response = GOOD_RESPONSE.replace("קו 408", "קו 999")
        result = self.validator.validate(response, INQUIRY)
        assert not result.is_valid
        assert result.score == 85
        assert any("999" in issue for issue in result.issues)

    def test_each_hallucinated_line_deducts(self):
        response = GOOD_RESPONSE.replace("קו 408", "קווים 408, 777 ו-888")
        result = self.validator.validate(response, INQUIRY)
        assert not result.is_valid
        assert result.score == 70

    def test_english_enumeration_is_checked(self):
        response = GOOD_RESPONSE.replace("קו 408", "קו 408 (lines 408, 777)")
        result = self.validator.validate(response, INQUIRY)
        assert not result.is_valid
        assert "unknown line numbers: 777" in result.issues

    def test_non_hebrew_forces_invalid_even_with_passing_score(self):
        response = "שלום " + "a" * 150 + " בברכה"
        result = self.validator.validate(response, "")
        # −30 language, −10 structure (one sentence only)
        assert result.score == 60
        assert not result.is_valid

    def test_short_english_reply(self):
        result = self.validator.validate("hello", INQUIRY)
        assert not result.is_valid
        # −20 length, −30 language, −25 relevance, −10 structure
        assert result.score == 15

    def test_missing_structure_deducts_once(self):
        response = GOOD_RESPONSE.replace("שלום רב,\n", "").replace("בברכה,\n", "")
        result = self.validator.validate(response, INQUIRY)
        assert result.score == 90
        assert result.is_valid

    def test_low_relevance(self):
        result = self.validator.validate(GOOD_RESPONSE, "תחנה בגילה ובתלפיות לא נגישה")
        assert result.score == 75
        assert any("relevance" in issue for issue in result.issues)

    def test_key_terms(self):
        terms = self.validator.key_terms("קו 408 שינוי מסלול בבית שמש")
        assert terms == ["408", "בית שמש", "קו", "מסלול"]


class TestLineRegistry:

    def test_from_records_uses_official_mentions_only(self):
        records = [
            HistoricalRecord(id="1", inquiry_text="קו 408 שינוי מסלול", response_text="שלום רב"),
            HistoricalRecord(id="2", inquiry_text="קווים 30, 40", response_text="בברכה"),
            HistoricalRecord(id="3", inquiry_text="קו 999", response_text="", is_official=False),
            HistoricalRecord(id="4", inquiry_text="רחוב 12", response_text=""),
        ]
        registry = LineRegistry.from_records(records)
        assert registry.is_valid_line(408)
        assert registry.is_valid_line(30) and registry.is_valid_line(40)
        assert not registry.is_valid_line(999)
        assert not registry.is_valid_line(12)

    def test_from_json_list(self, tmp_path):
        path = tmp_path / "lines.json"
        path.write_text(json.dumps([1, 408]), encoding="utf-8")
        registry = LineRegistry.from_json_file(str(path))
        assert 408 in registry
        assert len(registry) == 2

    def test_from_json_dict(self, tmp_path):
        path = tmp_path / "lines.json"
        path.write_text(json.dumps({"lines": ["426"]}), encoding="utf-8")
        assert LineRegistry.from_json_file(str(path)).is_valid_line(426)

    def test_missing_file(self, tmp_path):
        with pytest.raises(CorpusUnavailable):
            LineRegistry.from_json_file(str(tmp_path / "missing.json"))
