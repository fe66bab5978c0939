"""
test_signal_extractor.py - Tests for inquiry → QuerySignals extraction

Covers line numbers, gazetteer locations, problem-type rules and
residual keywords.
"""
from inquiry_engine.services.signal_extractor import EntitySignalExtractor, MAX_KEYWORDS


class TestExtract:

    def setup_method(self):
        self.extractor = EntitySignalExtractor()

    def test_line_location_problem_and_keywords(self):
        signals = self.extractor.extract("קו 408 שינוי מסלול בבית שמש")
        assert signals.line_numbers == [408]
        assert signals.locations == ["בית שמש"]
        assert signals.problem_type == "route_change"
        assert "שינוי" in signals.keywords
        assert "408" not in signals.keywords
        assert "שמש" not in signals.keywords

    def test_empty_text(self):
        signals = self.extractor.extract("   ")
        assert signals.is_empty

    def test_keywords_capped(self):
        text = "אוטובוס מלוכלך מאוחר צפוף רועש חם מדי בבוקר ובערב תמיד"
        signals = self.extractor.extract(text)
        assert len(signals.keywords) <= MAX_KEYWORDS

    def test_short_tokens_and_stop_words_dropped(self):
        signals = self.extractor.extract("של את על אב גדולה")
        assert signals.keywords == ["גדולה"]


class TestLocations:

    def setup_method(self):
        self.extractor = EntitySignalExtractor()

    def test_longest_name_wins(self):
        assert self.extractor.extract_locations("נסיעה לרמת בית שמש") == ["רמת בית שמש"]

    def test_short_name_kept_when_also_standalone(self):
        text = "מרמת בית שמש לבית שמש"
        assert self.extractor.extract_locations(text) == ["רמת בית שמש", "בית שמש"]

    def test_short_name_inside_longer_only_is_dropped(self):
        assert self.extractor.extract_locations("קו 417 ברמת בית שמש") == ["רמת בית שמש"]

    def test_ordered_by_position(self):
        text = "מגילה לתלפיות דרך ירושלים"
        assert self.extractor.extract_locations(text) == ["גילה", "תלפיות", "ירושלים"]

    def test_injected_gazetteer(self):
        extractor = EntitySignalExtractor(locations=["חיפה"])
        assert extractor.extract_locations("קו 1 בחיפה ובירושלים") == ["חיפה"]


class TestClassifyProblem:

    def setup_method(self):
        self.extractor = EntitySignalExtractor()

    def test_first_rule_wins(self):
        # "מסלול" (route_change) is listed before "תחנה" (stop)
        assert self.extractor.classify_problem("שינוי מסלול ליד התחנה") == "route_change"

    def test_no_show(self):
        assert self.extractor.classify_problem("הנהג לא עצר בתחנה") == "no_show"

    def test_prefix_pass(self):
        assert self.extractor.classify_problem("בקשה לשיפור השירות באזור") == "request"

    def test_unmatched_is_none(self):
        assert self.extractor.classify_problem("תודה רבה") is None
