"""
test_fusion_ranker.py - Tests for strategy policy and score fusion

Covers choose_strategies(), structured-first scoring, similarity mode with
line boost, degraded mode when the embedding provider is down, and
deterministic ordering.
"""
import pytest

from inquiry_engine.core.config import RankingConfig
from inquiry_engine.core.models import HistoricalRecord, MatchCandidate, Strategy
from inquiry_engine.retrieval.embedding_scorer import EmbeddingSimilarityScorer
from inquiry_engine.retrieval.fusion_ranker import CorpusState, ScoreFusionRanker, choose_strategies

from conftest import DownEmbedder, FakeEmbedder


class TestChooseStrategies:

    def test_embedding_when_provider_and_vectors(self):
        state = CorpusState(record_count=3, provider_available=True, embeddings_ready=True)
        assert choose_strategies(state) == [Strategy.STRUCTURED, Strategy.EMBEDDING]

    def test_lexical_without_provider(self):
        state = CorpusState(record_count=3, provider_available=False, embeddings_ready=False)
        assert choose_strategies(state) == [Strategy.STRUCTURED, Strategy.LEXICAL]

    def test_lexical_when_corpus_not_embedded(self):
        state = CorpusState(record_count=3, provider_available=True, embeddings_ready=False)
        assert choose_strategies(state) == [Strategy.STRUCTURED, Strategy.LEXICAL]

    def test_empty_corpus(self):
        state = CorpusState(record_count=0, provider_available=True, embeddings_ready=False)
        assert choose_strategies(state) == []


class TestStructuredScoring:

    def setup_method(self):
        self.ranker = ScoreFusionRanker()

    def test_line_408_end_to_end(self, fixture_records):
        candidates = self.ranker.rank("קו 408 שינוי מסלול", fixture_records, max_results=5)
        assert candidates
        top = candidates[0]
        assert top.record_id == "CAS-LINE-408-1"
        assert top.score >= 0.4
        assert any("408" in reason for reason in top.reasons)

    def test_structured_components(self, fixture_records):
        signals = self.ranker.extractor.extract("קו 408 שינוי מסלול")
        structured = self.ranker.score_structured(signals, fixture_records)
        assert [c.record_id for c in structured] == ["CAS-LINE-408-1"]
        # 0.4 line + 0.2 route_change + 0.1 keywords
        assert structured[0].score == pytest.approx(0.7)
        assert "line 408 matched" in structured[0].reasons
        assert "problem type route_change matched" in structured[0].reasons

    def test_no_credit_for_embedded_digits(self):
        records = [HistoricalRecord(id="r630", inquiry_text="קו 630 מגיע באיחור", response_text="")]
        signals = self.ranker.extractor.extract("קו 30")
        assert self.ranker.score_structured(signals, records) == []

    def test_floor_excludes_weak_matches(self):
        records = [HistoricalRecord(id="r1", inquiry_text="נושא אחר לגמרי", response_text="")]
        signals = self.ranker.extractor.extract("קו 408 שינוי מסלול")
        assert self.ranker.score_structured(signals, records) == []


class TestSimilarityMode:

    def test_lexical_used_without_provider(self, fixture_records):
        report = ScoreFusionRanker().rank_with_report("קו 408 שינוי מסלול", fixture_records)
        assert report.similarity_strategy == Strategy.LEXICAL
        assert report.similarity_threshold == pytest.approx(0.2)
        assert not report.degraded

    def test_lexical_line_boost(self, fixture_records):
        ranker = ScoreFusionRanker()
        signals = ranker.extractor.extract("קו 408 שינוי מסלול")
        lexical = ranker.score_similarity("קו 408 שינוי מסלול", signals, fixture_records, Strategy.LEXICAL)
        assert lexical[0].record_id == "CAS-LINE-408-1"
        # Jaccard 4/6 against the record inquiry, plus 0.3 × 1/1 shared lines
        assert lexical[0].score == pytest.approx(4 / 6 + 0.3)
        assert any(r.startswith("line boost") for r in lexical[0].reasons)

    def test_embedding_used_when_ready(self):
        records = [
            HistoricalRecord(id="a", inquiry_text="בקשה כללית", response_text="", embedding=[1.0, 0.0]),
            HistoricalRecord(id="b", inquiry_text="נושא שונה", response_text="", embedding=[0.0, 1.0]),
        ]
        ranker = ScoreFusionRanker(embedding_scorer=EmbeddingSimilarityScorer(FakeEmbedder(vector=[1.0, 0.0])))
        report = ranker.rank_with_report("משהו", records)
        assert report.similarity_strategy == Strategy.EMBEDDING
        assert [c.record_id for c in report.candidates] == ["a"]
        assert ranker.is_strong_match(report.candidates[0])

    def test_structured_enough_skips_similarity(self):
        records = [
            HistoricalRecord(id=f"r{i}", inquiry_text=f"קו 408 שינוי מסלול {i}", response_text="")
            for i in range(3)
        ]
        report = ScoreFusionRanker().rank_with_report("קו 408 שינוי מסלול", records)
        assert report.similarity_strategy is None
        assert report.structured_count == 3


class TestStrongMatchCutoff:

    def _candidate(self, score):
        record = HistoricalRecord(id="r1", inquiry_text="בקשה כללית", response_text="")
        return MatchCandidate(record=record, score=score, strategy=Strategy.EMBEDDING, reasons=[])

    def test_cutoff_is_exclusive(self):
        ranker = ScoreFusionRanker()
        assert not ranker.is_strong_match(self._candidate(0.85))
        assert ranker.is_strong_match(self._candidate(0.851))

    def test_embedding_band_is_related_only(self):
        records = [
            HistoricalRecord(id="near", inquiry_text="בקשה כללית", response_text="", embedding=[4.0, 3.0]),
            HistoricalRecord(id="far", inquiry_text="נושא שונה", response_text="", embedding=[0.0, 1.0]),
        ]
        ranker = ScoreFusionRanker(embedding_scorer=EmbeddingSimilarityScorer(FakeEmbedder(vector=[1.0, 0.0])))
        candidates = ranker.rank("משהו", records)
        # cosine 0.8: above the 0.78 acceptance threshold, below the strong cutoff
        assert [c.record_id for c in candidates] == ["near"]
        assert candidates[0].score == pytest.approx(0.8)
        assert not ranker.is_strong_match(candidates[0])

    def test_forget_records_clears_memo(self, fixture_records):
        ranker = ScoreFusionRanker()
        ranker.rank("קו 408 שינוי מסלול", fixture_records)
        assert ranker._record_problem_types
        ranker.forget_records()
        assert ranker._record_problem_types == {}


class TestDegradedMode:

    def test_provider_down_falls_back_to_lexical(self, fixture_records):
        records = [
            HistoricalRecord(
                id=r.id, inquiry_text=r.inquiry_text, response_text=r.response_text, embedding=[0.5, 0.5]
            )
            for r in fixture_records
        ]
        ranker = ScoreFusionRanker(embedding_scorer=EmbeddingSimilarityScorer(DownEmbedder()))
        report = ranker.rank_with_report("קו 408 שינוי מסלול", records)
        assert report.degraded
        assert report.similarity_strategy == Strategy.LEXICAL
        assert report.candidates
        assert report.candidates[0].record_id == "CAS-LINE-408-1"

    def test_other_inquiry_still_ranked_when_provider_down(self, fixture_records):
        records = [
            HistoricalRecord(
                id=r.id, inquiry_text=r.inquiry_text, response_text=r.response_text, embedding=[0.5, 0.5]
            )
            for r in fixture_records
        ]
        ranker = ScoreFusionRanker(embedding_scorer=EmbeddingSimilarityScorer(DownEmbedder()))
        candidates = ranker.rank("הוספת תדירות בנסיעת קו 426", records)
        assert candidates


class TestOrdering:

    def test_ties_broken_by_id(self):
        records = [
            HistoricalRecord(id="b", inquiry_text="קו 408", response_text=""),
            HistoricalRecord(id="a", inquiry_text="קו 408", response_text=""),
        ]
        ranker = ScoreFusionRanker(config=RankingConfig(min_structured_candidates=0))
        assert [c.record_id for c in ranker.rank("קו 408", records)] == ["a", "b"]

    def test_max_results_truncates(self):
        records = [
            HistoricalRecord(id=f"r{i}", inquiry_text="קו 408", response_text="") for i in range(10)
        ]
        assert len(ScoreFusionRanker().rank("קו 408", records, max_results=3)) == 3

    def test_empty_corpus_returns_empty(self):
        assert ScoreFusionRanker().rank("קו 408", []) == []
