"""
fusion_ranker.py — Score fusion across structured, embedding and lexical signals.

Pipeline:
    Inquiry
      ↓
    EntitySignalExtractor → QuerySignals
      ↓
    Structured-first scoring (weighted signal overlap, floor 0.15)
      ↓   fewer than 3 candidates?
    choose_strategies(corpus_state) → EMBEDDING or LEXICAL
      ↓
    Similarity scoring + additive shared-line boost
      ↓   ProviderUnavailable → re-run with LEXICAL (never raised to caller)
    Merge by record id (higher score wins) → sort → top-N

Structured score:
    0.4 × (query lines present, boundary-safe) / |query lines|
  + 0.3 × (query locations present)          / |query locations|
  + 0.2 × (problem type matches)
  + 0.1 × (residual keywords present)         / |keywords|

Boosted similarity:
    min(1.0, base + w × |shared lines| / |query lines|)
    w = 0.1 for embedding similarity, 0.3 for lexical similarity
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from inquiry_engine.core.config import RankingConfig
from inquiry_engine.core.errors import ProviderUnavailable
from inquiry_engine.core.models import HistoricalRecord, MatchCandidate, QuerySignals, Strategy
from inquiry_engine.retrieval.embedding_scorer import EmbeddingSimilarityScorer
from inquiry_engine.retrieval.lexical_scorer import LexicalSimilarityScorer
from inquiry_engine.services.line_matcher import LineNumberMatcher
from inquiry_engine.services.signal_extractor import EntitySignalExtractor

logger = logging.getLogger(__name__)


# ======================================================================
# STRATEGY POLICY
# ======================================================================

@dataclass(frozen=True)
class CorpusState:
    """What the ranker knows about the corpus and providers for one request."""
    record_count: int
    provider_available: bool
    embeddings_ready: bool


def choose_strategies(state: CorpusState) -> List[Strategy]:
    """
    Ordered strategies for a request.

    Structured always runs first. The similarity strategy is EMBEDDING only
    when the provider is configured and the corpus carries vectors.
    """
    if state.record_count == 0:
        return []
    if state.provider_available and state.embeddings_ready:
        return [Strategy.STRUCTURED, Strategy.EMBEDDING]
    return [Strategy.STRUCTURED, Strategy.LEXICAL]


@dataclass
class RankingReport:
    """Ranked candidates plus the bookkeeping the service reports in debug."""
    candidates: List[MatchCandidate]
    signals: QuerySignals
    strategies: List[Strategy] = field(default_factory=list)
    similarity_strategy: Optional[Strategy] = None
    similarity_threshold: Optional[float] = None
    degraded: bool = False
    structured_count: int = 0


# ======================================================================
# RANKER
# ======================================================================

class ScoreFusionRanker:
    """
    Blends structured overlap with similarity scores into one ranking.

    Usage:
        ranker = ScoreFusionRanker(EntitySignalExtractor(),
                                   LexicalSimilarityScorer(),
                                   EmbeddingSimilarityScorer(provider))
        candidates = ranker.rank("קו 408 שינוי מסלול", records, max_results=5)
    """

    def __init__(
        self,
        extractor: Optional[EntitySignalExtractor] = None,
        lexical_scorer: Optional[LexicalSimilarityScorer] = None,
        embedding_scorer: Optional[EmbeddingSimilarityScorer] = None,
        config: Optional[RankingConfig] = None,
        matcher: Optional[LineNumberMatcher] = None,
    ):
        self.extractor = extractor or EntitySignalExtractor()
        self.lexical = lexical_scorer or LexicalSimilarityScorer()
        self.embedding = embedding_scorer or EmbeddingSimilarityScorer()
        self.config = config or RankingConfig()
        self.matcher = matcher or LineNumberMatcher()
        self._record_problem_types: Dict[tuple, Optional[str]] = {}

    # ==================================================================
    # PUBLIC API
    # ==================================================================

    def corpus_state(self, records: Sequence[HistoricalRecord]) -> CorpusState:
        return CorpusState(
            record_count=len(records),
            provider_available=self.embedding.provider_available,
            embeddings_ready=self.embedding.is_ready(records),
        )

    def rank(
        self,
        inquiry: str,
        records: Sequence[HistoricalRecord],
        max_results: int = 5,
    ) -> List[MatchCandidate]:
        return self.rank_with_report(inquiry, records, max_results).candidates

    def rank_with_report(
        self,
        inquiry: str,
        records: Sequence[HistoricalRecord],
        max_results: int = 5,
    ) -> RankingReport:
        signals = self.extractor.extract(inquiry)
        strategies = choose_strategies(self.corpus_state(records))
        report = RankingReport(candidates=[], signals=signals, strategies=strategies)

        if not strategies or max_results <= 0:
            return report

        structured = self.score_structured(signals, records)
        report.structured_count = len(structured)
        logger.info(
            f"[RANK] structured={len(structured)} lines={signals.line_numbers} "
            f"locations={signals.locations} problem={signals.problem_type}"
        )

        similarity: List[MatchCandidate] = []
        if len(structured) < self.config.min_structured_candidates:
            similarity_strategy = strategies[-1]
            if similarity_strategy == Strategy.EMBEDDING:
                try:
                    similarity = self.score_similarity(
                        inquiry, signals, records, Strategy.EMBEDDING
                    )
                except ProviderUnavailable as e:
                    logger.warning(f"[RANK] Embedding provider unavailable, using lexical: {e}")
                    similarity_strategy = Strategy.LEXICAL
                    report.degraded = True

            if similarity_strategy == Strategy.LEXICAL:
                similarity = self.score_similarity(
                    inquiry, signals, records, Strategy.LEXICAL
                )

            report.similarity_strategy = similarity_strategy
            report.similarity_threshold = self._threshold_for(similarity_strategy)

        report.candidates = self._merge(structured, similarity)[:max_results]
        return report

    # ==================================================================
    # STRUCTURED-FIRST MODE
    # ==================================================================

    def score_structured(
        self, signals: QuerySignals, records: Sequence[HistoricalRecord]
    ) -> List[MatchCandidate]:
        if signals.is_empty:
            return []

        cfg = self.config
        candidates = []
        for record in records:
            text = record.full_text
            text_lower = text.lower()
            reasons: List[str] = []
            score = 0.0

            if signals.line_numbers:
                shared = self.matcher.shared_lines(signals.line_numbers, text)
                if shared:
                    score += cfg.line_weight * len(shared) / len(signals.line_numbers)
                    reasons.extend(f"line {n} matched" for n in shared)

            if signals.locations:
                found = [loc for loc in signals.locations if loc in text]
                if found:
                    score += cfg.location_weight * len(found) / len(signals.locations)
                    reasons.extend(f"location {loc} matched" for loc in found)

            if signals.problem_type and signals.problem_type == self._problem_type_of(record):
                score += cfg.problem_type_weight
                reasons.append(f"problem type {signals.problem_type} matched")

            if signals.keywords:
                found_kw = [kw for kw in signals.keywords if kw in text_lower]
                if found_kw:
                    score += cfg.keyword_weight * len(found_kw) / len(signals.keywords)
                    reasons.append(f"keywords matched: {', '.join(found_kw)}")

            score = min(1.0, score)
            if score > cfg.structured_threshold:
                candidates.append(
                    MatchCandidate(
                        record=record,
                        score=score,
                        strategy=Strategy.STRUCTURED,
                        reasons=reasons,
                    )
                )

        candidates.sort(key=lambda c: (-c.score, c.record_id))
        return candidates

    # ==================================================================
    # SIMILARITY-BOOSTED MODE
    # ==================================================================

    def score_similarity(
        self,
        inquiry: str,
        signals: QuerySignals,
        records: Sequence[HistoricalRecord],
        strategy: Strategy,
    ) -> List[MatchCandidate]:
        """
        Score with one similarity strategy, apply the shared-line boost and
        keep candidates at or above the strategy's threshold.

        Raises ProviderUnavailable for EMBEDDING when the provider is down.
        """
        if strategy == Strategy.EMBEDDING:
            scorer, boost_weight = self.embedding, self.config.embedding_line_boost
        else:
            scorer, boost_weight = self.lexical, self.config.lexical_line_boost
        threshold = self._threshold_for(strategy)

        base_scores = scorer.score_records(inquiry, records)
        by_id = {r.id: r for r in records}
        query_lines = signals.line_numbers

        candidates = []
        for record_id, base in base_scores.items():
            record = by_id[record_id]
            final = base
            reasons = [f"{strategy.value} similarity {base:.3f}"]

            if query_lines:
                shared = self.matcher.shared_lines(query_lines, record.full_text)
                if shared:
                    boost = boost_weight * len(shared) / len(query_lines)
                    final = min(1.0, base + boost)
                    reasons.append(
                        f"line boost +{boost:.3f} (lines {', '.join(str(n) for n in shared)})"
                    )

            final = max(0.0, final)
            if final >= threshold:
                candidates.append(
                    MatchCandidate(record=record, score=final, strategy=strategy, reasons=reasons)
                )

        candidates.sort(key=lambda c: (-c.score, c.record_id))
        logger.info(
            f"[RANK] {strategy.value}: {len(candidates)}/{len(base_scores)} "
            f"above threshold {threshold}"
        )
        return candidates

    def is_strong_match(self, candidate: MatchCandidate) -> bool:
        """Embedding/structured score above the strong cutoff ⇒ "exact" match."""
        return candidate.score > self.config.strong_match_threshold

    def forget_records(self) -> None:
        """Drop per-record memos. Called when the corpus is reloaded."""
        self._record_problem_types.clear()

    # ==================================================================
    # PRIVATE HELPERS
    # ==================================================================

    def _threshold_for(self, strategy: Strategy) -> float:
        if strategy == Strategy.EMBEDDING:
            return self.config.embedding_threshold
        if strategy == Strategy.LEXICAL:
            return self.config.lexical_threshold
        return self.config.structured_threshold

    def _problem_type_of(self, record: HistoricalRecord) -> Optional[str]:
        key = (record.id, record.inquiry_text)
        if key not in self._record_problem_types:
            self._record_problem_types[key] = self.extractor.classify_problem(record.inquiry_text)
        return self._record_problem_types[key]

    @staticmethod
    def _merge(*candidate_lists: List[MatchCandidate]) -> List[MatchCandidate]:
        """Merge by record id, keeping the higher score; reasons are combined."""
        merged: Dict[str, MatchCandidate] = {}
        for candidates in candidate_lists:
            for cand in candidates:
                existing = merged.get(cand.record_id)
                if existing is None:
                    merged[cand.record_id] = MatchCandidate(
                        record=cand.record,
                        score=cand.score,
                        strategy=cand.strategy,
                        reasons=list(cand.reasons),
                    )
                    continue
                extra = [r for r in cand.reasons if r not in existing.reasons]
                if cand.score > existing.score:
                    existing.score = cand.score
                    existing.strategy = cand.strategy
                    existing.reasons = list(cand.reasons) + [
                        r for r in existing.reasons if r not in cand.reasons
                    ]
                else:
                    existing.reasons.extend(extra)

        return sorted(merged.values(), key=lambda c: (-c.score, c.record_id))
