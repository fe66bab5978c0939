"""
engine.py — MatchingEngine: composition root of the inquiry pipeline.

PIPELINE:
    inquiry
      ↓
    ScoreFusionRanker.rank_with_report()     → related matches (+ exact match ≥ 0.85)
      ↓
    ResponseCache lookup (key: normalized inquiry + history flag)
      ↓ miss
    SingleFlight (one generation per key at a time)
      ↓
    GenerationProvider (detailed prompt, best candidate as reference)
      ↓
    ResponseValidator ── invalid → one retry with the conservative prompt
      ↓                           still invalid → better-scoring attempt
    ResponseCache.set
      ↓
    ConversationContext.add_turn (when a session id is given)

Corpus reload:
    refresh() swaps in a fresh snapshot from the dataset provider and
    re-derives the line registry (unless one was pinned at construction).
    With refresh_interval > 0 the reload also runs lazily at the start of
    a request once the interval has passed; a failed scheduled reload
    keeps serving the previous snapshot.

Official reply (staff picked a historical reply for a new inquiry):
    official_response() rewrites it with the OFFICIAL prompt at a low
    temperature, or wraps it in the official template when generation is
    down. Either way the text is validated.

Generation down (ProviderUnavailable / ProviderError):
    cleaned historical reply (> 50 chars) in the official template,
    else a generic acknowledgement. Template answers are validated but
    not cached, and neither is a reply that failed validation twice.

Usage:
    engine = MatchingEngine(JsonDatasetProvider(path), generation_provider=gen)
    result = engine.answer("קו 408 שינוי מסלול", session_id="abc")
"""

import logging
import threading
import time
from typing import Any, Dict, List, Optional, Tuple

from inquiry_engine.core.config import CacheConfig, RankingConfig, ValidationConfig
from inquiry_engine.core.errors import (
    CorpusUnavailable,
    ProviderError,
    ProviderUnavailable,
    ValidationFailure,
)
from inquiry_engine.core.models import (
    FinalAnswer,
    HistoricalRecord,
    MatchCandidate,
    RecommendationResult,
    ValidationResult,
)
from inquiry_engine.retrieval.embedding_scorer import EmbeddingSimilarityScorer
from inquiry_engine.retrieval.fusion_ranker import RankingReport, ScoreFusionRanker
from inquiry_engine.retrieval.lexical_scorer import LexicalSimilarityScorer
from inquiry_engine.services.analytics import AnalyticsTracker
from inquiry_engine.services.conversation_context import ConversationContext, SessionStore
from inquiry_engine.services.line_matcher import LineNumberMatcher
from inquiry_engine.services.prompt_templates import (
    OFFICIAL_SYSTEM_PROMPT,
    OFFICIAL_TEMPERATURE,
    build_official_user_prompt,
    build_user_prompt,
    formatted_template,
    generic_template,
    system_prompt_for,
    temperature_for,
)
from inquiry_engine.services.providers import DatasetProvider, EmbeddingProvider, GenerationProvider
from inquiry_engine.services.response_cache import ResponseCache, SingleFlight, make_cache_key
from inquiry_engine.services.response_cleaner import clean_historical_response
from inquiry_engine.services.response_validator import LineRegistry, ResponseValidator
from inquiry_engine.services.signal_extractor import EntitySignalExtractor

logger = logging.getLogger(__name__)

MIN_HISTORICAL_FALLBACK_LENGTH = 50
DATA_SAMPLE_SIZE = 5
DATA_SAMPLE_PREVIEW = 50
CONSERVATIVE_VARIANT = "conservative"


class MatchingEngine:
    """
    Owns every shared store (cache, single-flight map, sessions, analytics)
    and the provider handles. Build one per process and pass it around.

    The corpus is read at construction and again on refresh();
    CorpusUnavailable from the dataset provider propagates from both.
    """

    def __init__(
        self,
        dataset: DatasetProvider,
        embedding_provider: Optional[EmbeddingProvider] = None,
        generation_provider: Optional[GenerationProvider] = None,
        line_registry: Optional[LineRegistry] = None,
        ranking_config: Optional[RankingConfig] = None,
        cache_config: Optional[CacheConfig] = None,
        validation_config: Optional[ValidationConfig] = None,
        extractor: Optional[EntitySignalExtractor] = None,
        sessions: Optional[SessionStore] = None,
        analytics: Optional[AnalyticsTracker] = None,
        refresh_interval: float = 0.0,
        clock=time.monotonic,
    ):
        self.dataset = dataset
        self.extractor = extractor or EntitySignalExtractor()
        self.matcher = LineNumberMatcher()
        self.ranker = ScoreFusionRanker(
            extractor=self.extractor,
            lexical_scorer=LexicalSimilarityScorer(),
            embedding_scorer=EmbeddingSimilarityScorer(embedding_provider),
            config=ranking_config,
            matcher=self.matcher,
        )
        self.generation = generation_provider

        self.refresh_interval = refresh_interval
        self._clock = clock
        self._refresh_lock = threading.Lock()
        self._pinned_registry = line_registry
        self._validation_config = validation_config
        self.last_refresh: Optional[float] = None

        self.records: List[HistoricalRecord] = []
        self._load_snapshot()

        self.cache = ResponseCache(cache_config)
        self.single_flight = SingleFlight()
        self.sessions = sessions or SessionStore(extractor=self.extractor)
        self.analytics = analytics or AnalyticsTracker()

        logger.info(
            f"[ENGINE] Ready: {len(self.records)} records, {len(self.registry)} registered lines, "
            f"embeddings_ready={self.embeddings_ready}, generation={'on' if generation_provider else 'off'}"
        )

    @property
    def embeddings_ready(self) -> bool:
        return self.ranker.embedding.is_ready(self.records)

    # ==================================================================
    # PUBLIC API
    # ==================================================================

    def rank(self, inquiry: str, max_results: int = 5) -> List[MatchCandidate]:
        return self.ranker.rank(inquiry, self._current_records(), max_results)

    def refresh(self) -> Dict[str, Any]:
        """
        Full reload from the dataset provider. On CorpusUnavailable the
        previous snapshot stays in place and the error propagates.
        """
        with self._refresh_lock:
            self._load_snapshot()
        logger.info(f"[ENGINE] Corpus refreshed: {len(self.records)} records")
        return self.corpus_status()

    def corpus_status(self) -> Dict[str, Any]:
        return {
            "records_loaded": len(self.records),
            "registered_lines": len(self.registry),
            "embeddings_ready": self.embeddings_ready,
            "last_refresh": self.last_refresh,
        }

    def data_sample(self, limit: int = DATA_SAMPLE_SIZE) -> Dict[str, Any]:
        """A peek at the first records, texts cut to a short preview."""

        def preview(text: str) -> str:
            if len(text) <= DATA_SAMPLE_PREVIEW:
                return text
            return text[:DATA_SAMPLE_PREVIEW] + "..."

        records = self.records
        return {
            **self.corpus_status(),
            "sample": [
                {
                    "case_id": r.id,
                    "inquiry": preview(r.inquiry_text),
                    "response": preview(r.response_text),
                    "has_inquiry": bool(r.inquiry_text),
                    "has_response": bool(r.response_text),
                }
                for r in records[:max(0, limit)]
            ],
        }

    def validate_and_finalize(self, inquiry: str, generated_text: str) -> Tuple[str, ValidationResult]:
        text = (generated_text or "").strip()
        return text, self.validator.validate(text, inquiry)

    def answer(
        self,
        inquiry: str,
        session_id: Optional[str] = None,
        max_results: int = 5,
        prompt_variant: str = "detailed",
    ) -> RecommendationResult:
        start = time.monotonic()
        records = self._current_records()
        try:
            report = self.ranker.rank_with_report(inquiry, records, max_results)
            candidates = report.candidates
            exact = candidates[0] if candidates and self.ranker.is_strong_match(candidates[0]) else None

            context = self.sessions.get_or_create(session_id) if session_id else None
            has_history = bool(context and context.has_history)
            key = make_cache_key(inquiry, has_history)

            cached = self.cache.get_by_key(key)
            if cached is not None:
                logger.info(f"[ENGINE] Cache hit: {key[:60]}")
                final = FinalAnswer(text=cached, validation=None, source="cache")
            else:
                final = self.single_flight.do(
                    key,
                    lambda: self._generate_and_cache(key, inquiry, candidates, context, prompt_variant),
                )

            if session_id:
                self.sessions.add_turn(
                    session_id,
                    inquiry,
                    final.text,
                    {"source": final.source, "matches": [c.record_id for c in candidates]},
                )
        except Exception as e:
            self.analytics.track_error(e)
            raise

        strategy = (report.similarity_strategy or report.strategies[0]).value if report.strategies else "none"
        self.analytics.track_query(inquiry, strategy)
        self.analytics.track_response(final.source, time.monotonic() - start)

        return RecommendationResult(
            inquiry=inquiry,
            related_matches=candidates,
            answer=final,
            exact_match=exact,
            debug=self._debug_info(report, final, records),
        )

    def official_response(
        self, inquiry: str, selected_response: str, case_id: Optional[str] = None
    ) -> FinalAnswer:
        """
        Turn a historical reply chosen by staff into an official answer to
        a new inquiry. Source is "generated", or "template" when the reply
        is only wrapped in the greeting and signature.
        """
        start = time.monotonic()
        body = (selected_response or "").strip()
        try:
            final = None
            if self.generation is not None:
                try:
                    raw = self.generation.generate(
                        OFFICIAL_SYSTEM_PROMPT,
                        build_official_user_prompt(inquiry, body),
                        temperature=OFFICIAL_TEMPERATURE,
                    )
                    text, result = self.validate_and_finalize(inquiry, raw)
                    final = FinalAnswer(text=text, validation=result, source="generated", attempts=1)
                except (ProviderUnavailable, ProviderError) as e:
                    logger.warning(f"[ENGINE] Official reply generation failed for {case_id or '-'}: {e}")

            if final is None:
                text, result = self.validate_and_finalize(inquiry, formatted_template(body))
                final = FinalAnswer(text=text, validation=result, source="template", attempts=0)
        except Exception as e:
            self.analytics.track_error(e)
            raise

        self.analytics.track_response(f"official_{final.source}", time.monotonic() - start)
        return final

    def stats(self) -> Dict[str, Any]:
        return {
            "records": len(self.records),
            "registered_lines": len(self.registry),
            "embeddings_ready": self.embeddings_ready,
            "generation_available": bool(
                self.generation and getattr(self.generation, "available", True)
            ),
            "cache": self.cache.stats(),
            "sessions": len(self.sessions),
            "in_flight": self.single_flight.in_flight(),
            "last_refresh": self.last_refresh,
        }

    # ==================================================================
    # GENERATION
    # ==================================================================

    def _generate_and_cache(
        self,
        key: str,
        inquiry: str,
        candidates: List[MatchCandidate],
        context: Optional[ConversationContext],
        prompt_variant: str,
    ) -> FinalAnswer:
        # A leader that finished between our cache miss and do() already stored it.
        # The miss was counted in answer(), so this check must not count again.
        cached = self.cache.peek_by_key(key)
        if cached is not None:
            return FinalAnswer(text=cached, validation=None, source="cache")

        historical = clean_historical_response(candidates[0].record.response_text) if candidates else ""
        history_context = context.recent_context() if context else ""

        try:
            final = self._generate_validated(inquiry, historical, history_context, prompt_variant)
        except (ProviderUnavailable, ProviderError) as e:
            logger.warning(f"[ENGINE] Generation unavailable, using template: {e}")
            return self._template_answer(inquiry, historical)

        if final.validation is not None and final.validation.is_valid:
            self.cache.set_by_key(key, final.text)
        return final

    def _generate_validated(
        self, inquiry: str, historical: str, history_context: str, prompt_variant: str
    ) -> FinalAnswer:
        if self.generation is None:
            raise ProviderUnavailable("No generation provider configured")

        user_prompt = build_user_prompt(inquiry, historical or None, history_context)
        try:
            return self._attempt(inquiry, user_prompt, prompt_variant, "generated", 1)
        except ValidationFailure as first:
            logger.warning(f"[ENGINE] First attempt rejected, retrying conservatively: {first}")
            try:
                return self._attempt(inquiry, user_prompt, CONSERVATIVE_VARIANT, "generated_retry", 2)
            except ValidationFailure as second:
                best, source = (second, "generated_retry") if second.result.score > first.result.score else (first, "generated")
                logger.warning(f"[ENGINE] Retry rejected too, returning best attempt (score={best.result.score})")
                return FinalAnswer(text=best.text, validation=best.result, source=source, attempts=2)
            except (ProviderUnavailable, ProviderError) as e:
                logger.warning(f"[ENGINE] Retry failed, keeping first attempt: {e}")
                return FinalAnswer(text=first.text, validation=first.result, source="generated", attempts=2)

    def _attempt(
        self, inquiry: str, user_prompt: str, variant: str, source: str, attempt: int
    ) -> FinalAnswer:
        raw = self.generation.generate(
            system_prompt_for(variant), user_prompt, temperature=temperature_for(variant)
        )
        text, result = self.validate_and_finalize(inquiry, raw)
        if not result.is_valid:
            raise ValidationFailure(result, text)
        return FinalAnswer(text=text, validation=result, source=source, attempts=attempt)

    def _template_answer(self, inquiry: str, historical: str) -> FinalAnswer:
        if len(historical) > MIN_HISTORICAL_FALLBACK_LENGTH:
            text, source = formatted_template(historical), "historical"
        else:
            text, source = generic_template(inquiry), "template"
        text, result = self.validate_and_finalize(inquiry, text)
        return FinalAnswer(text=text, validation=result, source=source, attempts=0)

    # ==================================================================
    # PRIVATE HELPERS
    # ==================================================================

    def _load_snapshot(self) -> None:
        records = self.dataset.list_records()
        registry = (
            self._pinned_registry if self._pinned_registry is not None
            else LineRegistry.from_records(records, self.matcher)
        )
        validator = ResponseValidator(registry, self._validation_config, self.extractor)

        self.ranker.forget_records()
        self.records, self.registry, self.validator = records, registry, validator
        self.last_refresh = time.time()
        self._loaded_at = self._clock()

    def _current_records(self) -> List[HistoricalRecord]:
        """Snapshot for one request; runs the scheduled reload when due."""
        if self.refresh_interval > 0 and self._clock() - self._loaded_at >= self.refresh_interval:
            # Another request already reloading: serve the current snapshot
            if self._refresh_lock.acquire(blocking=False):
                try:
                    self._load_snapshot()
                    logger.info(f"[ENGINE] Scheduled reload: {len(self.records)} records")
                except CorpusUnavailable as e:
                    self._loaded_at = self._clock()
                    logger.warning(f"[ENGINE] Scheduled reload failed, keeping previous corpus: {e}")
                finally:
                    self._refresh_lock.release()
        return self.records

    def _debug_info(
        self, report: RankingReport, final: FinalAnswer, records: List[HistoricalRecord]
    ) -> Dict[str, Any]:
        candidates = report.candidates
        no_match_reason = None
        if not candidates:
            no_match_reason = "empty corpus" if not records else "no candidate above threshold"
        return {
            "strategies": [s.value for s in report.strategies],
            "similarity_strategy": report.similarity_strategy.value if report.similarity_strategy else None,
            "similarity_threshold": report.similarity_threshold,
            "degraded": report.degraded,
            "structured_matches": report.structured_count,
            "matches_found": len(candidates),
            "top_score": round(candidates[0].score, 4) if candidates else None,
            "no_match_reason": no_match_reason,
            "embeddings_ready": self.embeddings_ready,
            "answer_source": final.source,
            "cache_hit": final.source == "cache",
            "signals": {
                "line_numbers": report.signals.line_numbers,
                "locations": report.signals.locations,
                "problem_type": report.signals.problem_type,
                "keywords": report.signals.keywords,
            },
        }
