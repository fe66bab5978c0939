"""
embedding_scorer.py — Cosine similarity over dense vectors (primary strategy).

The query vector comes from the external embedding provider; record
vectors are precomputed out-of-band and stored on HistoricalRecord.
Records without a vector are skipped (partial corpora are normal while
a backfill is running).

ProviderUnavailable from the provider is NOT caught here: the fusion
ranker owns the decision to degrade to lexical scoring.
"""

import logging
from typing import Dict, Sequence

import numpy as np

from inquiry_engine.core.models import HistoricalRecord, Strategy
from inquiry_engine.retrieval.base_scorer import BaseScorer

logger = logging.getLogger(__name__)


def cosine_similarity(vec_a, vec_b) -> float:
    """
    dot(a, b) / (‖a‖·‖b‖)

    Returns 0.0 (never NaN) when a vector is missing, lengths differ,
    or either norm is zero.
    """
    if vec_a is None or vec_b is None:
        return 0.0
    a = np.asarray(vec_a, dtype=np.float64)
    b = np.asarray(vec_b, dtype=np.float64)
    if a.size == 0 or a.shape != b.shape:
        return 0.0
    magnitude = float(np.linalg.norm(a) * np.linalg.norm(b))
    if magnitude == 0.0:
        return 0.0
    return float(np.clip(np.dot(a, b) / magnitude, -1.0, 1.0))


class EmbeddingSimilarityScorer(BaseScorer):
    """
    Args:
        provider: object with embed(text) -> vector, raising
                  ProviderUnavailable when the backend is down.
                  None means embeddings are disabled.
    """

    strategy = Strategy.EMBEDDING

    def __init__(self, provider=None):
        self.provider = provider

    @property
    def provider_available(self) -> bool:
        if self.provider is None:
            return False
        return bool(getattr(self.provider, "available", True))

    def is_ready(self, records: Sequence[HistoricalRecord]) -> bool:
        """Provider configured AND at least one record carries a vector."""
        return self.provider_available and any(r.embedding is not None for r in records)

    def embed_query(self, query: str):
        return self.provider.embed(query)

    def score_records(
        self, query: str, records: Sequence[HistoricalRecord]
    ) -> Dict[str, float]:
        query_vec = self.embed_query(query)
        return self.score_with_vector(query_vec, records)

    def score_with_vector(
        self, query_vec, records: Sequence[HistoricalRecord]
    ) -> Dict[str, float]:
        """Vectorized cosine of one query vector against every embedded record."""
        q = np.asarray(query_vec, dtype=np.float64)
        q_norm = float(np.linalg.norm(q)) if q.size else 0.0

        embedded = [
            r for r in records
            if r.embedding is not None and len(r.embedding) == q.size
        ]
        skipped = sum(1 for r in records if r.embedding is not None) - len(embedded)
        if skipped:
            logger.warning(f"[EMBEDDING] Skipped {skipped} records with mismatched vector size")

        if not embedded:
            return {}
        if q_norm == 0.0:
            return {r.id: 0.0 for r in embedded}

        matrix = np.asarray([r.embedding for r in embedded], dtype=np.float64)
        norms = np.linalg.norm(matrix, axis=1) * q_norm
        dots = matrix @ q
        with np.errstate(divide="ignore", invalid="ignore"):
            sims = np.where(norms > 0, dots / norms, 0.0)
        sims = np.clip(sims, -1.0, 1.0)

        return {r.id: float(s) for r, s in zip(embedded, sims)}
