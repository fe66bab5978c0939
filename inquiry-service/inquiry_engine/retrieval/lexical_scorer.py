"""
lexical_scorer.py — Jaccard token-set similarity (fallback strategy).

Always available: needs no provider and no precomputed vectors, so the
engine degrades to it whenever embeddings are unavailable.

    similarity(A, B) = |A ∩ B| / |A ∪ B|      (0 when either set is empty)

A record's lexical score is the max of its similarity to the inquiry
field and to the response field.
"""

from typing import AbstractSet, Dict, Sequence

from inquiry_engine.core.models import HistoricalRecord, Strategy
from inquiry_engine.retrieval.base_scorer import BaseScorer
from inquiry_engine.utils.normalize import token_set


def jaccard(a: AbstractSet[str], b: AbstractSet[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def lexical_similarity(text1: str, text2: str) -> float:
    """Jaccard similarity of two raw texts after normalization."""
    if not text1 or not text2:
        return 0.0
    return jaccard(token_set(text1), token_set(text2))


class LexicalSimilarityScorer(BaseScorer):

    strategy = Strategy.LEXICAL

    def score_records(
        self, query: str, records: Sequence[HistoricalRecord]
    ) -> Dict[str, float]:
        query_tokens = token_set(query)
        scores: Dict[str, float] = {}
        if not query_tokens:
            return scores

        for record in records:
            inquiry_sim = jaccard(query_tokens, token_set(record.inquiry_text))
            response_sim = jaccard(query_tokens, token_set(record.response_text))
            scores[record.id] = max(inquiry_sim, response_sim)
        return scores

    def is_ready(self, records: Sequence[HistoricalRecord]) -> bool:
        return True
