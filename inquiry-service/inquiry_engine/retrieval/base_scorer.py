"""
base_scorer.py — Abstract base class for similarity scorers.

Lexical and embedding scorers implement this interface so the fusion
ranker can treat them uniformly.
"""

from abc import ABC, abstractmethod
from typing import Dict, Sequence

from inquiry_engine.core.models import HistoricalRecord, Strategy


class BaseScorer(ABC):
    """Scores every scorable record in a corpus snapshot against a query."""

    strategy: Strategy

    @abstractmethod
    def score_records(
        self, query: str, records: Sequence[HistoricalRecord]
    ) -> Dict[str, float]:
        """
        Score records against the query.

        Args:
            query:   Raw inquiry text.
            records: Corpus snapshot (read-only).

        Returns:
            Mapping record id → base similarity. Records this scorer cannot
            score (e.g. no stored embedding) are omitted.
        """
        pass

    @abstractmethod
    def is_ready(self, records: Sequence[HistoricalRecord]) -> bool:
        """True when this scorer can produce scores for the snapshot."""
        pass
