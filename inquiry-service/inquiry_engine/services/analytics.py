"""
analytics.py — In-process request analytics.

Counts queries, answers and errors, and keeps short rolling windows of
recent activity for the /api/analytics endpoint. Nothing is persisted.
"""

import threading
import time
from collections import Counter, deque
from typing import Any, Callable, Dict

RECENT_QUERIES = 10
RECENT_ERRORS = 5


class AnalyticsTracker:

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self.start_time = clock()
        self.total_queries = 0
        self.total_responses = 0
        self.total_errors = 0
        self.total_duration = 0.0
        self.sources: Counter = Counter()
        self.strategies: Counter = Counter()
        self.recent_queries: "deque[Dict[str, Any]]" = deque(maxlen=RECENT_QUERIES)
        self.recent_errors: "deque[Dict[str, Any]]" = deque(maxlen=RECENT_ERRORS)

    def track_query(self, query: str, strategy: str):
        with self._lock:
            self.total_queries += 1
            self.strategies[strategy] += 1
            self.recent_queries.append(
                {"query": query[:100], "strategy": strategy, "timestamp": self._clock()}
            )

    def track_response(self, source: str, duration: float):
        with self._lock:
            self.total_responses += 1
            self.total_duration += duration
            self.sources[source] += 1

    def track_error(self, error: Exception):
        with self._lock:
            self.total_errors += 1
            self.recent_errors.append(
                {"error": f"{type(error).__name__}: {error}", "timestamp": self._clock()}
            )

    def report(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "uptime_seconds": self._clock() - self.start_time,
                "total_queries": self.total_queries,
                "total_responses": self.total_responses,
                "total_errors": self.total_errors,
                "average_response_time": (
                    self.total_duration / self.total_responses if self.total_responses else 0.0
                ),
                "answer_sources": dict(self.sources),
                "strategies": dict(self.strategies),
                "recent_queries": list(self.recent_queries),
                "recent_errors": list(self.recent_errors),
            }
