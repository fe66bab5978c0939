"""
response_cache.py — Bounded, time-expiring cache of final answers.

Key:
    normalize_cache_text(query) + "|history" or "|fresh"
    The same question answered with vs. without historical context is
    cached separately.

Eviction:
    INSERTION order, not access order. A hit does not promote the entry.
    At capacity, set() evicts the oldest-inserted entry.

Expiry:
    Lazy. get() deletes and misses on an entry older than the TTL.
    purge_expired() is an optional sweep; nothing runs it automatically.

SingleFlight:
    Concurrent misses for the same key share one in-flight computation
    (one generation call), fanned out to every waiter through a Future.
"""

import logging
import threading
import time
from collections import OrderedDict
from concurrent.futures import Future
from typing import Callable, Dict, Optional

from inquiry_engine.core.config import CacheConfig
from inquiry_engine.core.models import CacheEntry
from inquiry_engine.utils.normalize import normalize_cache_text

logger = logging.getLogger(__name__)


def make_cache_key(query: str, has_history: bool) -> str:
    return f"{normalize_cache_text(query)}|{'history' if has_history else 'fresh'}"


class ResponseCache:
    """
    Thread-safe: handlers run the engine in worker threads
    (asyncio.to_thread), so all access goes through one lock.

    Args:
        config: max_size / ttl_seconds.
        clock:  time source in seconds; injectable for tests.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CacheConfig()
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.expirations = 0

    # ==================================================================
    # PUBLIC API
    # ==================================================================

    def get(self, query: str, has_history: bool) -> Optional[str]:
        return self.get_by_key(make_cache_key(query, has_history))

    def set(self, query: str, has_history: bool, value: str) -> None:
        self.set_by_key(make_cache_key(query, has_history), value)

    def get_by_key(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None

            if self._is_expired(entry):
                del self._entries[key]
                self.expirations += 1
                self.misses += 1
                logger.info(f"[CACHE] Expired entry dropped: {key[:60]}")
                return None

            entry.hit_count += 1
            self.hits += 1
            return entry.value

    def peek_by_key(self, key: str) -> Optional[str]:
        """Like get_by_key, but leaves hit/miss counters untouched."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._is_expired(entry):
                return None
            return entry.value

    def set_by_key(self, key: str, value: str) -> None:
        if self.config.max_size <= 0:
            return
        with self._lock:
            if key in self._entries:
                # Overwrite keeps the key's original insertion slot
                entry = self._entries[key]
                entry.value = value
                entry.created_at = self._clock()
                entry.hit_count = 0
                return

            while len(self._entries) >= self.config.max_size:
                evicted_key, _ = self._entries.popitem(last=False)
                self.evictions += 1
                logger.info(f"[CACHE] Capacity reached, evicted oldest: {evicted_key[:60]}")

            self._entries[key] = CacheEntry(key=key, value=value, created_at=self._clock())

    def purge_expired(self) -> int:
        """Drop every expired entry now. Returns the number removed."""
        with self._lock:
            expired = [k for k, e in self._entries.items() if self._is_expired(e)]
            for k in expired:
                del self._entries[k]
            self.expirations += len(expired)
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0
            self.evictions = 0
            self.expirations = 0

    def stats(self) -> Dict[str, float]:
        with self._lock:
            total = self.hits + self.misses
            return {
                "size": len(self._entries),
                "max_size": self.config.max_size,
                "ttl_seconds": self.config.ttl_seconds,
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
                "expirations": self.expirations,
                "hit_rate": (self.hits / total) if total else 0.0,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    # ==================================================================
    # PRIVATE HELPERS
    # ==================================================================

    def _is_expired(self, entry: CacheEntry) -> bool:
        return (self._clock() - entry.created_at) > self.config.ttl_seconds


class SingleFlight:
    """
    Collapse concurrent calls for the same key into one execution.

    The first caller (leader) runs fn; followers block on the leader's
    Future and receive the same result or the same exception.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._inflight: Dict[str, Future] = {}

    def do(self, key: str, fn: Callable[[], object]):
        with self._lock:
            future = self._inflight.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._inflight[key] = future

        if not leader:
            logger.info(f"[SINGLE_FLIGHT] Joining in-flight computation: {key[:60]}")
            return future.result()

        try:
            result = fn()
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                self._inflight.pop(key, None)

    def in_flight(self) -> int:
        with self._lock:
            return len(self._inflight)
