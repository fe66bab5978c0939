"""
conversation_context.py — Per-session dialogue memory.

ConversationContext keeps the last few (inquiry, response) turns of one
session plus a running count of the topics the citizen raised. The
recent turns are rendered into the generation prompt, and whether a
session has history is part of the response-cache key.

SessionStore creates contexts lazily per session id. Contexts live for
the process lifetime unless idle expiry is configured.
"""

import logging
import threading
import time
from collections import Counter, deque
from typing import Any, Callable, Dict, List, Optional

from inquiry_engine.core.config import MAX_HISTORY_TURNS, SESSION_IDLE_SECONDS
from inquiry_engine.core.models import ConversationTurn
from inquiry_engine.services.signal_extractor import EntitySignalExtractor

logger = logging.getLogger(__name__)

RECENT_TURNS_IN_PROMPT = 3
PROMPT_SNIPPET_CHARS = 200


class ConversationContext:

    def __init__(
        self,
        session_id: str,
        max_turns: int = MAX_HISTORY_TURNS,
        extractor: Optional[EntitySignalExtractor] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.session_id = session_id
        self.max_turns = max_turns
        self.history: "deque[ConversationTurn]" = deque(maxlen=max_turns)
        self.topic_frequency: Counter = Counter()
        self.extractor = extractor or EntitySignalExtractor()
        self._clock = clock
        self.created_at = clock()
        self.last_activity = self.created_at
        self.query_count = 0

    @property
    def has_history(self) -> bool:
        return len(self.history) > 0

    def add_turn(self, inquiry: str, response: str, metadata: Optional[Dict[str, Any]] = None):
        """Append a turn (the oldest falls off at capacity) and count its topics."""
        now = self._clock()
        self.history.append(
            ConversationTurn(inquiry=inquiry, response=response, timestamp=now, metadata=dict(metadata or {}))
        )
        for topic in self.topics_of(inquiry):
            self.topic_frequency[topic] += 1
        self.query_count += 1
        self.last_activity = now

    def topics_of(self, inquiry: str) -> List[str]:
        """Problem type, locations and line ids ("line:408") of an inquiry."""
        signals = self.extractor.extract(inquiry)
        topics: List[str] = []
        if signals.problem_type:
            topics.append(signals.problem_type)
        topics.extend(signals.locations)
        topics.extend(f"line:{n}" for n in signals.line_numbers)
        return topics

    def frequent_topics(self, n: int = 3) -> List[str]:
        return [topic for topic, _ in self.topic_frequency.most_common(n)]

    def recent_context(self, turns: int = RECENT_TURNS_IN_PROMPT) -> str:
        """Recent turns rendered for the generation prompt ("" without history)."""
        if not self.history:
            return ""
        lines = []
        for turn in list(self.history)[-turns:]:
            lines.append(f"פנייה קודמת: {turn.inquiry[:PROMPT_SNIPPET_CHARS]}")
            lines.append(f"תשובה קודמת: {turn.response[:PROMPT_SNIPPET_CHARS]}")
        return "\n".join(lines)

    def clear(self):
        self.history.clear()
        self.topic_frequency.clear()
        self.query_count = 0

    def summary(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "turns": len(self.history),
            "query_count": self.query_count,
            "frequent_topics": self.frequent_topics(),
            "created_at": self.created_at,
            "last_activity": self.last_activity,
        }


class SessionStore:
    """
    Thread-safe map of session id → ConversationContext.

    Args:
        idle_seconds: drop sessions idle for longer than this on access.
                      0 keeps sessions for the process lifetime.
    """

    def __init__(
        self,
        max_turns: int = MAX_HISTORY_TURNS,
        idle_seconds: float = SESSION_IDLE_SECONDS,
        extractor: Optional[EntitySignalExtractor] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.max_turns = max_turns
        self.idle_seconds = idle_seconds
        self.extractor = extractor or EntitySignalExtractor()
        self._clock = clock
        self._sessions: Dict[str, ConversationContext] = {}
        self._lock = threading.Lock()

    def get_or_create(self, session_id: str) -> ConversationContext:
        with self._lock:
            self._expire_idle()
            context = self._sessions.get(session_id)
            if context is None:
                context = ConversationContext(
                    session_id,
                    max_turns=self.max_turns,
                    extractor=self.extractor,
                    clock=self._clock,
                )
                self._sessions[session_id] = context
                logger.info(f"[SESSION] Created context for {session_id}")
            return context

    def get(self, session_id: str) -> Optional[ConversationContext]:
        with self._lock:
            self._expire_idle()
            return self._sessions.get(session_id)

    def add_turn(self, session_id: str, inquiry: str, response: str, metadata: Optional[Dict[str, Any]] = None):
        context = self.get_or_create(session_id)
        with self._lock:
            context.add_turn(inquiry, response, metadata)

    def summary(self) -> Dict[str, Any]:
        with self._lock:
            self._expire_idle()
            return {
                "active_sessions": len(self._sessions),
                "sessions": [c.summary() for c in self._sessions.values()],
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _expire_idle(self):
        if self.idle_seconds <= 0:
            return
        now = self._clock()
        stale = [
            sid for sid, ctx in self._sessions.items()
            if now - ctx.last_activity > self.idle_seconds
        ]
        for sid in stale:
            del self._sessions[sid]
        if stale:
            logger.info(f"[SESSION] Expired {len(stale)} idle sessions")
