"""
models.py — Engine data model.

Two groups:
    Corpus side:   HistoricalRecord (immutable, loaded out-of-band)
    Request side:  QuerySignals → MatchCandidate → FinalAnswer / RecommendationResult

QuerySignals and MatchCandidate are request-scoped and never persisted.
CacheEntry and ConversationTurn live in the shared stores
(ResponseCache, SessionStore).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from inquiry_engine.services.line_matcher import extract_line_numbers


class Strategy(Enum):
    """Signal source that produced a candidate's score."""
    STRUCTURED = "structured"
    EMBEDDING = "embedding"
    LEXICAL = "lexical"


@dataclass(frozen=True)
class HistoricalRecord:
    """
    One prior inquiry/response pair.

    line_numbers is derived from inquiry + response text when not supplied.
    It over-collects on purpose (any 2–3 digit number); precise presence
    checks go through LineNumberMatcher.
    """
    id: str
    inquiry_text: str
    response_text: str
    embedding: Optional[Tuple[float, ...]] = None
    line_numbers: FrozenSet[int] = None
    created_date: str = ""
    is_official: bool = True
    row_number: Optional[int] = None

    def __post_init__(self):
        if self.line_numbers is None:
            object.__setattr__(
                self, "line_numbers", frozenset(extract_line_numbers(self.full_text))
            )
        else:
            object.__setattr__(self, "line_numbers", frozenset(self.line_numbers))
        if self.embedding is not None:
            object.__setattr__(self, "embedding", tuple(float(v) for v in self.embedding))

    @property
    def full_text(self) -> str:
        return f"{self.inquiry_text} {self.response_text}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoricalRecord":
        lines = data.get("line_numbers")
        return cls(
            id=str(data.get("id") or data.get("case_id")),
            inquiry_text=data.get("inquiry_text", "") or "",
            response_text=data.get("response_text", "") or "",
            embedding=data.get("embedding"),
            line_numbers=frozenset(int(n) for n in lines) if lines is not None else None,
            created_date=data.get("created_date", "") or "",
            is_official=bool(data.get("is_official", True)),
            row_number=data.get("row_number"),
        )


@dataclass
class QuerySignals:
    """Structured signals parsed out of one inquiry."""
    line_numbers: List[int] = field(default_factory=list)
    locations: List[str] = field(default_factory=list)
    problem_type: Optional[str] = None
    keywords: List[str] = field(default_factory=list)   # at most 5

    @property
    def is_empty(self) -> bool:
        return not (self.line_numbers or self.locations or self.problem_type or self.keywords)


@dataclass
class MatchCandidate:
    """A ranked historical record with an auditable score justification."""
    record: HistoricalRecord
    score: float
    strategy: Strategy
    reasons: List[str] = field(default_factory=list)

    @property
    def record_id(self) -> str:
        return self.record.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "case_id": self.record.id,
            "description": self.record.inquiry_text,
            "original_response": self.record.response_text,
            "relevance_score": round(self.score, 4),
            "strategy": self.strategy.value,
            "reasons": list(self.reasons),
            "row_number": self.record.row_number,
            "created_date": self.record.created_date,
        }


@dataclass
class CacheEntry:
    key: str
    value: str
    created_at: float
    hit_count: int = 0


@dataclass
class ValidationResult:
    is_valid: bool
    score: int
    issues: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"is_valid": self.is_valid, "score": self.score, "issues": list(self.issues)}


@dataclass
class ConversationTurn:
    inquiry: str
    response: str
    timestamp: float
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class FinalAnswer:
    """
    Text returned to the citizen.

    source: "generated" | "generated_retry" | "cache" | "historical" | "template"
    """
    text: str
    validation: Optional[ValidationResult]
    source: str
    attempts: int = 0


@dataclass
class RecommendationResult:
    inquiry: str
    related_matches: List[MatchCandidate]
    answer: FinalAnswer
    exact_match: Optional[MatchCandidate] = None
    debug: Dict[str, Any] = field(default_factory=dict)
