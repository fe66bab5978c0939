from pydantic import BaseModel, Field
from typing import List, Optional


class MatchOut(BaseModel):
    case_id: str
    description: str
    original_response: str
    relevance_score: float
    strategy: str
    reasons: List[str] = []
    row_number: Optional[int] = None
    created_date: Optional[str] = None


class ValidationOut(BaseModel):
    is_valid: bool
    score: int
    issues: List[str] = []


class RecommendRequest(BaseModel):
    inquiry_text: str = Field(..., min_length=1)
    max_recommendations: int = Field(5, ge=1, le=50)
    prompt_variant: str = "detailed"


class RecommendResponse(BaseModel):
    inquiry: str
    exact_match: Optional[MatchOut] = None
    related_matches: List[MatchOut]
    final_response: str
    response_source: str
    validation: Optional[ValidationOut] = None
    attempts: int = 0
    debug: dict = {}


class OfficialResponseRequest(BaseModel):
    original_inquiry: str = Field(..., min_length=1)
    selected_response: str = Field(..., min_length=1)
    case_id: Optional[str] = None


class OfficialResponseOut(BaseModel):
    official_response: str
    source: str
    validation: Optional[ValidationOut] = None
