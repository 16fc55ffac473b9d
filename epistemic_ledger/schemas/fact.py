"""Fact claim Pydantic schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class FactCreate(BaseModel):
    """Schema for creating a fact claim. Embedding is fetched when omitted."""

    claim: str
    embedding: Optional[List[float]] = None
    initial_confidence: Optional[float] = None
    source_post_id: Optional[str] = None
    source_user_id: Optional[str] = None


class FactResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    claim: str
    confidence: float
    citation_count: int
    challenge_count: int
    source_post_id: Optional[str] = None
    source_user_id: Optional[str] = None
    created_at: Optional[datetime] = None


class FactDetail(FactResponse):
    """Fact with history and the arguments resting on it."""

    confidence_history: List[dict]
    dependent_argument_ids: List[str] = []


class CiteRequest(BaseModel):
    context_post_id: Optional[str] = None
    interaction_id: Optional[str] = None


class ChallengeRequest(BaseModel):
    reason: str
    interaction_id: Optional[str] = None


class SimilarFactsRequest(BaseModel):
    """Nearest-neighbour query by claim text; the text is embedded server-side."""

    claim: str
    limit: int = 5
    min_similarity: float = 0.8


class SimilarFact(BaseModel):
    fact: FactResponse
    similarity: float
