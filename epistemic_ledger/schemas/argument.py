"""Argument-related Pydantic schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class ArgumentCreate(BaseModel):
    """Schema for creating an argument. Embedding is fetched when omitted."""

    content: str
    summary: Optional[str] = None
    source_post_id: str
    source_user_id: str
    embedding: Optional[List[float]] = None
    logical_validity: Optional[float] = None
    evidence_quality: Optional[float] = None
    coherence: Optional[float] = None
    entropy_score: Optional[float] = None


class ArgumentResponse(BaseModel):
    """Argument as exposed to the feed ranker and UI."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    content: str
    summary: Optional[str] = None
    confidence: float
    effective_confidence: Optional[float] = None
    logical_validity: Optional[float] = None
    evidence_quality: Optional[float] = None
    coherence: Optional[float] = None
    entropy_score: Optional[float] = None
    support_count: int
    refute_count: int
    citation_count: int
    cluster_id: Optional[str] = None
    is_cluster_head: bool
    source_post_id: str
    source_user_id: str
    created_at: Optional[datetime] = None


class ArgumentDetail(ArgumentResponse):
    """Argument with its confidence history and fact dependencies."""

    confidence_history: List[dict]
    dependencies: List["DependencyResponse"] = []


class SimilarArgumentsRequest(BaseModel):
    """Nearest-neighbour query by precomputed embedding."""

    embedding: List[float]
    limit: int = 10
    min_similarity: float = 0.0
    exclude_id: Optional[str] = None


class SimilarArgument(BaseModel):
    argument: ArgumentResponse
    similarity: float


class InteractionRequest(BaseModel):
    """Support or refute by a user."""

    user_id: str
    interaction_id: Optional[str] = None


class ConfidenceUpdateRequest(BaseModel):
    """Explicit confidence override."""

    new_confidence: float
    reason: str
    interaction_id: Optional[str] = None


class ConfidenceUpdateResponse(BaseModel):
    """Outcome of a confidence mutation."""

    entity_type: str
    entity_id: str
    old_confidence: float
    new_confidence: float
    propagated_to: List[str]
    affected_arguments: List[str]
    replayed: bool = False


class LinkFactRequest(BaseModel):
    fact_claim_id: str
    dependency_strength: float = 1.0


class DependencyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    argument_id: str
    fact_claim_id: str
    dependency_strength: float


class LinkFactResponse(DependencyResponse):
    effective_confidence: Optional[float] = None


ArgumentDetail.model_rebuild()
