"""Community note Pydantic schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, StrictBool


class NoteCreate(BaseModel):
    author_id: str
    content: str
    note_type: str  # 'correction', 'context', 'source', 'clarification', 'outdated'
    post_id: Optional[str] = None
    fact_claim_id: Optional[str] = None
    confidence_impact: Optional[float] = None


class NoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    author_id: str
    content: str
    note_type: str
    post_id: Optional[str] = None
    fact_claim_id: Optional[str] = None
    helpful_score: float
    not_helpful_score: float
    vote_count: int
    display_threshold: float
    is_displayed: bool
    is_appealed: bool
    appeal_resolved: bool
    appeal_outcome: Optional[str] = None
    confidence_impact: Optional[float] = None
    state: str
    created_at: Optional[datetime] = None


class VoteRequest(BaseModel):
    voter_id: str
    is_helpful: StrictBool


class VoteResponse(BaseModel):
    note_id: str
    old_helpful_score: float
    new_helpful_score: float
    should_display: bool


class VoteRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    note_id: str
    voter_id: str
    is_helpful: bool
    voter_reputation: float
    created_at: Optional[datetime] = None


class AppealRequest(BaseModel):
    appellant_id: str
    reason: str


class AppealResponse(BaseModel):
    note_id: str
    status: str


class ResolveAppealRequest(BaseModel):
    admin_id: str
    upheld: StrictBool
    reason: str


class ResolveAppealResponse(BaseModel):
    note_id: str
    outcome: str


class EffectivenessResponse(BaseModel):
    note_id: str
    effectiveness: float
