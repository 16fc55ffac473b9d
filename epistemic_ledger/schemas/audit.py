"""Audit log Pydantic schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    entity_type: str
    entity_id: str
    metric: str
    old_confidence: Optional[float] = None
    new_confidence: float
    reason: str
    propagated_from: Optional[str] = None
    cosine_similarity: Optional[float] = None
    interaction_id: Optional[str] = None
    created_at: Optional[datetime] = None
