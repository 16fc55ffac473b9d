"""FactClaim model."""

from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import Column, DateTime, Float, Index, Integer, String, Text

from epistemic_ledger.config import settings
from epistemic_ledger.database import Base, JSONDocument
from epistemic_ledger.models.argument import new_id


class FactClaim(Base):
    """Factual assertion that arguments can depend on.

    Debunked facts stay in the table at low confidence so their audit
    history is preserved.
    """

    __tablename__ = "fact_claims"

    id = Column(String(36), primary_key=True, default=new_id)
    claim = Column(Text, nullable=False)
    embedding = Column(Vector(settings.EMBED_DIM), nullable=False)
    confidence = Column(Float, nullable=False, default=0.5)
    confidence_history = Column(JSONDocument, nullable=False, default=list)
    citation_count = Column(Integer, nullable=False, default=0)
    challenge_count = Column(Integer, nullable=False, default=0)

    # Optional: facts may be system-seeded
    source_post_id = Column(Text)
    source_user_id = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_fact_claims_confidence", "confidence"),
        Index("idx_fact_claims_created_at", "created_at"),
    )
