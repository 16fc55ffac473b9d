"""Confidence audit log model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Float, Index, Integer, String, Text

from epistemic_ledger.database import Base


class ConfidenceAuditEntry(Base):
    """Append-only record of one confidence mutation.

    The autoincrement primary key preserves write order within a single
    operation (direct update, then propagated updates, then dependency
    cascade).
    """

    __tablename__ = "confidence_audit_log"

    audit_pk = Column(Integer, primary_key=True, autoincrement=True)
    entity_type = Column(Text, nullable=False)  # 'argument', 'fact_claim'
    entity_id = Column(String(36), nullable=False)
    metric = Column(Text, nullable=False, default="confidence")  # 'confidence', 'effective_confidence'
    old_confidence = Column(Float)
    new_confidence = Column(Float, nullable=False)
    reason = Column(Text, nullable=False)
    propagated_from = Column(String(36))
    cosine_similarity = Column(Float)
    interaction_id = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_interaction_id", "interaction_id"),
        Index("idx_audit_created_at", "created_at"),
    )
