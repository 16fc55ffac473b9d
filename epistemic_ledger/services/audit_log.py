"""Append-only audit trail for confidence mutations."""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from epistemic_ledger.models.audit import ConfidenceAuditEntry

logger = logging.getLogger(__name__)

ENTITY_TYPES = ("argument", "fact_claim")


class AuditLog:
    """Writes and reads ConfidenceAuditEntry rows. Entries are never updated."""

    def __init__(self, db: Session):
        self.db = db

    def append(
        self,
        entity_type: str,
        entity_id: str,
        old_confidence: Optional[float],
        new_confidence: float,
        reason: str,
        propagated_from: Optional[str] = None,
        cosine_similarity: Optional[float] = None,
        interaction_id: Optional[str] = None,
        metric: str = "confidence",
    ) -> ConfidenceAuditEntry:
        """Add an entry to the current transaction and flush it so write order is kept."""
        entry = ConfidenceAuditEntry(
            entity_type=entity_type,
            entity_id=entity_id,
            metric=metric,
            old_confidence=old_confidence,
            new_confidence=new_confidence,
            reason=reason,
            propagated_from=propagated_from,
            cosine_similarity=cosine_similarity,
            interaction_id=interaction_id,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def history(
        self, entity_type: str, entity_id: str, limit: int = 50
    ) -> List[ConfidenceAuditEntry]:
        """Newest entries first."""
        return (
            self.db.query(ConfidenceAuditEntry)
            .filter(
                ConfidenceAuditEntry.entity_type == entity_type,
                ConfidenceAuditEntry.entity_id == entity_id,
            )
            .order_by(ConfidenceAuditEntry.audit_pk.desc())
            .limit(limit)
            .all()
        )

    def for_interaction(self, interaction_id: str) -> List[ConfidenceAuditEntry]:
        """All entries written under one interaction id, in write order."""
        return (
            self.db.query(ConfidenceAuditEntry)
            .filter(ConfidenceAuditEntry.interaction_id == interaction_id)
            .order_by(ConfidenceAuditEntry.audit_pk)
            .all()
        )

    def find_direct(
        self, entity_type: str, entity_id: str, interaction_id: str
    ) -> Optional[ConfidenceAuditEntry]:
        """The direct (non-propagated) confidence entry recorded for an interaction, if any."""
        return (
            self.db.query(ConfidenceAuditEntry)
            .filter(
                ConfidenceAuditEntry.entity_type == entity_type,
                ConfidenceAuditEntry.entity_id == entity_id,
                ConfidenceAuditEntry.interaction_id == interaction_id,
                ConfidenceAuditEntry.metric == "confidence",
                ConfidenceAuditEntry.propagated_from.is_(None),
            )
            .order_by(ConfidenceAuditEntry.audit_pk)
            .first()
        )
