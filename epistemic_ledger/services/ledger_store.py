"""Durable state and read APIs for arguments and fact claims."""

import logging
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from epistemic_ledger.config import settings
from epistemic_ledger.errors import EmbeddingMissing, EntityNotFound, OutOfRangeValue
from epistemic_ledger.models.argument import Argument, ArgumentFactDependency
from epistemic_ledger.models.fact import FactClaim
from epistemic_ledger.services.clustering import ClusterManager

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.5


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def require_unit_interval(name: str, value: Optional[float]) -> None:
    """Reject explicit caller input outside [0, 1]."""
    if value is not None and not 0.0 <= value <= 1.0:
        raise OutOfRangeValue(f"{name} must be within [0, 1], got {value}")


def history_entry(old: Optional[float], new: float, reason: str) -> dict:
    return {
        "old": old,
        "new": new,
        "reason": reason,
        "timestamp": datetime.utcnow().isoformat(),
    }


def record_confidence(entity, new_confidence: float, reason: str) -> float:
    """
    Set an entity's confidence and append to its history.

    Returns the previous confidence. The history list is replaced rather
    than mutated so the JSON column is flagged dirty.
    """
    old_confidence = entity.confidence
    entity.confidence = new_confidence
    entity.confidence_history = list(entity.confidence_history or []) + [
        history_entry(old_confidence, new_confidence, reason)
    ]
    return old_confidence


def _require_embedding(embedding: Optional[Sequence[float]]) -> List[float]:
    if embedding is None or len(embedding) == 0:
        raise EmbeddingMissing("A precomputed embedding is required")
    if len(embedding) != settings.EMBED_DIM:
        raise EmbeddingMissing(
            f"Embedding dimension mismatch: expected {settings.EMBED_DIM}, got {len(embedding)}"
        )
    return [float(v) for v in embedding]


class LedgerStore:
    """CRUD over Argument and FactClaim."""

    def __init__(self, db: Session, cluster_manager: Optional[ClusterManager] = None):
        self.db = db
        self.cluster_manager = cluster_manager or ClusterManager(db)
        self.seed_from_quality_signals = settings.SEED_FROM_QUALITY_SIGNALS

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_argument(
        self,
        content: str,
        embedding: Optional[Sequence[float]],
        source_post_id: str,
        source_user_id: str,
        summary: Optional[str] = None,
        logical_validity: Optional[float] = None,
        evidence_quality: Optional[float] = None,
        coherence: Optional[float] = None,
        entropy_score: Optional[float] = None,
    ) -> Argument:
        """
        Persist a new argument and check it for clustering.

        Raises:
            EmbeddingMissing: If no usable embedding is supplied
            OutOfRangeValue: If a quality signal is outside [0, 1]
        """
        vector = _require_embedding(embedding)
        signals = {
            "logical_validity": logical_validity,
            "evidence_quality": evidence_quality,
            "coherence": coherence,
            "entropy_score": entropy_score,
        }
        for name, value in signals.items():
            require_unit_interval(name, value)

        seed = self._seed_confidence(logical_validity, evidence_quality, coherence)

        argument = Argument(
            content=content,
            summary=summary,
            embedding=vector,
            confidence=seed,
            confidence_history=[history_entry(None, seed, "initial")],
            source_post_id=source_post_id,
            source_user_id=source_user_id,
            **signals,
        )

        try:
            self.db.add(argument)
            self.db.flush()
            self.cluster_manager.assign_cluster(argument)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Created argument {argument.id} (confidence {seed:.3f})")
        return argument

    def _seed_confidence(self, *signals: Optional[float]) -> float:
        """Neutral 0.5, or the mean of the supplied quality signals when enabled."""
        present = [s for s in signals if s is not None]
        if not self.seed_from_quality_signals or not present:
            return DEFAULT_CONFIDENCE
        return clamp(sum(present) / len(present))

    def create_fact(
        self,
        claim: str,
        embedding: Optional[Sequence[float]],
        initial_confidence: Optional[float] = None,
        source_post_id: Optional[str] = None,
        source_user_id: Optional[str] = None,
    ) -> FactClaim:
        """
        Persist a new fact claim.

        Raises:
            EmbeddingMissing: If no usable embedding is supplied
            OutOfRangeValue: If initial_confidence is outside [0, 1]
        """
        vector = _require_embedding(embedding)
        require_unit_interval("initial_confidence", initial_confidence)
        seed = DEFAULT_CONFIDENCE if initial_confidence is None else initial_confidence

        fact = FactClaim(
            claim=claim,
            embedding=vector,
            confidence=seed,
            confidence_history=[history_entry(None, seed, "initial")],
            source_post_id=source_post_id,
            source_user_id=source_user_id,
        )

        try:
            self.db.add(fact)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Created fact claim {fact.id} (confidence {seed:.3f})")
        return fact

    # ------------------------------------------------------------------
    # Argument reads
    # ------------------------------------------------------------------

    def find_argument(self, argument_id: str, for_update: bool = False) -> Optional[Argument]:
        """Locked reads also refresh any copy already in the session."""
        query = self.db.query(Argument).filter(Argument.id == argument_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def get_argument(self, argument_id: str, for_update: bool = False) -> Argument:
        argument = self.find_argument(argument_id, for_update=for_update)
        if argument is None:
            raise EntityNotFound(f"Argument {argument_id} not found")
        return argument

    def get_cluster_arguments(self, cluster_id: str) -> List[Argument]:
        return (
            self.db.query(Argument)
            .filter(Argument.cluster_id == cluster_id)
            .order_by(Argument.confidence.desc())
            .all()
        )

    def get_post_arguments(self, post_id: str) -> List[Argument]:
        return (
            self.db.query(Argument)
            .filter(Argument.source_post_id == post_id)
            .order_by(Argument.created_at.desc())
            .all()
        )

    def get_top_arguments(self, limit: int = 20) -> List[Argument]:
        return self.db.query(Argument).order_by(Argument.confidence.desc()).limit(limit).all()

    def get_arguments_below(self, threshold: float, limit: int = 20) -> List[Argument]:
        return (
            self.db.query(Argument)
            .filter(Argument.confidence < threshold)
            .order_by(Argument.confidence.asc())
            .limit(limit)
            .all()
        )

    def get_arguments_above(self, threshold: float, limit: int = 20) -> List[Argument]:
        return (
            self.db.query(Argument)
            .filter(Argument.confidence >= threshold)
            .order_by(Argument.confidence.desc())
            .limit(limit)
            .all()
        )

    # ------------------------------------------------------------------
    # Fact reads
    # ------------------------------------------------------------------

    def find_fact(self, fact_id: str, for_update: bool = False) -> Optional[FactClaim]:
        query = self.db.query(FactClaim).filter(FactClaim.id == fact_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def get_fact(self, fact_id: str, for_update: bool = False) -> FactClaim:
        fact = self.find_fact(fact_id, for_update=for_update)
        if fact is None:
            raise EntityNotFound(f"Fact claim {fact_id} not found")
        return fact

    def get_low_confidence_facts(
        self, threshold: float = settings.LOW_CONFIDENCE_THRESHOLD, limit: int = 20
    ) -> List[FactClaim]:
        """Facts below the threshold, i.e. potentially debunked."""
        return (
            self.db.query(FactClaim)
            .filter(FactClaim.confidence < threshold)
            .order_by(FactClaim.confidence.asc())
            .limit(limit)
            .all()
        )

    def get_established_facts(
        self, threshold: float = settings.ESTABLISHED_THRESHOLD, limit: int = 20
    ) -> List[FactClaim]:
        return (
            self.db.query(FactClaim)
            .filter(FactClaim.confidence >= threshold)
            .order_by(FactClaim.confidence.desc())
            .limit(limit)
            .all()
        )

    def get_post_facts(self, post_id: str) -> List[FactClaim]:
        return (
            self.db.query(FactClaim)
            .filter(FactClaim.source_post_id == post_id)
            .order_by(FactClaim.created_at.desc())
            .all()
        )

    def search_facts(self, query: str, limit: int = 10) -> List[FactClaim]:
        """Case-insensitive substring match on claim text."""
        if not query or not query.strip():
            return []
        return (
            self.db.query(FactClaim)
            .filter(FactClaim.claim.ilike(f"%{query.strip()}%"))
            .order_by(FactClaim.confidence.desc())
            .limit(limit)
            .all()
        )

    # ------------------------------------------------------------------
    # Dependencies
    # ------------------------------------------------------------------

    def get_dependencies(self, argument_id: str) -> List[ArgumentFactDependency]:
        """Fact dependencies of one argument."""
        return (
            self.db.query(ArgumentFactDependency)
            .filter(ArgumentFactDependency.argument_id == argument_id)
            .order_by(ArgumentFactDependency.dependency_pk)
            .all()
        )

    def get_dependents(self, fact_id: str) -> List[ArgumentFactDependency]:
        """Dependencies pointing at one fact."""
        return (
            self.db.query(ArgumentFactDependency)
            .filter(ArgumentFactDependency.fact_claim_id == fact_id)
            .order_by(ArgumentFactDependency.dependency_pk)
            .all()
        )
