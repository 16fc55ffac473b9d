"""Confidence propagation: direct updates, similarity ripples and dependency cascades.

Every mutation is request-scoped and runs in one transaction:

1. the target entity is updated and audited;
2. up to PROPAGATION_LIMIT same-type neighbours above PROPAGATION_THRESHOLD
   receive ``delta * similarity * PROPAGATION_DAMPENING`` (exactly one hop,
   neighbours never re-propagate);
3. effective confidence is recomputed for arguments depending on any fact moved
   in steps 1 or 2, and for arguments whose own confidence moved.

Audit entries are written in that order.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from epistemic_ledger.config import settings
from epistemic_ledger.errors import EntityNotFound, OutOfRangeValue
from epistemic_ledger.models.argument import Argument, ArgumentFactDependency
from epistemic_ledger.models.fact import FactClaim
from epistemic_ledger.services.audit_log import AuditLog
from epistemic_ledger.services.clustering import ClusterManager
from epistemic_ledger.services.ledger_store import (
    LedgerStore,
    clamp,
    record_confidence,
    require_unit_interval,
)
from epistemic_ledger.services.similarity import SimilarityIndex

logger = logging.getLogger(__name__)

ENTITY_MODELS = {"argument": Argument, "fact_claim": FactClaim}

# Changes smaller than this are treated as no-ops
EPSILON = 1e-12


def effective_confidence(confidence: float, dependencies: Iterable[Tuple[float, float]]) -> float:
    """
    Discount an argument's confidence by the distrust of the facts it rests on.

    Args:
        confidence: The argument's own confidence
        dependencies: (fact_confidence, dependency_strength) pairs

    Returns:
        confidence * prod(1 - strength * (1 - fact_confidence)), clamped to [0, 1]
    """
    value = clamp(confidence)
    for fact_confidence, strength in dependencies:
        value *= 1.0 - clamp(strength) * (1.0 - clamp(fact_confidence))
    return clamp(value)


class PropagationEngine:
    """Applies confidence mutations to the ledger."""

    def __init__(
        self,
        db: Session,
        store: Optional[LedgerStore] = None,
        audit: Optional[AuditLog] = None,
        cluster_manager: Optional[ClusterManager] = None,
        propagation_threshold: Optional[float] = None,
        propagation_limit: Optional[int] = None,
        dampening: Optional[float] = None,
        support_delta: Optional[float] = None,
        refute_delta: Optional[float] = None,
        cite_delta: Optional[float] = None,
        challenge_delta: Optional[float] = None,
    ):
        self.db = db
        self.cluster_manager = cluster_manager or ClusterManager(db)
        self.store = store or LedgerStore(db, cluster_manager=self.cluster_manager)
        self.audit = audit or AuditLog(db)

        def pick(value, default):
            return default if value is None else value

        self.propagation_threshold = pick(propagation_threshold, settings.PROPAGATION_THRESHOLD)
        self.propagation_limit = pick(propagation_limit, settings.PROPAGATION_LIMIT)
        self.dampening = pick(dampening, settings.PROPAGATION_DAMPENING)
        self.support_delta = pick(support_delta, settings.SUPPORT_DELTA)
        self.refute_delta = pick(refute_delta, settings.REFUTE_DELTA)
        self.cite_delta = pick(cite_delta, settings.CITE_DELTA)
        self.challenge_delta = pick(challenge_delta, settings.CHALLENGE_DELTA)
        self.cluster_recheck_delta = settings.CLUSTER_RECHECK_DELTA

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def update_confidence(
        self,
        entity_type: str,
        entity_id: str,
        new_confidence: float,
        reason: str,
        interaction_id: Optional[str] = None,
    ) -> Dict:
        """Set a confidence directly. No similarity propagation."""
        require_unit_interval("new_confidence", new_confidence)
        return self._mutate(
            entity_type,
            entity_id,
            reason=reason,
            new_confidence=new_confidence,
            propagate=False,
            interaction_id=interaction_id,
        )

    def support_argument(
        self, argument_id: str, user_id: str, interaction_id: Optional[str] = None
    ) -> Dict:
        return self._mutate(
            "argument",
            argument_id,
            reason=f"Supported by user {user_id}",
            delta=abs(self.support_delta),
            counter="support_count",
            interaction_id=interaction_id,
        )

    def refute_argument(
        self, argument_id: str, user_id: str, interaction_id: Optional[str] = None
    ) -> Dict:
        return self._mutate(
            "argument",
            argument_id,
            reason=f"Refuted by user {user_id}",
            delta=-abs(self.refute_delta),
            counter="refute_count",
            interaction_id=interaction_id,
        )

    def cite_fact(
        self,
        fact_id: str,
        context_post_id: Optional[str] = None,
        interaction_id: Optional[str] = None,
    ) -> Dict:
        reason = f"Cited in post {context_post_id}" if context_post_id else "Cited"
        return self._mutate(
            "fact_claim",
            fact_id,
            reason=reason,
            delta=abs(self.cite_delta),
            counter="citation_count",
            interaction_id=interaction_id,
        )

    def challenge_fact(
        self, fact_id: str, reason: str, interaction_id: Optional[str] = None
    ) -> Dict:
        return self._mutate(
            "fact_claim",
            fact_id,
            reason=f"Challenge: {reason}",
            delta=-abs(self.challenge_delta),
            counter="challenge_count",
            interaction_id=interaction_id,
        )

    def link_to_fact(
        self, argument_id: str, fact_id: str, dependency_strength: float = 1.0
    ) -> ArgumentFactDependency:
        """Create or update a dependency, then recompute that argument's effective confidence."""
        require_unit_interval("dependency_strength", dependency_strength)

        try:
            argument = self.store.get_argument(argument_id, for_update=True)
            self.store.get_fact(fact_id)

            link = self._upsert_dependency(argument_id, fact_id, dependency_strength)
            self._recompute_effective(argument, reason=f"Linked to fact {fact_id}", source_id=fact_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Linked argument {argument_id} to fact {fact_id} "
            f"(strength {dependency_strength:.2f}, effective {argument.effective_confidence})"
        )
        return link

    def recalculate_effective_confidence(self, argument_id: str) -> Optional[float]:
        """Recompute one argument's effective confidence from its dependencies."""
        try:
            argument = self.store.get_argument(argument_id, for_update=True)
            self._recompute_effective(argument, reason="Recalculated")
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return argument.effective_confidence

    # ------------------------------------------------------------------
    # Mutation pipeline
    # ------------------------------------------------------------------

    def _load(self, entity_type: str, entity_id: str):
        if entity_type == "argument":
            return self.store.get_argument(entity_id, for_update=True)
        if entity_type == "fact_claim":
            return self.store.get_fact(entity_id, for_update=True)
        raise EntityNotFound(f"Unknown entity type {entity_type}")

    def _lock_neighbour(self, entity_type: str, entity_id: str):
        if entity_type == "argument":
            return self.store.find_argument(entity_id, for_update=True)
        return self.store.find_fact(entity_id, for_update=True)

    def _mutate(
        self,
        entity_type: str,
        entity_id: str,
        reason: str,
        delta: Optional[float] = None,
        new_confidence: Optional[float] = None,
        counter: Optional[str] = None,
        propagate: bool = True,
        interaction_id: Optional[str] = None,
    ) -> Dict:
        try:
            entity = self._load(entity_type, entity_id)

            if interaction_id:
                previous = self.audit.find_direct(entity_type, entity_id, interaction_id)
                if previous is not None:
                    logger.info(
                        f"Interaction {interaction_id} already applied to {entity_type} {entity_id}"
                    )
                    result = self._replay(entity_type, entity_id, previous)
                    self.db.rollback()
                    return result

            if counter:
                setattr(entity, counter, (getattr(entity, counter) or 0) + 1)

            target = entity.confidence + delta if delta is not None else new_confidence
            new_value = clamp(target)
            old_value = record_confidence(entity, new_value, reason)
            self.audit.append(
                entity_type, entity.id, old_value, new_value, reason, interaction_id=interaction_id
            )
            applied = new_value - old_value

            propagated: List[Tuple[object, float]] = []
            if propagate and abs(applied) > EPSILON:
                propagated = self._propagate(entity_type, entity, applied, interaction_id)

            affected = self._cascade(entity_type, entity, applied, propagated, interaction_id)

            if (
                entity_type == "argument"
                and not entity.cluster_id
                and abs(applied) >= self.cluster_recheck_delta
            ):
                self.cluster_manager.assign_cluster(entity)

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Updated {entity_type} {entity_id}: {old_value:.3f} -> {new_value:.3f} "
            f"({reason}); propagated to {len(propagated)}, cascaded to {len(affected)}"
        )
        return {
            "entity_type": entity_type,
            "entity_id": entity_id,
            "old_confidence": old_value,
            "new_confidence": new_value,
            "propagated_to": [neighbour.id for neighbour, _ in propagated],
            "affected_arguments": affected,
            "replayed": False,
        }

    def _replay(self, entity_type: str, entity_id: str, previous) -> Dict:
        """Result of an already-applied interaction, rebuilt from the audit log."""
        entries = self.audit.for_interaction(previous.interaction_id)
        propagated_to = [
            e.entity_id
            for e in entries
            if e.propagated_from == entity_id and e.metric == "confidence"
        ]
        affected = [
            e.entity_id
            for e in entries
            if e.metric == "effective_confidence" and e.entity_id != entity_id
        ]
        return {
            "entity_type": entity_type,
            "entity_id": entity_id,
            "old_confidence": previous.old_confidence,
            "new_confidence": previous.new_confidence,
            "propagated_to": propagated_to,
            "affected_arguments": list(dict.fromkeys(affected)),
            "replayed": True,
        }

    def _propagate(
        self, entity_type: str, entity, delta: float, interaction_id: Optional[str]
    ) -> List[Tuple[object, float]]:
        """One-hop ripple to similar entities of the same type."""
        index = SimilarityIndex(self.db, ENTITY_MODELS[entity_type])
        neighbours = index.query(
            entity.embedding,
            self.propagation_limit,
            exclude_id=entity.id,
            min_similarity=self.propagation_threshold,
        )

        propagated = []
        for neighbour, similarity in neighbours:
            shift = delta * similarity * self.dampening
            try:
                with self.db.begin_nested():
                    changed = self._write_propagated(
                        entity_type, neighbour, shift, entity.id, similarity, interaction_id
                    )
            except SQLAlchemyError as e:
                logger.warning(
                    f"Skipping propagation from {entity.id} to {neighbour.id}: {e}"
                )
                continue
            if changed:
                propagated.append((neighbour, similarity))

        return propagated

    def _write_propagated(
        self,
        entity_type: str,
        neighbour,
        shift: float,
        source_id: str,
        similarity: float,
        interaction_id: Optional[str],
    ) -> bool:
        # Re-read under a row lock; the similarity scan does not lock
        current = self._lock_neighbour(entity_type, neighbour.id)
        if current is None:
            return False

        new_value = clamp(current.confidence + shift)
        if abs(new_value - current.confidence) <= EPSILON:
            return False

        reason = f"Propagated from {entity_type} {source_id}"
        old_value = record_confidence(current, new_value, reason)
        self.audit.append(
            entity_type,
            neighbour.id,
            old_value,
            new_value,
            reason,
            propagated_from=source_id,
            cosine_similarity=similarity,
            interaction_id=interaction_id,
        )
        return True

    def _cascade(
        self,
        entity_type: str,
        entity,
        applied: float,
        propagated: List[Tuple[object, float]],
        interaction_id: Optional[str],
    ) -> List[str]:
        """Recompute effective confidence one dependency hop away. Never propagates further."""
        affected: List[str] = []

        if entity_type == "fact_claim":
            if abs(applied) <= EPSILON:
                return affected
            # Neighbours were written before this point, so each recompute sees final values
            moved_facts = [entity] + [neighbour for neighbour, _ in propagated]
            for fact in moved_facts:
                for link in self.store.get_dependents(fact.id):
                    argument = self.store.find_argument(link.argument_id)
                    if argument is None:
                        continue
                    changed = self._recompute_effective(
                        argument,
                        reason=f"Fact {fact.id} confidence changed",
                        source_id=fact.id,
                        interaction_id=interaction_id,
                    )
                    if (fact is entity or changed) and argument.id not in affected:
                        affected.append(argument.id)
            return affected

        # Arguments: own confidence feeds the effective score
        if abs(applied) > EPSILON:
            self._recompute_effective(
                entity, reason="Own confidence changed", interaction_id=interaction_id
            )
        for neighbour, _ in propagated:
            if self._recompute_effective(
                neighbour,
                reason="Own confidence changed",
                source_id=entity.id,
                interaction_id=interaction_id,
            ):
                affected.append(neighbour.id)
        return affected

    def _recompute_effective(
        self,
        argument: Argument,
        reason: str,
        source_id: Optional[str] = None,
        interaction_id: Optional[str] = None,
    ) -> bool:
        """
        Refresh ``argument.effective_confidence``.

        Stays null while the argument has no dependencies. Returns True when
        the stored value changed (and an audit entry was written).
        """
        rows = (
            self.db.query(ArgumentFactDependency.dependency_strength, FactClaim.confidence)
            .join(FactClaim, FactClaim.id == ArgumentFactDependency.fact_claim_id)
            .filter(ArgumentFactDependency.argument_id == argument.id)
            .all()
        )
        if not rows:
            return False

        value = effective_confidence(
            argument.confidence, [(fact_confidence, strength) for strength, fact_confidence in rows]
        )
        old_value = argument.effective_confidence
        if old_value is not None and abs(old_value - value) <= EPSILON:
            return False

        argument.effective_confidence = value
        self.audit.append(
            "argument",
            argument.id,
            old_value,
            value,
            reason,
            propagated_from=source_id,
            interaction_id=interaction_id,
            metric="effective_confidence",
        )
        return True

    def _upsert_dependency(
        self, argument_id: str, fact_id: str, dependency_strength: float
    ) -> ArgumentFactDependency:
        link = (
            self.db.query(ArgumentFactDependency)
            .filter(
                ArgumentFactDependency.argument_id == argument_id,
                ArgumentFactDependency.fact_claim_id == fact_id,
            )
            .first()
        )
        if link is None:
            try:
                with self.db.begin_nested():
                    link = ArgumentFactDependency(
                        argument_id=argument_id,
                        fact_claim_id=fact_id,
                        dependency_strength=dependency_strength,
                    )
                    self.db.add(link)
            except IntegrityError:
                # A concurrent request created the same pair first
                link = (
                    self.db.query(ArgumentFactDependency)
                    .filter(
                        ArgumentFactDependency.argument_id == argument_id,
                        ArgumentFactDependency.fact_claim_id == fact_id,
                    )
                    .one()
                )
        link.dependency_strength = dependency_strength
        self.db.flush()
        return link
