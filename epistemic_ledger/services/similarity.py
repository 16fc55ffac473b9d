"""Cosine-similarity nearest-neighbour queries over stored embeddings."""

import logging
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

import numpy as np
from sqlalchemy.orm import Query, Session

from epistemic_ledger.config import settings
from epistemic_ledger.models.argument import Argument
from epistemic_ledger.models.fact import FactClaim
from epistemic_ledger.services.embeddings import EmbeddingService

logger = logging.getLogger(__name__)

DISTANCE_SLACK = 1e-6


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """
    Cosine similarity of two equal-length vectors.

    Returns 0.0 instead of raising when either vector is missing, empty,
    zero-norm, non-finite or the lengths differ.
    """
    if a is None or b is None:
        return 0.0

    vec_a = np.asarray(a, dtype=np.float64).ravel()
    vec_b = np.asarray(b, dtype=np.float64).ravel()
    if vec_a.size == 0 or vec_a.shape != vec_b.shape:
        return 0.0

    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)
    if norm_a == 0 or norm_b == 0 or not np.isfinite(norm_a) or not np.isfinite(norm_b):
        return 0.0

    similarity = float(np.dot(vec_a, vec_b) / (norm_a * norm_b))
    # Rounding can push identical vectors slightly past 1
    return max(-1.0, min(1.0, similarity))


class SimilarityIndex:
    """Nearest-neighbour query over one entity type (arguments or facts).

    On PostgreSQL candidates are shortlisted by pgvector cosine distance and
    then reranked in numpy; other dialects (SQLite in tests) scan the table.
    """

    def __init__(self, db: Session, model=Argument, vector_shortlist: Optional[bool] = None):
        """Initialize the index for ``model`` (Argument or FactClaim)."""
        self.db = db
        self.model = model
        if vector_shortlist is None:
            vector_shortlist = db.get_bind().dialect.name == "postgresql"
        self.vector_shortlist = vector_shortlist
        self.shortlist_size = settings.SIMILARITY_SHORTLIST

    def _candidates(
        self,
        vector: Sequence[float],
        k: int,
        exclude_id: Optional[str] = None,
        min_similarity: float = 0.0,
    ) -> Query:
        query = self.db.query(self.model)
        if exclude_id is not None:
            query = query.filter(self.model.id != exclude_id)
        if not self.vector_shortlist:
            return query

        distance = self.model.embedding.cosine_distance([float(v) for v in vector])
        # pgvector computes in float32, so leave slack at the boundary
        max_distance = 1.0 - min_similarity + DISTANCE_SLACK
        return (
            query.filter(distance <= max_distance)
            .order_by(distance, self.model.created_at.desc())
            .limit(max(k, self.shortlist_size))
        )

    def query(
        self,
        vector: Sequence[float],
        k: int,
        exclude_id: Optional[str] = None,
        min_similarity: float = 0.0,
    ) -> List[Tuple[object, float]]:
        """
        Find the ``k`` entities most similar to ``vector``.

        Args:
            vector: Query embedding
            k: Maximum number of results
            exclude_id: Entity id to leave out (usually the query entity)
            min_similarity: Results below this similarity are dropped before truncation

        Returns:
            List of (entity, similarity), similarity descending, ties broken by
            most recent creation time
        """
        if k <= 0:
            return []

        scored = []
        for entity in self._candidates(vector, k, exclude_id, min_similarity).all():
            if entity.embedding is None:
                continue
            similarity = cosine_similarity(vector, entity.embedding)
            if similarity >= min_similarity:
                scored.append((entity, similarity))

        scored.sort(
            key=lambda pair: (pair[1], pair[0].created_at or datetime.min),
            reverse=True,
        )
        return scored[:k]


def find_similar_arguments(
    db: Session,
    embedding: Sequence[float],
    limit: int = 10,
    exclude_id: Optional[str] = None,
    min_similarity: float = 0.0,
) -> List[Tuple[Argument, float]]:
    """Arguments similar to a precomputed embedding."""
    return SimilarityIndex(db, Argument).query(
        embedding, limit, exclude_id=exclude_id, min_similarity=min_similarity
    )


def find_similar_facts(
    db: Session,
    embedding_service: EmbeddingService,
    claim: str,
    limit: int = 5,
    min_similarity: float = 0.8,
) -> List[Tuple[FactClaim, float]]:
    """Facts similar to a claim text; the text is embedded first."""
    embedding = embedding_service.embed_text(claim)
    results = SimilarityIndex(db, FactClaim).query(
        embedding, limit, min_similarity=min_similarity
    )
    logger.info(f"Found {len(results)} facts similar to query claim")
    return results
