"""Grouping of near-duplicate arguments under a cluster head."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from epistemic_ledger.config import settings
from epistemic_ledger.models.argument import Argument
from epistemic_ledger.services.similarity import SimilarityIndex

logger = logging.getLogger(__name__)


class ClusterManager:
    """Assigns arguments to clusters of near-duplicates.

    Existing clusters are never merged with each other; an argument that
    matches several clusters joins the one holding its closest match.
    """

    def __init__(self, db: Session, index: Optional[SimilarityIndex] = None):
        self.db = db
        self.index = index or SimilarityIndex(db, Argument)
        self.threshold = settings.CLUSTER_THRESHOLD
        self.candidates = settings.CLUSTER_CANDIDATES

    def assign_cluster(self, argument: Argument) -> Optional[str]:
        """
        Cluster ``argument`` with its near-duplicates, if any.

        Does not commit; the caller owns the transaction.

        Returns:
            The cluster id the argument now belongs to, or None
        """
        if argument.cluster_id:
            return argument.cluster_id

        matches = self.index.query(
            argument.embedding,
            self.candidates,
            exclude_id=argument.id,
            min_similarity=self.threshold,
        )
        if not matches:
            return None

        # Matches are ordered by similarity, so this is the closest clustered one
        for match, similarity in matches:
            if match.cluster_id:
                argument.cluster_id = match.cluster_id
                argument.is_cluster_head = False
                self.db.flush()
                logger.info(
                    f"Argument {argument.id} joined cluster {match.cluster_id} "
                    f"(similarity {similarity:.3f})"
                )
                return match.cluster_id

        members = [match for match, _ in matches]
        head = min(
            members,
            key=lambda a: (-a.confidence, a.created_at or datetime.min),
        )
        cluster_id = head.id

        for member in members:
            member.cluster_id = cluster_id
            member.is_cluster_head = member.id == head.id
        argument.cluster_id = cluster_id
        argument.is_cluster_head = False
        self.db.flush()

        logger.info(
            f"Created cluster {cluster_id} with head {head.id} and {len(members)} member(s) "
            f"for argument {argument.id}"
        )
        return cluster_id
