"""Community notes: reputation-weighted voting, display threshold and appeals."""

import logging
import math
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from epistemic_ledger.config import settings
from epistemic_ledger.errors import EntityNotFound, InvalidState, NotAuthorized, OutOfRangeValue
from epistemic_ledger.models.fact import FactClaim
from epistemic_ledger.models.note import NOTE_TYPES, CommunityNote, CommunityNoteVote
from epistemic_ledger.services.platform import PlatformClient

logger = logging.getLogger(__name__)

MIN_VOTE_WEIGHT = 0.1
DISPLAY_BONUS = 1.5


def vote_weight(voter_reputation: float) -> float:
    """Reputation on a 0-100 scale mapped to a weight, floored at 0.1."""
    return max(MIN_VOTE_WEIGHT, voter_reputation / 100.0)


def score_votes(votes: List[CommunityNoteVote]) -> Dict[str, float]:
    """Aggregate a complete vote set into helpful / not-helpful shares."""
    helpful_weight = 0.0
    not_helpful_weight = 0.0
    for vote in votes:
        weight = vote_weight(vote.voter_reputation)
        if vote.is_helpful:
            helpful_weight += weight
        else:
            not_helpful_weight += weight

    total_weight = helpful_weight + not_helpful_weight
    if total_weight <= 0:
        return {"helpful_score": 0.0, "not_helpful_score": 0.0}
    return {
        "helpful_score": helpful_weight / total_weight,
        "not_helpful_score": not_helpful_weight / total_weight,
    }


class CommunityNoteGovernor:
    """State machine for community notes.

    draft -> voting -> displayed | hidden; a displayed note may be appealed
    once by the author of the content it annotates, and an admin resolves the
    appeal (upheld hides the note for good, rejected leaves it as is).
    """

    def __init__(self, db: Session, platform: Optional[PlatformClient] = None):
        self.db = db
        self.platform = platform or PlatformClient()
        self.default_display_threshold = settings.DEFAULT_DISPLAY_THRESHOLD

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_note(
        self,
        author_id: str,
        content: str,
        note_type: str,
        post_id: Optional[str] = None,
        fact_claim_id: Optional[str] = None,
        confidence_impact: Optional[float] = None,
    ) -> CommunityNote:
        """
        Create a note on exactly one of a post or a fact claim.

        Raises:
            InvalidState: If zero or two targets are given, or the note type is unknown
            EntityNotFound: If the fact claim does not exist
            OutOfRangeValue: If confidence_impact is outside [-1, 1]
        """
        if bool(post_id) == bool(fact_claim_id):
            raise InvalidState("A note must target exactly one of a post or a fact claim")
        if note_type not in NOTE_TYPES:
            raise InvalidState(f"note_type must be one of: {', '.join(NOTE_TYPES)}")
        if confidence_impact is not None and not -1.0 <= confidence_impact <= 1.0:
            raise OutOfRangeValue(f"confidence_impact must be within [-1, 1], got {confidence_impact}")

        if fact_claim_id and self.db.query(FactClaim.id).filter(FactClaim.id == fact_claim_id).first() is None:
            raise EntityNotFound(f"Fact claim {fact_claim_id} not found")

        note = CommunityNote(
            author_id=author_id,
            content=content,
            note_type=note_type,
            post_id=post_id,
            fact_claim_id=fact_claim_id,
            confidence_impact=confidence_impact,
            display_threshold=self.default_display_threshold,
        )
        try:
            self.db.add(note)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Created community note {note.id} by {author_id} ({note_type})")
        return note

    def vote_on_note(self, note_id: str, voter_id: str, is_helpful: bool) -> Dict:
        """
        Record a vote and recompute the note's scores from the full vote set.

        Raises:
            InvalidState: If the note does not exist
        """
        try:
            note = self._lock_note(note_id)
            if note is None:
                raise InvalidState(f"Cannot vote on nonexistent note {note_id}")

            old_helpful_score = note.helpful_score
            existing = self._find_vote(note_id, voter_id)

            if existing is not None and existing.is_helpful == is_helpful:
                self.db.rollback()
                return {
                    "note_id": note_id,
                    "old_helpful_score": old_helpful_score,
                    "new_helpful_score": old_helpful_score,
                    "should_display": note.is_displayed,
                }

            # Reputation is fetched once and frozen on the vote row
            reputation = self.platform.get_reputation(voter_id)

            if existing is not None:
                self.db.delete(existing)
                self.db.flush()

            self._insert_vote(note_id, voter_id, is_helpful, reputation)
            self._recompute(note)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Vote on note {note_id} by {voter_id}: helpful={is_helpful}, "
            f"score {old_helpful_score:.3f} -> {note.helpful_score:.3f}, "
            f"displayed={note.is_displayed}, votes={note.vote_count}"
        )
        return {
            "note_id": note_id,
            "old_helpful_score": old_helpful_score,
            "new_helpful_score": note.helpful_score,
            "should_display": note.is_displayed,
        }

    def _insert_vote(self, note_id: str, voter_id: str, is_helpful: bool, reputation: float) -> None:
        try:
            with self.db.begin_nested():
                self.db.add(
                    CommunityNoteVote(
                        note_id=note_id,
                        voter_id=voter_id,
                        is_helpful=is_helpful,
                        voter_reputation=reputation,
                    )
                )
        except IntegrityError:
            # Lost the race on (note_id, voter_id): update the winner's row instead
            logger.info(f"Concurrent vote by {voter_id} on note {note_id}, retrying as update")
            vote = self._find_vote(note_id, voter_id)
            vote.is_helpful = is_helpful
            vote.voter_reputation = reputation
            self.db.flush()

    def _recompute(self, note: CommunityNote) -> None:
        """Full recomputation from the authoritative vote rows."""
        votes = self.db.query(CommunityNoteVote).filter(CommunityNoteVote.note_id == note.id).all()
        scores = score_votes(votes)

        note.helpful_score = scores["helpful_score"]
        note.not_helpful_score = scores["not_helpful_score"]
        note.vote_count = len(votes)
        # An upheld appeal hides the note regardless of later votes
        note.is_displayed = (
            note.appeal_outcome != "upheld" and note.helpful_score >= note.display_threshold
        )

    def appeal_note(self, note_id: str, appellant_id: str, reason: str) -> Dict:
        """
        Appeal a displayed note. Only the annotated content's author may appeal, once.

        Raises:
            EntityNotFound: If the note does not exist
            NotAuthorized: If the appellant did not author the annotated content
            InvalidState: If the note is not displayed or was already appealed
        """
        try:
            note = self._lock_note(note_id)
            if note is None:
                raise EntityNotFound(f"Note {note_id} not found")

            if self._target_author(note) != appellant_id:
                raise NotAuthorized("Only the original author can appeal a note")
            if note.is_appealed:
                raise InvalidState("Note has already been appealed")
            if not note.is_displayed:
                raise InvalidState("Can only appeal displayed notes")

            note.is_appealed = True
            note.appealed_by = appellant_id
            note.appeal_reason = reason
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Community note {note_id} appealed by {appellant_id}")
        return {"note_id": note_id, "status": "appealed"}

    def _target_author(self, note: CommunityNote) -> Optional[str]:
        if note.fact_claim_id:
            fact = self.db.query(FactClaim).filter(FactClaim.id == note.fact_claim_id).first()
            return fact.source_user_id if fact else None
        return self.platform.get_post_author(note.post_id)

    def resolve_appeal(self, note_id: str, admin_id: str, upheld: bool, reason: str) -> Dict:
        """
        Resolve a pending appeal (admin only).

        Raises:
            EntityNotFound: If the note does not exist
            NotAuthorized: If the caller is not an admin
            InvalidState: If there is no pending appeal
        """
        if not self.platform.is_admin(admin_id):
            raise NotAuthorized("Only admins can resolve appeals")

        try:
            note = self._lock_note(note_id)
            if note is None:
                raise EntityNotFound(f"Note {note_id} not found")
            if not note.is_appealed or note.appeal_resolved:
                raise InvalidState("Note has no pending appeal")

            outcome = "upheld" if upheld else "rejected"
            note.appeal_resolved = True
            note.appeal_outcome = outcome
            note.resolved_by = admin_id
            note.resolution_reason = reason
            if upheld:
                note.is_displayed = False
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Appeal on note {note_id} resolved by {admin_id}: {outcome}")
        return {"note_id": note_id, "outcome": outcome}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _lock_note(self, note_id: str) -> Optional[CommunityNote]:
        return (
            self.db.query(CommunityNote)
            .filter(CommunityNote.id == note_id)
            .with_for_update()
            .first()
        )

    def _find_vote(self, note_id: str, voter_id: str) -> Optional[CommunityNoteVote]:
        return (
            self.db.query(CommunityNoteVote)
            .filter(CommunityNoteVote.note_id == note_id, CommunityNoteVote.voter_id == voter_id)
            .first()
        )

    def get_note(self, note_id: str) -> CommunityNote:
        note = self.db.query(CommunityNote).filter(CommunityNote.id == note_id).first()
        if note is None:
            raise EntityNotFound(f"Note {note_id} not found")
        return note

    def get_note_votes(self, note_id: str) -> List[CommunityNoteVote]:
        return (
            self.db.query(CommunityNoteVote)
            .filter(CommunityNoteVote.note_id == note_id)
            .order_by(CommunityNoteVote.created_at)
            .all()
        )

    def get_post_notes(self, post_id: str, include_hidden: bool = False) -> List[CommunityNote]:
        query = self.db.query(CommunityNote).filter(CommunityNote.post_id == post_id)
        if not include_hidden:
            query = query.filter(CommunityNote.is_displayed.is_(True))
        return query.order_by(
            CommunityNote.is_displayed.desc(), CommunityNote.helpful_score.desc()
        ).all()

    def get_fact_notes(self, fact_claim_id: str) -> List[CommunityNote]:
        return (
            self.db.query(CommunityNote)
            .filter(CommunityNote.fact_claim_id == fact_claim_id)
            .order_by(CommunityNote.helpful_score.desc())
            .all()
        )

    def get_pending_appeals(self) -> List[CommunityNote]:
        return (
            self.db.query(CommunityNote)
            .filter(CommunityNote.is_appealed.is_(True), CommunityNote.appeal_resolved.is_(False))
            .order_by(CommunityNote.created_at.asc())
            .all()
        )

    def get_user_notes(self, author_id: str, limit: int = 20) -> List[CommunityNote]:
        return (
            self.db.query(CommunityNote)
            .filter(CommunityNote.author_id == author_id)
            .order_by(CommunityNote.created_at.desc())
            .limit(limit)
            .all()
        )

    def get_user_votes(self, voter_id: str, limit: int = 50) -> List[CommunityNoteVote]:
        return (
            self.db.query(CommunityNoteVote)
            .filter(CommunityNoteVote.voter_id == voter_id)
            .order_by(CommunityNoteVote.created_at.desc())
            .limit(limit)
            .all()
        )

    def calculate_note_effectiveness(self, note_id: str) -> float:
        """helpful_score * sqrt(max(1, vote_count)) * display bonus; 0 for unknown notes."""
        note = self.db.query(CommunityNote).filter(CommunityNote.id == note_id).first()
        if note is None:
            return 0.0

        display_bonus = DISPLAY_BONUS if note.is_displayed else 1.0
        return note.helpful_score * math.sqrt(max(1, note.vote_count)) * display_bonus
