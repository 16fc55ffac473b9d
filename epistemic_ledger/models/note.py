"""CommunityNote and CommunityNoteVote models."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from epistemic_ledger.config import settings
from epistemic_ledger.database import Base
from epistemic_ledger.models.argument import new_id

NOTE_TYPES = ("correction", "context", "source", "clarification", "outdated")


class CommunityNote(Base):
    """Community correction attached to a post or a fact claim."""

    __tablename__ = "community_notes"

    id = Column(String(36), primary_key=True, default=new_id)
    author_id = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    note_type = Column(Text, nullable=False)
    post_id = Column(Text)
    fact_claim_id = Column(String(36), ForeignKey("fact_claims.id"))

    helpful_score = Column(Float, nullable=False, default=0.0)
    not_helpful_score = Column(Float, nullable=False, default=0.0)
    vote_count = Column(Integer, nullable=False, default=0)
    display_threshold = Column(Float, nullable=False, default=settings.DEFAULT_DISPLAY_THRESHOLD)
    is_displayed = Column(Boolean, nullable=False, default=False)

    is_appealed = Column(Boolean, nullable=False, default=False)
    appeal_resolved = Column(Boolean, nullable=False, default=False)
    appeal_outcome = Column(Text)  # 'upheld', 'rejected'
    appeal_reason = Column(Text)
    appealed_by = Column(Text)
    resolved_by = Column(Text)
    resolution_reason = Column(Text)

    confidence_impact = Column(Float)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "(post_id IS NULL) <> (fact_claim_id IS NULL)",
            name="ck_community_notes_single_target",
        ),
        Index("idx_community_notes_post_id", "post_id"),
        Index("idx_community_notes_fact_claim_id", "fact_claim_id"),
        Index("idx_community_notes_author_id", "author_id"),
        Index("idx_community_notes_is_displayed", "is_displayed"),
    )

    @property
    def state(self) -> str:
        """Lifecycle state derived from the stored flags."""
        if self.is_appealed and not self.appeal_resolved:
            return "appealed"
        if self.appeal_outcome == "upheld":
            return "hidden"
        if self.is_displayed:
            return "displayed"
        return "voting" if self.vote_count else "draft"


class CommunityNoteVote(Base):
    """A single helpful / not-helpful vote with the voter's reputation frozen."""

    __tablename__ = "community_note_votes"

    vote_pk = Column(Integer, primary_key=True, autoincrement=True)
    note_id = Column(String(36), ForeignKey("community_notes.id"), nullable=False)
    voter_id = Column(Text, nullable=False)
    is_helpful = Column(Boolean, nullable=False)
    voter_reputation = Column(Float, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("note_id", "voter_id", name="uq_note_voter"),
        Index("idx_community_note_votes_voter_id", "voter_id"),
    )
