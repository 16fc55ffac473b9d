"""SQLAlchemy ORM models."""

from epistemic_ledger.models.argument import Argument, ArgumentFactDependency
from epistemic_ledger.models.audit import ConfidenceAuditEntry
from epistemic_ledger.models.fact import FactClaim
from epistemic_ledger.models.note import NOTE_TYPES, CommunityNote, CommunityNoteVote

__all__ = [
    "Argument",
    "ArgumentFactDependency",
    "ConfidenceAuditEntry",
    "FactClaim",
    "CommunityNote",
    "CommunityNoteVote",
    "NOTE_TYPES",
]
