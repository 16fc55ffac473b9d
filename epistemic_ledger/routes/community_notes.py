"""Community note routes."""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from epistemic_ledger.database import get_db
from epistemic_ledger.dependencies import get_platform_client
from epistemic_ledger.schemas.note import (
    AppealRequest,
    AppealResponse,
    EffectivenessResponse,
    NoteCreate,
    NoteResponse,
    ResolveAppealRequest,
    ResolveAppealResponse,
    VoteRecord,
    VoteRequest,
    VoteResponse,
)
from epistemic_ledger.services.community_notes import CommunityNoteGovernor
from epistemic_ledger.services.platform import PlatformClient

router = APIRouter(prefix="/community-notes", tags=["community-notes"])


def get_governor(
    db: Session = Depends(get_db),
    platform: PlatformClient = Depends(get_platform_client),
) -> CommunityNoteGovernor:
    return CommunityNoteGovernor(db, platform=platform)


@router.post("", response_model=NoteResponse, status_code=201)
def create_note(data: NoteCreate, governor: CommunityNoteGovernor = Depends(get_governor)):
    return governor.create_note(
        author_id=data.author_id,
        content=data.content,
        note_type=data.note_type,
        post_id=data.post_id,
        fact_claim_id=data.fact_claim_id,
        confidence_impact=data.confidence_impact,
    )


@router.get("/appeals", response_model=List[NoteResponse])
def pending_appeals(governor: CommunityNoteGovernor = Depends(get_governor)):
    """Appealed notes awaiting admin review, oldest first."""
    return governor.get_pending_appeals()


@router.get("/post/{post_id}", response_model=List[NoteResponse])
def post_notes(
    post_id: str,
    include_hidden: bool = False,
    governor: CommunityNoteGovernor = Depends(get_governor),
):
    return governor.get_post_notes(post_id, include_hidden=include_hidden)


@router.get("/fact/{fact_claim_id}", response_model=List[NoteResponse])
def fact_notes(fact_claim_id: str, governor: CommunityNoteGovernor = Depends(get_governor)):
    return governor.get_fact_notes(fact_claim_id)


@router.get("/user/{user_id}", response_model=List[NoteResponse])
def user_notes(
    user_id: str, limit: int = 20, governor: CommunityNoteGovernor = Depends(get_governor)
):
    return governor.get_user_notes(user_id, limit)


@router.get("/user/{user_id}/votes", response_model=List[VoteRecord])
def user_votes(
    user_id: str, limit: int = 50, governor: CommunityNoteGovernor = Depends(get_governor)
):
    return governor.get_user_votes(user_id, limit)


@router.get("/{note_id}", response_model=NoteResponse)
def get_note(note_id: str, governor: CommunityNoteGovernor = Depends(get_governor)):
    return governor.get_note(note_id)


@router.get("/{note_id}/votes", response_model=List[VoteRecord])
def note_votes(note_id: str, governor: CommunityNoteGovernor = Depends(get_governor)):
    return governor.get_note_votes(note_id)


@router.get("/{note_id}/effectiveness", response_model=EffectivenessResponse)
def note_effectiveness(note_id: str, governor: CommunityNoteGovernor = Depends(get_governor)):
    """Weight used by the reputation service to reward note authors."""
    return EffectivenessResponse(
        note_id=note_id,
        effectiveness=governor.calculate_note_effectiveness(note_id),
    )


@router.post("/{note_id}/vote", response_model=VoteResponse)
def vote_on_note(
    note_id: str, data: VoteRequest, governor: CommunityNoteGovernor = Depends(get_governor)
):
    return governor.vote_on_note(note_id, data.voter_id, data.is_helpful)


@router.post("/{note_id}/appeal", response_model=AppealResponse)
def appeal_note(
    note_id: str, data: AppealRequest, governor: CommunityNoteGovernor = Depends(get_governor)
):
    return governor.appeal_note(note_id, data.appellant_id, data.reason)


@router.post("/{note_id}/resolve", response_model=ResolveAppealResponse)
def resolve_appeal(
    note_id: str,
    data: ResolveAppealRequest,
    governor: CommunityNoteGovernor = Depends(get_governor),
):
    return governor.resolve_appeal(note_id, data.admin_id, data.upheld, data.reason)
