"""Fact claim routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from epistemic_ledger.config import settings
from epistemic_ledger.database import get_db
from epistemic_ledger.dependencies import get_embedding_service
from epistemic_ledger.schemas.argument import ConfidenceUpdateRequest, ConfidenceUpdateResponse
from epistemic_ledger.schemas.fact import (
    ChallengeRequest,
    CiteRequest,
    FactCreate,
    FactDetail,
    FactResponse,
    SimilarFact,
    SimilarFactsRequest,
)
from epistemic_ledger.services.embeddings import EmbeddingService
from epistemic_ledger.services.ledger_store import LedgerStore
from epistemic_ledger.services.propagation import PropagationEngine
from epistemic_ledger.services.similarity import find_similar_facts

router = APIRouter(prefix="/facts", tags=["facts"])


@router.post("", response_model=FactResponse, status_code=201)
def create_fact(
    data: FactCreate,
    db: Session = Depends(get_db),
    embedding_service: EmbeddingService = Depends(get_embedding_service),
):
    """Create a fact claim; facts without a source are system-seeded."""
    embedding = embedding_service.resolve(data.claim, data.embedding)
    return LedgerStore(db).create_fact(
        claim=data.claim,
        embedding=embedding,
        initial_confidence=data.initial_confidence,
        source_post_id=data.source_post_id,
        source_user_id=data.source_user_id,
    )


@router.get("/low-confidence", response_model=List[FactResponse])
def low_confidence_facts(
    threshold: float = settings.LOW_CONFIDENCE_THRESHOLD,
    limit: int = 20,
    db: Session = Depends(get_db),
):
    """Potentially debunked facts."""
    return LedgerStore(db).get_low_confidence_facts(threshold, limit)


@router.get("/established", response_model=List[FactResponse])
def established_facts(
    threshold: float = settings.ESTABLISHED_THRESHOLD,
    limit: int = 20,
    db: Session = Depends(get_db),
):
    return LedgerStore(db).get_established_facts(threshold, limit)


@router.get("/search", response_model=List[FactResponse])
def search_facts(q: Optional[str] = None, limit: int = 10, db: Session = Depends(get_db)):
    return LedgerStore(db).search_facts(q or "", limit)


@router.get("/post/{post_id}", response_model=List[FactResponse])
def post_facts(post_id: str, db: Session = Depends(get_db)):
    return LedgerStore(db).get_post_facts(post_id)


@router.post("/similar", response_model=List[SimilarFact])
def similar_facts(
    data: SimilarFactsRequest,
    db: Session = Depends(get_db),
    embedding_service: EmbeddingService = Depends(get_embedding_service),
):
    results = find_similar_facts(
        db, embedding_service, data.claim, limit=data.limit, min_similarity=data.min_similarity
    )
    return [SimilarFact(fact=FactResponse.model_validate(f), similarity=s) for f, s in results]


@router.get("/{fact_id}", response_model=FactDetail)
def get_fact(fact_id: str, db: Session = Depends(get_db)):
    store = LedgerStore(db)
    fact = store.get_fact(fact_id)
    detail = FactDetail.model_validate(fact)
    detail.dependent_argument_ids = [d.argument_id for d in store.get_dependents(fact_id)]
    return detail


@router.post("/{fact_id}/cite", response_model=ConfidenceUpdateResponse)
def cite_fact(fact_id: str, data: CiteRequest, db: Session = Depends(get_db)):
    return PropagationEngine(db).cite_fact(
        fact_id, context_post_id=data.context_post_id, interaction_id=data.interaction_id
    )


@router.post("/{fact_id}/challenge", response_model=ConfidenceUpdateResponse)
def challenge_fact(fact_id: str, data: ChallengeRequest, db: Session = Depends(get_db)):
    return PropagationEngine(db).challenge_fact(
        fact_id, data.reason, interaction_id=data.interaction_id
    )


@router.post("/{fact_id}/confidence", response_model=ConfidenceUpdateResponse)
def update_fact_confidence(
    fact_id: str, data: ConfidenceUpdateRequest, db: Session = Depends(get_db)
):
    return PropagationEngine(db).update_confidence(
        "fact_claim",
        fact_id,
        data.new_confidence,
        data.reason,
        interaction_id=data.interaction_id,
    )
