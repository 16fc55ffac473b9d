"""Argument routes."""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from epistemic_ledger.database import get_db
from epistemic_ledger.dependencies import get_embedding_service
from epistemic_ledger.schemas.argument import (
    ArgumentCreate,
    ArgumentDetail,
    ArgumentResponse,
    ConfidenceUpdateRequest,
    ConfidenceUpdateResponse,
    DependencyResponse,
    InteractionRequest,
    LinkFactRequest,
    LinkFactResponse,
    SimilarArgument,
    SimilarArgumentsRequest,
)
from epistemic_ledger.services.embeddings import EmbeddingService
from epistemic_ledger.services.ledger_store import LedgerStore
from epistemic_ledger.services.propagation import PropagationEngine
from epistemic_ledger.services.similarity import find_similar_arguments

router = APIRouter(prefix="/arguments", tags=["arguments"])


@router.post("", response_model=ArgumentResponse, status_code=201)
def create_argument(
    data: ArgumentCreate,
    db: Session = Depends(get_db),
    embedding_service: EmbeddingService = Depends(get_embedding_service),
):
    """
    Create an argument from a post.

    The embedding is resolved before anything is written, so a provider
    failure leaves no row behind.
    """
    embedding = embedding_service.resolve(data.content, data.embedding)

    store = LedgerStore(db)
    argument = store.create_argument(
        content=data.content,
        embedding=embedding,
        source_post_id=data.source_post_id,
        source_user_id=data.source_user_id,
        summary=data.summary,
        logical_validity=data.logical_validity,
        evidence_quality=data.evidence_quality,
        coherence=data.coherence,
        entropy_score=data.entropy_score,
    )
    return argument


@router.get("/top", response_model=List[ArgumentResponse])
def top_arguments(limit: int = 20, db: Session = Depends(get_db)):
    """Arguments ordered by confidence."""
    return LedgerStore(db).get_top_arguments(limit)


@router.get("/below", response_model=List[ArgumentResponse])
def arguments_below(threshold: float, limit: int = 20, db: Session = Depends(get_db)):
    return LedgerStore(db).get_arguments_below(threshold, limit)


@router.get("/above", response_model=List[ArgumentResponse])
def arguments_above(threshold: float, limit: int = 20, db: Session = Depends(get_db)):
    return LedgerStore(db).get_arguments_above(threshold, limit)


@router.get("/cluster/{cluster_id}", response_model=List[ArgumentResponse])
def cluster_arguments(cluster_id: str, db: Session = Depends(get_db)):
    return LedgerStore(db).get_cluster_arguments(cluster_id)


@router.get("/post/{post_id}", response_model=List[ArgumentResponse])
def post_arguments(post_id: str, db: Session = Depends(get_db)):
    return LedgerStore(db).get_post_arguments(post_id)


@router.post("/similar", response_model=List[SimilarArgument])
def similar_arguments(data: SimilarArgumentsRequest, db: Session = Depends(get_db)):
    """Nearest neighbours of a precomputed embedding."""
    results = find_similar_arguments(
        db,
        data.embedding,
        limit=data.limit,
        exclude_id=data.exclude_id,
        min_similarity=data.min_similarity,
    )
    return [
        SimilarArgument(argument=ArgumentResponse.model_validate(a), similarity=s)
        for a, s in results
    ]


@router.get("/{argument_id}", response_model=ArgumentDetail)
def get_argument(argument_id: str, db: Session = Depends(get_db)):
    """Argument with history and fact dependencies."""
    store = LedgerStore(db)
    argument = store.get_argument(argument_id)
    detail = ArgumentDetail.model_validate(argument)
    detail.dependencies = [
        DependencyResponse.model_validate(d) for d in store.get_dependencies(argument_id)
    ]
    return detail


@router.post("/{argument_id}/support", response_model=ConfidenceUpdateResponse)
def support_argument(
    argument_id: str, data: InteractionRequest, db: Session = Depends(get_db)
):
    return PropagationEngine(db).support_argument(
        argument_id, data.user_id, interaction_id=data.interaction_id
    )


@router.post("/{argument_id}/refute", response_model=ConfidenceUpdateResponse)
def refute_argument(
    argument_id: str, data: InteractionRequest, db: Session = Depends(get_db)
):
    return PropagationEngine(db).refute_argument(
        argument_id, data.user_id, interaction_id=data.interaction_id
    )


@router.post("/{argument_id}/confidence", response_model=ConfidenceUpdateResponse)
def update_argument_confidence(
    argument_id: str, data: ConfidenceUpdateRequest, db: Session = Depends(get_db)
):
    return PropagationEngine(db).update_confidence(
        "argument",
        argument_id,
        data.new_confidence,
        data.reason,
        interaction_id=data.interaction_id,
    )


@router.post("/{argument_id}/facts", response_model=LinkFactResponse)
def link_to_fact(argument_id: str, data: LinkFactRequest, db: Session = Depends(get_db)):
    """Declare that an argument depends on a fact claim."""
    engine = PropagationEngine(db)
    link = engine.link_to_fact(argument_id, data.fact_claim_id, data.dependency_strength)
    argument = engine.store.get_argument(argument_id)
    return LinkFactResponse(
        argument_id=link.argument_id,
        fact_claim_id=link.fact_claim_id,
        dependency_strength=link.dependency_strength,
        effective_confidence=argument.effective_confidence,
    )
