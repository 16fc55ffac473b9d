"""Audit log routes."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from epistemic_ledger.database import get_db
from epistemic_ledger.schemas.audit import AuditEntryResponse
from epistemic_ledger.services.audit_log import ENTITY_TYPES, AuditLog

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/{entity_type}/{entity_id}", response_model=List[AuditEntryResponse])
def entity_history(
    entity_type: str, entity_id: str, limit: int = 50, db: Session = Depends(get_db)
):
    """Confidence mutations of one entity, newest first."""
    if entity_type not in ENTITY_TYPES:
        raise HTTPException(status_code=400, detail=f"entity_type must be one of: {', '.join(ENTITY_TYPES)}")
    return AuditLog(db).history(entity_type, entity_id, limit)
