"""Argument and ArgumentFactDependency models."""

import uuid
from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    Boolean,
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
from epistemic_ledger.database import Base, JSONDocument


def new_id() -> str:
    return str(uuid.uuid4())


class Argument(Base):
    """User-asserted argument with a revisable confidence score."""

    __tablename__ = "arguments"

    id = Column(String(36), primary_key=True, default=new_id)
    content = Column(Text, nullable=False)
    summary = Column(Text)
    embedding = Column(Vector(settings.EMBED_DIM), nullable=False)
    confidence = Column(Float, nullable=False, default=0.5)
    confidence_history = Column(JSONDocument, nullable=False, default=list)

    # Independent quality signals, each in [0, 1]
    logical_validity = Column(Float)
    evidence_quality = Column(Float)
    coherence = Column(Float)
    entropy_score = Column(Float)

    support_count = Column(Integer, nullable=False, default=0)
    refute_count = Column(Integer, nullable=False, default=0)
    citation_count = Column(Integer, nullable=False, default=0)

    cluster_id = Column(String(36))
    is_cluster_head = Column(Boolean, nullable=False, default=False)
    effective_confidence = Column(Float)  # Null until a fact dependency exists

    source_post_id = Column(Text, nullable=False)
    source_user_id = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_arguments_cluster_id", "cluster_id"),
        Index("idx_arguments_confidence", "confidence"),
        Index("idx_arguments_source_post_id", "source_post_id"),
        Index("idx_arguments_source_user_id", "source_user_id"),
    )


class ArgumentFactDependency(Base):
    """How strongly an argument's believability rests on a fact claim."""

    __tablename__ = "argument_fact_dependencies"

    dependency_pk = Column(Integer, primary_key=True, autoincrement=True)
    argument_id = Column(String(36), ForeignKey("arguments.id"), nullable=False)
    fact_claim_id = Column(String(36), ForeignKey("fact_claims.id"), nullable=False)
    dependency_strength = Column(Float, nullable=False, default=1.0)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("argument_id", "fact_claim_id", name="uq_argument_fact"),
        Index("idx_dependencies_fact_claim_id", "fact_claim_id"),
    )
