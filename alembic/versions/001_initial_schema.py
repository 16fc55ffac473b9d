"""Initial ledger schema with pgvector

Revision ID: 001
Revises:
Create Date: 2025-12-10 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects.postgresql import JSONB

from epistemic_ledger.config import settings

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Enable pgvector extension
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    # Check if tables already exist and skip if so
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = inspector.get_table_names()

    if "arguments" in existing_tables:
        # Tables already exist, skip migration
        return

    # Create fact_claims table
    op.create_table(
        "fact_claims",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("claim", sa.Text, nullable=False),
        sa.Column("embedding", Vector(settings.EMBED_DIM), nullable=False),
        sa.Column("confidence", sa.Float, nullable=False, server_default="0.5"),
        sa.Column("confidence_history", JSONB, nullable=False, server_default="[]"),
        sa.Column("citation_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("challenge_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("source_post_id", sa.Text),
        sa.Column("source_user_id", sa.Text),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_fact_claims_confidence", "fact_claims", ["confidence"])
    op.create_index("idx_fact_claims_created_at", "fact_claims", ["created_at"])

    # Create arguments table
    op.create_table(
        "arguments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("summary", sa.Text),
        sa.Column("embedding", Vector(settings.EMBED_DIM), nullable=False),
        sa.Column("confidence", sa.Float, nullable=False, server_default="0.5"),
        sa.Column("confidence_history", JSONB, nullable=False, server_default="[]"),
        sa.Column("logical_validity", sa.Float),
        sa.Column("evidence_quality", sa.Float),
        sa.Column("coherence", sa.Float),
        sa.Column("entropy_score", sa.Float),
        sa.Column("support_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("refute_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("citation_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("cluster_id", sa.String(36)),
        sa.Column("is_cluster_head", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("effective_confidence", sa.Float),
        sa.Column("source_post_id", sa.Text, nullable=False),
        sa.Column("source_user_id", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
        sa.CheckConstraint("confidence >= 0 AND confidence <= 1", name="ck_arguments_confidence"),
    )
    op.create_index("idx_arguments_cluster_id", "arguments", ["cluster_id"])
    op.create_index("idx_arguments_confidence", "arguments", ["confidence"])
    op.create_index("idx_arguments_source_post_id", "arguments", ["source_post_id"])
    op.create_index("idx_arguments_source_user_id", "arguments", ["source_user_id"])
    # Note: for large ledgers add an HNSW index once data exists:
    # CREATE INDEX idx_arguments_hnsw_embedding ON arguments USING hnsw (embedding vector_cosine_ops);

    # Create argument_fact_dependencies table
    op.create_table(
        "argument_fact_dependencies",
        sa.Column("dependency_pk", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("argument_id", sa.String(36), sa.ForeignKey("arguments.id"), nullable=False),
        sa.Column("fact_claim_id", sa.String(36), sa.ForeignKey("fact_claims.id"), nullable=False),
        sa.Column("dependency_strength", sa.Float, nullable=False, server_default="1.0"),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.UniqueConstraint("argument_id", "fact_claim_id", name="uq_argument_fact"),
    )
    op.create_index(
        "idx_dependencies_fact_claim_id", "argument_fact_dependencies", ["fact_claim_id"]
    )

    # Create community_notes table
    op.create_table(
        "community_notes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("author_id", sa.Text, nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("note_type", sa.Text, nullable=False),
        sa.Column("post_id", sa.Text),
        sa.Column("fact_claim_id", sa.String(36), sa.ForeignKey("fact_claims.id")),
        sa.Column("helpful_score", sa.Float, nullable=False, server_default="0"),
        sa.Column("not_helpful_score", sa.Float, nullable=False, server_default="0"),
        sa.Column("vote_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("display_threshold", sa.Float, nullable=False, server_default="0.7"),
        sa.Column("is_displayed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_appealed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("appeal_resolved", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("appeal_outcome", sa.Text),
        sa.Column("appeal_reason", sa.Text),
        sa.Column("appealed_by", sa.Text),
        sa.Column("resolved_by", sa.Text),
        sa.Column("resolution_reason", sa.Text),
        sa.Column("confidence_impact", sa.Float),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
        sa.CheckConstraint(
            "(post_id IS NULL) <> (fact_claim_id IS NULL)",
            name="ck_community_notes_single_target",
        ),
    )
    op.create_index("idx_community_notes_post_id", "community_notes", ["post_id"])
    op.create_index("idx_community_notes_fact_claim_id", "community_notes", ["fact_claim_id"])
    op.create_index("idx_community_notes_author_id", "community_notes", ["author_id"])
    op.create_index("idx_community_notes_is_displayed", "community_notes", ["is_displayed"])

    # Create community_note_votes table
    op.create_table(
        "community_note_votes",
        sa.Column("vote_pk", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("note_id", sa.String(36), sa.ForeignKey("community_notes.id"), nullable=False),
        sa.Column("voter_id", sa.Text, nullable=False),
        sa.Column("is_helpful", sa.Boolean, nullable=False),
        sa.Column("voter_reputation", sa.Float, nullable=False),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.UniqueConstraint("note_id", "voter_id", name="uq_note_voter"),
    )
    op.create_index("idx_community_note_votes_voter_id", "community_note_votes", ["voter_id"])

    # Create confidence_audit_log table (checked by app startup)
    op.create_table(
        "confidence_audit_log",
        sa.Column("audit_pk", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("entity_type", sa.Text, nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("metric", sa.Text, nullable=False, server_default="confidence"),
        sa.Column("old_confidence", sa.Float),
        sa.Column("new_confidence", sa.Float, nullable=False),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("propagated_from", sa.String(36)),
        sa.Column("cosine_similarity", sa.Float),
        sa.Column("interaction_id", sa.Text),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_audit_entity", "confidence_audit_log", ["entity_type", "entity_id"])
    op.create_index("idx_audit_interaction_id", "confidence_audit_log", ["interaction_id"])
    op.create_index("idx_audit_created_at", "confidence_audit_log", ["created_at"])


def downgrade() -> None:
    op.drop_table("confidence_audit_log")
    op.drop_table("community_note_votes")
    op.drop_table("community_notes")
    op.drop_table("argument_fact_dependencies")
    op.drop_table("arguments")
    op.drop_table("fact_claims")
