"""Tests for cosine similarity and nearest-neighbour queries."""

from datetime import datetime

import pytest
from sqlalchemy.dialects import postgresql

from conftest import unit
from epistemic_ledger.errors import EmbeddingUnavailable
from epistemic_ledger.models.argument import Argument
from epistemic_ledger.services.similarity import (
    SimilarityIndex,
    cosine_similarity,
    find_similar_arguments,
    find_similar_facts,
)


def test_cosine_identical_and_orthogonal():
    """Test the basic geometry."""
    assert cosine_similarity([1, 2, 3, 4], [1, 2, 3, 4]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0, 0, 0], [0, 1, 0, 0]) == pytest.approx(0.0)
    assert cosine_similarity([1, 0, 0, 0], [-1, 0, 0, 0]) == pytest.approx(-1.0)


def test_cosine_degenerate_inputs_return_zero():
    """Zero norm, mismatched length, empty or missing vectors never raise."""
    assert cosine_similarity([0, 0, 0, 0], [1, 0, 0, 0]) == 0.0
    assert cosine_similarity([1, 0, 0], [1, 0, 0, 0]) == 0.0
    assert cosine_similarity([], []) == 0.0
    assert cosine_similarity(None, [1, 0, 0, 0]) == 0.0
    assert cosine_similarity([float("nan"), 0, 0, 0], [1, 0, 0, 0]) == 0.0


def test_cosine_stays_in_range():
    value = cosine_similarity([0.1, 0.2, 0.3, 0.4], [0.1, 0.2, 0.3, 0.4])
    assert -1.0 <= value <= 1.0


def test_query_orders_by_similarity(make_argument, test_db):
    """Test results are ordered by similarity, excluded id left out."""
    far = make_argument(60)
    near = make_argument(20)
    query_arg = make_argument(45)

    results = SimilarityIndex(test_db, Argument).query(unit(0), 10, exclude_id=query_arg.id)

    assert [a.id for a, _ in results] == [near.id, far.id]
    assert results[0][1] == pytest.approx(0.9397, abs=1e-3)
    assert results[1][1] == pytest.approx(0.5, abs=1e-3)


def test_query_filters_before_truncating(make_argument, test_db):
    """min_similarity drops weak matches before the limit is applied."""
    make_argument(80)
    make_argument(70)
    close = make_argument(10)

    results = SimilarityIndex(test_db, Argument).query(unit(0), 2, min_similarity=0.9)

    assert [a.id for a, _ in results] == [close.id]


def test_query_tie_broken_by_recency(make_argument, test_db):
    """Equal similarity: most recently created first."""
    older = make_argument(40)
    newer = make_argument(40)
    older.created_at = datetime(2024, 1, 1)
    newer.created_at = datetime(2024, 6, 1)
    test_db.commit()

    results = SimilarityIndex(test_db, Argument).query(unit(40), 2)

    assert [a.id for a, _ in results] == [newer.id, older.id]


def test_query_non_positive_limit(make_argument, test_db):
    make_argument(0)
    assert SimilarityIndex(test_db, Argument).query(unit(0), 0) == []


def test_find_similar_arguments(make_argument, test_db):
    target = make_argument(0)
    make_argument(90)

    results = find_similar_arguments(test_db, unit(0), limit=5, min_similarity=0.5)

    assert [a.id for a, _ in results] == [target.id]


def test_find_similar_facts_embeds_claim(make_fact, test_db, embedding_service):
    """Test the claim text is embedded before querying facts."""
    match = make_fact(0, claim="Water boils at 100C at sea level")
    make_fact(90, claim="The moon is made of cheese")
    embedding_service.vectors["boiling point of water"] = unit(5)

    results = find_similar_facts(test_db, embedding_service, "boiling point of water")

    assert [f.id for f, _ in results] == [match.id]
    assert results[0][1] > 0.99


def test_find_similar_facts_provider_failure(test_db, embedding_service):
    with pytest.raises(EmbeddingUnavailable):
        find_similar_facts(test_db, embedding_service, "never registered")


def test_sqlite_scans_without_vector_shortlist(test_db):
    assert SimilarityIndex(test_db, Argument).vector_shortlist is False


def test_postgres_shortlists_by_cosine_distance(test_db):
    """On PostgreSQL the candidate query is bounded by pgvector distance."""
    index = SimilarityIndex(test_db, Argument, vector_shortlist=True)

    query = index._candidates(unit(0), 5, exclude_id="arg-1", min_similarity=0.85)
    sql = str(query.statement.compile(dialect=postgresql.dialect()))

    assert "<=>" in sql
    assert "ORDER BY" in sql
    assert "LIMIT" in sql
    assert "arguments.id !=" in sql
