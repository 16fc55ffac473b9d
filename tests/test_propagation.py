"""Tests for confidence propagation and effective confidence."""

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from epistemic_ledger.errors import EntityNotFound, OutOfRangeValue
from epistemic_ledger.models.audit import ConfidenceAuditEntry
from epistemic_ledger.services.audit_log import AuditLog
from epistemic_ledger.services.propagation import PropagationEngine, effective_confidence
from epistemic_ledger.services.similarity import SimilarityIndex


@pytest.fixture
def engine_factory(test_db):
    def _make(**overrides):
        return PropagationEngine(test_db, **overrides)

    return _make


def test_support_then_refute_round_trip(make_argument, engine_factory):
    """Test a support followed by a refute returns to the start."""
    argument = make_argument(0)
    engine = engine_factory()

    up = engine.support_argument(argument.id, "user-2")
    down = engine.refute_argument(argument.id, "user-3")

    assert up["new_confidence"] == pytest.approx(0.52)
    assert down["new_confidence"] == pytest.approx(0.5)
    assert argument.support_count == 1
    assert argument.refute_count == 1
    assert len(argument.confidence_history) == 3


def test_propagation_is_exactly_one_hop(make_argument, engine_factory, test_db):
    """A -> B similar, B -> C similar, A -> C not: C must not move."""
    a = make_argument(0)
    b = make_argument(30)
    c = make_argument(60)

    result = engine_factory().support_argument(a.id, "user-2")

    test_db.refresh(b)
    test_db.refresh(c)
    assert result["propagated_to"] == [b.id]
    assert b.confidence == pytest.approx(0.5 + 0.02 * 0.866 * 0.3, abs=1e-4)
    assert c.confidence == 0.5

    entry = AuditLog(test_db).history("argument", b.id, limit=1)[0]
    assert entry.propagated_from == a.id
    assert entry.cosine_similarity == pytest.approx(0.866, abs=1e-3)


def test_propagation_respects_limit(make_argument, engine_factory):
    target = make_argument(0)
    for degrees in (1, 2, 3, 4):
        make_argument(degrees)

    result = engine_factory(propagation_limit=2).support_argument(target.id, "user-2")

    assert len(result["propagated_to"]) == 2


def test_values_are_clamped(make_argument, engine_factory, test_db):
    """Test direct and propagated values stay within [0, 1]."""
    a = make_argument(0)
    b = make_argument(30)
    engine = engine_factory(support_delta=0.9, refute_delta=0.9, dampening=1.0)
    engine.update_confidence("argument", b.id, 0.95, "seed")

    engine.support_argument(a.id, "user-2")
    test_db.refresh(b)
    assert a.confidence == 1.0
    assert b.confidence == 1.0

    engine.refute_argument(a.id, "user-2")
    engine.refute_argument(a.id, "user-2")
    assert a.confidence == 0.0


def test_update_confidence_rejects_out_of_range(make_argument, engine_factory):
    argument = make_argument(0)

    with pytest.raises(OutOfRangeValue):
        engine_factory().update_confidence("argument", argument.id, 1.5, "too high")

    assert argument.confidence == 0.5


def test_update_confidence_does_not_propagate(make_argument, engine_factory, test_db):
    a = make_argument(0)
    b = make_argument(30)

    result = engine_factory().update_confidence("argument", a.id, 0.9, "moderator")

    test_db.refresh(b)
    assert result["propagated_to"] == []
    assert b.confidence == 0.5


def test_unknown_entity(engine_factory):
    with pytest.raises(EntityNotFound):
        engine_factory().support_argument("missing", "user-1")
    with pytest.raises(EntityNotFound):
        engine_factory().cite_fact("missing")


def test_effective_confidence_formula():
    assert effective_confidence(0.8, []) == pytest.approx(0.8)
    assert effective_confidence(0.8, [(0.3, 0.5)]) == pytest.approx(0.52)
    assert effective_confidence(0.8, [(0.3, 1.0)]) == pytest.approx(0.24)
    assert effective_confidence(0.8, [(0.3, 1.0), (0.5, 0.5)]) == pytest.approx(0.18)


def test_effective_confidence_monotone_in_fact_confidence():
    values = [effective_confidence(0.7, [(f / 10, 0.8)]) for f in range(11)]
    assert values == sorted(values)


def test_challenge_cascades_to_dependents(make_argument, make_fact, engine_factory, test_db):
    """Fact at 0.9 challenged to 0.3 discounts its dependents by their strength."""
    fact = make_fact(0, initial_confidence=0.9)
    a = make_argument(0)
    b = make_argument(90)
    engine = engine_factory(challenge_delta=0.6)
    engine.update_confidence("argument", a.id, 0.8, "seed")
    engine.update_confidence("argument", b.id, 0.8, "seed")
    engine.link_to_fact(a.id, fact.id, 0.5)
    engine.link_to_fact(b.id, fact.id, 1.0)

    test_db.refresh(a)
    test_db.refresh(b)
    assert a.effective_confidence == pytest.approx(0.76)
    assert b.effective_confidence == pytest.approx(0.72)

    result = engine.challenge_fact(fact.id, "new evidence")

    test_db.refresh(a)
    test_db.refresh(b)
    assert result["new_confidence"] == pytest.approx(0.3)
    assert sorted(result["affected_arguments"]) == sorted([a.id, b.id])
    assert a.effective_confidence == pytest.approx(0.52)
    assert b.effective_confidence == pytest.approx(0.24)
    assert fact.challenge_count == 1


def test_effective_confidence_null_without_dependencies(make_argument, engine_factory):
    argument = make_argument(0)

    engine_factory().support_argument(argument.id, "user-2")

    assert argument.effective_confidence is None


def test_own_confidence_change_refreshes_effective(make_argument, make_fact, engine_factory):
    fact = make_fact(0, initial_confidence=0.5)
    argument = make_argument(0)
    engine = engine_factory()
    engine.link_to_fact(argument.id, fact.id, 1.0)
    assert argument.effective_confidence == pytest.approx(0.25)

    engine.support_argument(argument.id, "user-2")

    assert argument.effective_confidence == pytest.approx(0.26)


def test_link_to_fact_upserts(make_argument, make_fact, engine_factory, store):
    fact = make_fact(0)
    argument = make_argument(0)
    engine = engine_factory()

    engine.link_to_fact(argument.id, fact.id, 0.4)
    link = engine.link_to_fact(argument.id, fact.id, 0.9)

    assert link.dependency_strength == 0.9
    assert len(store.get_dependencies(argument.id)) == 1
    assert [d.argument_id for d in store.get_dependents(fact.id)] == [argument.id]


def test_link_to_fact_validation(make_argument, make_fact, engine_factory):
    fact = make_fact(0)
    argument = make_argument(0)

    with pytest.raises(OutOfRangeValue):
        engine_factory().link_to_fact(argument.id, fact.id, 1.5)
    with pytest.raises(EntityNotFound):
        engine_factory().link_to_fact(argument.id, "missing", 0.5)


def test_cite_propagates_to_similar_facts(make_fact, engine_factory, test_db):
    cited = make_fact(0)
    neighbour = make_fact(10)
    unrelated = make_fact(90)

    result = engine_factory().cite_fact(cited.id, context_post_id="post-9")

    test_db.refresh(neighbour)
    test_db.refresh(unrelated)
    assert result["new_confidence"] == pytest.approx(0.52)
    assert result["propagated_to"] == [neighbour.id]
    assert neighbour.confidence == pytest.approx(0.5 + 0.02 * 0.9848 * 0.3, abs=1e-4)
    assert unrelated.confidence == 0.5
    assert cited.citation_count == 1


def test_interaction_replay_is_idempotent(make_argument, engine_factory, test_db):
    """Test a retried interaction is not applied twice."""
    a = make_argument(0)
    b = make_argument(30)
    engine = engine_factory()

    first = engine.support_argument(a.id, "user-2", interaction_id="req-1")
    second = engine.support_argument(a.id, "user-2", interaction_id="req-1")

    test_db.refresh(a)
    assert first["replayed"] is False
    assert second["replayed"] is True
    assert second["new_confidence"] == pytest.approx(first["new_confidence"])
    assert second["propagated_to"] == [b.id]
    assert a.confidence == pytest.approx(0.52)
    assert a.support_count == 1


def test_failed_propagation_target_is_skipped(make_argument, engine_factory, test_db, monkeypatch):
    """A failing neighbour write is isolated; the others still apply."""
    a = make_argument(0)
    broken = make_argument(20)
    healthy = make_argument(-20)
    engine = engine_factory()

    original = engine._write_propagated

    def flaky(entity_type, neighbour, *args, **kwargs):
        if neighbour.id == broken.id:
            raise OperationalError("UPDATE arguments", {}, Exception("lock timeout"))
        return original(entity_type, neighbour, *args, **kwargs)

    monkeypatch.setattr(engine, "_write_propagated", flaky)

    result = engine.support_argument(a.id, "user-2")

    test_db.refresh(broken)
    test_db.refresh(healthy)
    assert result["propagated_to"] == [healthy.id]
    assert broken.confidence == 0.5
    assert healthy.confidence > 0.5
    assert a.confidence == pytest.approx(0.52)


def test_audit_order(make_argument, make_fact, engine_factory, test_db):
    """Direct entry first, then propagations, then effective-confidence recomputations."""
    fact = make_fact(0)
    make_fact(10)
    argument = make_argument(0)
    engine = engine_factory()
    engine.link_to_fact(argument.id, fact.id, 1.0)

    engine.challenge_fact(fact.id, "disputed", interaction_id="req-7")

    entries = AuditLog(test_db).for_interaction("req-7")
    kinds = [(e.entity_type, e.metric, e.propagated_from is not None) for e in entries]
    assert kinds == [
        ("fact_claim", "confidence", False),
        ("fact_claim", "confidence", True),
        ("argument", "effective_confidence", True),
    ]


def test_audit_entries_are_appended(make_argument, engine_factory, test_db):
    argument = make_argument(0)
    engine = engine_factory()

    engine.support_argument(argument.id, "user-2")
    engine.support_argument(argument.id, "user-3")

    entries = (
        test_db.query(ConfidenceAuditEntry)
        .filter(ConfidenceAuditEntry.entity_id == argument.id)
        .order_by(ConfidenceAuditEntry.audit_pk)
        .all()
    )
    assert [round(e.new_confidence, 2) for e in entries] == [0.52, 0.54]
    assert entries[1].old_confidence == pytest.approx(entries[0].new_confidence)


def test_ripple_to_fact_refreshes_its_dependents(make_argument, make_fact, engine_factory, test_db):
    """An argument resting on a neighbouring fact is recomputed when the ripple moves that fact."""
    challenged = make_fact(0, initial_confidence=0.9)
    neighbour = make_fact(10, initial_confidence=0.9)
    argument = make_argument(0)
    engine = engine_factory(challenge_delta=0.6)
    engine.link_to_fact(argument.id, neighbour.id, 1.0)
    assert argument.effective_confidence == pytest.approx(0.45)

    result = engine.challenge_fact(challenged.id, "retracted source")

    test_db.refresh(neighbour)
    test_db.refresh(argument)
    assert result["propagated_to"] == [neighbour.id]
    assert result["affected_arguments"] == [argument.id]
    assert neighbour.confidence == pytest.approx(0.9 - 0.6 * 0.9848 * 0.3, abs=1e-4)
    assert argument.effective_confidence == pytest.approx(0.5 * neighbour.confidence)
    assert engine.recalculate_effective_confidence(argument.id) == pytest.approx(
        argument.effective_confidence
    )

    entry = AuditLog(test_db).history("argument", argument.id, limit=1)[0]
    assert entry.metric == "effective_confidence"
    assert entry.propagated_from == neighbour.id


def test_ripple_reads_neighbour_under_lock(make_argument, engine_factory, test_db, monkeypatch):
    """A neighbour changed after the similarity scan is shifted from its current value."""
    a = make_argument(0)
    b = make_argument(30)
    original_query = SimilarityIndex.query

    def query_then_concurrent_write(self, *args, **kwargs):
        results = original_query(self, *args, **kwargs)
        test_db.connection().execute(
            text("UPDATE arguments SET confidence = 0.8 WHERE id = :id"), {"id": b.id}
        )
        return results

    monkeypatch.setattr(SimilarityIndex, "query", query_then_concurrent_write)

    engine_factory().support_argument(a.id, "user-2")

    test_db.refresh(b)
    expected = 0.8 + 0.02 * 0.866 * 0.3
    assert b.confidence == pytest.approx(expected, abs=1e-4)
    entry = AuditLog(test_db).history("argument", b.id, limit=1)[0]
    assert entry.old_confidence == pytest.approx(0.8)
    assert entry.new_confidence == pytest.approx(expected, abs=1e-4)


def test_repeated_challenges_never_raise_effective_confidence(
    make_argument, make_fact, engine_factory, test_db
):
    fact = make_fact(0, initial_confidence=0.9)
    argument = make_argument(0)
    engine = engine_factory(challenge_delta=0.15)
    engine.update_confidence("argument", argument.id, 0.8, "seed")
    engine.link_to_fact(argument.id, fact.id, 0.7)

    test_db.refresh(argument)
    observed = [argument.effective_confidence]
    for _ in range(8):
        engine.challenge_fact(fact.id, "another rebuttal")
        test_db.refresh(argument)
        observed.append(argument.effective_confidence)

    assert all(later <= earlier for earlier, later in zip(observed, observed[1:]))
    assert observed[-1] < observed[0]
    assert observed[-1] == pytest.approx(0.8 * 0.3)
