"""Pytest configuration and fixtures."""

import json
import math
import os

# Must be set before the package reads its settings
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ["EMBED_DIM"] = "4"

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import epistemic_ledger.models  # noqa: F401  registers tables
from epistemic_ledger.database import Base
from epistemic_ledger.services.embeddings import EmbeddingService
from epistemic_ledger.services.ledger_store import LedgerStore


def unit(degrees: float):
    """4-d unit vector at ``degrees`` in the first plane; cos(angle) is the similarity."""
    radians = math.radians(degrees)
    return [math.cos(radians), math.sin(radians), 0.0, 0.0]


class FakePlatform:
    """In-memory stand-in for the platform's user and post services."""

    def __init__(self, reputations=None, post_authors=None, admins=()):
        self.reputations = dict(reputations or {})
        self.post_authors = dict(post_authors or {})
        self.admins = set(admins)
        self.reputation_calls = []

    def get_reputation(self, user_id):
        self.reputation_calls.append(user_id)
        return self.reputations.get(user_id, 50.0)

    def get_post_author(self, post_id):
        return self.post_authors.get(post_id)

    def is_admin(self, user_id):
        return user_id in self.admins


@pytest.fixture(scope="function")
def engine():
    """In-memory SQLite shared across threads (TestClient runs handlers in a pool)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def test_db(session_factory):
    """Create a test database session for each test."""
    db = session_factory()

    yield db

    db.close()


@pytest.fixture
def store(test_db):
    return LedgerStore(test_db)


@pytest.fixture
def make_argument(store):
    """Create an argument pointing at ``degrees``."""
    counter = {"n": 0}

    def _make(degrees=0.0, **kwargs):
        counter["n"] += 1
        params = {
            "content": f"argument {counter['n']}",
            "embedding": unit(degrees),
            "source_post_id": kwargs.pop("source_post_id", f"post-{counter['n']}"),
            "source_user_id": kwargs.pop("source_user_id", "user-1"),
        }
        params.update(kwargs)
        return store.create_argument(**params)

    return _make


@pytest.fixture
def make_fact(store):
    """Create a fact claim pointing at ``degrees``."""
    counter = {"n": 0}

    def _make(degrees=0.0, **kwargs):
        counter["n"] += 1
        params = {"claim": f"fact {counter['n']}", "embedding": unit(degrees)}
        params.update(kwargs)
        return store.create_fact(**params)

    return _make


@pytest.fixture
def platform():
    return FakePlatform()


@pytest.fixture
def embedding_service():
    """EmbeddingService backed by an httpx mock transport keyed on prompt text."""
    vectors = {}

    def handler(request: httpx.Request) -> httpx.Response:
        prompt = json.loads(request.content)["prompt"]
        if prompt not in vectors:
            return httpx.Response(500, json={"error": "unknown prompt"})
        return httpx.Response(200, json={"embedding": vectors[prompt]})

    client = httpx.Client(transport=httpx.MockTransport(handler), base_url="http://embeddings")
    service = EmbeddingService(client=client)
    service.vectors = vectors
    yield service
    client.close()
