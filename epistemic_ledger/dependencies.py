"""FastAPI dependency providers for external collaborators."""

from functools import lru_cache

from epistemic_ledger.services.embeddings import EmbeddingService
from epistemic_ledger.services.platform import PlatformClient


@lru_cache
def get_embedding_service() -> EmbeddingService:
    """Shared embedding client (one connection pool per process)."""
    return EmbeddingService()


@lru_cache
def get_platform_client() -> PlatformClient:
    """Shared platform client (one connection pool per process)."""
    return PlatformClient()
