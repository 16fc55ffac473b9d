"""Embedding provider client (Ollama-compatible HTTP API)."""

import logging
from typing import List, Optional, Sequence

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from epistemic_ledger.config import settings
from epistemic_ledger.errors import EmbeddingMissing, EmbeddingUnavailable

logger = logging.getLogger(__name__)


class EmbeddingService:
    """Service for turning text into fixed-length embedding vectors."""

    def __init__(self, client: Optional[httpx.Client] = None):
        """Initialize the embedding service."""
        self.base_url = settings.EMBEDDING_BASE_URL
        self.model = settings.EMBEDDING_MODEL
        self.embed_dim = settings.EMBED_DIM
        self.client = client or httpx.Client(
            base_url=self.base_url, timeout=settings.EMBEDDING_TIMEOUT
        )

    def embed_text(self, text: str) -> List[float]:
        """
        Generate an embedding for a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector of length EMBED_DIM

        Raises:
            EmbeddingMissing: If the text is empty
            EmbeddingUnavailable: If the provider fails or returns a bad vector
        """
        if not text or not text.strip():
            raise EmbeddingMissing("Cannot embed empty text")

        try:
            result = self._post_embedding(text)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Embedding provider failed: {e}")
            raise EmbeddingUnavailable(f"Embedding provider unavailable: {e}") from e

        embedding = result.get("embedding") if isinstance(result, dict) else None
        if not embedding:
            raise EmbeddingUnavailable("Embedding provider returned no vector")

        if len(embedding) != self.embed_dim:
            raise EmbeddingUnavailable(
                f"Embedding dimension mismatch: expected {self.embed_dim}, got {len(embedding)}"
            )

        return [float(v) for v in embedding]

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    def _post_embedding(self, text: str) -> dict:
        """Call the provider; transport errors are retried."""
        response = self.client.post(
            "/api/embeddings",
            json={"model": self.model, "prompt": text},
        )
        response.raise_for_status()
        return response.json()

    def accept_client_embedding(self, embedding: Optional[Sequence[float]]) -> List[float]:
        """
        Validate a client-provided embedding.

        Raises:
            EmbeddingMissing: If the embedding is absent or has the wrong dimension
        """
        if embedding is None or len(embedding) == 0:
            raise EmbeddingMissing("Embedding is required")

        if len(embedding) != self.embed_dim:
            raise EmbeddingMissing(
                f"Embedding dimension mismatch: expected {self.embed_dim}, got {len(embedding)}"
            )

        return [float(v) for v in embedding]

    def resolve(self, text: str, embedding: Optional[Sequence[float]] = None) -> List[float]:
        """Use the client's embedding when given, otherwise ask the provider."""
        if embedding is not None:
            return self.accept_client_embedding(embedding)
        return self.embed_text(text)
