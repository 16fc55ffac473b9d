"""Application configuration using Pydantic Settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Embeddings (Ollama-compatible provider)
    EMBEDDING_BASE_URL: str = "http://localhost:11434"
    EMBEDDING_MODEL: str = "all-minilm"
    EMBED_DIM: int = 384  # Must match the model's output dimension
    EMBEDDING_TIMEOUT: float = 30.0

    # Platform (reputation, post authorship, admin roles)
    PLATFORM_API_URL: str = "http://localhost:3000/api"
    PLATFORM_TIMEOUT: float = 10.0
    DEFAULT_REPUTATION: float = 50.0

    # Propagation
    PROPAGATION_THRESHOLD: float = 0.85
    PROPAGATION_LIMIT: int = 5
    PROPAGATION_DAMPENING: float = 0.3

    # Similarity search (pgvector shortlist before the numpy rerank)
    SIMILARITY_SHORTLIST: int = 50

    # Fixed interaction deltas
    SUPPORT_DELTA: float = 0.02
    REFUTE_DELTA: float = 0.02
    CITE_DELTA: float = 0.02
    CHALLENGE_DELTA: float = 0.05

    # Clustering
    CLUSTER_THRESHOLD: float = 0.92
    CLUSTER_CANDIDATES: int = 5
    CLUSTER_RECHECK_DELTA: float = 0.1

    # Ledger
    SEED_FROM_QUALITY_SIGNALS: bool = False
    LOW_CONFIDENCE_THRESHOLD: float = 0.3
    ESTABLISHED_THRESHOLD: float = 0.8

    # Community notes
    DEFAULT_DISPLAY_THRESHOLD: float = 0.7

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


# Global settings instance
settings = Settings()
