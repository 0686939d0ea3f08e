"""
Configuration management using Pydantic Settings.
Loads environment variables from .env file with validation.
"""

from pathlib import Path
from functools import lru_cache
from typing import Literal, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CARRIERFIT_",
        env_file=Path(__file__).parent.parent / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Fireworks AI Configuration
    fireworks_api_key: str = Field(
        default="",
        description="Fireworks AI API key"
    )
    fireworks_embedding_model: str = Field(
        default="nomic-ai/nomic-embed-text-v1.5",
        description="Fireworks embedding model ID"
    )

    # Vector Index Configuration
    vector_backend: Literal["memory", "mongodb"] = Field(
        default="memory",
        description="Vector index backend"
    )
    mongodb_uri: str = Field(
        default="",
        description="MongoDB connection URI"
    )
    mongodb_database: str = Field(
        default="carrier_guidelines",
        description="MongoDB database name"
    )
    vector_collection: str = Field(default="chunk_vectors")
    vector_index_name: str = Field(default="vector_index")

    # Relational Document Store
    database_url: str = Field(
        default="sqlite:///./carrierfit.db",
        description="SQLAlchemy URL for the document store"
    )

    # Chunking
    chunk_size: int = Field(default=1000, gt=0, description="Target tokens per chunk")
    chunk_overlap: int = Field(default=150, ge=0, description="Overlap tokens between chunks")

    # Retrieval
    retrieval_top_k: int = Field(default=3, gt=0)
    max_workers: int = Field(default=8, gt=0)

    # Scoring
    similarity_floor: float = Field(default=0.65, ge=0.0, le=1.0)
    citation_floor: float = Field(default=0.70, ge=0.0, le=1.0)
    max_citations: int = Field(default=5, ge=0, le=5)
    neutral_fit_score: int = Field(default=50, ge=0, le=100)
    max_fit_score: int = Field(default=95, ge=0, le=100)
    snippet_length: int = Field(default=300, gt=0)

    # Query generation thresholds
    accelerated_max_age: int = Field(default=60)
    accelerated_max_coverage: float = Field(default=1_000_000)
    financial_coverage_threshold: float = Field(default=1_000_000)

    # Ranking
    default_top_n: Optional[int] = Field(default=None, gt=0)
    filter_by_jurisdiction: bool = Field(default=True)

    # Logging
    log_level: str = Field(default="INFO")

    @property
    def project_root(self) -> Path:
        """Get project root directory."""
        return Path(__file__).parent.parent

    @property
    def data_dir(self) -> Path:
        """Get data directory path."""
        return self.project_root / "data"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
