"""Configuration module for the transcript embedding pipeline."""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# Load environment variables from .env file
load_dotenv()

# Upstream insert requests start failing well before ~2000 rows.
MAX_INSERT_BATCH_SIZE = 1000


class LectureRAGConfig(BaseModel):
    """Configuration for transcript chunking, embedding and vector storage.

    Every setting can be overridden via environment variables or passed
    explicitly (tests construct the model directly).
    """

    # Chunking settings (character-based)
    chunk_size: int = Field(
        default_factory=lambda: int(os.getenv("CHUNK_SIZE", "1000"))
    )
    chunk_overlap: int = Field(
        default_factory=lambda: int(os.getenv("CHUNK_OVERLAP", "100"))
    )

    # Vector storage settings
    insert_batch_size: int = Field(
        default_factory=lambda: int(
            os.getenv("VECTOR_INSERT_BATCH_SIZE", str(MAX_INSERT_BATCH_SIZE))
        )
    )
    documents_table: str = Field(
        default_factory=lambda: os.getenv("VECTOR_TABLE", "documents")
    )
    match_function: str = Field(
        default_factory=lambda: os.getenv("VECTOR_MATCH_FUNCTION", "match_documents")
    )

    # Embedding settings
    embedding_provider: str = Field(
        default_factory=lambda: os.getenv("EMBEDDING_PROVIDER", "openai")
    )
    embedding_base_url: str = Field(
        default_factory=lambda: os.getenv(
            "EMBEDDING_BASE_URL", "https://api.openai.com/v1"
        )
    )
    embedding_api_key: str = Field(
        default_factory=lambda: os.getenv("EMBEDDING_API_KEY", "")
    )
    embedding_model: str = Field(
        default_factory=lambda: os.getenv(
            "EMBEDDING_MODEL_CHOICE", "text-embedding-3-small"
        )
    )
    embedding_batch_size: int = Field(
        default_factory=lambda: int(os.getenv("EMBEDDING_BATCH_SIZE", "100"))
    )
    embedding_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("EMBEDDING_TIMEOUT_SECONDS", "30"))
    )

    # Database settings
    supabase_url: str = Field(default_factory=lambda: os.getenv("SUPABASE_URL", ""))
    supabase_key: str = Field(
        default_factory=lambda: os.getenv("SUPABASE_SERVICE_KEY", "")
    )

    @field_validator("insert_batch_size")
    @classmethod
    def cap_insert_batch_size(cls, value: int) -> int:
        if value < 1:
            raise ValueError("insert_batch_size must be positive")
        return min(value, MAX_INSERT_BATCH_SIZE)

    @property
    def embed_threshold_chars(self) -> int:
        """Minimum pending text length (exclusive) before an embedding job runs."""
        return self.chunk_size // 2


def get_config() -> LectureRAGConfig:
    """Get validated configuration instance.

    Returns:
        LectureRAGConfig: Validated configuration object with all settings.

    Raises:
        ValidationError: If environment variables hold invalid values.
    """
    return LectureRAGConfig()
