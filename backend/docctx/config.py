"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database (persisted documents)
    database_url: str | None = None

    # Key-value store (ephemeral document contexts)
    redis_url: str | None = None
    kv_memory_fallback: bool = True

    # Context storage
    context_ttl_seconds: int = 1800
    max_part_size_bytes: int = 900 * 1024
    ephemeral_doc_prefix: str = "mem-"

    # Retry policy for KV operations
    kv_retry_attempts: int = 3
    kv_retry_delay_ms: int = 500

    # Retrieval
    context_max_chunks: int = 4
    max_chars_per_chunk: int = 1000

    # Overall deadline for chat context retrieval (seconds)
    chat_deadline_seconds: float = 10.0

    # Idempotency TTL (seconds)
    idempotency_ttl_seconds: int = 120


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
