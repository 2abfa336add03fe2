"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Library settings loaded from EVENTFORMS_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="EVENTFORMS_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Field sync quiescence window (milliseconds)
    debounce_ms: int = 500

    # Remote document store
    remote_base_url: str = "http://localhost:3001/api"
    remote_timeout_ms: int = 4000

    # Prefix for client-side ids of entities whose create is still in flight
    provisional_id_prefix: str = "tmp-"

    # Simulated latency of the in-memory reference store (milliseconds)
    reference_latency_ms: int = 0


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
