"""
AI gateway configuration.

The scoring prompts go to an OpenAI-compatible chat-completions endpoint.
Settings come from environment variables.
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class AiSettings(BaseSettings):
    """AI client configuration from environment variables."""

    api_key: str = Field(default="", alias="AI_API_KEY")
    base_url: str = Field(default="https://ai.gateway.lovable.dev/v1", alias="AI_BASE_URL")
    model: str = Field(default="google/gemini-2.5-flash", alias="AI_MODEL")
    request_timeout: float = Field(default=30.0, alias="AI_REQUEST_TIMEOUT")

    # Retry configuration
    max_retries: int = Field(default=2, alias="AI_MAX_RETRIES")
    retry_delay: float = Field(default=1.0, alias="AI_RETRY_DELAY")
    retry_max_delay: float = Field(default=10.0, alias="AI_RETRY_MAX_DELAY")

    # Circuit breaker configuration
    circuit_breaker_threshold: int = Field(default=5, alias="AI_CB_THRESHOLD")
    circuit_breaker_timeout: int = Field(default=60, alias="AI_CB_TIMEOUT")

    # Connection configuration
    client_ttl_hours: int = Field(default=1, alias="AI_CLIENT_TTL_HOURS")
    max_connections: int = Field(default=20, alias="AI_MAX_CONNECTIONS")

    model_config = {"env_file": ".env", "extra": "ignore", "populate_by_name": True}

    @property
    def client_ttl(self) -> timedelta:
        """Get client TTL as timedelta."""
        return timedelta(hours=self.client_ttl_hours)


@lru_cache(maxsize=1)
def get_settings() -> AiSettings:
    """Get cached AI settings instance."""
    return AiSettings()
