"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - get_settings() is cached (lru_cache) — single instance per process
    - RATE_LIMIT_WINDOW_MS, RATE_LIMIT_LIMIT, RATE_LIMIT_MAX_KEYS and MAX_BODY_BYTES are positive
    - ORIGIN absent or empty means every origin is allowed

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - ORIGIN kept as the raw comma-separated string; parsed by the CORS policy
      (pydantic-settings would otherwise expect JSON for list fields)
"""

from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from gateway.core.context import DEFAULT_MAX_BODY_BYTES
from gateway.core.cors import ConfiguredOrigins, parse_origins
from gateway.core.rate_limiter import (
    DEFAULT_LIMIT, DEFAULT_MAX_KEYS, DEFAULT_WINDOW_MS, KEY_GENERATORS,
)


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore",
        populate_by_name=True,
    )

    # CORS
    origin: str | None = None

    # Rate limiting
    rate_limit_window_ms: int = Field(DEFAULT_WINDOW_MS, gt=0)
    rate_limit_limit: int = Field(DEFAULT_LIMIT, gt=0)
    rate_limit_max_keys: int = Field(DEFAULT_MAX_KEYS, gt=0)
    rate_limit_key_strategy: str = "constant"

    # Route handlers
    handler_timeout_ms: int | None = Field(None, gt=0)
    max_body_bytes: int = Field(DEFAULT_MAX_BODY_BYTES, gt=0)

    # Server
    port: int = 3030
    hostname: str = "0.0.0.0"
    environment: str = Field(
        "development", validation_alias=AliasChoices("ENVIRONMENT", "NODE_ENV"),
    )

    # Documentation
    openapi_doc_path: str | None = None

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("rate_limit_key_strategy")
    @classmethod
    def check_key_strategy(cls, v: str) -> str:
        if v not in KEY_GENERATORS:
            raise ValueError(
                f"must be one of: {', '.join(sorted(KEY_GENERATORS))}",
            )
        return v

    @field_validator("handler_timeout_ms", "openapi_doc_path", "origin", mode="before")
    @classmethod
    def blank_as_none(cls, v):
        """Empty env values (ORIGIN=) behave as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def cors_origins(self) -> ConfiguredOrigins:
        return parse_origins(self.origin)


@lru_cache
def get_settings() -> Settings:
    return Settings()
