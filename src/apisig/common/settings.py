"""Configuration management using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="APISIG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Signature verification
    secret_key: SecretStr | None = Field(
        default=None,
        description="Shared HMAC secret, provisioned out of band",
    )
    allowed_skew_seconds: int = Field(
        default=60,
        ge=0,
        description="Accepted distance in seconds between the request timestamp and now",
    )
    accept_query_only_signatures: bool = Field(
        default=True,
        description=(
            "Also accept GET signatures computed over the query string alone. "
            "Such a signature does not cover the path, so it verifies for any "
            "GET path carrying the same query within the timestamp window"
        ),
    )
    auth_exempt_paths: list[str] = Field(
        default_factory=lambda: ["/health", "/metrics"],
        description="Paths served without signature verification",
    )

    # Responses
    no_cache: bool = Field(
        default=True,
        description="Force no-cache headers on every response",
    )

    # Server
    host: str = Field(
        default="0.0.0.0",
        description="Bind address for the HTTP service",
    )
    port: int = Field(
        default=8080,
        description="Port for the HTTP service",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level",
    )
    log_json: bool = Field(
        default=False,
        description="Render logs as JSON lines instead of console output",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
