"""
Neural Relay Configuration Module

This module manages application settings and environment variables using
pydantic-settings for type-safe configuration management.

Environment variables are loaded from .env file or system environment.
All provider credentials use SecretStr to prevent accidental logging.
A provider whose key is missing is simply not registered; the service
still starts with whatever subset of providers is configured.
"""

from functools import lru_cache
from typing import Literal
import logging
import sys

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderOverride(BaseModel):
    """
    Per-provider connection overrides.

    Supplied as JSON through PROVIDER_OVERRIDES, keyed by provider key:
        PROVIDER_OVERRIDES='{"grok": {"model": "grok-2-latest"}}'
    """

    api_key: SecretStr | None = None
    endpoint: str | None = None
    model: str | None = None


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Pydantic Settings automatically reads from:
    1. Environment variables
    2. .env file in working directory
    3. Default values defined here

    Every provider key is optional. API keys use SecretStr to prevent
    accidental exposure in logs.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore unknown env vars
    )

    anthropic_api_key: SecretStr | None = Field(
        default=None, description="Key for the primary engine"
    )

    openai_api_key: SecretStr | None = Field(
        default=None, description="Key for the advanced engine"
    )

    xai_api_key: SecretStr | None = Field(
        default=None, description="Key for the rapid reasoning engine"
    )

    google_ai_key: SecretStr | None = Field(
        default=None, description="Key for the long-context engine"
    )

    codex_api_key: SecretStr | None = Field(
        default=None, description="Key for the completion engine"
    )

    groq_api_key: SecretStr | None = Field(
        default=None, description="Key for the low-latency engine"
    )

    provider_overrides: dict[str, ProviderOverride] = Field(
        default_factory=dict,
        description="Per-provider {api_key, endpoint, model} overrides",
    )

    provider_timeout_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Upper bound for a single provider attempt",
    )

    brand_name: str = Field(
        default="CroweCode™ Intelligence System",
        description="Name presented to callers instead of any backend identity",
    )

    brand_model_name: str = Field(
        default="CroweCode Neural Engine v4.0",
        description="Model label stamped on outward response metadata",
    )

    brand_provider_name: str = Field(
        default="CroweCode™ Proprietary",
        description="Provider label stamped on outward response metadata",
    )

    brand_capabilities: str = Field(
        default="Advanced Reasoning + Multi-step Execution",
        description="Capability summary stamped on outward response metadata",
    )

    brand_architecture_name: str = Field(
        default="CroweCode Neural Architecture v4.1",
        description="Architecture label reported by model info",
    )

    track_costs: bool = Field(
        default=True, description="Record per-attempt latency, token and cost samples"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Application log level"
    )

    host: str = Field(default="0.0.0.0", description="Server bind host")

    port: int = Field(default=8000, description="Server bind port")

    debug: bool = Field(default=False, description="Enable debug mode")

    @field_validator("provider_overrides")
    @classmethod
    def validate_override_keys(
        cls, v: dict[str, ProviderOverride]
    ) -> dict[str, ProviderOverride]:
        """Reject blank provider keys in the override mapping."""
        for key in v:
            if not key.strip():
                raise ValueError("provider_overrides keys must be non-empty")
        return v

    def provider_keys_configured(self) -> dict[str, bool]:
        """Which credential slots hold a non-empty value (never the value itself)."""
        slots = {
            "anthropic": self.anthropic_api_key,
            "openai": self.openai_api_key,
            "xai": self.xai_api_key,
            "google": self.google_ai_key,
            "codex": self.codex_api_key,
            "groq": self.groq_api_key,
        }
        return {
            name: bool(secret.get_secret_value()) if secret else False
            for name, secret in slots.items()
        }


@lru_cache
def get_settings() -> Settings:
    """
    Returns cached settings instance.

    Using lru_cache ensures settings are loaded once and reused,
    avoiding repeated file reads and environment parsing.

    Returns:
        Settings: The application settings singleton.
    """
    return Settings()


def configure_logging(settings: Settings) -> None:
    """
    Configure application logging based on settings.

    Sets up structured logging with timestamps and reduces noise
    from third-party HTTP and SDK libraries.

    Args:
        settings: The application settings instance.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)
    logging.getLogger("groq").setLevel(logging.WARNING)
