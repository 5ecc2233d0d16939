"""Configuration management for sqlite_handles."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineConfig(BaseModel):
    """Native engine configuration."""

    library_path: Path | None = Field(
        default=None, description="Explicit path to the libsqlite3 shared library"
    )
    busy_timeout_ms: int = Field(
        default=0, ge=0, description="Busy handler timeout applied to every opened handle"
    )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(default="json", description="Log format")
    otel_endpoint: str | None = Field(
        default=None, description="OpenTelemetry collector endpoint"
    )
    otel_service_name: str = Field(
        default="sqlite_handles", description="Service name for tracing"
    )


class Config(BaseSettings):
    """Main configuration for sqlite_handles."""

    model_config = SettingsConfigDict(
        env_prefix="SQLITE_HANDLES_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    engine: EngineConfig = Field(default_factory=EngineConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


@lru_cache
def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()
