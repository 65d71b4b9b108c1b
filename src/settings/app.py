"""Application settings powered by Pydantic BaseSettings."""

from pathlib import Path
from typing import Annotated

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.features.fetch.channels import SourceMode
from src.features.fetch.constants import (
    DEFAULT_FETCH_TIMEOUT_SECONDS,
    DEFAULT_PROBE_TIMEOUT_SECONDS,
    DEFAULT_WORKER_THREADS,
)
from src.features.fetch.context import FailureSurfacePolicy


class AppSettings(BaseSettings):
    """Centralized environment configuration.

    Every field can be set through a ``USAGE_FETCH_``-prefixed environment
    variable or a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="USAGE_FETCH_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    providers_file: Path = Field(
        default=Path("providers.yaml"),
        description="YAML file describing each provider's strategies",
    )
    source_mode: SourceMode = SourceMode.AUTO
    fetch_timeout_seconds: Annotated[float, Field(gt=0.0, le=600.0)] = (
        DEFAULT_FETCH_TIMEOUT_SECONDS
    )
    probe_timeout_seconds: Annotated[float, Field(gt=0.0, le=60.0)] = (
        DEFAULT_PROBE_TIMEOUT_SECONDS
    )
    worker_threads: Annotated[int, Field(ge=1, le=64)] = DEFAULT_WORKER_THREADS
    failure_policy: FailureSurfacePolicy = FailureSurfacePolicy.MOST_ACTIONABLE
    log_level: str = "INFO"
    log_json: bool = True


def get_settings() -> AppSettings:
    """Get a settings instance."""
    return AppSettings()
