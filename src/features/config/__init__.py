"""Provider configuration loading and validation module."""

from src.features.config.loader import (
    ConfigValidationError,
    ProviderConfigLoader,
    build_registry,
    build_strategy,
)
from src.features.config.schemas import ProviderConfig, ProvidersConfig


__all__ = [
    "ConfigValidationError",
    "ProviderConfig",
    "ProviderConfigLoader",
    "ProvidersConfig",
    "build_registry",
    "build_strategy",
]
