"""Configuration schema definitions."""

from src.features.config.schemas.providers import (
    ApiKeyStrategyConfig,
    BrowserSessionStrategyConfig,
    LocalProcessStrategyConfig,
    ProviderConfig,
    ProvidersConfig,
    StrategyConfig,
    TerminalStrategyConfig,
    TokenApiStrategyConfig,
)


__all__ = [
    "ApiKeyStrategyConfig",
    "BrowserSessionStrategyConfig",
    "LocalProcessStrategyConfig",
    "ProviderConfig",
    "ProvidersConfig",
    "StrategyConfig",
    "TerminalStrategyConfig",
    "TokenApiStrategyConfig",
]
