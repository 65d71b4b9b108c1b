"""Observability module for logging."""

from src.features.observability.logging import (
    bind_provider_context,
    clear_provider_context,
    configure_logging,
    get_logger,
)


__all__ = [
    "bind_provider_context",
    "clear_provider_context",
    "configure_logging",
    "get_logger",
]
