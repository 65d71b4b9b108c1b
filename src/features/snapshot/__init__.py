"""Normalized usage snapshot models."""

from src.features.snapshot.models import ProviderIdentity, UsageSnapshot, UsageWindow


__all__ = [
    "ProviderIdentity",
    "UsageSnapshot",
    "UsageWindow",
]
