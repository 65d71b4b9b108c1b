"""Deterministic time helpers for tests."""

from datetime import UTC, datetime


# Fixed timestamp so cookie expiry and Retry-After dates are reproducible
FIXED_NOW = datetime(2025, 3, 14, 12, 0, 0, tzinfo=UTC)


class RecordingSleep:
    """Stand-in for time.sleep that records requested waits."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
