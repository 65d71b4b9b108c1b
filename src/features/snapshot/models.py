"""Data models for normalized usage snapshots.

A snapshot is independent of the channel that produced it; provider parsers
turn raw bytes or terminal text into these models.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Annotated

from pydantic import BaseModel, ConfigDict, Field


if TYPE_CHECKING:
    from src.features.fetch.channels import ChannelKind


# Usage above this percentage is reported as approaching the limit
APPROACHING_LIMIT_PERCENT = 80.0


class UsageWindow(BaseModel):
    """A single rate-limit or quota window."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    used_percent: Annotated[float, Field(ge=0.0, le=100.0)]
    window_minutes: Annotated[int, Field(ge=1)] | None = None
    resets_at: datetime | None = None
    reset_description: str | None = None

    @property
    def remaining_percent(self) -> float:
        """Get the remaining share of the window."""
        return max(0.0, 100.0 - self.used_percent)

    @property
    def is_approaching_limit(self) -> bool:
        """Check if usage is close to the limit."""
        return self.used_percent > APPROACHING_LIMIT_PERCENT


class ProviderIdentity(BaseModel):
    """Account identity reported alongside usage."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    email: str | None = None
    organization: str | None = None
    login_method: str | None = None
    plan: str | None = None


class UsageSnapshot(BaseModel):
    """Normalized usage telemetry for one provider."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    primary: UsageWindow | None = None
    secondary: UsageWindow | None = None
    tertiary: UsageWindow | None = None
    identity: ProviderIdentity | None = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    fetch_source: str | None = Field(
        default=None, description="Channel kind value that produced this snapshot"
    )

    @property
    def windows(self) -> list[UsageWindow]:
        """Get the populated windows in order."""
        return [
            w for w in (self.primary, self.secondary, self.tertiary) if w is not None
        ]

    def with_source(self, kind: "ChannelKind") -> "UsageSnapshot":
        """Return a copy stamped with the channel that produced it.

        Args:
            kind: Channel kind of the succeeding strategy.

        Returns:
            New snapshot with fetch_source set.
        """
        return self.model_copy(update={"fetch_source": kind.value})
