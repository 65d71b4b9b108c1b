"""Shared context handed to every strategy of a pipeline run."""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Annotated

from pydantic import BaseModel, ConfigDict, Field

from src.features.fetch.channels import SourceMode
from src.features.fetch.constants import (
    DEFAULT_CANCEL_GRACE_SECONDS,
    DEFAULT_FETCH_TIMEOUT_SECONDS,
    DEFAULT_PROBE_TIMEOUT_SECONDS,
)


if TYPE_CHECKING:
    from src.features.host.browser import BrowserSessionImporter
    from src.features.host.credentials import CredentialCache
    from src.features.host.http import HttpClient
    from src.features.host.process import ProcessRunner
    from src.features.pty.runner import PtyRunner


class FailureSurfacePolicy(str, Enum):
    """Which failure to surface when every strategy of a pipeline fails.

    - MOST_ACTIONABLE: Prefer authentication, then protocol failures, over
      transient ones
    - LAST: The last failed attempt
    """

    MOST_ACTIONABLE = "most_actionable"
    LAST = "last"


class FetchSettings(BaseModel):
    """Per-run fetch settings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    source_mode: SourceMode = SourceMode.AUTO
    timeout_seconds: Annotated[float, Field(gt=0.0)] = DEFAULT_FETCH_TIMEOUT_SECONDS
    probe_timeout_seconds: Annotated[float, Field(gt=0.0)] = (
        DEFAULT_PROBE_TIMEOUT_SECONDS
    )
    cancel_grace_seconds: Annotated[float, Field(ge=0.0)] = (
        DEFAULT_CANCEL_GRACE_SECONDS
    )
    failure_policy: FailureSurfacePolicy = FailureSurfacePolicy.MOST_ACTIONABLE


@dataclass
class FetchContext:
    """Capability handles and settings shared by the strategies of one run.

    Any handle may be None when the host does not provide that capability;
    strategies needing a missing handle report themselves unavailable.
    The pipeline hands each strategy attempt its own copy carrying a
    cancel event, which is set when the attempt outlives its timeout.
    """

    settings: FetchSettings = field(default_factory=FetchSettings)
    http: "HttpClient | None" = None
    credentials: "CredentialCache | None" = None
    browser: "BrowserSessionImporter | None" = None
    process: "ProcessRunner | None" = None
    pty: "PtyRunner | None" = None
    sleep: Callable[[float], None] | None = None
    cancel_event: threading.Event | None = None

    def for_attempt(self) -> "FetchContext":
        """Copy the context with a fresh cancel event for one attempt."""
        return replace(self, cancel_event=threading.Event())

    @property
    def cancelled(self) -> bool:
        """Check whether the current attempt has been cancelled."""
        return self.cancel_event is not None and self.cancel_event.is_set()

    def pause(self, seconds: float) -> None:
        """Wait between retries, returning early once cancelled.

        An injected sleep function takes precedence, so tests can record
        waits without blocking.

        Args:
            seconds: Time to wait.
        """
        if self.sleep is not None:
            self.sleep(seconds)
        elif self.cancel_event is not None:
            self.cancel_event.wait(seconds)
        else:
            time.sleep(seconds)
