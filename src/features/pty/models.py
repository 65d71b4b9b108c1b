"""Options and results for terminal automation sessions."""

from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from src.features.fetch.errors import FetchError, FetchErrorClass
from src.features.pty.state_machine import PtySessionState


DEFAULT_PTY_TIMEOUT_SECONDS = 30.0


class SendRule(BaseModel):
    """Write a response to the terminal once a pattern appears."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    pattern: Annotated[str, Field(min_length=1)]
    response: str


class PtyOptions(BaseModel):
    """Configuration for one terminal session.

    Patterns are plain substrings matched against the output with control
    sequences stripped. Stop patterns and send rules are evaluated in the
    order given.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    timeout_seconds: Annotated[float, Field(gt=0.0)] = DEFAULT_PTY_TIMEOUT_SECONDS
    idle_timeout_seconds: Annotated[float, Field(gt=0.0)] | None = None
    stop_patterns: tuple[str, ...] = ()
    send_rules: tuple[SendRule, ...] = ()
    working_dir: Path | None = None
    env: dict[str, str] = Field(default_factory=dict)
    extra_args: tuple[str, ...] = ()
    settle_after_stop_seconds: Annotated[float, Field(ge=0.0)] = 0.0


@dataclass(frozen=True)
class PtyResult:
    """Result of one terminal session.

    text is the output with control sequences stripped; raw keeps the bytes
    exactly as read, for diagnostics.
    """

    state: PtySessionState
    text: str
    raw: bytes
    duration_ms: float
    exit_code: int | None = None
    matched_pattern: str | None = None

    @property
    def matched(self) -> bool:
        """Check if a stop pattern matched."""
        return self.state == PtySessionState.MATCHED_STOP

    @property
    def any_timeout(self) -> bool:
        """Check if the session ended on either timeout."""
        return self.state in (
            PtySessionState.TIMED_OUT,
            PtySessionState.IDLE_TIMED_OUT,
        )

    def raise_for_state(self) -> str:
        """Return the captured text, or raise if no stop pattern matched.

        Timeouts and cancellation are transient; a process that exited
        without producing the expected output is treated like a parse
        failure.

        Returns:
            The clean text captured up to the stop match.

        Raises:
            FetchError: If the session ended in any other state.
        """
        if self.state == PtySessionState.MATCHED_STOP:
            return self.text
        if self.any_timeout:
            kind = "idle" if self.state == PtySessionState.IDLE_TIMED_OUT else "overall"
            raise FetchError(
                FetchErrorClass.TERMINAL_TIMEOUT,
                f"Terminal session hit its {kind} timeout "
                f"after {self.duration_ms:.0f}ms",
            )
        if self.state == PtySessionState.CANCELLED:
            raise FetchError(
                FetchErrorClass.CANCELLED, "Terminal session was cancelled"
            )
        raise FetchError(
            FetchErrorClass.INCOMPLETE_OUTPUT,
            f"Process exited (code {self.exit_code}) before the expected "
            f"output appeared",
        )
