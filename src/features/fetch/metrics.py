"""Metrics collection for the fetch engine."""

import threading
from dataclasses import dataclass, field
from typing import ClassVar


@dataclass
class FetchMetrics:
    """Metrics for fetch pipeline operations.

    Singleton class that tracks pipeline runs, strategy attempts by outcome,
    failures by error class, in-strategy retries, and terminal sessions by
    final state.
    """

    pipeline_runs_total: int = 0
    pipeline_failures_total: int = 0
    attempts_total: dict[str, int] = field(default_factory=dict)
    failures_total: dict[str, int] = field(default_factory=dict)
    retry_total: int = 0
    pty_sessions_total: dict[str, int] = field(default_factory=dict)
    duration_ms_total: float = 0.0

    _instance: ClassVar["FetchMetrics | None"] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    @classmethod
    def get_instance(cls) -> "FetchMetrics":
        """Get singleton metrics instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        with cls._lock:
            cls._instance = None

    def record_pipeline(self, *, success: bool, duration_ms: float) -> None:
        """Record a completed pipeline run.

        Args:
            success: Whether a strategy succeeded.
            duration_ms: Total pipeline duration in milliseconds.
        """
        with self._lock:
            self.pipeline_runs_total += 1
            if not success:
                self.pipeline_failures_total += 1
            self.duration_ms_total += duration_ms

    def record_attempt(self, outcome: str, error_class: str | None = None) -> None:
        """Record a strategy attempt.

        Args:
            outcome: Attempt outcome value.
            error_class: Error class value for failed attempts.
        """
        with self._lock:
            self.attempts_total[outcome] = self.attempts_total.get(outcome, 0) + 1
            if error_class:
                self.failures_total[error_class] = (
                    self.failures_total.get(error_class, 0) + 1
                )

    def record_retry(self) -> None:
        """Record a retry inside a strategy."""
        with self._lock:
            self.retry_total += 1

    def record_pty_session(self, state: str) -> None:
        """Record a finished terminal session.

        Args:
            state: Final session state value.
        """
        with self._lock:
            self.pty_sessions_total[state] = self.pty_sessions_total.get(state, 0) + 1

    def to_dict(self) -> dict[str, int | float | dict[str, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "pipeline_runs_total": self.pipeline_runs_total,
            "pipeline_failures_total": self.pipeline_failures_total,
            "attempts_total": dict(self.attempts_total),
            "failures_total": dict(self.failures_total),
            "retry_total": self.retry_total,
            "pty_sessions_total": dict(self.pty_sessions_total),
            "duration_ms_total": self.duration_ms_total,
        }
