"""Fallback pipeline executing strategies in priority order.

The pipeline tries strategies one at a time, highest priority first, and
stops at the first success. Strategies never run concurrently: several of
them have side effects against a shared remote session. Every strategy
visited contributes exactly one FetchAttempt to the outcome.
"""

import time
from collections.abc import Sequence
from enum import Enum
from typing import Annotated

import structlog
from pydantic import BaseModel, ConfigDict, Field

from src.features.fetch.bridge import Bridge, get_execution_bridge, run_bounded
from src.features.fetch.channels import ChannelKind
from src.features.fetch.context import FailureSurfacePolicy, FetchContext
from src.features.fetch.errors import (
    CATEGORY_HINTS,
    ErrorCategory,
    ErrorRecord,
    FetchError,
    FetchErrorClass,
)
from src.features.fetch.metrics import FetchMetrics
from src.features.fetch.strategy import FetchStrategy, sort_by_priority
from src.features.snapshot.models import UsageSnapshot


logger = structlog.get_logger()


class AttemptOutcome(str, Enum):
    """Outcome of one strategy attempt."""

    SKIPPED = "skipped"
    FAILED = "failed"
    SUCCEEDED = "succeeded"


class FetchAttempt(BaseModel):
    """Record of one strategy visited by the pipeline."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    strategy_id: str = Field(description="Strategy identifier")
    kind: ChannelKind = Field(description="Channel kind of the strategy")
    outcome: AttemptOutcome = Field(description="Attempt outcome")
    reason: str | None = Field(default=None, description="Why it was skipped")
    error_class: FetchErrorClass | None = Field(
        default=None, description="Classification of a failed attempt"
    )
    category: ErrorCategory | None = None
    message: str | None = None
    duration_ms: Annotated[float, Field(ge=0.0)] = 0.0

    @classmethod
    def skipped(
        cls, strategy: FetchStrategy, reason: str, duration_ms: float = 0.0
    ) -> "FetchAttempt":
        """Create a skipped attempt."""
        return cls(
            strategy_id=strategy.strategy_id,
            kind=strategy.kind,
            outcome=AttemptOutcome.SKIPPED,
            reason=reason,
            duration_ms=duration_ms,
        )

    @classmethod
    def failed(
        cls, strategy: FetchStrategy, error: FetchError, duration_ms: float = 0.0
    ) -> "FetchAttempt":
        """Create a failed attempt from a classified error."""
        return cls(
            strategy_id=strategy.strategy_id,
            kind=strategy.kind,
            outcome=AttemptOutcome.FAILED,
            error_class=error.error_class,
            category=error.category,
            message=error.message,
            duration_ms=duration_ms,
        )

    @classmethod
    def succeeded(
        cls, strategy: FetchStrategy, duration_ms: float = 0.0
    ) -> "FetchAttempt":
        """Create a succeeded attempt."""
        return cls(
            strategy_id=strategy.strategy_id,
            kind=strategy.kind,
            outcome=AttemptOutcome.SUCCEEDED,
            duration_ms=duration_ms,
        )


class FetchOutcome(BaseModel):
    """Result of one pipeline execution.

    Holds the ordered attempt trail plus either the snapshot produced by
    the first succeeding strategy or the surfaced failure.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    provider_id: str
    attempts: list[FetchAttempt] = Field(default_factory=list)
    snapshot: UsageSnapshot | None = None
    error: ErrorRecord | None = None
    source_strategy: str | None = Field(
        default=None, description="Strategy that produced the snapshot"
    )
    duration_ms: Annotated[float, Field(ge=0.0)] = 0.0

    @property
    def success(self) -> bool:
        """Check if a strategy produced a snapshot."""
        return self.snapshot is not None

    @property
    def failed_attempts(self) -> list[FetchAttempt]:
        """Get the attempts that failed."""
        return [a for a in self.attempts if a.outcome == AttemptOutcome.FAILED]

    @property
    def skipped_attempts(self) -> list[FetchAttempt]:
        """Get the attempts that were skipped."""
        return [a for a in self.attempts if a.outcome == AttemptOutcome.SKIPPED]


# Lower rank is more actionable for the user
_ACTIONABLE_RANK: dict[ErrorCategory, int] = {
    ErrorCategory.AUTHENTICATION: 0,
    ErrorCategory.PROTOCOL: 1,
}
_UNKNOWN_RANK = 2


def _actionable_rank(attempt: FetchAttempt) -> int | None:
    if attempt.error_class == FetchErrorClass.UNKNOWN:
        return _UNKNOWN_RANK
    if attempt.category is None:
        return None
    return _ACTIONABLE_RANK.get(attempt.category)


def select_surfaced_failure(
    attempts: Sequence[FetchAttempt], policy: FailureSurfacePolicy
) -> int | None:
    """Choose which failed attempt to surface for an exhausted pipeline.

    With MOST_ACTIONABLE, authentication failures win over protocol
    failures, which win over unknown ones; within one rank the latest
    attempt wins. If only transient failures occurred, the last one is
    chosen. With LAST, the last failed attempt is chosen.

    Args:
        attempts: Attempt trail in execution order.
        policy: Surfacing policy.

    Returns:
        Index of the chosen attempt, or None if nothing failed.
    """
    failed = [
        i for i, a in enumerate(attempts) if a.outcome == AttemptOutcome.FAILED
    ]
    if not failed:
        return None
    if policy == FailureSurfacePolicy.LAST:
        return failed[-1]

    best: int | None = None
    best_rank: int | None = None
    for index in failed:
        rank = _actionable_rank(attempts[index])
        if rank is None:
            continue
        if best_rank is None or rank <= best_rank:
            best, best_rank = index, rank
    return best if best is not None else failed[-1]


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000


class FetchPipeline:
    """Ordered, sequential, first-success-wins strategy executor."""

    def __init__(
        self,
        strategies: Sequence[FetchStrategy],
        bridge: Bridge | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            strategies: Strategies in registration order.
            bridge: Execution bridge for blocking work. Defaults to the
                process-wide ExecutionBridge.
        """
        self._strategies = list(strategies)
        self._bridge = bridge

    @property
    def strategies(self) -> list[FetchStrategy]:
        """Get strategies in the order they would be tried."""
        return sort_by_priority(self._strategies)

    def ordered_for(self, ctx: FetchContext) -> list[FetchStrategy]:
        """Get the strategies permitted by the context's source mode, in order.

        Args:
            ctx: Fetch context.

        Returns:
            Filtered strategies sorted by descending priority.
        """
        mode = ctx.settings.source_mode
        return [s for s in self.strategies if mode.allows(s.kind)]

    async def execute(self, ctx: FetchContext, provider_id: str) -> FetchOutcome:
        """Run strategies until one succeeds.

        Per-strategy failures never propagate; they are recorded in the
        attempt trail.

        Args:
            ctx: Shared fetch context.
            provider_id: Provider the snapshot is for.

        Returns:
            FetchOutcome with the attempt trail and snapshot or error.
        """
        log = logger.bind(component="pipeline", provider_id=provider_id)
        bridge = self._bridge or get_execution_bridge()
        metrics = FetchMetrics.get_instance()
        start = time.monotonic()

        candidates = self.ordered_for(ctx)
        log.info(
            "pipeline_started",
            strategies=[s.strategy_id for s in candidates],
            excluded=len(self._strategies) - len(candidates),
            source_mode=ctx.settings.source_mode.value,
        )

        attempts: list[FetchAttempt] = []
        errors: dict[int, FetchError] = {}

        for strategy in candidates:
            attempt_start = time.monotonic()
            slog = log.bind(strategy_id=strategy.strategy_id, kind=strategy.kind.value)

            attempt_ctx = ctx.for_attempt()
            reason = await self._probe(strategy, attempt_ctx, bridge)
            if reason is not None:
                attempts.append(
                    FetchAttempt.skipped(strategy, reason, _elapsed_ms(attempt_start))
                )
                metrics.record_attempt(AttemptOutcome.SKIPPED.value)
                slog.info("strategy_skipped", reason=reason)
                continue

            try:
                result = await run_bounded(
                    bridge,
                    strategy.fetch,
                    attempt_ctx,
                    timeout_seconds=ctx.settings.timeout_seconds,
                    cancel_event=attempt_ctx.cancel_event,
                    grace_seconds=ctx.settings.cancel_grace_seconds,
                )
                if not isinstance(result, UsageSnapshot):
                    raise FetchError(
                        FetchErrorClass.UNKNOWN,
                        f"Strategy returned {type(result).__name__}, "
                        "not a usage snapshot",
                    )
                snapshot = result.with_source(strategy.kind)
            except TimeoutError:
                error = FetchError(
                    FetchErrorClass.STRATEGY_TIMEOUT,
                    f"Strategy timed out after {ctx.settings.timeout_seconds}s",
                )
            except FetchError as e:
                error = e
            except Exception as e:  # noqa: BLE001
                error = FetchError(FetchErrorClass.UNKNOWN, f"{type(e).__name__}: {e}")
            else:
                duration_ms = _elapsed_ms(attempt_start)
                attempts.append(FetchAttempt.succeeded(strategy, duration_ms))
                metrics.record_attempt(AttemptOutcome.SUCCEEDED.value)
                slog.info("strategy_succeeded", duration_ms=round(duration_ms, 2))
                return self._finish(
                    provider_id,
                    attempts,
                    start,
                    snapshot=snapshot,
                    source_strategy=strategy.strategy_id,
                )

            duration_ms = _elapsed_ms(attempt_start)
            if error.category == ErrorCategory.UNAVAILABLE:
                attempts.append(
                    FetchAttempt.skipped(strategy, error.message, duration_ms)
                )
                metrics.record_attempt(AttemptOutcome.SKIPPED.value)
                slog.info("strategy_skipped", reason=error.message)
                continue

            errors[len(attempts)] = error
            attempts.append(FetchAttempt.failed(strategy, error, duration_ms))
            metrics.record_attempt(
                AttemptOutcome.FAILED.value, error.error_class.value
            )
            slog.warning(
                "strategy_failed",
                error_class=error.error_class.value,
                category=error.category.value,
                message=error.message,
                duration_ms=round(duration_ms, 2),
            )

        index = select_surfaced_failure(attempts, ctx.settings.failure_policy)
        if index is None:
            record = ErrorRecord(
                error_class=FetchErrorClass.NO_STRATEGIES_AVAILABLE,
                category=ErrorCategory.UNAVAILABLE,
                message=f"No strategies available for provider '{provider_id}'",
                hint=CATEGORY_HINTS[ErrorCategory.UNAVAILABLE],
            )
        else:
            record = ErrorRecord.from_exception(
                errors[index], strategy_id=attempts[index].strategy_id
            )

        log.warning(
            "pipeline_exhausted",
            attempts=len(attempts),
            error_class=record.error_class.value,
            surfaced_strategy=record.strategy_id,
        )
        return self._finish(provider_id, attempts, start, error=record)

    async def _probe(
        self, strategy: FetchStrategy, ctx: FetchContext, bridge: Bridge
    ) -> str | None:
        """Run an availability probe, bounded by the probe timeout.

        Returns:
            None if the strategy is available, else the skip reason.
        """
        try:
            available = await run_bounded(
                bridge,
                strategy.is_available,
                ctx,
                timeout_seconds=ctx.settings.probe_timeout_seconds,
                cancel_event=ctx.cancel_event,
                grace_seconds=ctx.settings.cancel_grace_seconds,
            )
        except TimeoutError:
            return (
                f"availability probe timed out after "
                f"{ctx.settings.probe_timeout_seconds}s"
            )
        except Exception as e:  # noqa: BLE001
            return f"availability probe failed: {e}"
        return None if available else "unavailable"

    def _finish(
        self,
        provider_id: str,
        attempts: list[FetchAttempt],
        start: float,
        *,
        snapshot: UsageSnapshot | None = None,
        error: ErrorRecord | None = None,
        source_strategy: str | None = None,
    ) -> FetchOutcome:
        duration_ms = _elapsed_ms(start)
        FetchMetrics.get_instance().record_pipeline(
            success=snapshot is not None, duration_ms=duration_ms
        )
        return FetchOutcome(
            provider_id=provider_id,
            attempts=attempts,
            snapshot=snapshot,
            error=error,
            source_strategy=source_strategy,
            duration_ms=duration_ms,
        )
