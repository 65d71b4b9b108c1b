"""Fetch strategy capability contract."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import structlog

from src.features.fetch.bridge import Bridge, get_execution_bridge, run_bounded
from src.features.fetch.channels import ChannelKind
from src.features.snapshot.models import UsageSnapshot


if TYPE_CHECKING:
    from src.features.fetch.context import FetchContext


logger = structlog.get_logger()


@runtime_checkable
class FetchStrategy(Protocol):
    """Protocol for one technique of obtaining usage data over one channel.

    Strategies are:
    1. Identified by a stable strategy_id
    2. Tagged with the channel kind they use
    3. Ordered by priority (higher is tried first)
    4. Probed for availability before fetching

    Implementations hold no state between invocations apart from client
    handles they own. fetch is called at most once per pipeline pass and
    must not depend on anything a previously tried strategy left behind.
    """

    @property
    def strategy_id(self) -> str:
        """Stable identifier of this strategy."""
        ...

    @property
    def kind(self) -> ChannelKind:
        """Channel kind used by this strategy."""
        ...

    @property
    def priority(self) -> int:
        """Priority; higher values are tried first."""
        ...

    def is_available(self, ctx: "FetchContext") -> bool:
        """Check cheaply whether this strategy can run right now.

        Args:
            ctx: Shared fetch context.

        Returns:
            True if fetch is worth attempting.
        """
        ...

    def fetch(self, ctx: "FetchContext") -> UsageSnapshot:
        """Fetch a usage snapshot.

        Args:
            ctx: Shared fetch context.

        Returns:
            Normalized usage snapshot.

        Raises:
            FetchError: On any classified failure.
        """
        ...


@dataclass(frozen=True)
class StrategyInfo:
    """Diagnostic description of a strategy."""

    strategy_id: str
    kind: ChannelKind
    priority: int
    available: bool

    def to_dict(self) -> dict[str, str | int | bool]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "strategy_id": self.strategy_id,
            "kind": self.kind.value,
            "priority": self.priority,
            "available": self.available,
        }


def sort_by_priority(strategies: list[FetchStrategy]) -> list[FetchStrategy]:
    """Order strategies by descending priority.

    Python's sort is stable, so strategies with equal priority keep their
    registration order.

    Args:
        strategies: Strategies in registration order.

    Returns:
        New list sorted by descending priority.
    """
    return sorted(strategies, key=lambda s: -s.priority)


async def describe_strategies(
    strategies: list[FetchStrategy],
    ctx: "FetchContext",
    bridge: Bridge | None = None,
) -> list[StrategyInfo]:
    """Describe strategies in the order a pipeline would try them.

    Availability probes run one at a time on the bridge, each bounded by
    the probe timeout. A probe that times out or raises is reported as
    unavailable.

    Args:
        strategies: Strategies to describe.
        ctx: Fetch context used for availability probes.
        bridge: Execution bridge. Defaults to the process-wide one.

    Returns:
        One StrategyInfo per strategy permitted by the source mode.
    """
    bridge = bridge or get_execution_bridge()
    settings = ctx.settings
    infos: list[StrategyInfo] = []
    for strategy in sort_by_priority(strategies):
        if not settings.source_mode.allows(strategy.kind):
            continue
        probe_ctx = ctx.for_attempt()
        try:
            available = await run_bounded(
                bridge,
                strategy.is_available,
                probe_ctx,
                timeout_seconds=settings.probe_timeout_seconds,
                cancel_event=probe_ctx.cancel_event,
                grace_seconds=settings.cancel_grace_seconds,
            )
        except TimeoutError:
            logger.warning(
                "availability_probe_timed_out",
                component="strategy",
                strategy_id=strategy.strategy_id,
                timeout_seconds=settings.probe_timeout_seconds,
            )
            available = False
        except Exception:  # noqa: BLE001
            available = False
        infos.append(
            StrategyInfo(
                strategy_id=strategy.strategy_id,
                kind=strategy.kind,
                priority=strategy.priority,
                available=available,
            )
        )
    return infos
