"""Entry points for fetching provider usage."""

import asyncio
from collections.abc import Iterable

import structlog

from src.features.fetch.bridge import Bridge
from src.features.fetch.context import FetchContext
from src.features.fetch.pipeline import FetchOutcome, FetchPipeline
from src.features.fetch.strategy import FetchStrategy
from src.features.observability.logging import (
    bind_provider_context,
    clear_provider_context,
)


logger = structlog.get_logger()


class UnknownProviderError(KeyError):
    """Raised when a provider has no registered strategies."""

    def __init__(self, provider_id: str) -> None:
        """Initialize the error.

        Args:
            provider_id: The unknown provider.
        """
        super().__init__(provider_id)
        self.provider_id = provider_id

    def __str__(self) -> str:
        return f"Unknown provider: '{self.provider_id}'"


class StrategyRegistry:
    """Strategies per provider, kept in registration order."""

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._strategies: dict[str, list[FetchStrategy]] = {}

    def register(self, provider_id: str, strategy: FetchStrategy) -> None:
        """Register a strategy for a provider.

        Args:
            provider_id: Provider identifier.
            strategy: Strategy instance.

        Raises:
            ValueError: If the provider already has a strategy with this id.
        """
        existing = self._strategies.setdefault(provider_id, [])
        if any(s.strategy_id == strategy.strategy_id for s in existing):
            msg = (
                f"Duplicate strategy id '{strategy.strategy_id}' "
                f"for provider '{provider_id}'"
            )
            raise ValueError(msg)
        existing.append(strategy)

    def register_all(
        self, provider_id: str, strategies: Iterable[FetchStrategy]
    ) -> None:
        """Register several strategies for a provider, in order.

        The provider is registered even when no strategies are given.
        """
        self._strategies.setdefault(provider_id, [])
        for strategy in strategies:
            self.register(provider_id, strategy)

    def strategies_for(self, provider_id: str) -> list[FetchStrategy]:
        """Get a provider's strategies in registration order.

        Raises:
            UnknownProviderError: If the provider is not registered.
        """
        if provider_id not in self._strategies:
            raise UnknownProviderError(provider_id)
        return list(self._strategies[provider_id])

    @property
    def provider_ids(self) -> list[str]:
        """Get registered provider ids in registration order."""
        return list(self._strategies)

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._strategies

    def __len__(self) -> int:
        return len(self._strategies)


async def fetch_provider(
    provider_id: str,
    registry: StrategyRegistry,
    ctx: FetchContext,
    bridge: Bridge | None = None,
) -> FetchOutcome:
    """Fetch usage for one provider through its strategy pipeline.

    Args:
        provider_id: Provider to fetch.
        registry: Registry holding the provider's strategies.
        ctx: Shared fetch context.
        bridge: Optional execution bridge override.

    Returns:
        The pipeline's FetchOutcome.

    Raises:
        UnknownProviderError: If the provider is not registered.
    """
    pipeline = FetchPipeline(registry.strategies_for(provider_id), bridge=bridge)
    bind_provider_context(provider_id)
    try:
        return await pipeline.execute(ctx, provider_id)
    finally:
        clear_provider_context()


async def fetch_providers(
    provider_ids: Iterable[str],
    registry: StrategyRegistry,
    ctx: FetchContext,
    bridge: Bridge | None = None,
) -> dict[str, FetchOutcome]:
    """Fetch several providers concurrently.

    Each provider's pipeline stays sequential; only independent providers
    overlap. Blocking work from all of them shares the bridge's pool.

    Args:
        provider_ids: Providers to fetch.
        registry: Registry holding the providers' strategies.
        ctx: Shared fetch context.
        bridge: Optional execution bridge override.

    Returns:
        Outcome per provider id, in the order requested.
    """
    ids = list(dict.fromkeys(provider_ids))
    outcomes = await asyncio.gather(
        *(fetch_provider(pid, registry, ctx, bridge) for pid in ids)
    )
    logger.info(
        "providers_fetched",
        component="service",
        providers=len(ids),
        succeeded=sum(1 for o in outcomes if o.success),
    )
    return dict(zip(ids, outcomes, strict=True))
