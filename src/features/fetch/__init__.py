"""Fetch orchestration engine.

This module provides the usage fetch engine with:
- A strategy capability contract, one implementation per channel
- A sequential, priority-ordered fallback pipeline
- An in-strategy retry policy with exponential backoff
- An execution bridge from the event loop to a worker thread pool
- Classified errors and metrics for observability
"""

from src.features.fetch.bridge import (
    Bridge,
    ExecutionBridge,
    get_execution_bridge,
    run_bounded,
)
from src.features.fetch.channels import ChannelKind, SourceMode
from src.features.fetch.context import (
    FailureSurfacePolicy,
    FetchContext,
    FetchSettings,
)
from src.features.fetch.errors import (
    ErrorCategory,
    ErrorRecord,
    FetchError,
    FetchErrorClass,
)
from src.features.fetch.metrics import FetchMetrics
from src.features.fetch.pipeline import (
    AttemptOutcome,
    FetchAttempt,
    FetchOutcome,
    FetchPipeline,
)
from src.features.fetch.retry import RetryPolicy, execute_with_retry
from src.features.fetch.service import (
    StrategyRegistry,
    UnknownProviderError,
    fetch_provider,
    fetch_providers,
)
from src.features.fetch.strategy import FetchStrategy, StrategyInfo, describe_strategies


__all__ = [
    "AttemptOutcome",
    "Bridge",
    "ChannelKind",
    "ErrorCategory",
    "ErrorRecord",
    "ExecutionBridge",
    "FailureSurfacePolicy",
    "FetchAttempt",
    "FetchContext",
    "FetchError",
    "FetchErrorClass",
    "FetchMetrics",
    "FetchOutcome",
    "FetchPipeline",
    "FetchSettings",
    "FetchStrategy",
    "RetryPolicy",
    "SourceMode",
    "StrategyInfo",
    "StrategyRegistry",
    "UnknownProviderError",
    "describe_strategies",
    "execute_with_retry",
    "fetch_provider",
    "fetch_providers",
    "get_execution_bridge",
    "run_bounded",
]
