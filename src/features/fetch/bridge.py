"""Execution bridge from the asyncio event loop to a worker thread pool.

Subprocess spawning and pseudo-terminal I/O block, so they cannot run on
the event loop thread. The bridge owns one process-wide thread pool and
exposes a single crossing point, ``submit``, which parks only the calling
task until the blocking work finishes on the pool.

Lifecycle: the pool is created lazily on first use, exactly once even
under concurrent first use, and is never torn down while the process
runs. Failure to create it is fatal.
"""

import asyncio
import contextvars
import functools
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, ClassVar, Protocol, TypeVar

import structlog

from src.features.fetch.constants import (
    DEFAULT_WORKER_THREADS,
    EXIT_BRIDGE_UNAVAILABLE,
    WORKER_THREAD_NAME_PREFIX,
)


logger = structlog.get_logger()

T = TypeVar("T")


class Bridge(Protocol):
    """Anything that can run blocking work and await its result."""

    async def submit(self, fn: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
        """Run fn(*args, **kwargs) off the event loop and await the result."""
        ...


def _create_pool(max_workers: int) -> ThreadPoolExecutor:
    """Create the worker pool or terminate the process.

    Args:
        max_workers: Number of worker threads.

    Returns:
        The created thread pool.

    Raises:
        SystemExit: If the pool cannot be created.
    """
    try:
        return ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=WORKER_THREAD_NAME_PREFIX,
        )
    except (RuntimeError, OSError, ValueError) as e:
        logger.critical(
            "bridge_pool_creation_failed",
            component="bridge",
            max_workers=max_workers,
            error=str(e),
        )
        raise SystemExit(EXIT_BRIDGE_UNAVAILABLE) from e


class ExecutionBridge:
    """Process-wide singleton owning the worker thread pool."""

    _instance: ClassVar["ExecutionBridge | None"] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, executor: ThreadPoolExecutor, max_workers: int) -> None:
        """Initialize the bridge around an existing pool.

        Args:
            executor: Worker pool used for submitted work.
            max_workers: Size of the pool.
        """
        self._executor = executor
        self._max_workers = max_workers

    @property
    def executor(self) -> ThreadPoolExecutor:
        """Get the shared worker pool."""
        return self._executor

    @property
    def max_workers(self) -> int:
        """Get the configured number of worker threads."""
        return self._max_workers

    @classmethod
    def get_instance(cls, max_workers: int | None = None) -> "ExecutionBridge":
        """Get the singleton bridge, creating its pool on first use.

        Uses double-checked locking so the common path takes no lock.

        Args:
            max_workers: Pool size used only when the pool is created.

        Returns:
            The shared ExecutionBridge.
        """
        instance = cls._instance
        if instance is not None:
            return instance

        with cls._lock:
            if cls._instance is None:
                workers = max_workers or DEFAULT_WORKER_THREADS
                pool = _create_pool(workers)
                cls._instance = cls(pool, workers)
                logger.info(
                    "bridge_pool_created",
                    component="bridge",
                    max_workers=workers,
                )
            return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton (primarily for testing)."""
        with cls._lock:
            if cls._instance is not None:
                cls._instance.executor.shutdown(wait=False, cancel_futures=True)
            cls._instance = None

    async def submit(self, fn: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
        """Run blocking work on the pool and resume on the caller's loop.

        Context variables (including structlog's bound context) are copied
        into the worker thread.

        Args:
            fn: Blocking callable.
            *args: Positional arguments for fn.
            **kwargs: Keyword arguments for fn.

        Returns:
            Whatever fn returns.
        """
        loop = asyncio.get_running_loop()
        ctx = contextvars.copy_context()
        call = functools.partial(ctx.run, fn, *args, **kwargs)
        return await loop.run_in_executor(self._executor, call)


def _consume_result(future: "asyncio.Future[Any]") -> None:
    if not future.cancelled():
        future.exception()


async def run_bounded(  # noqa: PLR0913
    bridge: Bridge,
    fn: Callable[..., T],
    /,
    *args: Any,
    timeout_seconds: float,
    cancel_event: threading.Event | None = None,
    grace_seconds: float = 0.0,
) -> T:
    """Run blocking work through a bridge with an upper time bound.

    A thread cannot be interrupted, so on timeout the cancel event is set
    and the work gets up to grace_seconds to notice it and return. Only
    then does this coroutine raise, which keeps abandoned work from
    overlapping whatever the caller starts next.

    Args:
        bridge: Bridge that runs the work.
        fn: Blocking callable.
        *args: Positional arguments for fn.
        timeout_seconds: Time allowed before the work is cancelled.
        cancel_event: Event the work polls for cancellation.
        grace_seconds: Time allowed for cancelled work to wind down.

    Returns:
        Whatever fn returns.

    Raises:
        TimeoutError: If the work did not finish within timeout_seconds.
    """
    future = asyncio.ensure_future(bridge.submit(fn, *args))
    done, _ = await asyncio.wait({future}, timeout=timeout_seconds)
    if future in done:
        return future.result()

    if cancel_event is not None:
        cancel_event.set()
    done, _ = await asyncio.wait({future}, timeout=grace_seconds)
    if future in done:
        _consume_result(future)
    else:
        future.add_done_callback(_consume_result)
        logger.warning(
            "bridge_work_abandoned",
            component="bridge",
            function=getattr(fn, "__qualname__", repr(fn)),
            grace_seconds=grace_seconds,
        )
    raise TimeoutError(f"{getattr(fn, '__qualname__', fn)} timed out")


def get_execution_bridge(max_workers: int | None = None) -> ExecutionBridge:
    """Get the process-wide execution bridge.

    Args:
        max_workers: Pool size used only on first creation.

    Returns:
        The shared ExecutionBridge.
    """
    return ExecutionBridge.get_instance(max_workers)
