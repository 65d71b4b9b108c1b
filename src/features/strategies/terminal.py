"""Interactive-terminal strategy driving a CLI through a pseudo-terminal."""

from src.features.fetch.channels import ChannelKind
from src.features.fetch.context import FetchContext
from src.features.fetch.errors import FetchError, FetchErrorClass
from src.features.fetch.retry import RetryPolicy, execute_with_retry
from src.features.pty.models import PtyOptions
from src.features.pty.runner import PtyRunner
from src.features.snapshot.models import UsageSnapshot
from src.features.strategies.parsers import SnapshotParser


class TerminalStrategy:
    """Types a command into an interactive CLI and parses what it prints.

    The session must end on a stop pattern; timeouts surface as transient
    errors and a process that exits early as incomplete output.
    """

    kind = ChannelKind.INTERACTIVE_TERMINAL

    def __init__(  # noqa: PLR0913
        self,
        strategy_id: str,
        *,
        binary: str,
        input_text: str,
        options: PtyOptions,
        parser: SnapshotParser,
        priority: int | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Initialize the strategy.

        Args:
            strategy_id: Stable identifier.
            binary: CLI binary name or path.
            input_text: Text typed after launch (e.g. ``"/usage\\n"``).
            options: Terminal session options.
            parser: Transform from captured text to snapshot.
            priority: Priority override; defaults to the kind's default.
            retry_policy: Retry policy for terminal timeouts.
        """
        self._strategy_id = strategy_id
        self._binary = binary
        self._input_text = input_text
        self._options = options
        self._parser = parser
        self._priority = self.kind.default_priority if priority is None else priority
        self._retry_policy = retry_policy or RetryPolicy.no_retry()

    @property
    def strategy_id(self) -> str:
        """Get the strategy identifier."""
        return self._strategy_id

    @property
    def priority(self) -> int:
        """Get the priority."""
        return self._priority

    @property
    def options(self) -> PtyOptions:
        """Get the terminal session options."""
        return self._options

    def is_available(self, ctx: FetchContext) -> bool:
        """Available when a terminal runner exists and the binary is on PATH."""
        return ctx.pty is not None and PtyRunner.exists(self._binary)

    def fetch(self, ctx: FetchContext) -> UsageSnapshot:
        """Run a terminal session and parse the captured text."""
        if ctx.pty is None:
            raise FetchError(
                FetchErrorClass.NOT_AVAILABLE, "No terminal runner available"
            )
        runner = ctx.pty

        def session() -> str:
            result = runner.run(
                self._binary,
                self._input_text,
                self._options,
                cancel_event=ctx.cancel_event,
            )
            return result.raise_for_state()

        text = execute_with_retry(
            session,
            self._retry_policy,
            sleep=ctx.pause,
            operation_name=self._strategy_id,
            cancel_event=ctx.cancel_event,
        )
        return self._parser(text)
