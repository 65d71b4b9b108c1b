"""Local-process strategy running a CLI's machine-readable mode."""

from src.features.fetch.channels import ChannelKind
from src.features.fetch.context import FetchContext
from src.features.fetch.errors import FetchError, FetchErrorClass
from src.features.host.process import DEFAULT_PROCESS_TIMEOUT_SECONDS, ProcessRunner
from src.features.snapshot.models import UsageSnapshot
from src.features.strategies.parsers import SnapshotParser


class LocalProcessStrategy:
    """Runs a command once and parses its stdout."""

    kind = ChannelKind.LOCAL_PROCESS_PROTOCOL

    def __init__(  # noqa: PLR0913
        self,
        strategy_id: str,
        *,
        command: str,
        parser: SnapshotParser,
        args: tuple[str, ...] = (),
        env: dict[str, str] | None = None,
        timeout_seconds: float = DEFAULT_PROCESS_TIMEOUT_SECONDS,
        priority: int | None = None,
    ) -> None:
        """Initialize the strategy.

        Args:
            strategy_id: Stable identifier.
            command: Command name or path.
            parser: Transform from stdout to snapshot.
            args: Command arguments.
            env: Extra environment variables.
            timeout_seconds: Process timeout.
            priority: Priority override; defaults to the kind's default.
        """
        self._strategy_id = strategy_id
        self._command = command
        self._parser = parser
        self._args = args
        self._env = env or {}
        self._timeout_seconds = timeout_seconds
        self._priority = self.kind.default_priority if priority is None else priority

    @property
    def strategy_id(self) -> str:
        """Get the strategy identifier."""
        return self._strategy_id

    @property
    def priority(self) -> int:
        """Get the priority."""
        return self._priority

    def is_available(self, ctx: FetchContext) -> bool:
        """Available when a process runner exists and the command is on PATH."""
        return ctx.process is not None and ProcessRunner.command_exists(self._command)

    def fetch(self, ctx: FetchContext) -> UsageSnapshot:
        """Run the command and parse its output."""
        if ctx.process is None:
            raise FetchError(
                FetchErrorClass.NOT_AVAILABLE, "No process runner available"
            )
        output = ctx.process.run(
            self._command,
            self._args,
            timeout_seconds=self._timeout_seconds,
            env=self._env,
            cancel_event=ctx.cancel_event,
        )
        return self._parser(output.stdout_if_success())
