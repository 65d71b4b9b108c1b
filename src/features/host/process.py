"""One-shot subprocess runner for local-process strategies."""

import os
import shutil
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path

import structlog

from src.features.fetch.errors import FetchError, FetchErrorClass


logger = structlog.get_logger()

DEFAULT_PROCESS_TIMEOUT_SECONDS = 30.0

# How often a running process checks for cancellation (seconds)
CANCEL_POLL_SECONDS = 0.1

# Longest stderr excerpt carried in error messages
STDERR_EXCERPT_CHARS = 200


@dataclass(frozen=True)
class ProcessOutput:
    """Captured output of a finished process."""

    stdout: str
    stderr: str
    exit_code: int
    duration_ms: float

    @property
    def success(self) -> bool:
        """Check if the process exited with status 0."""
        return self.exit_code == 0

    def stdout_if_success(self) -> str:
        """Get stdout, raising if the process failed.

        Raises:
            FetchError: PROCESS_FAILED with a stderr excerpt.
        """
        if self.success:
            return self.stdout
        excerpt = self.stderr.strip()[:STDERR_EXCERPT_CHARS]
        raise FetchError(
            FetchErrorClass.PROCESS_FAILED,
            f"Process exited with code {self.exit_code}: {excerpt}",
        )


class ProcessRunner:
    """Runs commands to completion and captures their output."""

    @staticmethod
    def which(command: str) -> Path | None:
        """Find a command on PATH."""
        found = shutil.which(command)
        return Path(found) if found else None

    @classmethod
    def command_exists(cls, command: str) -> bool:
        """Check if a command exists on PATH."""
        return cls.which(command) is not None

    def run(  # noqa: PLR0913
        self,
        command: str,
        args: list[str] | tuple[str, ...] = (),
        timeout_seconds: float = DEFAULT_PROCESS_TIMEOUT_SECONDS,
        env: dict[str, str] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ProcessOutput:
        """Run a command and wait for it to finish.

        Args:
            command: Command name or path.
            args: Command arguments.
            timeout_seconds: Kill the process after this long.
            env: Extra environment variables.
            cancel_event: Optional event; setting it kills the process.

        Returns:
            Captured output, whatever the exit code.

        Raises:
            FetchError: NOT_AVAILABLE if the command is missing,
                PROCESS_TIMEOUT if it runs too long, CANCELLED if the cancel
                event is set first, PROCESS_FAILED if it cannot be started.
        """
        log = logger.bind(component="process", command=command)
        path = self.which(command)
        if path is None:
            log.debug("command_not_found")
            raise FetchError(
                FetchErrorClass.NOT_AVAILABLE, f"Command not found on PATH: {command}"
            )

        start = time.monotonic()
        try:
            process = subprocess.Popen(  # noqa: S603
                [str(path), *args],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
                env={**os.environ, **(env or {})},
            )
        except OSError as e:
            raise FetchError(
                FetchErrorClass.PROCESS_FAILED, f"Failed to run {command}: {e}"
            ) from e

        deadline = start + timeout_seconds
        while True:
            wait = max(0.0, min(CANCEL_POLL_SECONDS, deadline - time.monotonic()))
            try:
                stdout, stderr = process.communicate(timeout=wait)
                break
            except subprocess.TimeoutExpired as e:
                if cancel_event is not None and cancel_event.is_set():
                    _kill(process)
                    log.info("process_cancelled")
                    raise FetchError(
                        FetchErrorClass.CANCELLED, f"{command} was cancelled"
                    ) from e
                if time.monotonic() >= deadline:
                    _kill(process)
                    log.warning("process_timeout", timeout_seconds=timeout_seconds)
                    raise FetchError(
                        FetchErrorClass.PROCESS_TIMEOUT,
                        f"{command} timed out after {timeout_seconds}s",
                    ) from e

        duration_ms = (time.monotonic() - start) * 1000
        log.debug(
            "process_finished",
            exit_code=process.returncode,
            duration_ms=round(duration_ms, 2),
        )
        return ProcessOutput(
            stdout=stdout,
            stderr=stderr,
            exit_code=process.returncode,
            duration_ms=duration_ms,
        )


def _kill(process: "subprocess.Popen[str]") -> None:
    process.kill()
    process.communicate()
