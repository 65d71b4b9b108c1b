"""Pseudo-terminal runner for CLI tools without a machine-readable mode.

The runner spawns a command attached to a fresh pseudo-terminal, feeds it
input, and watches the output until a stop pattern appears, a timeout
fires, the process exits, or the caller cancels. Output is read on a
dedicated reader thread that hands chunks to the session loop through a
queue, so a blocked read never stalls the session's timing checks.

run() blocks for the whole session; callers on the event loop go through
the execution bridge.
"""

import errno
import fcntl
import os
import pty
import queue
import select
import shutil
import signal
import struct
import subprocess
import termios
import threading
import time
from dataclasses import dataclass
from pathlib import Path

import structlog

from src.features.fetch.errors import FetchError, FetchErrorClass
from src.features.fetch.metrics import FetchMetrics
from src.features.pty.ansi import decode_terminal_output
from src.features.pty.models import PtyOptions, PtyResult
from src.features.pty.state_machine import PtySessionState, PtySessionStateMachine


logger = structlog.get_logger()

DEFAULT_COLS = 80
DEFAULT_ROWS = 24
READ_BUFFER_SIZE = 4096
POLL_INTERVAL_SECONDS = 0.05
# Grace period for output still in flight when the child exits
EXIT_DRAIN_SECONDS = 0.05
READER_JOIN_TIMEOUT_SECONDS = 1.0
KILL_WAIT_SECONDS = 2.0
TERM = "xterm-256color"


@dataclass(frozen=True)
class _Data:
    chunk: bytes


@dataclass(frozen=True)
class _Closed:
    error: str | None = None


_Message = _Data | _Closed


def _read_pty_output(
    fd: int, messages: "queue.Queue[_Message]", shutdown: threading.Event
) -> None:
    """Reader thread body: forward chunks from fd until EOF or shutdown."""
    while not shutdown.is_set():
        try:
            ready, _, _ = select.select([fd], [], [], POLL_INTERVAL_SECONDS)
        except (OSError, ValueError) as e:
            messages.put(_Closed(str(e)))
            return
        if not ready:
            continue
        try:
            chunk = os.read(fd, READ_BUFFER_SIZE)
        except OSError as e:
            # Linux reports EIO on the master once the child side is closed
            messages.put(_Closed(None if e.errno == errno.EIO else str(e)))
            return
        if not chunk:
            messages.put(_Closed())
            return
        messages.put(_Data(chunk))


def _set_window_size(fd: int, rows: int, cols: int) -> None:
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))


class _Session:
    """Mutable state of one running session, owned by the session loop."""

    def __init__(
        self, binary: str, options: PtyOptions, master_fd: int
    ) -> None:
        self.options = options
        self.master_fd = master_fd
        self.machine = PtySessionStateMachine(binary)
        self.raw = bytearray()
        self.text = ""
        self.fired_rules: set[int] = set()
        self.matched_pattern: str | None = None
        self.stop_at: float | None = None
        self.exit_code: int | None = None
        self._log = logger.bind(component="pty", binary=binary)

    def feed(self, chunk: bytes) -> None:
        """Append a chunk and evaluate send rules, then stop patterns."""
        self.raw.extend(chunk)
        self.text = decode_terminal_output(bytes(self.raw))
        self._fire_send_rule()
        if self.stop_at is None:
            for pattern in self.options.stop_patterns:
                if pattern in self.text:
                    self.matched_pattern = pattern
                    self.stop_at = time.monotonic()
                    self._log.debug("stop_pattern_matched", pattern=pattern)
                    break

    def write(self, data: str) -> None:
        """Write text to the terminal's input."""
        payload = data.encode("utf-8")
        while payload:
            written = os.write(self.master_fd, payload)
            payload = payload[written:]

    def _fire_send_rule(self) -> None:
        for index, rule in enumerate(self.options.send_rules):
            if index in self.fired_rules or rule.pattern not in self.text:
                continue
            self.fired_rules.add(index)
            self._log.debug("send_rule_matched", pattern=rule.pattern)
            try:
                self.write(rule.response)
            except OSError as e:
                self._log.warning(
                    "send_rule_write_failed", pattern=rule.pattern, error=str(e)
                )
            return


class PtyRunner:
    """Runs interactive commands in a pseudo-terminal of a fixed size."""

    def __init__(self, cols: int = DEFAULT_COLS, rows: int = DEFAULT_ROWS) -> None:
        """Initialize the runner.

        Args:
            cols: Terminal width in columns.
            rows: Terminal height in rows.
        """
        self._cols = cols
        self._rows = rows

    @property
    def size(self) -> tuple[int, int]:
        """Get the terminal size as (cols, rows)."""
        return self._cols, self._rows

    @staticmethod
    def which(binary: str) -> Path | None:
        """Find a binary on PATH.

        Args:
            binary: Name or path of the binary.

        Returns:
            Resolved path, or None if not found.
        """
        found = shutil.which(binary)
        return Path(found) if found else None

    @classmethod
    def exists(cls, binary: str) -> bool:
        """Check if a binary exists on PATH."""
        return cls.which(binary) is not None

    def run(
        self,
        binary: str,
        input_text: str,
        options: PtyOptions,
        cancel_event: threading.Event | None = None,
    ) -> PtyResult:
        """Run a command in a pseudo-terminal until it reaches a final state.

        Args:
            binary: Name or path of the command.
            input_text: Text written to the terminal right after spawning.
            options: Session configuration.
            cancel_event: Optional event; setting it cancels the session.

        Returns:
            PtyResult in exactly one terminal state.

        Raises:
            FetchError: NOT_AVAILABLE if the binary is missing,
                PROCESS_FAILED if the terminal or process cannot be set up.
        """
        path = self.which(binary)
        if path is None:
            logger.warning("pty_binary_not_found", component="pty", binary=binary)
            raise FetchError(
                FetchErrorClass.NOT_AVAILABLE, f"Binary not found on PATH: {binary}"
            )

        try:
            master_fd, slave_fd = pty.openpty()
        except OSError as e:
            raise FetchError(
                FetchErrorClass.PROCESS_FAILED,
                f"Failed to allocate pseudo-terminal: {e}",
            ) from e

        try:
            _set_window_size(slave_fd, self._rows, self._cols)
            process = subprocess.Popen(  # noqa: S603
                [str(path), *options.extra_args],
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                cwd=options.working_dir,
                env={**os.environ, **options.env, "TERM": TERM},
                start_new_session=True,
                close_fds=True,
            )
        except OSError as e:
            os.close(master_fd)
            raise FetchError(
                FetchErrorClass.PROCESS_FAILED, f"Failed to spawn {binary}: {e}"
            ) from e
        finally:
            os.close(slave_fd)

        logger.debug(
            "pty_session_started",
            component="pty",
            binary=binary,
            pid=process.pid,
            timeout_seconds=options.timeout_seconds,
            idle_timeout_seconds=options.idle_timeout_seconds,
        )
        return self._drive(binary, input_text, options, process, master_fd, cancel_event)

    def _drive(  # noqa: PLR0913
        self,
        binary: str,
        input_text: str,
        options: PtyOptions,
        process: subprocess.Popen[bytes],
        master_fd: int,
        cancel_event: threading.Event | None,
    ) -> PtyResult:
        messages: queue.Queue[_Message] = queue.Queue()
        shutdown = threading.Event()
        reader = threading.Thread(
            target=_read_pty_output,
            args=(master_fd, messages, shutdown),
            name=f"pty-reader-{process.pid}",
            daemon=True,
        )
        reader.start()

        session = _Session(binary, options, master_fd)
        start = time.monotonic()
        try:
            if input_text:
                try:
                    session.write(input_text)
                except OSError as e:
                    raise FetchError(
                        FetchErrorClass.PROCESS_FAILED,
                        f"Failed to write input to {binary}: {e}",
                    ) from e
            self._loop(session, process, messages, start, cancel_event)
        finally:
            shutdown.set()
            self._release(process, reader, master_fd)

        duration_ms = (time.monotonic() - start) * 1000
        state = session.machine.state
        FetchMetrics.get_instance().record_pty_session(state.value)
        logger.info(
            "pty_session_finished",
            component="pty",
            binary=binary,
            state=state.value,
            matched_pattern=session.matched_pattern,
            exit_code=session.exit_code,
            output_bytes=len(session.raw),
            duration_ms=round(duration_ms, 2),
        )
        return PtyResult(
            state=state,
            text=session.text,
            raw=bytes(session.raw),
            duration_ms=duration_ms,
            exit_code=session.exit_code,
            matched_pattern=session.matched_pattern,
        )

    def _loop(
        self,
        session: _Session,
        process: subprocess.Popen[bytes],
        messages: "queue.Queue[_Message]",
        start: float,
        cancel_event: threading.Event | None,
    ) -> None:
        options = session.options
        machine = session.machine
        last_output = start

        while not machine.is_terminal:
            now = time.monotonic()
            if (
                session.stop_at is not None
                and now - session.stop_at >= options.settle_after_stop_seconds
            ):
                machine.transition_to(PtySessionState.MATCHED_STOP)
                break
            if cancel_event is not None and cancel_event.is_set():
                machine.transition_to(PtySessionState.CANCELLED)
                break
            if now - start >= options.timeout_seconds:
                machine.transition_to(PtySessionState.TIMED_OUT)
                break
            if (
                options.idle_timeout_seconds is not None
                and now - last_output >= options.idle_timeout_seconds
            ):
                machine.transition_to(PtySessionState.IDLE_TIMED_OUT)
                break

            try:
                message = messages.get(timeout=POLL_INTERVAL_SECONDS)
            except queue.Empty:
                if process.poll() is None:
                    continue
                time.sleep(EXIT_DRAIN_SECONDS)
                self._drain(session, messages)
                self._finish_on_exit(session, process)
                break

            if isinstance(message, _Closed):
                if message.error:
                    logger.warning(
                        "pty_read_error", component="pty", error=message.error
                    )
                self._finish_on_exit(session, process)
                break

            last_output = time.monotonic()
            session.feed(message.chunk)

    @staticmethod
    def _drain(session: _Session, messages: "queue.Queue[_Message]") -> None:
        while True:
            try:
                message = messages.get_nowait()
            except queue.Empty:
                return
            if isinstance(message, _Data):
                session.feed(message.chunk)

    @staticmethod
    def _finish_on_exit(
        session: _Session, process: subprocess.Popen[bytes]
    ) -> None:
        try:
            session.exit_code = process.wait(timeout=EXIT_DRAIN_SECONDS * 4)
        except subprocess.TimeoutExpired:
            session.exit_code = None
        if session.stop_at is not None:
            session.machine.transition_to(PtySessionState.MATCHED_STOP)
        else:
            session.machine.transition_to(PtySessionState.PROCESS_EXITED)

    @staticmethod
    def _release(
        process: subprocess.Popen[bytes], reader: threading.Thread, master_fd: int
    ) -> None:
        if process.poll() is None:
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
            except PermissionError:
                process.kill()
        try:
            process.wait(timeout=KILL_WAIT_SECONDS)
        except subprocess.TimeoutExpired:
            logger.warning(
                "pty_process_not_reaped", component="pty", pid=process.pid
            )
        reader.join(timeout=READER_JOIN_TIMEOUT_SECONDS)
        if reader.is_alive():
            logger.warning("pty_reader_still_running", component="pty")
        os.close(master_fd)
