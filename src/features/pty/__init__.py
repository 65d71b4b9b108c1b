"""Terminal automation engine.

Drives interactive CLI tools through a pseudo-terminal and captures their
human-oriented output for parsing.
"""

from src.features.pty.ansi import decode_terminal_output, strip_ansi
from src.features.pty.models import PtyOptions, PtyResult, SendRule
from src.features.pty.runner import PtyRunner
from src.features.pty.state_machine import (
    TERMINAL_STATES,
    PtySessionState,
    PtySessionStateMachine,
    PtyStateTransitionError,
)


__all__ = [
    "TERMINAL_STATES",
    "PtyOptions",
    "PtyResult",
    "PtyRunner",
    "PtySessionState",
    "PtySessionStateMachine",
    "PtyStateTransitionError",
    "SendRule",
    "decode_terminal_output",
    "strip_ansi",
]
