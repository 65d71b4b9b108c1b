"""State machine for one terminal automation session."""

from enum import Enum

import structlog


logger = structlog.get_logger()


class PtySessionState(str, Enum):
    """State of a terminal session.

    A session starts RUNNING and ends in exactly one terminal state:
    - MATCHED_STOP: A stop pattern appeared in the output
    - IDLE_TIMED_OUT: No output arrived for the idle timeout
    - TIMED_OUT: The overall timeout elapsed
    - PROCESS_EXITED: The process exited before any stop pattern matched
    - CANCELLED: The caller cancelled the session
    """

    RUNNING = "RUNNING"
    MATCHED_STOP = "MATCHED_STOP"
    IDLE_TIMED_OUT = "IDLE_TIMED_OUT"
    TIMED_OUT = "TIMED_OUT"
    PROCESS_EXITED = "PROCESS_EXITED"
    CANCELLED = "CANCELLED"


TERMINAL_STATES: frozenset[PtySessionState] = frozenset(
    {
        PtySessionState.MATCHED_STOP,
        PtySessionState.IDLE_TIMED_OUT,
        PtySessionState.TIMED_OUT,
        PtySessionState.PROCESS_EXITED,
        PtySessionState.CANCELLED,
    }
)

# Valid state transitions
_VALID_TRANSITIONS: dict[PtySessionState, frozenset[PtySessionState]] = {
    PtySessionState.RUNNING: TERMINAL_STATES,
    **{state: frozenset() for state in TERMINAL_STATES},
}


class PtyStateTransitionError(Exception):
    """Raised when an illegal state transition is attempted."""

    def __init__(
        self,
        binary: str,
        from_state: PtySessionState,
        to_state: PtySessionState,
    ) -> None:
        """Initialize the transition error.

        Args:
            binary: Command the session runs.
            from_state: Current state.
            to_state: Attempted target state.
        """
        self.binary = binary
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Illegal terminal session transition for '{binary}': "
            f"{from_state.value} -> {to_state.value}"
        )


class PtySessionStateMachine:
    """Tracks the state of one terminal session.

    Terminal states are final: once reached, any further transition raises.
    """

    def __init__(self, binary: str) -> None:
        """Initialize the state machine in RUNNING.

        Args:
            binary: Command the session runs.
        """
        self._binary = binary
        self._state = PtySessionState.RUNNING
        self._log = logger.bind(component="pty", binary=binary)

    @property
    def state(self) -> PtySessionState:
        """Get the current state."""
        return self._state

    @property
    def is_terminal(self) -> bool:
        """Check if current state is terminal."""
        return self._state in TERMINAL_STATES

    def can_transition_to(self, target: PtySessionState) -> bool:
        """Check if a transition to the target state is valid.

        Args:
            target: The target state.

        Returns:
            True if the transition is valid.
        """
        return target in _VALID_TRANSITIONS[self._state]

    def transition_to(self, target: PtySessionState) -> None:
        """Transition to a new state.

        Args:
            target: The target state.

        Raises:
            PtyStateTransitionError: If the transition is invalid.
        """
        if not self.can_transition_to(target):
            self._log.error(
                "illegal_state_transition",
                from_state=self._state.value,
                to_state=target.value,
            )
            raise PtyStateTransitionError(self._binary, self._state, target)

        old_state = self._state
        self._state = target
        self._log.debug(
            "state_transition",
            from_state=old_state.value,
            to_state=target.value,
        )
