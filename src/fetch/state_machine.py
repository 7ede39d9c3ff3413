"""State machine for a single logical fetch."""

from enum import Enum

import structlog


logger = structlog.get_logger()


class FetchState(str, Enum):
    """State of a fetch.

    - PENDING: Not yet started
    - VALIDATING: URL guard running
    - RATE_CHECK: Per-host rate accounting
    - CLIENT_ACQUIRE: Getting a pooled client (TLS policy applies)
    - REQUESTING: Building request headers
    - ATTEMPTING: HTTP attempts with retry and backoff
    - DECODING: Handing the body to the decoder
    - SUCCEEDED: Terminal success
    - FAILED: Terminal failure
    """

    PENDING = "PENDING"
    VALIDATING = "VALIDATING"
    RATE_CHECK = "RATE_CHECK"
    CLIENT_ACQUIRE = "CLIENT_ACQUIRE"
    REQUESTING = "REQUESTING"
    ATTEMPTING = "ATTEMPTING"
    DECODING = "DECODING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


# Valid state transitions
_VALID_TRANSITIONS: dict[FetchState, set[FetchState]] = {
    FetchState.PENDING: {FetchState.VALIDATING, FetchState.FAILED},
    FetchState.VALIDATING: {FetchState.RATE_CHECK, FetchState.FAILED},
    FetchState.RATE_CHECK: {FetchState.CLIENT_ACQUIRE, FetchState.FAILED},
    FetchState.CLIENT_ACQUIRE: {FetchState.REQUESTING, FetchState.FAILED},
    FetchState.REQUESTING: {FetchState.ATTEMPTING, FetchState.FAILED},
    FetchState.ATTEMPTING: {FetchState.DECODING, FetchState.FAILED},
    FetchState.DECODING: {FetchState.SUCCEEDED, FetchState.FAILED},
    FetchState.SUCCEEDED: set(),  # Terminal state
    FetchState.FAILED: set(),  # Terminal state
}


class FetchStateTransitionError(Exception):
    """Raised when an illegal state transition is attempted."""

    def __init__(self, from_state: FetchState, to_state: FetchState) -> None:
        """Initialize the transition error.

        Args:
            from_state: Current state.
            to_state: Attempted target state.
        """
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Illegal fetch state transition: {from_state.value} -> {to_state.value}"
        )


class FetchStateMachine:
    """Tracks the lifecycle of one fetch and enforces legal transitions."""

    def __init__(
        self,
        host: str = "",
        initial_state: FetchState = FetchState.PENDING,
    ) -> None:
        """Initialize the state machine.

        Args:
            host: Target host, for log context.
            initial_state: Starting state.
        """
        self._state = initial_state
        self._history: list[FetchState] = [initial_state]
        self._log = logger.bind(component="fetch", host=host)

    @property
    def state(self) -> FetchState:
        """Get the current state."""
        return self._state

    @property
    def history(self) -> list[FetchState]:
        """Get every state visited, in order."""
        return list(self._history)

    @property
    def is_terminal(self) -> bool:
        """Check if current state is terminal."""
        return self._state in (FetchState.SUCCEEDED, FetchState.FAILED)

    def can_transition_to(self, target: FetchState) -> bool:
        """Check if a transition to the target state is valid."""
        return target in _VALID_TRANSITIONS.get(self._state, set())

    def transition_to(self, target: FetchState) -> None:
        """Transition to a new state.

        Args:
            target: The target state.

        Raises:
            FetchStateTransitionError: If the transition is invalid.
        """
        if not self.can_transition_to(target):
            self._log.error(
                "illegal_state_transition",
                from_state=self._state.value,
                to_state=target.value,
            )
            raise FetchStateTransitionError(self._state, target)

        old_state = self._state
        self._state = target
        self._history.append(target)

        self._log.debug(
            "state_transition",
            from_state=old_state.value,
            to_state=target.value,
        )

    def fail(self) -> None:
        """Transition to FAILED unless already terminal."""
        if not self.is_terminal:
            self.transition_to(FetchState.FAILED)
