"""Status poller state machine implementation."""

from enum import Enum, auto
from typing import ClassVar

import structlog


logger = structlog.get_logger()


class PollerState(Enum):
    """Status poller states.

    State transitions:
        NOT_STARTED -> POLLING: start(job_id)
        POLLING -> COMPLETED: Remote job reported COMPLETED
        POLLING -> FAILED: Remote failure status, malformed status or attempt cap
        POLLING -> CANCELLED: Caller stopped polling
        COMPLETED/FAILED/CANCELLED -> POLLING: Restart for a new job
    """

    NOT_STARTED = auto()
    POLLING = auto()
    COMPLETED = auto()
    FAILED = auto()
    CANCELLED = auto()


class PollerStateError(Exception):
    """Raised when an invalid poller state transition is attempted."""

    def __init__(self, from_state: PollerState, to_state: PollerState) -> None:
        """Initialize the error.

        Args:
            from_state: The current state.
            to_state: The attempted target state.
        """
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid poller state transition: {from_state.name} -> {to_state.name}"
        )


class PollerStateMachine:
    """State machine for the status poller.

    Enforces valid state transitions and logs invariant violations.
    Callers are responsible for serializing access.
    """

    VALID_TRANSITIONS: ClassVar[dict[PollerState, set[PollerState]]] = {
        PollerState.NOT_STARTED: {PollerState.POLLING},
        PollerState.POLLING: {
            PollerState.COMPLETED,
            PollerState.FAILED,
            PollerState.CANCELLED,
        },
        PollerState.COMPLETED: {PollerState.POLLING},
        PollerState.FAILED: {PollerState.POLLING},
        PollerState.CANCELLED: {PollerState.POLLING},
    }

    def __init__(self) -> None:
        """Initialize the state machine in NOT_STARTED state."""
        self._state = PollerState.NOT_STARTED
        self._log = logger.bind(component="evaluation", subcomponent="poller")

    @property
    def state(self) -> PollerState:
        """Get the current state."""
        return self._state

    def can_transition(self, to_state: PollerState) -> bool:
        """Check if a transition to the given state is valid.

        Args:
            to_state: The target state.

        Returns:
            True if the transition is valid, False otherwise.
        """
        return to_state in self.VALID_TRANSITIONS.get(self._state, set())

    def transition(self, to_state: PollerState) -> None:
        """Transition to a new state.

        Args:
            to_state: The target state.

        Raises:
            PollerStateError: If the transition is invalid.
        """
        if not self.can_transition(to_state):
            self._log.error(
                "invariant_violation",
                error_type="illegal_state_transition",
                from_state=self._state.name,
                to_state=to_state.name,
            )
            raise PollerStateError(self._state, to_state)

        old_state = self._state
        self._state = to_state
        self._log.debug(
            "poller_state_transition",
            from_state=old_state.name,
            to_state=to_state.name,
        )

    def is_polling(self) -> bool:
        """Check if a polling loop is active."""
        return self._state == PollerState.POLLING

    def is_terminal(self) -> bool:
        """Check if the last loop ended."""
        return self._state in (
            PollerState.COMPLETED,
            PollerState.FAILED,
            PollerState.CANCELLED,
        )
