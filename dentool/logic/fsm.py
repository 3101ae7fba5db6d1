"""Finite state machine for the detection pipeline lifecycle."""

from enum import Enum
from typing import Dict, FrozenSet, List, NamedTuple, Optional
from collections import deque
import time
import logging

logger = logging.getLogger(__name__)


class PipelineState(Enum):
    """Lifecycle states of a detection pipeline."""
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    FAILED = "failed"


class StateTransition(NamedTuple):
    """State transition data."""
    from_state: PipelineState
    to_state: PipelineState
    timestamp: float
    trigger: str


ALLOWED_TRANSITIONS: Dict[PipelineState, FrozenSet[PipelineState]] = {
    PipelineState.IDLE: frozenset({PipelineState.STARTING}),
    PipelineState.STARTING: frozenset({PipelineState.RUNNING, PipelineState.FAILED, PipelineState.IDLE}),
    PipelineState.RUNNING: frozenset({PipelineState.IDLE}),
    PipelineState.FAILED: frozenset({PipelineState.STARTING, PipelineState.IDLE}),
}


class InvalidTransition(RuntimeError):
    """Raised for a transition the lifecycle does not allow."""


class PipelineStateMachine:
    """Tracks the lifecycle state of one pipeline session."""

    def __init__(self, history_size: int = 50):
        """
        Initialize state machine in IDLE.

        Args:
            history_size: Number of recent transitions to keep
        """
        self.state = PipelineState.IDLE
        self.transitions: deque = deque(maxlen=history_size)

    def can_transition(self, to_state: PipelineState) -> bool:
        """Check whether a transition from the current state is allowed."""
        return to_state in ALLOWED_TRANSITIONS[self.state]

    def transition(
        self,
        to_state: PipelineState,
        trigger: str,
        timestamp: Optional[float] = None
    ) -> StateTransition:
        """
        Move to a new state.

        Args:
            to_state: Target state
            trigger: Reason for the transition
            timestamp: Transition time (uses current time if None)

        Returns:
            Recorded transition

        Raises:
            InvalidTransition: If the lifecycle does not allow the transition
        """
        if not self.can_transition(to_state):
            raise InvalidTransition(f"{self.state.value} -> {to_state.value} is not allowed ({trigger})")

        if timestamp is None:
            timestamp = time.time()

        transition = StateTransition(
            from_state=self.state,
            to_state=to_state,
            timestamp=timestamp,
            trigger=trigger
        )
        self.state = to_state
        self.transitions.append(transition)

        logger.info(f"Pipeline: {transition.from_state.value} -> {to_state.value} ({trigger})")

        return transition

    @property
    def is_running(self) -> bool:
        return self.state == PipelineState.RUNNING

    @property
    def can_start(self) -> bool:
        """True when a start request would begin a new session."""
        return self.state in (PipelineState.IDLE, PipelineState.FAILED)

    def get_transitions(self) -> List[StateTransition]:
        """Get recent transitions, oldest first."""
        return list(self.transitions)

    def get_statistics(self) -> Dict[str, object]:
        """Get state machine statistics."""
        return {
            'state': self.state.value,
            'transitions': len(self.transitions),
            'last_trigger': self.transitions[-1].trigger if self.transitions else None
        }
