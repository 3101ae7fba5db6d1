"""Test suite for the pipeline lifecycle state machine."""

import pytest
from dentool.logic.fsm import InvalidTransition, PipelineState, PipelineStateMachine


class TestPipelineStateMachine:
    """Test cases for PipelineStateMachine class."""

    def setup_method(self):
        """Setup test fixtures."""
        self.fsm = PipelineStateMachine(history_size=5)

    def test_initialization(self):
        """Test state machine starts idle."""
        assert self.fsm.state == PipelineState.IDLE
        assert self.fsm.can_start
        assert not self.fsm.is_running
        assert len(self.fsm.get_transitions()) == 0

    def test_start_success_path(self):
        """Test IDLE -> STARTING -> RUNNING -> IDLE."""
        self.fsm.transition(PipelineState.STARTING, "start_requested", timestamp=1.0)
        assert not self.fsm.can_start

        self.fsm.transition(PipelineState.RUNNING, "resources_acquired", timestamp=2.0)
        assert self.fsm.is_running

        self.fsm.transition(PipelineState.IDLE, "stop_requested", timestamp=3.0)
        assert self.fsm.state == PipelineState.IDLE

        transitions = self.fsm.get_transitions()
        assert [t.to_state for t in transitions] == [
            PipelineState.STARTING, PipelineState.RUNNING, PipelineState.IDLE
        ]
        assert transitions[0].from_state == PipelineState.IDLE
        assert transitions[1].trigger == "resources_acquired"
        assert transitions[2].timestamp == 3.0

    def test_failed_allows_retry(self):
        """Test FAILED is left only through a new start."""
        self.fsm.transition(PipelineState.STARTING, "start_requested")
        self.fsm.transition(PipelineState.FAILED, "ModelLoadError")

        assert self.fsm.can_start
        assert not self.fsm.can_transition(PipelineState.RUNNING)

        self.fsm.transition(PipelineState.STARTING, "start_requested")
        assert self.fsm.state == PipelineState.STARTING

    @pytest.mark.parametrize("to_state", [PipelineState.RUNNING, PipelineState.FAILED, PipelineState.IDLE])
    def test_invalid_transitions_from_idle(self, to_state):
        """Test IDLE only moves to STARTING."""
        with pytest.raises(InvalidTransition):
            self.fsm.transition(to_state, "bogus")

        assert self.fsm.state == PipelineState.IDLE

    def test_running_cannot_restart(self):
        self.fsm.transition(PipelineState.STARTING, "start_requested")
        self.fsm.transition(PipelineState.RUNNING, "resources_acquired")

        with pytest.raises(InvalidTransition):
            self.fsm.transition(PipelineState.STARTING, "start_requested")

    def test_history_is_bounded(self):
        for _ in range(5):
            self.fsm.transition(PipelineState.STARTING, "start_requested")
            self.fsm.transition(PipelineState.IDLE, "stop_requested")

        assert len(self.fsm.get_transitions()) == 5

    def test_statistics(self):
        self.fsm.transition(PipelineState.STARTING, "start_requested")

        stats = self.fsm.get_statistics()

        assert stats['state'] == "starting"
        assert stats['transitions'] == 1
        assert stats['last_trigger'] == "start_requested"
