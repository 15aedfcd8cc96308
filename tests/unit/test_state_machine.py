"""
Unit tests for the progress state machine.
"""

import pytest

from waypoint.errors import InvalidStateTransitionError
from waypoint.progress.models import ProgressStatus
from waypoint.progress.state_machine import ProgressEvent, apply_event

S = ProgressStatus
E = ProgressEvent


class TestAutomaticEvents:
    @pytest.mark.parametrize(
        ("current", "event", "expected"),
        [
            (S.NOT_STARTED, E.ACCESS, S.IN_PROGRESS),
            (S.IN_PROGRESS, E.ACCESS, S.IN_PROGRESS),
            (S.IN_PROGRESS, E.COMPLETE, S.COMPLETED),
            (S.NOT_STARTED, E.COMPLETE, S.COMPLETED),
            (S.IN_PROGRESS, E.EXHAUST_ATTEMPTS, S.FAILED),
            (S.NOT_STARTED, E.EXHAUST_ATTEMPTS, S.FAILED),
        ],
    )
    def test_forward_transitions(self, current, event, expected):
        assert apply_event(current, event) is expected

    @pytest.mark.parametrize("terminal", [S.COMPLETED, S.BLOCKED, S.FAILED])
    @pytest.mark.parametrize("event", [E.ACCESS, E.COMPLETE, E.EXHAUST_ATTEMPTS])
    def test_terminal_states_are_sticky(self, terminal, event):
        """Learner activity never moves content out of a terminal state."""
        assert apply_event(terminal, event) is terminal


class TestAdministrativeEvents:
    @pytest.mark.parametrize("current", [S.NOT_STARTED, S.IN_PROGRESS, S.COMPLETED, S.FAILED])
    def test_block_from_any_unblocked_state(self, current):
        assert apply_event(current, E.BLOCK) is S.BLOCKED

    def test_block_twice_raises(self):
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            apply_event(S.BLOCKED, E.BLOCK)

        assert exc_info.value.current == "blocked"
        assert exc_info.value.requested == "block"

    def test_unblock_returns_to_in_progress(self):
        assert apply_event(S.BLOCKED, E.UNBLOCK) is S.IN_PROGRESS

    @pytest.mark.parametrize("current", [S.NOT_STARTED, S.IN_PROGRESS, S.COMPLETED, S.FAILED])
    def test_unblock_requires_blocked(self, current):
        with pytest.raises(InvalidStateTransitionError):
            apply_event(current, E.UNBLOCK)

    def test_reset_only_from_failed(self):
        assert apply_event(S.FAILED, E.RESET) is S.IN_PROGRESS
        with pytest.raises(InvalidStateTransitionError):
            apply_event(S.COMPLETED, E.RESET)
