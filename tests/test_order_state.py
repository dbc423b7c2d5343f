"""
Unit tests for executor/order_state.py -- order state machine.
"""

import pytest

from executor.order_state import (
    InvalidTransition,
    OrderState,
    can_transition_to,
    is_terminal_state,
    state_from_remote,
    transition_to,
)


class TestTransitions:
    @pytest.mark.parametrize("target", [OrderState.FILLED, OrderState.CANCELLED, OrderState.EXPIRED])
    def test_placed_to_terminal(self, target):
        assert transition_to(OrderState.PLACED, target) == target

    def test_placed_stays_placed(self):
        assert can_transition_to(OrderState.PLACED, OrderState.PLACED)

    @pytest.mark.parametrize("terminal", [OrderState.FILLED, OrderState.CANCELLED, OrderState.EXPIRED])
    def test_terminal_only_untracks(self, terminal):
        assert transition_to(terminal, OrderState.UNTRACKED) == OrderState.UNTRACKED
        for other in (OrderState.PLACED, OrderState.FILLED, OrderState.CANCELLED, OrderState.EXPIRED):
            with pytest.raises(InvalidTransition):
                transition_to(terminal, other)

    def test_untracked_is_final(self):
        for state in OrderState:
            assert not can_transition_to(OrderState.UNTRACKED, state)

    def test_placed_cannot_skip_to_untracked(self):
        with pytest.raises(InvalidTransition):
            transition_to(OrderState.PLACED, OrderState.UNTRACKED)

    def test_rejects_non_state(self):
        with pytest.raises(ValueError):
            can_transition_to("placed", OrderState.FILLED)

    def test_terminal_set(self):
        assert is_terminal_state(OrderState.FILLED)
        assert is_terminal_state(OrderState.EXPIRED)
        assert not is_terminal_state(OrderState.PLACED)
        assert not is_terminal_state(OrderState.UNTRACKED)


class TestRemoteStatus:
    @pytest.mark.parametrize("status,expected", [
        ("FILLED", OrderState.FILLED),
        ("MATCHED", OrderState.FILLED),
        ("matched", OrderState.FILLED),
        ("CANCELLED", OrderState.CANCELLED),
        ("CANCELED", OrderState.CANCELLED),
        ("EXPIRED", OrderState.EXPIRED),
        ("LIVE", OrderState.PLACED),
        ("", OrderState.PLACED),
        (None, OrderState.PLACED),
    ])
    def test_mapping(self, status, expected):
        assert state_from_remote(status) == expected
