"""
Order state machine.

Defines the states a tracked order moves through and the valid transitions
between them. Used by executor/lifecycle.py to guarantee each order reaches
exactly one terminal state.
"""

from __future__ import annotations

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class OrderState(str, Enum):
    """
    State flow:
    - PLACED: accepted by the venue (or simulated), resting, not yet filled
    - FILLED: venue reports FILLED / MATCHED
    - CANCELLED: cancelled by us (stale) or externally
    - EXPIRED: venue expired the order
    - UNTRACKED: removed from local tracking after a terminal state
    """
    PLACED = "placed"
    FILLED = "filled"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    UNTRACKED = "untracked"


# Valid state transitions: {from_state: set[valid_to_states]}
_VALID_TRANSITIONS: dict[OrderState, set[OrderState]] = {
    OrderState.PLACED: {OrderState.PLACED, OrderState.FILLED, OrderState.CANCELLED, OrderState.EXPIRED},
    OrderState.FILLED: {OrderState.UNTRACKED},
    OrderState.CANCELLED: {OrderState.UNTRACKED},
    OrderState.EXPIRED: {OrderState.UNTRACKED},
    OrderState.UNTRACKED: set(),
}

_TERMINAL = frozenset({OrderState.FILLED, OrderState.CANCELLED, OrderState.EXPIRED})

# Remote status vocabulary -> local state. Anything unlisted stays PLACED.
_REMOTE_STATUS: dict[str, OrderState] = {
    "FILLED": OrderState.FILLED,
    "MATCHED": OrderState.FILLED,
    "CANCELLED": OrderState.CANCELLED,
    "CANCELED": OrderState.CANCELLED,
    "EXPIRED": OrderState.EXPIRED,
}


class InvalidTransition(ValueError):
    pass


def can_transition_to(from_state: OrderState, to_state: OrderState) -> bool:
    if not isinstance(from_state, OrderState):
        raise ValueError(f"Invalid from_state: {from_state}")
    if not isinstance(to_state, OrderState):
        raise ValueError(f"Invalid to_state: {to_state}")
    return to_state in _VALID_TRANSITIONS.get(from_state, set())


def transition_to(from_state: OrderState, to_state: OrderState) -> OrderState:
    """
    Perform a state transition, returning the new state.

    Raises:
        InvalidTransition: If the transition is not in the table
    """
    if not can_transition_to(from_state, to_state):
        raise InvalidTransition(
            f"Invalid state transition: {from_state.value} -> {to_state.value}"
        )
    logger.debug("State transition: %s -> %s", from_state.value, to_state.value)
    return to_state


def is_terminal_state(state: OrderState) -> bool:
    return state in _TERMINAL


def state_from_remote(status: str) -> OrderState:
    """Map a venue status string onto a local state."""
    return _REMOTE_STATUS.get((status or "").strip().upper(), OrderState.PLACED)
