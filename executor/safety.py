"""
Pre-trade safety checks and the loss circuit breaker.

A tripped breaker halts new entries only. Open orders and positions keep
being reconciled, exited and cancelled by the governor.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from scanner.models import Opportunity

logger = logging.getLogger(__name__)


class CircuitBreakerTripped(Exception):
    """Raised when the loss limit is breached. New entries halt."""
    pass


class SafetyCheckFailed(Exception):
    """Raised when a pre-trade safety check fails. The entry should be skipped."""
    pass


@dataclass
class LossCircuitBreaker:
    """
    Trips when net realized P&L falls below -max_daily_loss.

    Latching: RunStats are monotonic, so once tripped the breaker stays
    tripped for the life of the process.
    """
    max_daily_loss: float
    _tripped_reason: str = ""

    @property
    def tripped(self) -> bool:
        return bool(self._tripped_reason)

    def check(self, total_profit: float, total_loss: float) -> None:
        """Raises CircuitBreakerTripped when tripped (now or earlier)."""
        if self._tripped_reason:
            raise CircuitBreakerTripped(self._tripped_reason)

        net = total_profit - total_loss
        if net < -self.max_daily_loss:
            self._tripped_reason = (
                f"Max loss reached: net P&L ${net:.2f} < -${self.max_daily_loss:.2f}"
            )
            logger.critical("CIRCUIT BREAKER: %s. New entries halted.", self._tripped_reason)
            raise CircuitBreakerTripped(self._tripped_reason)


def verify_capacity(open_buy_orders: int, max_open_orders: int) -> None:
    if open_buy_orders >= max_open_orders:
        raise SafetyCheckFailed(
            f"Max open BUY orders reached ({open_buy_orders}/{max_open_orders})"
        )


def verify_tradeable(opportunity: Opportunity) -> None:
    """Every outcome priced needs a token to trade it."""
    snap = opportunity.snapshot
    if not snap.token_ids:
        raise SafetyCheckFailed(f"No tradeable tokens for market {snap.market_id}")
    if len(snap.token_ids) < len(snap.outcome_prices):
        raise SafetyCheckFailed(
            f"Market {snap.market_id} has {len(snap.outcome_prices)} prices but "
            f"{len(snap.token_ids)} tokens"
        )
