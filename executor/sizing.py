"""
Floor-based order sizing. Sizes are whole lots and always underspend:
nothing here rounds a share count up.
"""

from __future__ import annotations

import logging
import math

logger = logging.getLogger(__name__)

# Quotients like 5 / 0.05 come out as 99.99999999999999; round before flooring.
_QUOTIENT_PRECISION = 9


def _floor_lots(quantity: float, lot_size: int) -> int:
    if quantity <= 0 or lot_size <= 0:
        return 0
    lots = math.floor(round(quantity / lot_size, _QUOTIENT_PRECISION))
    return max(0, lots * lot_size)


def entry_size(
    max_order_usd: float,
    available_usd: float,
    price: float,
    lot_size: int = 1,
) -> int:
    """
    shares = floor(min(max_order_usd, available_usd) / price), in whole lots.
    The result never costs more than the budget.
    """
    if price <= 0:
        return 0
    budget = min(max_order_usd, available_usd)
    if budget <= 0:
        return 0
    shares = _floor_lots(budget / price, lot_size)
    # Undo the rounding step if it pushed cost over budget.
    while shares > 0 and round(shares * price, _QUOTIENT_PRECISION) > round(budget, _QUOTIENT_PRECISION):
        shares -= lot_size
    return max(0, shares)


def set_size(
    max_order_usd: float,
    available_usd: float,
    set_price: float,
    lot_size: int = 1,
) -> int:
    """Number of complete outcome sets (one share of every outcome) affordable at set_price."""
    return entry_size(max_order_usd, available_usd, set_price, lot_size)


def exit_size(position_size: float, available_shares: float, lot_size: int = 1) -> int:
    """Sell size: min(position size, available shares), floored to whole lots."""
    return _floor_lots(min(position_size, available_shares), lot_size)


def meets_min_order_value(price: float, size: float, min_order_value: float) -> bool:
    return price * size >= min_order_value
