"""
Tick size quantization for order execution.
Ensures prices conform to market tick sizes before order placement.
"""

from __future__ import annotations

import math

DEFAULT_TICK = 0.01


class TickSizeExceededError(ValueError):
    """Raised when quantization would shift price by more than tick_size / 2."""
    pass


def _tick_decimals(tick_size: float) -> int:
    return max(0, -int(math.floor(math.log10(tick_size))))


def quantize_price(price: float, tick_size: float = DEFAULT_TICK) -> float:
    """
    Round a price to the nearest valid tick.

    Raises:
        ValueError: If price is negative, above 1.0, or tick_size is invalid.
        TickSizeExceededError: If quantization would shift price by > tick_size / 2.
    """
    if tick_size <= 0:
        raise ValueError(f"tick_size must be positive, got {tick_size}")
    if price < 0:
        raise ValueError(f"price must be non-negative, got {price}")
    if price > 1.0:
        raise ValueError(f"price must not exceed 1.0, got {price}")

    # round() to the tick's decimals strips float residue (0.1 * 3 -> 0.3)
    quantized = round(round(price / tick_size) * tick_size, _tick_decimals(tick_size))
    quantized = max(0.0, min(1.0, quantized))

    shift = abs(quantized - price)
    max_shift = tick_size / 2.0
    if shift > max_shift + 1e-12:
        raise TickSizeExceededError(
            f"Price {price} quantized to {quantized} (shift {shift:.6f}) "
            f"exceeds tick_size/2 ({max_shift:.6f})"
        )
    return quantized


def markup_price(price: float, markup: float, tick_size: float = DEFAULT_TICK) -> float | None:
    """
    price * (1 + markup) on the tick grid, capped one tick below 1.0.
    None when the result is not a sellable price.
    """
    if price <= 0:
        return None
    raw = min(price * (1.0 + markup), 1.0 - tick_size)
    quantized = quantize_price(raw, tick_size)
    return quantized if quantized > 0 else None
