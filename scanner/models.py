"""
Data models for the parity/spread scanner. Pure data, no behavior.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from enum import Enum


class Side(Enum):
    BUY = "BUY"
    SELL = "SELL"


class OpportunityKind(Enum):
    LONG = "long"              # buy every outcome, sum < 1 - eps
    SHORT = "short"            # sell held outcomes, sum > 1 + eps
    BUY_THEN_SELL = "buy-then-sell"


class DetectionMode(Enum):
    PARITY = "parity"
    SPREAD = "spread"


@dataclass(frozen=True)
class PriceLevel:
    price: float
    size: float


@dataclass(frozen=True)
class OrderBook:
    token_id: str
    bids: tuple[PriceLevel, ...]
    asks: tuple[PriceLevel, ...]

    @property
    def best_bid(self) -> PriceLevel | None:
        return self.bids[0] if self.bids else None

    @property
    def best_ask(self) -> PriceLevel | None:
        return self.asks[0] if self.asks else None

    @property
    def spread(self) -> float | None:
        if self.best_bid and self.best_ask:
            return self.best_ask.price - self.best_bid.price
        return None


@dataclass(frozen=True)
class PriceSnapshot:
    """
    Canonical view of one market at one poll.

    outcome_prices is always populated (at least two entries, each in [0, 1]);
    the normalizer refuses to build a snapshot otherwise.
    """
    market_id: str
    question: str
    source: str
    token_ids: tuple[str, ...]
    outcome_prices: tuple[float, ...]
    best_bid: float = 0.0
    best_ask: float = 0.0
    volume_24h: float = 0.0
    liquidity: float = 0.0
    closed: bool = False
    order_book_enabled: bool = True
    timestamp: float = field(default_factory=time.time)

    @property
    def total_price(self) -> float:
        return sum(self.outcome_prices)

    @property
    def deviation(self) -> float:
        return abs(self.total_price - 1.0)

    @property
    def spread(self) -> float:
        if self.best_ask > self.best_bid:
            return self.best_ask - self.best_bid
        return 0.0

    @property
    def spread_pct(self) -> float:
        if self.best_ask <= 0:
            return 0.0
        return self.spread / self.best_ask * 100.0

    @property
    def volume_score(self) -> float:
        return math.log10(max(self.volume_24h, 0.0) + 1.0)


@dataclass(frozen=True)
class Opportunity:
    kind: OpportunityKind
    snapshot: PriceSnapshot
    magnitude: float        # parity deviation, or spread x 100 for spread markets
    profit_per_unit: float  # estimated profit per unit of capital deployed
    score: float            # liquidity-weighted rank key
    timestamp: float = field(default_factory=time.time)

    @property
    def market_id(self) -> str:
        return self.snapshot.market_id

    @property
    def question(self) -> str:
        return self.snapshot.question
