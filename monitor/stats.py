"""
Run statistics with an append-only JSON-lines fill ledger.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class FillEntry:
    timestamp: float
    order_id: str
    token_id: str
    market: str
    side: str
    price: float
    size: float
    realized_pnl: float
    simulated: bool


@dataclass
class RunStats:
    """
    Process-wide counters. Monotonic: nothing here is ever decremented or
    reset short of a restart.
    """

    ledger_path: str = ""

    scans: int = 0
    opportunities_found: int = 0
    alerts_triggered: int = 0
    orders_placed: int = 0
    sell_orders_placed: int = 0
    orders_filled: int = 0
    orders_cancelled: int = 0
    orders_expired: int = 0
    orders_rejected: int = 0
    total_profit: float = 0.0
    total_loss: float = 0.0

    start_time: float = field(default_factory=time.time)

    @property
    def net_pnl(self) -> float:
        return self.total_profit - self.total_loss

    @property
    def runtime_sec(self) -> float:
        return time.time() - self.start_time

    def record_realized(self, pnl: float) -> None:
        """Split a realized result into the profit / loss accumulators."""
        if pnl >= 0:
            self.total_profit += pnl
        else:
            self.total_loss += -pnl
        logger.info(
            "PnL update: trade_pnl=$%.4f net=$%.4f (profit=$%.4f loss=$%.4f)",
            pnl, self.net_pnl, self.total_profit, self.total_loss,
        )

    def record_fill(
        self,
        order_id: str,
        token_id: str,
        market: str,
        side: str,
        price: float,
        size: float,
        realized_pnl: float = 0.0,
        simulated: bool = False,
    ) -> None:
        self.orders_filled += 1
        if self.ledger_path:
            self._append_ledger(FillEntry(
                timestamp=time.time(),
                order_id=order_id,
                token_id=token_id,
                market=market,
                side=side,
                price=price,
                size=size,
                realized_pnl=realized_pnl,
                simulated=simulated,
            ))

    def _append_ledger(self, entry: FillEntry) -> None:
        """One JSON object per line."""
        try:
            with open(self.ledger_path, "a") as f:
                f.write(json.dumps(asdict(entry), separators=(",", ":")) + "\n")
        except OSError as e:
            logger.warning("Could not append to fill ledger %s: %s", self.ledger_path, e)

    def summary(self) -> dict:
        return {
            "scans": self.scans,
            "opportunities_found": self.opportunities_found,
            "alerts_triggered": self.alerts_triggered,
            "orders_placed": self.orders_placed,
            "sell_orders_placed": self.sell_orders_placed,
            "orders_filled": self.orders_filled,
            "orders_cancelled": self.orders_cancelled,
            "orders_expired": self.orders_expired,
            "orders_rejected": self.orders_rejected,
            "total_profit": round(self.total_profit, 4),
            "total_loss": round(self.total_loss, 4),
            "net_pnl": round(self.net_pnl, 4),
            "runtime_sec": round(self.runtime_sec, 0),
        }
