"""
Capital & inventory ledger.

Derives how much cash and how many shares of each token are free to commit
to a new order: venue balance minus what open orders already hold. The
venue owns the authoritative totals; this is a read-through, reconciled
view of them.

Commitments come from two places:
  - orders tracked locally by the lifecycle manager
  - the venue's open-order list, for orders placed out-of-band or by a
    previous process. An order in both is counted once, keyed by id.

If the open-order query fails the ledger falls back to local commitments
and logs that accuracy is degraded. It never aborts the scan.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable

from client.cache import CachedValue
from client.platform import ExecutionVenue, RemoteOrder, VenueError
from scanner.models import Side

if TYPE_CHECKING:
    from executor.lifecycle import ActiveOrder

logger = logging.getLogger(__name__)

_CASH_KEY = "USDC"


@dataclass(frozen=True)
class Availability:
    total: float
    committed: float
    available: float

    @classmethod
    def of(cls, total: float, committed: float) -> Availability:
        return cls(total=total, committed=committed, available=max(0.0, total - committed))


class Ledger:

    def __init__(
        self,
        venue: ExecutionVenue,
        balance_cache_sec: float = 5.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._venue = venue
        self._balance_ttl = balance_cache_sec
        self._clock = clock
        self._balances: dict[str, CachedValue] = {}
        # Dry-run book: signed deltas applied on top of venue balances.
        self.paper_cash = 0.0
        self.paper_shares: dict[str, float] = {}

    # -- balances ---------------------------------------------------------

    async def _balance(self, key: str) -> float:
        cached = self._balances.get(key)
        now = self._clock()
        if cached is not None and not cached.is_stale(self._balance_ttl, now):
            return cached.value

        try:
            if key == _CASH_KEY:
                value = await self._venue.get_available_balance(_CASH_KEY)
            else:
                value = await self._venue.get_token_balance(key)
        except VenueError as e:
            if cached is not None:
                logger.warning("Balance query for %s failed, using cached %.4f: %s", key[:16], cached.value, e)
                return cached.value
            logger.warning("Balance query for %s failed, assuming 0: %s", key[:16], e)
            return 0.0

        self._balances[key] = CachedValue(float(value), now)
        return float(value)

    def force_refresh(self, token_id: str | None = None) -> None:
        """Drop cached balances so the next read goes to the venue. None drops all."""
        if token_id is None:
            self._balances.clear()
        else:
            self._balances.pop(token_id, None)
            self._balances.pop(_CASH_KEY, None)
        logger.debug("Balance cache invalidated (%s)", token_id or "all")

    # -- commitments ------------------------------------------------------

    async def _remote_open_orders(self) -> list[RemoteOrder] | None:
        try:
            return await self._venue.get_open_orders()
        except VenueError as e:
            logger.warning("Open-order query failed, using local commitments only (degraded accuracy): %s", e)
            return None

    async def _committed(
        self,
        tracked: Iterable[ActiveOrder],
        side: Side,
        token_id: str | None,
        weight: Callable[[float, float], float],
    ) -> float:
        seen: set[str] = set()
        committed = 0.0
        for order in tracked:
            if order.side != side or (token_id is not None and order.token_id != token_id):
                continue
            seen.add(order.order_id)
            committed += weight(order.price, order.size)

        remote = await self._remote_open_orders()
        for ro in remote or []:
            if ro.side != side or ro.order_id in seen:
                continue
            if token_id is not None and ro.token_id != token_id:
                continue
            seen.add(ro.order_id)
            committed += weight(ro.price, ro.size)
        return committed

    async def available_capital(self, tracked: Iterable[ActiveOrder] = ()) -> Availability:
        """Cash: total balance minus price x size of every open buy."""
        total = await self._balance(_CASH_KEY) + self.paper_cash
        committed = await self._committed(tracked, Side.BUY, None, lambda p, s: p * s)
        return Availability.of(max(0.0, total), committed)

    async def available_shares(self, token_id: str, tracked: Iterable[ActiveOrder] = ()) -> Availability:
        """Shares of one token: balance minus size of every open sell on it."""
        total = await self._balance(token_id) + self.paper_shares.get(token_id, 0.0)
        committed = await self._committed(tracked, Side.SELL, token_id, lambda p, s: s)
        return Availability.of(max(0.0, total), committed)

    # -- dry-run book -----------------------------------------------------

    def record_simulated_fill(self, side: Side, token_id: str, price: float, size: float) -> None:
        notional = price * size
        if side == Side.BUY:
            self.paper_cash -= notional
            self.paper_shares[token_id] = self.paper_shares.get(token_id, 0.0) + size
        else:
            self.paper_cash += notional
            remaining = self.paper_shares.get(token_id, 0.0) - size
            if remaining:
                self.paper_shares[token_id] = remaining
            else:
                self.paper_shares.pop(token_id, None)
