"""
Collaborator protocols consumed by the engine, plus the records and errors
that cross that boundary.

Any market feed or execution venue that satisfies these protocols can be
plugged into the governor with zero changes to scanner/executor code. Tests
substitute in-memory fakes.
"""

from __future__ import annotations

import itertools
import time
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from scanner.models import OrderBook, Side

DRY_RUN_PREFIX = "dry-run-"


class VenueError(Exception):
    """Base class for collaborator failures."""
    pass


class FetchError(VenueError):
    """Market data could not be fetched (network / HTTP failure)."""
    pass


class RateLimited(FetchError):
    """Market data endpoint answered 429. Reuse the last good result."""
    pass


class OrderNotFound(VenueError):
    """The venue has no record of the order id."""
    pass


class OrderRejected(VenueError):
    """The venue refused a placement."""
    pass


class ReconciliationFailure(VenueError):
    """A remote order / trade / balance query failed."""
    pass


class CancellationFailure(VenueError):
    """A cancel request failed. The order stays tracked."""
    pass


_dry_run_counter = itertools.count(1)


def make_dry_run_order_id() -> str:
    """Synthetic id for a simulated order. Venue ids are 0x-prefixed hashes, so these never collide."""
    return f"{DRY_RUN_PREFIX}{int(time.time() * 1000)}-{next(_dry_run_counter)}"


def is_dry_run_order_id(order_id: str) -> bool:
    return order_id.startswith(DRY_RUN_PREFIX)


def parse_side(raw: object) -> Side | None:
    text = str(raw or "").upper()
    if text == "BUY":
        return Side.BUY
    if text == "SELL":
        return Side.SELL
    return None


def _to_float(raw: object) -> float:
    try:
        return float(raw or 0)
    except (TypeError, ValueError):
        return 0.0


@dataclass(frozen=True)
class OrderResult:
    success: bool
    order_id: str = ""
    error: str = ""


@dataclass(frozen=True)
class RemoteOrder:
    """An order as the venue reports it."""
    order_id: str
    token_id: str
    side: Side | None
    price: float
    size: float
    status: str = ""

    @classmethod
    def from_payload(cls, payload: dict) -> RemoteOrder:
        return cls(
            order_id=str(payload.get("id") or payload.get("orderID") or payload.get("order_id") or ""),
            token_id=str(payload.get("asset_id") or payload.get("token_id") or ""),
            side=parse_side(payload.get("side")),
            price=_to_float(payload.get("price")),
            size=_to_float(payload.get("original_size") or payload.get("size")),
            status=str(payload.get("status") or payload.get("order_status") or "").upper(),
        )

    @property
    def notional(self) -> float:
        return self.price * self.size


@dataclass(frozen=True)
class MakerFill:
    maker_address: str
    side: Side | None
    token_id: str


@dataclass(frozen=True)
class RemoteTrade:
    """A trade from the venue history; only the maker side matters for recovery."""
    trade_id: str
    maker_orders: tuple[MakerFill, ...] = field(default_factory=tuple)

    @classmethod
    def from_payload(cls, payload: dict) -> RemoteTrade:
        makers = []
        for mo in payload.get("maker_orders") or []:
            if not isinstance(mo, dict):
                continue
            makers.append(MakerFill(
                maker_address=str(mo.get("maker_address") or "").lower(),
                side=parse_side(mo.get("side")),
                token_id=str(mo.get("asset_id") or ""),
            ))
        return cls(trade_id=str(payload.get("id") or ""), maker_orders=tuple(makers))


@runtime_checkable
class MarketDataSource(Protocol):
    """Raw market discovery plus per-token order books."""

    @property
    def name(self) -> str:
        ...

    async def fetch_all(self) -> list[dict]:
        """Return raw market records. Raises FetchError / RateLimited."""
        ...

    async def get_orderbook(self, token_id: str) -> OrderBook | None:
        """Return the book, or None when it is empty or the venue errors."""
        ...


@runtime_checkable
class ExecutionVenue(Protocol):
    """Order placement and account queries."""

    @property
    def wallet_address(self) -> str:
        ...

    async def get_available_balance(self, currency: str = "USDC") -> float:
        ...

    async def get_token_balance(self, token_id: str) -> float:
        ...

    async def place_limit_order(
        self,
        token_id: str,
        side: Side,
        price: float,
        size: float,
        dry_run: bool,
    ) -> OrderResult:
        """In dry_run mode: no network call, id prefixed with DRY_RUN_PREFIX."""
        ...

    async def get_open_orders(self) -> list[RemoteOrder]:
        ...

    async def get_order(self, order_id: str) -> RemoteOrder:
        """Raises OrderNotFound."""
        ...

    async def get_trades(self) -> list[RemoteTrade]:
        ...

    async def cancel_order(self, order_id: str) -> bool:
        ...

    async def cancel_all_orders(self) -> int:
        ...
