"""
In-memory collaborators for engine tests: a scriptable execution venue, a
market feed, a controllable clock, and raw market builders.
"""

from __future__ import annotations

import json

from client.platform import (
    CancellationFailure,
    FetchError,
    OrderNotFound,
    OrderResult,
    ReconciliationFailure,
    RemoteOrder,
    RemoteTrade,
    make_dry_run_order_id,
)
from scanner.models import OrderBook, PriceLevel, Side


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeVenue:
    """ExecutionVenue double. Live placements get ids 0xorder1, 0xorder2, ..."""

    def __init__(self, balance: float = 100.0, token_balances: dict[str, float] | None = None,
                 wallet: str = "0xwallet"):
        self.balance = balance
        self.token_balances = dict(token_balances or {})
        self.wallet = wallet
        self.remote_open_orders: list[RemoteOrder] = []
        self.order_status: dict[str, str] = {}
        self.trades: list[RemoteTrade] = []
        self.placed: list[tuple[str, str, Side, float, float, bool]] = []
        self.cancelled: list[str] = []
        self.balance_calls = 0
        self.fail_open_orders = False
        self.fail_get_order: set[str] = set()
        self.fail_trades = False
        self.reject_placements = False
        self.cancel_result = True
        self.cancel_raises = False
        self.cancel_all_count = 0
        self._next_id = 0

    @property
    def wallet_address(self) -> str:
        return self.wallet

    async def get_available_balance(self, currency: str = "USDC") -> float:
        self.balance_calls += 1
        return self.balance

    async def get_token_balance(self, token_id: str) -> float:
        return self.token_balances.get(token_id, 0.0)

    async def place_limit_order(self, token_id, side, price, size, dry_run) -> OrderResult:
        if self.reject_placements:
            return OrderResult(success=False, error="not enough balance / allowance")
        if dry_run:
            order_id = make_dry_run_order_id()
        else:
            self._next_id += 1
            order_id = f"0xorder{self._next_id}"
        self.placed.append((order_id, token_id, side, price, size, dry_run))
        return OrderResult(success=True, order_id=order_id)

    async def get_open_orders(self) -> list[RemoteOrder]:
        if self.fail_open_orders:
            raise ReconciliationFailure("open orders endpoint down")
        return list(self.remote_open_orders)

    async def get_order(self, order_id: str) -> RemoteOrder:
        if order_id in self.fail_get_order:
            raise ReconciliationFailure(f"timeout fetching {order_id}")
        if order_id not in self.order_status:
            raise OrderNotFound(order_id)
        return RemoteOrder(order_id=order_id, token_id="", side=None, price=0.0, size=0.0,
                           status=self.order_status[order_id])

    async def get_trades(self) -> list[RemoteTrade]:
        if self.fail_trades:
            raise ReconciliationFailure("trades endpoint down")
        return list(self.trades)

    async def cancel_order(self, order_id: str) -> bool:
        self.cancelled.append(order_id)
        if self.cancel_raises:
            raise CancellationFailure(order_id)
        return self.cancel_result

    async def cancel_all_orders(self) -> int:
        self.cancel_all_count += 1
        return len([p for p in self.placed if not p[5]])


class FakeMarketData:
    def __init__(self, markets: list[dict] | None = None, books: dict[str, OrderBook] | None = None):
        self.markets = list(markets or [])
        self.books = dict(books or {})
        self.error: Exception | None = None
        self.fetch_calls = 0

    @property
    def name(self) -> str:
        return "fake"

    async def fetch_all(self) -> list[dict]:
        self.fetch_calls += 1
        if self.error is not None:
            raise self.error
        return list(self.markets)

    async def get_orderbook(self, token_id: str) -> OrderBook | None:
        return self.books.get(token_id)


def make_book(token_id: str, bids=(), asks=()) -> OrderBook:
    return OrderBook(
        token_id=token_id,
        bids=tuple(PriceLevel(price=p, size=s) for p, s in bids),
        asks=tuple(PriceLevel(price=p, size=s) for p, s in asks),
    )


def gamma_market(
    market_id: str = "m1",
    prices=(0.5, 0.5),
    tokens=("yes1", "no1"),
    bid: float = 0.40,
    ask: float = 0.45,
    volume: float = 50_000.0,
    question: str | None = None,
    closed: bool = False,
    encode_json: bool = True,
) -> dict:
    """A Gamma /markets record. List fields JSON-encoded the way Gamma sends them."""
    price_field = json.dumps([str(p) for p in prices]) if encode_json else list(prices)
    token_field = json.dumps(list(tokens)) if encode_json else list(tokens)
    return {
        "id": market_id,
        "question": question or f"Will {market_id} happen?",
        "outcomePrices": price_field,
        "clobTokenIds": token_field,
        "bestBid": bid,
        "bestAsk": ask,
        "volume24hr": volume,
        "liquidity": 1_000.0,
        "closed": closed,
        "enableOrderBook": True,
    }


def fetch_error(message: str = "connection reset") -> FetchError:
    return FetchError(message)
