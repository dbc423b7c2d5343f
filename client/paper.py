"""
Credential-free in-memory venue for dry runs.

Holds a fixed paper cash balance and no inventory. Placements get dry-run
sentinel ids; fills are simulated by the lifecycle manager and accounted
for in the ledger's paper book, not here.
"""

from __future__ import annotations

import logging

from client.platform import OrderNotFound, OrderResult, RemoteOrder, RemoteTrade, make_dry_run_order_id
from scanner.models import Side

logger = logging.getLogger(__name__)


class PaperVenue:

    def __init__(self, balance_usd: float = 100.0, wallet_address: str = "paper") -> None:
        self._balance = balance_usd
        self._wallet = wallet_address
        self.placed: list[tuple[str, str, Side, float, float]] = []

    @property
    def wallet_address(self) -> str:
        return self._wallet

    async def get_available_balance(self, currency: str = "USDC") -> float:
        return self._balance

    async def get_token_balance(self, token_id: str) -> float:
        return 0.0

    async def place_limit_order(
        self,
        token_id: str,
        side: Side,
        price: float,
        size: float,
        dry_run: bool,
    ) -> OrderResult:
        order_id = make_dry_run_order_id()
        self.placed.append((order_id, token_id, side, price, size))
        logger.info("[PAPER] %s %s @ %.4f x %.0f -> %s", side.value, token_id[:16], price, size, order_id)
        return OrderResult(success=True, order_id=order_id)

    async def get_open_orders(self) -> list[RemoteOrder]:
        return []

    async def get_order(self, order_id: str) -> RemoteOrder:
        raise OrderNotFound(order_id)

    async def get_trades(self) -> list[RemoteTrade]:
        return []

    async def cancel_order(self, order_id: str) -> bool:
        return True

    async def cancel_all_orders(self) -> int:
        return 0
