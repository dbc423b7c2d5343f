"""
CLOB REST venue. Thin layer converting py_clob_client calls and payloads to
our domain records. The SDK is blocking, so every call runs in a worker
thread via asyncio.to_thread.
"""

from __future__ import annotations

import asyncio
import logging
import time

from py_clob_client.client import ClobClient
from py_clob_client.clob_types import (
    AssetType,
    BalanceAllowanceParams,
    OpenOrderParams,
    OrderArgs,
    OrderType,
    PartialCreateOrderOptions,
    TradeParams,
)
from py_clob_client.order_builder.constants import BUY, SELL

from client.platform import (
    CancellationFailure,
    OrderNotFound,
    OrderResult,
    ReconciliationFailure,
    RemoteOrder,
    RemoteTrade,
    make_dry_run_order_id,
)
from scanner.models import Side

logger = logging.getLogger(__name__)

# Retry config for flaky CLOB API (HTTP/2 connection resets, SSL errors)
_MAX_RETRIES = 3
_RETRY_BACKOFF_SEC = 1.0
# USDC and outcome tokens both use 6 decimals on Polygon
_TOKEN_DECIMALS = 1e6

# Patch py_clob_client's shared httpx client:
#   - Disable HTTP/2: the CLOB server sends GOAWAY frames that crash the shared
#     connection pool (httpcore.RemoteProtocolError: ConnectionTerminated)
#   - Add a 15s timeout (SDK default has none or too low)
import httpx as _httpx
from py_clob_client.http_helpers import helpers as _clob_helpers
_clob_helpers._http_client = _httpx.Client(http2=False, timeout=15.0)


def _retry_api_call(fn, *args, max_retries: int = _MAX_RETRIES, **kwargs):
    """Retry a py_clob_client call with exponential backoff on connection errors."""
    last_exc = None
    for attempt in range(max_retries):
        try:
            return fn(*args, **kwargs)
        except Exception as exc:
            last_exc = exc
            err_str = str(exc)
            # Only retry on connection-level errors (status_code=None), not 4xx/5xx
            is_connection_error = "Request exception" in err_str or "status_code=None" in err_str
            if not is_connection_error or attempt == max_retries - 1:
                raise
            wait = _RETRY_BACKOFF_SEC * (2 ** attempt)
            logger.debug("CLOB API retry %d/%d after %.1fs: %s", attempt + 1, max_retries, wait, exc)
            time.sleep(wait)
    raise last_exc  # unreachable, but satisfies type checker


def _parse_balance(resp: object) -> float:
    raw = resp.get("balance", 0) if isinstance(resp, dict) else 0
    try:
        return float(raw or 0) / _TOKEN_DECIMALS
    except (TypeError, ValueError):
        return 0.0


class ClobVenue:
    """ExecutionVenue backed by an authenticated ClobClient."""

    def __init__(self, client: ClobClient, tick_size: str = "0.01") -> None:
        # Same grid the lifecycle quantizes exit prices to (Config.tick_size).
        self._client = client
        self._tick_size = tick_size

    async def _call(self, fn, *args, **kwargs):
        return await asyncio.to_thread(_retry_api_call, fn, *args, **kwargs)

    @property
    def wallet_address(self) -> str:
        return str(self._client.get_address() or "").lower()

    async def get_available_balance(self, currency: str = "USDC") -> float:
        params = BalanceAllowanceParams(asset_type=AssetType.COLLATERAL)
        try:
            resp = await self._call(self._client.get_balance_allowance, params)
        except Exception as e:
            raise ReconciliationFailure(f"{currency} balance query failed: {e}") from e
        return _parse_balance(resp)

    async def get_token_balance(self, token_id: str) -> float:
        params = BalanceAllowanceParams(asset_type=AssetType.CONDITIONAL, token_id=token_id)
        try:
            resp = await self._call(self._client.get_balance_allowance, params)
        except Exception as e:
            raise ReconciliationFailure(f"token balance query failed for {token_id}: {e}") from e
        return _parse_balance(resp)

    async def place_limit_order(
        self,
        token_id: str,
        side: Side,
        price: float,
        size: float,
        dry_run: bool,
    ) -> OrderResult:
        if dry_run:
            order_id = make_dry_run_order_id()
            logger.info("[DRY RUN] %s %s @ %.4f x %.0f -> %s", side.value, token_id[:16], price, size, order_id)
            return OrderResult(success=True, order_id=order_id)

        args = OrderArgs(
            token_id=token_id,
            price=price,
            size=size,
            side=BUY if side == Side.BUY else SELL,
        )
        options = PartialCreateOrderOptions(tick_size=self._tick_size)
        try:
            signed = await self._call(self._client.create_order, args, options)
            resp = await self._call(self._client.post_order, signed, OrderType.GTC)
        except Exception as e:
            return OrderResult(success=False, error=str(e))

        if not isinstance(resp, dict):
            return OrderResult(success=False, error=f"unexpected response: {resp!r}")
        order_id = str(resp.get("orderID") or resp.get("orderId") or "")
        if not resp.get("success", bool(order_id)) or not order_id:
            return OrderResult(success=False, error=str(resp.get("errorMsg") or resp))
        return OrderResult(success=True, order_id=order_id)

    async def get_open_orders(self) -> list[RemoteOrder]:
        try:
            raw = await self._call(self._client.get_orders, OpenOrderParams())
        except Exception as e:
            raise ReconciliationFailure(f"open orders query failed: {e}") from e
        return [RemoteOrder.from_payload(o) for o in raw or [] if isinstance(o, dict)]

    async def get_order(self, order_id: str) -> RemoteOrder:
        try:
            raw = await self._call(self._client.get_order, order_id)
        except Exception as e:
            raise ReconciliationFailure(f"order query failed for {order_id}: {e}") from e
        if not raw or not isinstance(raw, dict):
            raise OrderNotFound(order_id)
        return RemoteOrder.from_payload(raw)

    async def get_trades(self) -> list[RemoteTrade]:
        params = TradeParams(maker_address=self.wallet_address)
        try:
            raw = await self._call(self._client.get_trades, params)
        except Exception as e:
            raise ReconciliationFailure(f"trade history query failed: {e}") from e
        return [RemoteTrade.from_payload(t) for t in raw or [] if isinstance(t, dict)]

    async def cancel_order(self, order_id: str) -> bool:
        try:
            resp = await self._call(self._client.cancel, order_id)
        except Exception as e:
            logger.warning("Cancel failed for %s: %s", order_id, e)
            return False
        canceled = resp.get("canceled", []) if isinstance(resp, dict) else []
        return order_id in canceled

    async def cancel_all_orders(self) -> int:
        try:
            resp = await self._call(self._client.cancel_all)
        except Exception as e:
            raise CancellationFailure(f"cancel-all failed: {e}") from e
        canceled = resp.get("canceled", []) if isinstance(resp, dict) else []
        return len(canceled)
