"""
Myriad Markets feed via the site's Remix data endpoints.

The listing endpoint does not paginate reliably, so markets are discovered
by probing ids in concurrent batches. Myriad is an AMM: there is no order
book, only outcome prices.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from client.platform import FetchError
from scanner.models import OrderBook

logger = logging.getLogger(__name__)

_TIMEOUT = 15.0
_BATCH_SIZE = 30
_DEFAULT_MAX_ID = 720
# Probe this far past the highest open id seen so new listings are found.
_ID_HEADROOM = 50
_HEADERS = {"Accept": "application/json", "User-Agent": "parity-arb/1.0"}


class MyriadMarketSource:
    """MarketDataSource over myriad.markets. Only open binary markets are returned."""

    def __init__(
        self,
        host: str = "https://myriad.markets",
        max_id: int = _DEFAULT_MAX_ID,
        batch_size: int = _BATCH_SIZE,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.host = host.rstrip("/")
        self.known_max_id = max_id
        self.batch_size = batch_size
        self._http = http or httpx.AsyncClient(timeout=_TIMEOUT, headers=_HEADERS)

    @property
    def name(self) -> str:
        return "myriad"

    def _market_url(self, market_id: int) -> str:
        return f"{self.host}/markets/{market_id}"

    async def _fetch_market(self, market_id: int) -> dict | None:
        """One probe. Returns None for missing ids; raises httpx.HTTPError on transport failure."""
        resp = await self._http.get(
            self._market_url(market_id),
            params={"_data": "routes/markets.$marketId"},
        )
        if resp.status_code != 200:
            return None
        try:
            data = resp.json()
        except ValueError:
            return None
        market = data.get("market") if isinstance(data, dict) else None
        return market if isinstance(market, dict) else None

    async def fetch_all(self) -> list[dict]:
        markets: list[dict] = []
        probes = 0
        failures = 0
        start = 1
        while start <= self.known_max_id:
            stop = min(start + self.batch_size, self.known_max_id + 1)
            ids = range(start, stop)
            results = await asyncio.gather(
                *(self._fetch_market(i) for i in ids), return_exceptions=True,
            )
            for market_id, result in zip(ids, results):
                probes += 1
                if isinstance(result, httpx.HTTPError):
                    failures += 1
                    logger.debug("Myriad probe %d failed: %s", market_id, result)
                    continue
                if isinstance(result, BaseException):
                    raise result
                if not result or result.get("state") != "open":
                    continue
                if len(result.get("outcomes") or []) != 2:
                    continue
                markets.append(result)
                try:
                    seen_id = int(result.get("id") or 0)
                except (TypeError, ValueError):
                    seen_id = 0
                if seen_id + _ID_HEADROOM > self.known_max_id:
                    self.known_max_id = seen_id + _ID_HEADROOM
            start = stop

        if probes and failures == probes:
            raise FetchError(f"all {probes} Myriad probes failed")
        return markets

    async def get_orderbook(self, token_id: str) -> OrderBook | None:
        return None

    async def aclose(self) -> None:
        await self._http.aclose()
