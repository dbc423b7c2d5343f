"""
Polymarket market feed. Gamma REST for discovery, public CLOB /book for
order books. Pure REST, no SDK dependency.
"""

from __future__ import annotations

import logging

import httpx

from client.platform import FetchError, RateLimited
from scanner.models import OrderBook, PriceLevel

logger = logging.getLogger(__name__)

_TIMEOUT = 30.0
_PAGE_SIZE = 500


def _parse_levels(raw_levels: list | None, descending: bool) -> tuple[PriceLevel, ...]:
    """Sort levels best-first. The endpoint does NOT guarantee order."""
    levels = []
    for lvl in raw_levels or []:
        try:
            levels.append(PriceLevel(price=float(lvl["price"]), size=float(lvl["size"])))
        except (KeyError, TypeError, ValueError):
            continue
    return tuple(sorted(levels, key=lambda lvl: lvl.price, reverse=descending))


class GammaMarketSource:
    """
    MarketDataSource over the Gamma API.

    fetch_all() returns raw market dicts (outcomePrices / clobTokenIds still
    JSON-encoded); scanner.normalizer owns decoding.
    """

    def __init__(
        self,
        gamma_host: str,
        clob_host: str,
        max_pages: int = 1,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.gamma_host = gamma_host.rstrip("/")
        self.clob_host = clob_host.rstrip("/")
        self.max_pages = max_pages
        self._http = http or httpx.AsyncClient(timeout=_TIMEOUT)

    @property
    def name(self) -> str:
        return "gamma"

    async def _get(self, url: str, params: dict | None = None) -> dict | list:
        """GET a JSON document. Raises RateLimited on 429, FetchError otherwise."""
        try:
            resp = await self._http.get(url, params=params)
        except httpx.HTTPError as e:
            raise FetchError(f"GET {url}: {e}") from e
        if resp.status_code == 429:
            raise RateLimited(f"GET {url}: 429 Too Many Requests")
        try:
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPStatusError, ValueError) as e:
            raise FetchError(f"GET {url}: {e}") from e

    async def fetch_all(self) -> list[dict]:
        """Fetch open markets, paginating up to max_pages."""
        markets: list[dict] = []
        offset = 0
        for _ in range(self.max_pages):
            params = {"closed": "false", "limit": _PAGE_SIZE, "offset": offset}
            page = await self._get(f"{self.gamma_host}/markets", params)
            if not isinstance(page, list):
                raise FetchError(f"unexpected /markets payload: {type(page).__name__}")
            markets.extend(m for m in page if isinstance(m, dict))
            if len(page) < _PAGE_SIZE:
                break
            offset += _PAGE_SIZE
        return markets

    async def get_orderbook(self, token_id: str) -> OrderBook | None:
        try:
            raw = await self._get(f"{self.clob_host}/book", {"token_id": token_id})
        except FetchError as e:
            logger.debug("Order book fetch failed for %s: %s", token_id, e)
            return None
        if not isinstance(raw, dict):
            return None
        bids = _parse_levels(raw.get("bids"), descending=True)
        asks = _parse_levels(raw.get("asks"), descending=False)
        if not bids and not asks:
            return None
        return OrderBook(token_id=token_id, bids=bids, asks=asks)

    async def aclose(self) -> None:
        await self._http.aclose()
