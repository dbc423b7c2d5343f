"""
Market feed caching.

Wraps a MarketDataSource with a TTL cache:
- Fresh results are served from cache for ttl seconds
- On FetchError / RateLimited the last good result is served, labelled stale
- With nothing cached, the fetch error propagates to the caller
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from client.platform import FetchError, MarketDataSource, RateLimited

logger = logging.getLogger(__name__)

_DEFAULT_TTL = 10.0


class CachedValue:
    """Represents a cached value with its timestamp."""

    __slots__ = ("value", "timestamp")

    def __init__(self, value: Any, timestamp: float):
        self.value = value
        self.timestamp = timestamp

    def is_stale(self, ttl: float, now: float | None = None) -> bool:
        """Check if this cached value is stale (older than TTL)."""
        current = time.time() if now is None else now
        return current - self.timestamp > ttl


@dataclass(frozen=True)
class MarketFeed:
    """Raw market records plus where they came from."""
    markets: list[dict]
    fetched_at: float
    stale: bool = False
    from_cache: bool = False

    def age(self, now: float | None = None) -> float:
        current = time.time() if now is None else now
        return current - self.fetched_at


class MarketCache:
    """
    TTL cache in front of a market data source.

    Not thread-safe; the governor calls it from one scan at a time.
    """

    def __init__(
        self,
        source: MarketDataSource,
        ttl: float = _DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.source = source
        self.ttl = ttl
        self._clock = clock
        self._cached: CachedValue | None = None

    async def get_markets(self, force_refresh: bool = False) -> MarketFeed:
        """
        Return markets from cache or the source.

        Raises FetchError (or RateLimited) only when the source fails and
        there is no previous result to fall back to.
        """
        now = self._clock()
        if not force_refresh and self._cached is not None and not self._cached.is_stale(self.ttl, now):
            logger.debug("Markets cache hit, returning %d markets", len(self._cached.value))
            return MarketFeed(
                markets=list(self._cached.value),
                fetched_at=self._cached.timestamp,
                from_cache=True,
            )

        try:
            markets = await self.source.fetch_all()
        except FetchError as e:
            reason = "rate limited" if isinstance(e, RateLimited) else "fetch failed"
            if self._cached is None:
                logger.warning("Market fetch from %s %s (%s), no cached data", self.source.name, reason, e)
                raise
            return self._fallback(f"{reason} ({e})")

        fetched_at = self._clock()
        self._cached = CachedValue(list(markets), fetched_at)
        logger.debug("Fetched %d markets from %s", len(markets), self.source.name)
        return MarketFeed(markets=list(markets), fetched_at=fetched_at)

    def _fallback(self, reason: str) -> MarketFeed:
        age = self._clock() - self._cached.timestamp
        logger.warning(
            "Market fetch from %s %s, serving cached data (age=%.1fs, STALE)",
            self.source.name, reason, age,
        )
        return MarketFeed(
            markets=list(self._cached.value),
            fetched_at=self._cached.timestamp,
            stale=True,
            from_cache=True,
        )

    @property
    def fetched_at(self) -> float:
        """Timestamp of the last successful fetch (0.0 if never fetched)."""
        return self._cached.timestamp if self._cached else 0.0

    def clear(self) -> None:
        self._cached = None
        logger.debug("Market cache cleared")
