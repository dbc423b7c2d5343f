"""
Integration tests for client/gamma.py -- market discovery and order books
with mocked HTTP.
"""

import httpx
import pytest
import respx

from client.gamma import GammaMarketSource
from client.platform import FetchError, MarketDataSource, RateLimited

from fakes import gamma_market


GAMMA_HOST = "https://gamma-api.polymarket.com"
CLOB_HOST = "https://clob.polymarket.com"


def _source(max_pages=1):
    return GammaMarketSource(GAMMA_HOST, CLOB_HOST, max_pages=max_pages, http=httpx.AsyncClient())


class TestFetchAll:
    @respx.mock
    @pytest.mark.asyncio
    async def test_basic_fetch(self):
        """Raw records come back untouched; decoding is the normalizer's job."""
        respx.get(f"{GAMMA_HOST}/markets").mock(
            return_value=httpx.Response(200, json=[gamma_market("m1"), gamma_market("m2")])
        )
        markets = await _source().fetch_all()
        assert [m["id"] for m in markets] == ["m1", "m2"]
        assert isinstance(markets[0]["outcomePrices"], str)

    @respx.mock
    @pytest.mark.asyncio
    async def test_open_markets_requested(self):
        route = respx.get(f"{GAMMA_HOST}/markets").mock(return_value=httpx.Response(200, json=[]))
        await _source().fetch_all()
        params = route.calls[0].request.url.params
        assert params["closed"] == "false"
        assert params["limit"] == "500"
        assert params["offset"] == "0"

    @respx.mock
    @pytest.mark.asyncio
    async def test_paginates_full_pages(self):
        full_page = [gamma_market(f"m{i}") for i in range(500)]
        route = respx.get(f"{GAMMA_HOST}/markets").mock(side_effect=[
            httpx.Response(200, json=full_page),
            httpx.Response(200, json=[gamma_market("last")]),
        ])
        markets = await _source(max_pages=5).fetch_all()
        assert len(markets) == 501
        assert route.call_count == 2
        assert route.calls[1].request.url.params["offset"] == "500"

    @respx.mock
    @pytest.mark.asyncio
    async def test_page_limit(self):
        full_page = [gamma_market(f"m{i}") for i in range(500)]
        route = respx.get(f"{GAMMA_HOST}/markets").mock(return_value=httpx.Response(200, json=full_page))
        await _source(max_pages=1).fetch_all()
        assert route.call_count == 1

    @respx.mock
    @pytest.mark.asyncio
    async def test_rate_limited(self):
        respx.get(f"{GAMMA_HOST}/markets").mock(return_value=httpx.Response(429))
        with pytest.raises(RateLimited):
            await _source().fetch_all()

    @respx.mock
    @pytest.mark.asyncio
    async def test_server_error(self):
        respx.get(f"{GAMMA_HOST}/markets").mock(return_value=httpx.Response(503))
        with pytest.raises(FetchError):
            await _source().fetch_all()

    @respx.mock
    @pytest.mark.asyncio
    async def test_transport_error(self):
        respx.get(f"{GAMMA_HOST}/markets").mock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(FetchError):
            await _source().fetch_all()

    @respx.mock
    @pytest.mark.asyncio
    async def test_unexpected_payload(self):
        respx.get(f"{GAMMA_HOST}/markets").mock(return_value=httpx.Response(200, json={"error": "x"}))
        with pytest.raises(FetchError, match="unexpected"):
            await _source().fetch_all()


class TestOrderBook:
    @respx.mock
    @pytest.mark.asyncio
    async def test_levels_sorted_best_first(self):
        respx.get(f"{CLOB_HOST}/book").mock(return_value=httpx.Response(200, json={
            "bids": [{"price": "0.40", "size": "10"}, {"price": "0.45", "size": "5"}],
            "asks": [{"price": "0.60", "size": "3"}, {"price": "0.55", "size": "7"}],
        }))
        book = await _source().get_orderbook("tok")
        assert book.token_id == "tok"
        assert book.best_bid.price == 0.45
        assert book.best_ask.price == 0.55
        assert book.spread == pytest.approx(0.10)

    @respx.mock
    @pytest.mark.asyncio
    async def test_empty_book_is_none(self):
        respx.get(f"{CLOB_HOST}/book").mock(return_value=httpx.Response(200, json={"bids": [], "asks": []}))
        assert await _source().get_orderbook("tok") is None

    @respx.mock
    @pytest.mark.asyncio
    async def test_error_is_none(self):
        respx.get(f"{CLOB_HOST}/book").mock(return_value=httpx.Response(404))
        assert await _source().get_orderbook("tok") is None

    @respx.mock
    @pytest.mark.asyncio
    async def test_malformed_levels_skipped(self):
        respx.get(f"{CLOB_HOST}/book").mock(return_value=httpx.Response(200, json={
            "bids": [{"price": "abc", "size": "1"}, {"price": "0.30"}, {"price": "0.20", "size": "4"}],
            "asks": [],
        }))
        book = await _source().get_orderbook("tok")
        assert [lvl.price for lvl in book.bids] == [0.20]


class TestProtocol:
    def test_satisfies_market_data_source(self):
        assert isinstance(_source(), MarketDataSource)
