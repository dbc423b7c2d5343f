"""
Tests for client/platform.py payload parsing and client/paper.py.
"""

import pytest

from client.paper import PaperVenue
from client.platform import (
    ExecutionVenue,
    FetchError,
    OrderNotFound,
    RateLimited,
    RemoteOrder,
    RemoteTrade,
    VenueError,
    is_dry_run_order_id,
    make_dry_run_order_id,
    parse_side,
)
from scanner.models import Side


class TestDryRunIds:
    def test_prefix(self):
        assert is_dry_run_order_id(make_dry_run_order_id())
        assert not is_dry_run_order_id("0xabc")

    def test_unique(self):
        assert len({make_dry_run_order_id() for _ in range(100)}) == 100


class TestPayloads:
    def test_parse_side(self):
        assert parse_side("buy") == Side.BUY
        assert parse_side("SELL") == Side.SELL
        assert parse_side(None) is None

    def test_remote_order_prefers_original_size(self):
        order = RemoteOrder.from_payload({
            "id": "0x1", "asset_id": "tok", "side": "SELL", "price": "0.55",
            "original_size": "10", "size_matched": "4", "status": "live",
        })
        assert order.size == 10.0
        assert order.status == "LIVE"
        assert order.notional == pytest.approx(5.5)

    def test_remote_order_garbage_numbers(self):
        order = RemoteOrder.from_payload({"id": "0x1", "price": "?", "size": None})
        assert (order.price, order.size, order.side) == (0.0, 0.0, None)

    def test_remote_trade_makers(self):
        trade = RemoteTrade.from_payload({
            "id": "t1",
            "maker_orders": [
                {"maker_address": "0xAA", "side": "BUY", "asset_id": "tok"},
                "garbage",
            ],
        })
        assert len(trade.maker_orders) == 1
        assert trade.maker_orders[0].maker_address == "0xaa"

    def test_error_hierarchy(self):
        assert issubclass(RateLimited, FetchError)
        assert issubclass(FetchError, VenueError)
        assert issubclass(OrderNotFound, VenueError)


class TestPaperVenue:
    def test_satisfies_protocol(self):
        assert isinstance(PaperVenue(), ExecutionVenue)

    @pytest.mark.asyncio
    async def test_fixed_balance_and_no_inventory(self):
        venue = PaperVenue(balance_usd=250.0)
        assert await venue.get_available_balance() == 250.0
        assert await venue.get_token_balance("tok") == 0.0
        assert await venue.get_open_orders() == []
        assert await venue.get_trades() == []

    @pytest.mark.asyncio
    async def test_placements_always_simulated(self):
        venue = PaperVenue()
        result = await venue.place_limit_order("tok", Side.BUY, 0.40, 12, dry_run=False)
        assert result.success
        assert is_dry_run_order_id(result.order_id)
        assert venue.placed[0][1:] == ("tok", Side.BUY, 0.40, 12)

    @pytest.mark.asyncio
    async def test_unknown_order(self):
        with pytest.raises(OrderNotFound):
            await PaperVenue().get_order("0x1")
