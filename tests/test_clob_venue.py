"""
Tests for client/clob.py -- ClobVenue over a mocked py_clob_client.
"""

from unittest.mock import MagicMock

import pytest

from client.clob import ClobVenue, _parse_balance, _retry_api_call
from client.platform import (
    CancellationFailure,
    ExecutionVenue,
    OrderNotFound,
    ReconciliationFailure,
)
from scanner.models import Side


def _venue():
    client = MagicMock()
    client.get_address.return_value = "0xABCdef"
    return ClobVenue(client), client


class TestHelpers:
    def test_parse_balance_scales_six_decimals(self):
        assert _parse_balance({"balance": "12500000"}) == 12.5

    def test_parse_balance_garbage(self):
        assert _parse_balance({"balance": "n/a"}) == 0.0
        assert _parse_balance(None) == 0.0

    def test_retry_on_connection_error(self, monkeypatch):
        monkeypatch.setattr("client.clob.time.sleep", lambda s: None)
        fn = MagicMock(side_effect=[Exception("Request exception: reset"), "ok"])
        assert _retry_api_call(fn) == "ok"
        assert fn.call_count == 2

    def test_no_retry_on_api_error(self):
        fn = MagicMock(side_effect=Exception("status_code=400 invalid order"))
        with pytest.raises(Exception, match="status_code=400"):
            _retry_api_call(fn)
        assert fn.call_count == 1


class TestBalances:
    @pytest.mark.asyncio
    async def test_cash_balance(self):
        venue, client = _venue()
        client.get_balance_allowance.return_value = {"balance": "100000000"}
        assert await venue.get_available_balance() == 100.0

    @pytest.mark.asyncio
    async def test_token_balance(self):
        venue, client = _venue()
        client.get_balance_allowance.return_value = {"balance": "7000000"}
        assert await venue.get_token_balance("tok") == 7.0
        params = client.get_balance_allowance.call_args.args[0]
        assert params.token_id == "tok"

    @pytest.mark.asyncio
    async def test_balance_failure(self):
        venue, client = _venue()
        client.get_balance_allowance.side_effect = Exception("status_code=500")
        with pytest.raises(ReconciliationFailure):
            await venue.get_available_balance()


class TestPlacement:
    @pytest.mark.asyncio
    async def test_dry_run_makes_no_call(self):
        venue, client = _venue()
        result = await venue.place_limit_order("tok", Side.BUY, 0.40, 10, dry_run=True)
        assert result.success
        assert result.order_id.startswith("dry-run-")
        client.create_order.assert_not_called()
        client.post_order.assert_not_called()

    @pytest.mark.asyncio
    async def test_live_order_posted(self):
        venue, client = _venue()
        client.create_order.return_value = "signed"
        client.post_order.return_value = {"success": True, "orderID": "0xabc"}
        result = await venue.place_limit_order("tok", Side.SELL, 0.55, 10, dry_run=False)
        assert result.success
        assert result.order_id == "0xabc"
        args = client.create_order.call_args.args[0]
        assert (args.token_id, args.price, args.size, args.side) == ("tok", 0.55, 10, "SELL")

    @pytest.mark.asyncio
    async def test_order_signed_on_configured_tick(self):
        client = MagicMock()
        client.post_order.return_value = {"success": True, "orderID": "0xabc"}
        venue = ClobVenue(client, tick_size="0.001")
        await venue.place_limit_order("tok", Side.SELL, 0.511, 10, dry_run=False)
        options = client.create_order.call_args.args[1]
        assert options.tick_size == "0.001"

    @pytest.mark.asyncio
    async def test_rejection(self):
        venue, client = _venue()
        client.post_order.return_value = {"success": False, "errorMsg": "not enough balance / allowance"}
        result = await venue.place_limit_order("tok", Side.BUY, 0.40, 10, dry_run=False)
        assert not result.success
        assert "not enough balance" in result.error

    @pytest.mark.asyncio
    async def test_signing_error(self):
        venue, client = _venue()
        client.create_order.side_effect = Exception("invalid tick size")
        result = await venue.place_limit_order("tok", Side.BUY, 0.40, 10, dry_run=False)
        assert not result.success
        assert "invalid tick size" in result.error


class TestQueries:
    @pytest.mark.asyncio
    async def test_open_orders(self):
        venue, client = _venue()
        client.get_orders.return_value = [{
            "id": "0x1", "asset_id": "tok", "side": "BUY",
            "price": "0.40", "original_size": "10", "status": "LIVE",
        }]
        [order] = await venue.get_open_orders()
        assert (order.order_id, order.token_id, order.side, order.price, order.size) == (
            "0x1", "tok", Side.BUY, 0.40, 10.0,
        )

    @pytest.mark.asyncio
    async def test_open_orders_failure(self):
        venue, client = _venue()
        client.get_orders.side_effect = Exception("status_code=502")
        with pytest.raises(ReconciliationFailure):
            await venue.get_open_orders()

    @pytest.mark.asyncio
    async def test_get_order_status(self):
        venue, client = _venue()
        client.get_order.return_value = {"id": "0x1", "status": "matched"}
        order = await venue.get_order("0x1")
        assert order.status == "MATCHED"

    @pytest.mark.asyncio
    async def test_get_order_missing(self):
        venue, client = _venue()
        client.get_order.return_value = None
        with pytest.raises(OrderNotFound):
            await venue.get_order("0x1")

    @pytest.mark.asyncio
    async def test_trades_filtered_by_wallet(self):
        venue, client = _venue()
        client.get_trades.return_value = [{
            "id": "t1",
            "maker_orders": [{"maker_address": "0xABCDEF", "side": "BUY", "asset_id": "tok"}],
        }]
        [trade] = await venue.get_trades()
        assert trade.maker_orders[0].maker_address == "0xabcdef"
        assert trade.maker_orders[0].side == Side.BUY
        params = client.get_trades.call_args.args[0]
        assert params.maker_address == "0xabcdef"


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_confirmed(self):
        venue, client = _venue()
        client.cancel.return_value = {"canceled": ["0x1"], "not_canceled": {}}
        assert await venue.cancel_order("0x1") is True

    @pytest.mark.asyncio
    async def test_cancel_not_confirmed(self):
        venue, client = _venue()
        client.cancel.return_value = {"canceled": [], "not_canceled": {"0x1": "matched"}}
        assert await venue.cancel_order("0x1") is False

    @pytest.mark.asyncio
    async def test_cancel_all(self):
        venue, client = _venue()
        client.cancel_all.return_value = {"canceled": ["0x1", "0x2"]}
        assert await venue.cancel_all_orders() == 2

    @pytest.mark.asyncio
    async def test_cancel_all_failure(self):
        venue, client = _venue()
        client.cancel_all.side_effect = Exception("status_code=500")
        with pytest.raises(CancellationFailure):
            await venue.cancel_all_orders()


class TestProtocol:
    def test_satisfies_execution_venue(self):
        venue, _ = _venue()
        assert isinstance(venue, ExecutionVenue)


class TestBuildClient:
    def test_configured_credentials(self, monkeypatch):
        from client import auth
        from config import Config

        fake_cls = MagicMock()
        monkeypatch.setattr(auth, "ClobClient", fake_cls)
        cfg = Config(_env_file=None, private_key="0xkey", poly_api_key="k", poly_api_secret="s", poly_passphrase="p")
        client = auth.build_clob_client(cfg)

        assert fake_cls.call_args.kwargs["funder"] is None
        client.create_or_derive_api_creds.assert_not_called()
        creds = client.set_api_creds.call_args.args[0]
        assert creds.api_key == "k"

    def test_derived_credentials(self, monkeypatch):
        from client import auth
        from config import Config

        fake_cls = MagicMock()
        monkeypatch.setattr(auth, "ClobClient", fake_cls)
        cfg = Config(_env_file=None, private_key="0xkey", polymarket_profile_address="0xproxy")
        client = auth.build_clob_client(cfg)

        assert fake_cls.call_args.kwargs["funder"] == "0xproxy"
        client.set_api_creds.assert_called_once_with(client.create_or_derive_api_creds.return_value)
