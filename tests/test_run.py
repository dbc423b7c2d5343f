"""
Tests for run.py -- CLI parsing and component wiring.
"""

from unittest.mock import MagicMock

import pytest

import run
from client.gamma import GammaMarketSource
from client.myriad import MyriadMarketSource
from client.paper import PaperVenue
from config import load_config
from executor.governor import Governor
from scanner.models import DetectionMode


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ("PRIVATE_KEY", "DRY_RUN", "STRATEGY", "SOURCE"):
        monkeypatch.delenv(name, raising=False)


class TestParseArgs:
    def test_defaults(self):
        args = run.parse_args([])
        assert not args.live
        assert not args.once
        assert args.strategy is None

    def test_live_and_dry_run_exclusive(self):
        with pytest.raises(SystemExit):
            run.parse_args(["--live", "--dry-run"])

    def test_overrides_applied(self):
        args = run.parse_args(["--live", "--strategy", "parity", "--source", "myriad", "--json-log", "out.jsonl"])
        cfg = run.apply_cli_overrides(load_config(), args)
        assert cfg.dry_run is False
        assert cfg.strategy == "parity"
        assert cfg.source == "myriad"
        assert cfg.json_log_file == "out.jsonl"

    def test_no_flags_keeps_config(self):
        cfg = load_config()
        assert run.apply_cli_overrides(cfg, run.parse_args([])) is cfg


class TestWiring:
    def test_market_source_by_name(self):
        assert isinstance(run.build_market_source(load_config()), GammaMarketSource)
        assert isinstance(run.build_market_source(load_config(source="myriad")), MyriadMarketSource)

    def test_paper_venue_without_key(self):
        venue = run.build_venue(load_config(paper_balance_usd=42.0))
        assert isinstance(venue, PaperVenue)

    def test_tick_size_shared_by_venue_and_lifecycle(self, monkeypatch):
        from client import auth
        from client.clob import ClobVenue
        from executor.lifecycle import LifecycleConfig

        monkeypatch.setattr(auth, "build_clob_client", lambda cfg: MagicMock())
        cfg = load_config(private_key="0xkey", tick_size="0.001")
        venue = run.build_venue(cfg)
        assert isinstance(venue, ClobVenue)
        assert venue._tick_size == "0.001"
        assert LifecycleConfig.from_config(cfg).tick_size == 0.001

    def test_governor_uses_config(self):
        cfg = load_config(strategy="parity", max_open_orders=3, poll_interval_ms=5_000, pnl_ledger_path="")
        governor = run.build_governor(cfg, run.build_market_source(cfg), PaperVenue())
        assert isinstance(governor, Governor)
        assert governor.mode == DetectionMode.PARITY
        assert governor.max_open_orders == 3
        assert governor.poll_interval_sec == 5.0
        assert governor.dry_run is True


class TestMain:
    def test_live_without_key_exits(self, monkeypatch):
        monkeypatch.setattr(run, "setup_logging", lambda *a, **kw: "test.log")
        with pytest.raises(SystemExit) as exc:
            run.main(["--live"])
        assert exc.value.code == 1

    def test_invalid_config_exits(self, monkeypatch):
        monkeypatch.setenv("MAX_OPEN_ORDERS", "0")
        with pytest.raises(SystemExit) as exc:
            run.main([])
        assert exc.value.code == 1

    def test_once_runs_single_scan(self, monkeypatch):
        seen = {}

        async def fake_run_bot(cfg, once=False):
            seen["cfg"] = cfg
            seen["once"] = once

        monkeypatch.setattr(run, "setup_logging", lambda *a, **kw: "test.log")
        monkeypatch.setattr(run, "run_bot", fake_run_bot)
        run.main(["--once", "--strategy", "parity"])
        assert seen["once"] is True
        assert seen["cfg"].strategy == "parity"
        assert seen["cfg"].dry_run is True
