#!/usr/bin/env python3
"""
Prediction-market parity / spread arbitrage bot.

Wires the pipeline together and runs the scan loop:
  1. Load config, set up logging
  2. Connect market feed + execution venue
  3. Recover held positions from trade history
  4. Scan every poll interval: reconcile, exit, cancel, detect, enter
  5. On SIGINT / SIGTERM: finish the current scan, cancel open orders

Usage:
  python run.py                       # dry run (default), no wallet needed
  python run.py --strategy parity     # parity detection instead of spreads
  python run.py --source myriad       # Myriad feed (dry run only)
  python run.py --once                # single scan, then exit
  python run.py --live                # live trading (needs PRIVATE_KEY)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from pydantic import ValidationError

from client.cache import MarketCache
from client.gamma import GammaMarketSource
from client.myriad import MyriadMarketSource
from client.paper import PaperVenue
from client.platform import ExecutionVenue, MarketDataSource
from config import Config, load_config, missing_live_credentials
from executor.governor import Governor
from executor.ledger import Ledger
from executor.lifecycle import LifecycleConfig, OrderLifecycle
from executor.safety import LossCircuitBreaker
from monitor.alerts import AlertTracker
from monitor.display import print_startup
from monitor.logger import setup_logging
from monitor.stats import RunStats
from scanner.detector import DetectorConfig
from scanner.models import DetectionMode

logger = logging.getLogger(__name__)

_BANNER = """
  PARITY ARB  --  binary prediction-market scanner
"""


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Prediction-market parity / spread arbitrage bot")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--live", action="store_true", help="Place real orders (needs PRIVATE_KEY)")
    mode.add_argument("--dry-run", action="store_true", help="Simulate orders (default)")
    parser.add_argument("--strategy", choices=("spread", "parity"), default=None, help="Detection rule")
    parser.add_argument("--source", choices=("gamma", "myriad"), default=None, help="Market data feed")
    parser.add_argument("--once", action="store_true", help="Run a single scan and exit")
    parser.add_argument("--json-log", type=str, default=None, help="Path to JSON log file")
    return parser.parse_args(argv)


def apply_cli_overrides(cfg: Config, args: argparse.Namespace) -> Config:
    update: dict = {}
    if args.live:
        update["dry_run"] = False
    elif args.dry_run:
        update["dry_run"] = True
    if args.strategy:
        update["strategy"] = args.strategy
    if args.source:
        update["source"] = args.source
    if args.json_log:
        update["json_log_file"] = args.json_log
    return cfg.model_copy(update=update) if update else cfg


def build_market_source(cfg: Config) -> MarketDataSource:
    if cfg.source == "myriad":
        return MyriadMarketSource(host=cfg.myriad_host)
    return GammaMarketSource(gamma_host=cfg.gamma_host, clob_host=cfg.clob_host)


def build_venue(cfg: Config) -> ExecutionVenue:
    """Authenticated CLOB venue when a key is configured, otherwise paper."""
    if not cfg.has_credentials:
        logger.info("No wallet configured -- using paper venue ($%.2f)", cfg.paper_balance_usd)
        return PaperVenue(balance_usd=cfg.paper_balance_usd)

    # Imported here so dry runs never touch the SDK's patched HTTP client.
    from client.auth import build_clob_client
    from client.clob import ClobVenue

    logger.debug("Authenticating with Polymarket CLOB...")
    client = build_clob_client(cfg)
    logger.debug("Authentication successful -- client ready for %s", "DRY RUN" if cfg.dry_run else "LIVE trading")
    return ClobVenue(client, tick_size=cfg.tick_size)


def build_governor(cfg: Config, source: MarketDataSource, venue: ExecutionVenue) -> Governor:
    stats = RunStats(ledger_path=cfg.pnl_ledger_path)
    ledger = Ledger(venue, balance_cache_sec=cfg.balance_cache_sec)
    lifecycle = OrderLifecycle(
        venue=venue,
        ledger=ledger,
        market_data=source,
        stats=stats,
        cfg=LifecycleConfig.from_config(cfg),
    )
    return Governor(
        lifecycle=lifecycle,
        markets=MarketCache(source, ttl=cfg.market_cache_ttl_sec),
        detector_cfg=DetectorConfig.from_config(cfg),
        stats=stats,
        breaker=LossCircuitBreaker(max_daily_loss=cfg.max_daily_loss_usd),
        max_open_orders=cfg.max_open_orders,
        poll_interval_sec=cfg.poll_interval_sec,
        mode=DetectionMode(cfg.strategy),
        dry_run=cfg.dry_run,
        cancel_on_shutdown=cfg.cancel_on_shutdown,
        alerts=AlertTracker(threshold_pct=cfg.alert_spread_pct, cooldown_sec=cfg.alert_cooldown_sec),
    )


def _install_signal_handlers(governor: Governor) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, governor.request_stop)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            signal.signal(sig, lambda signum, frame: governor.request_stop())


async def run_bot(cfg: Config, once: bool = False) -> None:
    source = build_market_source(cfg)
    venue = build_venue(cfg)
    governor = build_governor(cfg, source, venue)
    _install_signal_handlers(governor)

    if cfg.has_credentials:
        logger.info("Loading existing positions...")
        await governor.lifecycle.recover_positions()

    try:
        await governor.run(max_scans=1 if once else None)
    finally:
        aclose = getattr(source, "aclose", None)
        if aclose is not None:
            await aclose()


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    try:
        cfg = apply_cli_overrides(load_config(), args)
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        sys.exit(1)

    log_file_path = setup_logging(cfg.log_level, json_log_file=cfg.json_log_file or None, dry_run=cfg.dry_run)
    logger.info(_BANNER.strip())
    logger.info("  Log file: %s", log_file_path)

    if not cfg.dry_run:
        missing = missing_live_credentials(cfg)
        if missing:
            logger.error("Live trading requires: %s", ", ".join(missing))
            logger.error("Run without --live for a dry run.")
            sys.exit(1)

    print_startup(cfg)
    asyncio.run(run_bot(cfg, once=args.once))


if __name__ == "__main__":
    main()
