"""
Scan loop and safety governor.

Each scan runs these steps strictly in order; each depends on state the
previous one changed:
  1. reconcile fills
  2. place exits for held positions
  3. cancel stale orders
  4. loss circuit breaker (halts new entries only)
  5. open-BUY capacity
  6. fetch, normalize, detect, alert; attempt one entry on the top opportunity
  7. emit stats

Scans never overlap. run() schedules the next scan only after the previous
one returns, and scan_once() refuses to start while another is in flight.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from client.cache import MarketCache
from client.platform import FetchError, OrderRejected
from executor.lifecycle import ActiveOrder, OrderLifecycle
from executor.safety import CircuitBreakerTripped, LossCircuitBreaker, SafetyCheckFailed, verify_capacity
from monitor.alerts import AlertTracker, strength_pct
from monitor.logger import set_scan
from monitor.display import (
    print_alert,
    print_cycle_header,
    print_opportunities,
    print_scan_summary,
    print_shutdown,
)
from monitor.stats import RunStats
from scanner.detector import DetectorConfig, find_opportunities
from scanner.models import DetectionMode, Opportunity
from scanner.normalizer import normalize_all

logger = logging.getLogger(__name__)


@dataclass
class ScanReport:
    scan: int
    fills: int = 0
    exits_placed: int = 0
    cancelled: int = 0
    opportunities: int = 0
    alerts: int = 0
    entries: list[ActiveOrder] = field(default_factory=list)
    skip_reason: str = ""
    stale_data: bool = False
    elapsed: float = 0.0


class Governor:

    def __init__(
        self,
        lifecycle: OrderLifecycle,
        markets: MarketCache,
        detector_cfg: DetectorConfig,
        stats: RunStats,
        breaker: LossCircuitBreaker,
        max_open_orders: int,
        poll_interval_sec: float,
        mode: DetectionMode = DetectionMode.SPREAD,
        dry_run: bool = True,
        cancel_on_shutdown: bool = True,
        alerts: AlertTracker | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.lifecycle = lifecycle
        self.markets = markets
        self.detector_cfg = detector_cfg
        self.stats = stats
        self.breaker = breaker
        self.max_open_orders = max_open_orders
        self.poll_interval_sec = poll_interval_sec
        self.mode = mode
        self.dry_run = dry_run
        self.cancel_on_shutdown = cancel_on_shutdown
        self.alerts = alerts
        self._clock = clock
        self._scanning = False
        self._stop = asyncio.Event()

    @property
    def scanning(self) -> bool:
        return self._scanning

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def request_stop(self) -> None:
        """Ask run() to exit after the in-flight scan. Safe to call from a signal handler."""
        if not self._stop.is_set():
            logger.info("Shutdown requested, finishing current scan...")
        self._stop.set()

    async def scan_once(self) -> ScanReport | None:
        """Run one scan. Returns None (and does nothing) if a scan is already running."""
        if self._scanning:
            logger.warning("Scan already in progress, refusing overlapping scan")
            return None

        self._scanning = True
        self.stats.scans += 1
        report = ScanReport(scan=self.stats.scans)
        set_scan(report.scan)
        started = self._clock()
        try:
            print_cycle_header(report.scan, self.dry_run)
            await self._scan(report)
        finally:
            report.elapsed = self._clock() - started
            self._scanning = False
            print_scan_summary(
                self.stats,
                open_buys=self.lifecycle.open_buy_count,
                open_sells=self.lifecycle.open_sell_count,
                positions=len(self.lifecycle.positions),
                opportunities=report.opportunities,
                elapsed=report.elapsed,
            )
        return report

    async def _scan(self, report: ScanReport) -> None:
        report.fills = len(await self.lifecycle.reconcile_fills())
        report.exits_placed = len(await self.lifecycle.place_exits())
        report.cancelled = len(await self.lifecycle.cancel_stale())

        try:
            self.breaker.check(self.stats.total_profit, self.stats.total_loss)
        except CircuitBreakerTripped as e:
            report.skip_reason = str(e)
            logger.warning("%s - stopping new entries", e)
            return

        try:
            verify_capacity(self.lifecycle.open_buy_count, self.max_open_orders)
        except SafetyCheckFailed as e:
            report.skip_reason = str(e)
            logger.info("%s", e)
            return

        opportunities = await self._find_opportunities(report)
        report.opportunities = len(opportunities)
        self.stats.opportunities_found += len(opportunities)
        print_opportunities(opportunities)
        self._raise_alerts(opportunities, report)
        if not opportunities:
            report.skip_reason = report.skip_reason or "No opportunities above threshold"
            return

        candidates = [o for o in opportunities if not self.lifecycle.is_engaged(o)]
        if not candidates:
            report.skip_reason = "Every opportunity already has an open order or position"
            logger.info("%s", report.skip_reason)
            return

        # One entry per scan bounds how fast exposure can grow.
        top = candidates[0]
        try:
            report.entries = await self.lifecycle.place_entry(top)
        except SafetyCheckFailed as e:
            report.skip_reason = str(e)
            logger.info("Entry skipped: %s", e)
        except OrderRejected as e:
            report.skip_reason = f"Order rejected: {e}"
            logger.warning("Order rejected: %s", e)

    def _raise_alerts(self, opportunities: list[Opportunity], report: ScanReport) -> None:
        if self.alerts is None:
            return
        for opp in self.alerts.due(opportunities):
            print_alert(opp, strength_pct(opp))
            report.alerts += 1
            self.stats.alerts_triggered += 1

    async def _find_opportunities(self, report: ScanReport) -> list[Opportunity]:
        try:
            feed = await self.markets.get_markets()
        except FetchError as e:
            report.skip_reason = f"Market data unavailable: {e}"
            logger.warning("Market data unavailable this scan: %s", e)
            return []
        report.stale_data = feed.stale

        snapshots, skipped = normalize_all(feed.markets)
        if skipped:
            logger.debug("Skipped %d malformed markets", skipped)
        return find_opportunities(snapshots, self.detector_cfg, self.mode)

    async def run(self, max_scans: int | None = None) -> None:
        """
        Scan every poll interval until request_stop() (or max_scans).
        The interval is measured from scan start; a slow scan delays the
        next one instead of overlapping it.
        """
        scans = 0
        try:
            while not self._stop.is_set():
                started = self._clock()
                try:
                    await self.scan_once()
                except Exception:
                    logger.exception("Scan failed, continuing with next scan")
                scans += 1
                if max_scans is not None and scans >= max_scans:
                    break

                remaining = self.poll_interval_sec - (self._clock() - started)
                if remaining > 0:
                    try:
                        await asyncio.wait_for(self._stop.wait(), timeout=remaining)
                    except asyncio.TimeoutError:
                        pass
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        """Optionally cancel every open order, then print the final summary."""
        if self.cancel_on_shutdown and self.lifecycle.open_orders:
            logger.info("Cancelling all open orders...")
            await self.lifecycle.cancel_all()
        print_shutdown(self.stats)
