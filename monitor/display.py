"""
Clean, scannable console output for the scan loop.

Pure formatting functions that emit structured log lines using box-drawing
characters. No side effects beyond logging. All data arrives via arguments.
"""

from __future__ import annotations

import logging
import time

from config import Config
from monitor.stats import RunStats
from scanner.models import Opportunity, OpportunityKind

logger = logging.getLogger(__name__)

# Box-drawing characters
_TOP = "\u250c"  # ┌
_MID = "\u2502"  # │
_BOT = "\u2514"  # └
_DASH = "\u2500"  # ─

_MAX_QUESTION_LEN = 45


def _truncate(text: str, length: int = _MAX_QUESTION_LEN) -> str:
    """Truncate text to *length* chars, appending ellipsis if trimmed."""
    if len(text) <= length:
        return text
    return text[: length - 1] + "\u2026"


def _mode_label(cfg: Config) -> str:
    return "DRY-RUN" if cfg.dry_run else "LIVE"


def print_startup(cfg: Config) -> None:
    """Compact config block emitted once at startup."""
    logger.info(
        "  Mode: %-8s Strategy: %-7s Source: %s",
        _mode_label(cfg), cfg.strategy, cfg.source,
    )
    if cfg.strategy == "parity":
        logger.info("  Deviation >= %.2f%%", cfg.min_deviation_pct)
    else:
        logger.info(
            "  Spread >= %.1f%%  Volume >= $%.0f  Price in [%.2f, %.2f]",
            cfg.min_spread_pct, cfg.min_volume_24h, cfg.min_price_floor, cfg.max_price_ceiling,
        )
    if cfg.alert_spread_pct > 0:
        logger.info("  Alert >= %.1f%%  Cooldown: %.0fs", cfg.alert_spread_pct, cfg.alert_cooldown_sec)
    logger.info(
        "  Order <= $%.2f  Open BUYs <= %d  Max loss $%.2f",
        cfg.max_order_size_usd, cfg.max_open_orders, cfg.max_daily_loss_usd,
    )
    logger.info(
        "  Interval: %.0fs  Order TTL: %.0fs",
        cfg.poll_interval_sec, cfg.order_ttl_sec,
    )


def print_cycle_header(scan: int, dry_run: bool) -> None:
    """Horizontal divider with scan number, mode and wall-clock time."""
    ts = time.strftime("%H:%M:%S")
    label = f" Scan #{scan} {'DRY RUN' if dry_run else 'LIVE'} "
    left_dashes = _DASH * 2
    right_pad = max(2, 60 - len(left_dashes) - len(label) - len(ts) - 3)
    logger.info("%s%s%s %s %s", left_dashes, label, _DASH * right_pad, ts, _DASH * 2)


def _describe(opp: Opportunity) -> str:
    snap = opp.snapshot
    if opp.kind == OpportunityKind.BUY_THEN_SELL:
        return (
            f"Spread: {snap.spread_pct:.2f}%  Bid {snap.best_bid:.3f} / Ask {snap.best_ask:.3f}  "
            f"Vol: ${snap.volume_24h / 1000:.1f}k"
        )
    return (
        f"{opp.kind.value.upper()}  Sum: {snap.total_price:.4f}  Dev: {opp.magnitude * 100:.2f}%  "
        f"Vol: ${snap.volume_24h / 1000:.1f}k"
    )


def print_opportunities(opportunities: list[Opportunity], limit: int = 5) -> None:
    """Top opportunities in a box."""
    if not opportunities:
        logger.info("No opportunities matching criteria.")
        return
    logger.info("%s Found %d opportunities", _TOP, len(opportunities))
    for i, opp in enumerate(opportunities[:limit], 1):
        logger.info("%s [%d] %s %s %s", _MID, i, _truncate(opp.question), _MID, _describe(opp))
    logger.info("%s%s", _BOT, _DASH * 20)


def print_alert(opp: Opportunity, strength_pct: float) -> None:
    logger.warning(
        ">>> ALERT %.2f%% %s %s %s", strength_pct, _truncate(opp.question), _MID, _describe(opp),
    )


def print_scan_summary(
    stats: RunStats,
    open_buys: int,
    open_sells: int,
    positions: int,
    opportunities: int,
    elapsed: float,
) -> None:
    """One-line structured summary emitted at the end of every scan."""
    logger.info(
        "Stats: BUY=%d SELL=%d Positions=%d %s Opps=%d Placed=%d Sells=%d Filled=%d "
        "Cancelled=%d Rejected=%d %s P&L=$%.2f (%.1fs)",
        open_buys, open_sells, positions, _MID, opportunities,
        stats.orders_placed, stats.sell_orders_placed, stats.orders_filled,
        stats.orders_cancelled, stats.orders_rejected, _MID, stats.net_pnl, elapsed,
    )


def print_shutdown(stats: RunStats) -> None:
    summary = stats.summary()
    logger.info("%s Shutdown after %d scans (%.0fs)", _TOP, summary["scans"], summary["runtime_sec"])
    logger.info(
        "%s Placed %d BUY / %d SELL  Filled %d  Cancelled %d  Alerts %d",
        _MID, summary["orders_placed"], summary["sell_orders_placed"],
        summary["orders_filled"], summary["orders_cancelled"], summary["alerts_triggered"],
    )
    logger.info(
        "%s Profit $%.2f  Loss $%.2f  Net $%.2f",
        _BOT, summary["total_profit"], summary["total_loss"], summary["net_pnl"],
    )
