"""
Opportunity detection over normalized snapshots.

Two rules:
  - parity: complementary outcome prices should sum to 1.0. A sum below
    1 - eps means buying every outcome costs less than the guaranteed $1
    payout (LONG); above 1 + eps means held outcomes can be sold for more
    than they redeem for (SHORT).
  - spread: buy at the bid, sell at the ask on a liquid order-book market
    whose prices are away from the 0/1 extremes (BUY_THEN_SELL).

Pure functions. Deterministic for identical inputs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from scanner.models import DetectionMode, Opportunity, OpportunityKind, PriceSnapshot

logger = logging.getLogger(__name__)

# Sums are compared after rounding so that e.g. 0.49 + 0.50 == 1 - 0.01
# lands exactly on the threshold instead of a float ulp either side.
_PRICE_PRECISION = 9


@dataclass(frozen=True)
class DetectorConfig:
    """Thresholds for both rules. Fractions, not percentages, except min_spread_pct."""
    min_deviation: float = 0.01
    min_spread_pct: float = 3.0
    min_volume: float = 10000.0
    min_price_floor: float = 0.05
    max_price_ceiling: float = 0.95

    @classmethod
    def from_config(cls, cfg) -> DetectorConfig:
        return cls(
            min_deviation=cfg.min_deviation_pct / 100.0,
            min_spread_pct=cfg.min_spread_pct,
            min_volume=cfg.min_volume_24h,
            min_price_floor=cfg.min_price_floor,
            max_price_ceiling=cfg.max_price_ceiling,
        )


def detect_parity(snapshot: PriceSnapshot, min_deviation: float) -> Opportunity | None:
    """LONG iff total < 1 - eps, SHORT iff total > 1 + eps. The boundary itself is not an opportunity."""
    if snapshot.closed or len(snapshot.outcome_prices) < 2:
        return None

    total = round(snapshot.total_price, _PRICE_PRECISION)
    lower = round(1.0 - min_deviation, _PRICE_PRECISION)
    upper = round(1.0 + min_deviation, _PRICE_PRECISION)

    if total < lower:
        magnitude = round(1.0 - total, _PRICE_PRECISION)
        return Opportunity(
            kind=OpportunityKind.LONG,
            snapshot=snapshot,
            magnitude=magnitude,
            profit_per_unit=magnitude / total if total > 0 else 0.0,
            score=snapshot.volume_score,
        )
    if total > upper:
        magnitude = round(total - 1.0, _PRICE_PRECISION)
        return Opportunity(
            kind=OpportunityKind.SHORT,
            snapshot=snapshot,
            magnitude=magnitude,
            # Selling a set that redeems for 1.0: capital at risk is the 1.0 payout.
            profit_per_unit=magnitude,
            score=snapshot.volume_score,
        )
    return None


def detect_spread(snapshot: PriceSnapshot, cfg: DetectorConfig) -> Opportunity | None:
    """Buy-at-bid / sell-at-ask candidate, or None if any filter fails."""
    if snapshot.closed or not snapshot.order_book_enabled:
        return None

    bid = snapshot.best_bid
    ask = snapshot.best_ask
    if bid <= 0 or ask <= 0 or bid >= ask:
        return None
    if bid < cfg.min_price_floor or ask > cfg.max_price_ceiling:
        # Near-certain outcomes: adverse selection dominates the spread.
        return None
    if snapshot.volume_24h < cfg.min_volume:
        return None
    if snapshot.spread_pct < cfg.min_spread_pct:
        return None

    spread = ask - bid
    return Opportunity(
        kind=OpportunityKind.BUY_THEN_SELL,
        snapshot=snapshot,
        magnitude=spread * 100.0,
        profit_per_unit=spread / bid,
        score=snapshot.volume_score,
    )


def detect(
    snapshot: PriceSnapshot,
    cfg: DetectorConfig,
    mode: DetectionMode = DetectionMode.PARITY,
) -> Opportunity | None:
    if mode == DetectionMode.PARITY:
        return detect_parity(snapshot, cfg.min_deviation)
    return detect_spread(snapshot, cfg)


def rank_opportunities(opportunities: Iterable[Opportunity]) -> list[Opportunity]:
    """
    Most executable first: descending log-volume score, then magnitude.
    A wide spread on a dead market should not outrank a liquid one.
    """
    return sorted(opportunities, key=lambda o: (o.score, o.magnitude), reverse=True)


def find_opportunities(
    snapshots: Iterable[PriceSnapshot],
    cfg: DetectorConfig,
    mode: DetectionMode = DetectionMode.PARITY,
) -> list[Opportunity]:
    found = []
    for snap in snapshots:
        opp = detect(snap, cfg, mode)
        if opp is not None:
            found.append(opp)
    ranked = rank_opportunities(found)
    if ranked:
        logger.debug(
            "%d %s opportunities, top: %s (magnitude=%.4f)",
            len(ranked), mode.value, ranked[0].question[:50], ranked[0].magnitude,
        )
    return ranked
