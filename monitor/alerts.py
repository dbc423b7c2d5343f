"""
High-strength opportunity alerts with a per-market cooldown.

An opportunity alerts when its strength (spread % for spread markets,
deviation % for parity) reaches the threshold. A market that already
alerted stays quiet until the cooldown passes, unless its strength has
grown by half since the last alert.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from scanner.models import Opportunity, OpportunityKind

logger = logging.getLogger(__name__)

_ESCALATION_FACTOR = 1.5


def strength_pct(opp: Opportunity) -> float:
    if opp.kind == OpportunityKind.BUY_THEN_SELL:
        return opp.snapshot.spread_pct
    return opp.magnitude * 100.0


@dataclass
class _LastAlert:
    strength: float
    at: float


class AlertTracker:

    def __init__(
        self,
        threshold_pct: float = 5.0,
        cooldown_sec: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.threshold_pct = threshold_pct
        self.cooldown_sec = cooldown_sec
        self._clock = clock
        self._seen: dict[str, _LastAlert] = {}

    @property
    def enabled(self) -> bool:
        return self.threshold_pct > 0

    def due(self, opportunities: list[Opportunity]) -> list[Opportunity]:
        """Opportunities to alert on now. Records each one returned."""
        if not self.enabled:
            return []
        now = self._clock()
        alerts: list[Opportunity] = []
        for opp in opportunities:
            strength = strength_pct(opp)
            if strength < self.threshold_pct:
                continue
            last = self._seen.get(opp.market_id)
            if (
                last is not None
                and now - last.at <= self.cooldown_sec
                and strength <= last.strength * _ESCALATION_FACTOR
            ):
                logger.debug("Alert for %s suppressed (cooldown)", opp.market_id)
                continue
            self._seen[opp.market_id] = _LastAlert(strength=strength, at=now)
            alerts.append(opp)
        return alerts
