"""
Raw market record -> PriceSnapshot.

Market feeds disagree on how list-valued fields are encoded: Gamma sends
outcomePrices/clobTokenIds as JSON-in-a-string, other endpoints send real
arrays, Myriad nests prices inside outcome objects. Every list field goes
through _decode_list() which handles each encoding as an explicit case.

Required fields (outcome prices) raise NormalizationError. Optional fields
never raise; they fall back to 0 / empty.
"""

from __future__ import annotations

import json
import logging
import math
import time
from typing import Any, Iterable

from scanner.models import PriceSnapshot

logger = logging.getLogger(__name__)

SOURCE_GAMMA = "gamma"
SOURCE_MYRIAD = "myriad"


class NormalizationError(ValueError):
    """A required market field is missing or malformed. Skip that market."""
    pass


class _Missing:
    pass


_MISSING = _Missing()


def _decode_list(value: Any, field_name: str) -> list | _Missing:
    """
    Decode a list-valued field.

    Cases:
      - None / absent          -> _MISSING
      - list or tuple          -> as-is
      - str holding JSON array -> decoded array
      - anything else          -> NormalizationError
    """
    if value is None:
        return _MISSING
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return _MISSING
        try:
            decoded = json.loads(text)
        except (json.JSONDecodeError, TypeError) as e:
            raise NormalizationError(f"{field_name}: not valid JSON ({e})") from e
        if not isinstance(decoded, list):
            raise NormalizationError(
                f"{field_name}: expected JSON array, got {type(decoded).__name__}"
            )
        return decoded
    raise NormalizationError(f"{field_name}: unsupported encoding {type(value).__name__}")


def _required_price(value: Any, field_name: str) -> float:
    if value is None or isinstance(value, bool):
        raise NormalizationError(f"{field_name}: missing price")
    try:
        price = float(value)
    except (TypeError, ValueError) as e:
        raise NormalizationError(f"{field_name}: non-numeric price {value!r}") from e
    if not math.isfinite(price) or price < 0.0 or price > 1.0:
        raise NormalizationError(f"{field_name}: price {price} outside [0, 1]")
    return price


def _optional_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    return result if math.isfinite(result) else 0.0


def _optional_bool(value: Any, default: bool) -> bool:
    """Booleans arrive as JSON true/false or as the strings "true"/"false"."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("true", "1", "yes"):
            return True
        if text in ("false", "0", "no"):
            return False
        return default
    if isinstance(value, (int, float)):
        return value != 0
    return default


def _optional_str_list(value: Any, field_name: str) -> tuple[str, ...]:
    try:
        decoded = _decode_list(value, field_name)
    except NormalizationError:
        logger.debug("Ignoring malformed optional field %s=%r", field_name, value)
        return ()
    if isinstance(decoded, _Missing):
        return ()
    return tuple(str(item) for item in decoded if item is not None)


def detect_source(raw: dict) -> str:
    """Myriad records carry prices inside outcome objects; everything else is Gamma-shaped."""
    outcomes = raw.get("outcomes")
    if isinstance(outcomes, list) and outcomes and isinstance(outcomes[0], dict):
        return SOURCE_MYRIAD
    return SOURCE_GAMMA


def normalize(raw: dict) -> PriceSnapshot:
    """
    Convert one raw market record into a PriceSnapshot.
    Raises NormalizationError when outcome prices are unusable.
    """
    if not isinstance(raw, dict):
        raise NormalizationError(f"market record must be a mapping, got {type(raw).__name__}")

    if detect_source(raw) == SOURCE_MYRIAD:
        return _normalize_myriad(raw)
    return _normalize_gamma(raw)


def _normalize_gamma(raw: dict) -> PriceSnapshot:
    market_id = str(raw.get("id") or raw.get("conditionId") or raw.get("condition_id") or "")

    decoded = _decode_list(raw.get("outcomePrices", raw.get("outcome_prices")), "outcomePrices")
    if isinstance(decoded, _Missing) or len(decoded) < 2:
        raise NormalizationError(f"market {market_id or '?'}: fewer than 2 outcome prices")
    prices = tuple(
        _required_price(p, f"outcomePrices[{i}]") for i, p in enumerate(decoded)
    )

    token_ids = _optional_str_list(
        raw.get("clobTokenIds", raw.get("clob_token_ids")), "clobTokenIds",
    )

    return PriceSnapshot(
        market_id=market_id,
        question=str(raw.get("question") or raw.get("slug") or ""),
        source=SOURCE_GAMMA,
        token_ids=token_ids,
        outcome_prices=prices,
        best_bid=_optional_float(raw.get("bestBid")),
        best_ask=_optional_float(raw.get("bestAsk")),
        volume_24h=_optional_float(raw.get("volume24hr", raw.get("volume24hrClob"))),
        liquidity=_optional_float(raw.get("liquidity", raw.get("liquidityNum"))),
        closed=_optional_bool(raw.get("closed"), False),
        order_book_enabled=_optional_bool(raw.get("enableOrderBook"), True),
        timestamp=time.time(),
    )


def _normalize_myriad(raw: dict) -> PriceSnapshot:
    market_id = str(raw.get("id") or "")
    outcomes = raw.get("outcomes") or []
    if len(outcomes) < 2:
        raise NormalizationError(f"market {market_id or '?'}: fewer than 2 outcomes")

    prices = tuple(
        _required_price(o.get("price") if isinstance(o, dict) else None, f"outcomes[{i}].price")
        for i, o in enumerate(outcomes)
    )
    token_ids = tuple(f"{market_id}:{i}" for i in range(len(outcomes)))
    state = str(raw.get("state") or "open").lower()

    return PriceSnapshot(
        market_id=market_id,
        question=str(raw.get("title") or raw.get("slug") or ""),
        source=SOURCE_MYRIAD,
        token_ids=token_ids,
        outcome_prices=prices,
        volume_24h=_optional_float(raw.get("volume24h", raw.get("volume"))),
        liquidity=_optional_float(raw.get("liquidity")),
        closed=state != "open",
        # Myriad is an AMM; there is no order book to quote against.
        order_book_enabled=False,
        timestamp=time.time(),
    )


def normalize_all(raws: Iterable[dict]) -> tuple[list[PriceSnapshot], int]:
    """Normalize a batch. Malformed markets are skipped; returns (snapshots, skipped)."""
    snapshots: list[PriceSnapshot] = []
    skipped = 0
    for raw in raws:
        try:
            snapshots.append(normalize(raw))
        except NormalizationError as e:
            skipped += 1
            logger.debug("Skipping market: %s", e)
    return snapshots, skipped
