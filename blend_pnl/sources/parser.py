"""Pure parsing functions for Blend data API payloads — no I/O.

Events arrive in the database's snake_case shape; snapshots in the
camelCase shape of the wallet snapshot endpoint. Every number goes through
``Decimal(str(x))`` so JSON floats never leak into the engine.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from ..models import (
    ZERO,
    ActionType,
    BackstopPosition,
    LivePosition,
    LivePositionSnapshot,
    RawEvent,
)

logger = logging.getLogger(__name__)


def to_decimal(value: Any) -> Decimal | None:
    """Convert a JSON number or numeric string to Decimal; None if not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


def to_int(value: Any) -> int | None:
    """Raw on-chain amounts; integral strings and numbers only."""
    d = to_decimal(value)
    if d is None or d != d.to_integral_value():
        return None
    return int(d)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string or unix seconds into an aware UTC datetime.

    Examples:
        "2024-03-01T12:00:00Z" → 2024-03-01 12:00:00+00:00
        1709294400 → 2024-03-01 12:00:00+00:00
    """
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


def parse_raw_event(entry: dict[str, Any]) -> RawEvent | None:
    """Parse one action row; None when a required field is missing or unknown."""
    try:
        action = ActionType(entry.get("action_type"))
    except ValueError:
        logger.debug("Skipping event with unknown action_type: %r", entry.get("action_type"))
        return None

    pool_id = entry.get("pool_id")
    tx_hash = entry.get("transaction_hash")
    closed_at = parse_timestamp(entry.get("ledger_closed_at"))
    if not pool_id or not tx_hash or closed_at is None:
        logger.debug("Skipping malformed event: %r", entry)
        return None

    return RawEvent(
        pool_id=pool_id,
        action_type=action,
        ledger_closed_at=closed_at,
        transaction_hash=tx_hash,
        pool_name=entry.get("pool_name") or entry.get("pool_short_name"),
        asset_address=entry.get("asset_address"),
        asset_symbol=entry.get("asset_symbol"),
        asset_decimals=to_int(entry.get("asset_decimals")),
        amount_underlying=to_int(entry.get("amount_underlying")),
        lp_tokens=to_int(entry.get("lp_tokens")),
        claim_amount=to_int(entry.get("claim_amount")),
    )


def parse_events(entries: list[dict[str, Any]]) -> list[RawEvent]:
    events: list[RawEvent] = []
    for entry in entries:
        event = parse_raw_event(entry)
        if event is not None:
            events.append(event)
    skipped = len(entries) - len(events)
    if skipped:
        logger.debug("Dropped %d unparseable events", skipped)
    return events


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


def _price_of(entry: dict[str, Any]) -> Decimal | None:
    """Reserve price is either a bare number or a quote ``{"usdPrice": ...}``."""
    price = entry.get("price")
    if isinstance(price, dict):
        return to_decimal(price.get("usdPrice"))
    if price is not None:
        return to_decimal(price)
    return to_decimal(entry.get("usdPrice"))


def parse_position(entry: dict[str, Any]) -> LivePosition | None:
    pool_id = entry.get("poolId")
    asset_id = entry.get("assetId")
    if not pool_id or not asset_id:
        return None
    return LivePosition(
        pool_id=pool_id,
        asset_id=asset_id,
        supply_usd_value=to_decimal(entry.get("supplyUsdValue")) or ZERO,
        borrow_amount=to_decimal(entry.get("borrowAmount")) or ZERO,
        usd_price=_price_of(entry),
        supply_amount=to_decimal(entry.get("supplyAmount")),
    )


def parse_backstop_position(entry: dict[str, Any]) -> BackstopPosition | None:
    pool_id = entry.get("poolId") or entry.get("poolAddress")
    if not pool_id:
        return None
    return BackstopPosition(
        pool_id=pool_id,
        lp_tokens_usd=to_decimal(entry.get("lpTokensUsd")) or ZERO,
        claimable_blnd=to_decimal(entry.get("claimableBlnd")) or ZERO,
        lp_tokens=to_decimal(entry.get("lpTokens")),
    )


def parse_snapshot(data: dict[str, Any]) -> LivePositionSnapshot:
    """Parse the wallet snapshot payload.

    Rows without a pool or asset id are dropped; missing numbers become zero
    except prices, which stay None so the engine can tell "unknown" from 0.
    """
    positions = tuple(
        p for p in (parse_position(e) for e in data.get("positions") or []) if p
    )
    backstop = tuple(
        b
        for b in (parse_backstop_position(e) for e in data.get("backstopPositions") or [])
        if b
    )
    return LivePositionSnapshot(
        positions=positions,
        backstop_positions=backstop,
        blnd_price=to_decimal(data.get("blndPrice")),
        lp_token_price=to_decimal(data.get("lpTokenPrice")),
        total_backstop_usd=to_decimal(data.get("totalBackstopUsd")),
        total_emissions=to_decimal(data.get("totalEmissions")) or ZERO,
        as_of=parse_timestamp(data.get("asOf")),
    )


# ---------------------------------------------------------------------------
# Historical prices
# ---------------------------------------------------------------------------


def parse_historical_prices(data: dict[str, Any]) -> dict[str, dict[date, Decimal]]:
    """Parse ``{"prices": {asset: {"YYYY-MM-DD": price}}}``.

    Unparseable dates and non-positive prices are dropped.
    """
    result: dict[str, dict[date, Decimal]] = {}
    for asset, series in (data.get("prices") or {}).items():
        if not isinstance(series, dict):
            continue
        by_day: dict[date, Decimal] = {}
        for day, raw_price in series.items():
            try:
                on = date.fromisoformat(str(day)[:10])
            except ValueError:
                continue
            price = to_decimal(raw_price)
            if price is None or price <= 0:
                continue
            by_day[on] = price
        result[asset] = by_day
    return result
