"""Valuation resolver — turns token amounts into USD at historical or live prices.

Resolution order for a non-pegged asset:

1. ``historical`` mode: the daily price for ``(asset, date)`` if one is known.
2. The live price from the current snapshot.
3. Nothing known: the value is zero and the miss is logged at DEBUG.

Assets pegged to the display currency skip the lookup entirely and are valued
at face value.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Mapping

from ..models import ZERO, LivePositionSnapshot, ValuationMode

logger = logging.getLogger(__name__)

DEFAULT_DECIMALS = 7
ONE = Decimal("1")


@dataclass(frozen=True)
class PriceBook:
    """Every price the engine may use during one computation pass."""

    historical: Mapping[str, Mapping[date, Decimal]] = field(default_factory=dict)
    live: Mapping[str, Decimal] = field(default_factory=dict)
    pegged: frozenset[str] = frozenset()

    def historical_price(self, asset_address: str, on: date) -> Decimal | None:
        return self.historical.get(asset_address, {}).get(on)

    def live_price(self, asset_address: str) -> Decimal | None:
        return self.live.get(asset_address)


@dataclass(frozen=True)
class Valuation:
    price_usd: Decimal
    value_usd: Decimal
    price_source: str


def to_human_units(raw_amount: int, decimals: int | None = None) -> Decimal:
    """Convert a raw integer amount to human units (``raw / 10^decimals``)."""
    if decimals is None:
        decimals = DEFAULT_DECIMALS
    return Decimal(raw_amount) / (Decimal(10) ** decimals)


def build_price_book(
    snapshot: LivePositionSnapshot,
    historical: Mapping[str, Mapping[date, Decimal]] | None = None,
    blnd_address: str = "",
    lp_address: str = "",
    pegged: frozenset[str] = frozenset(),
    extra_live: Mapping[str, Decimal] | None = None,
) -> PriceBook:
    """Collect live prices from the snapshot; non-positive prices are ignored."""
    live: dict[str, Decimal] = {}
    for address, price in (extra_live or {}).items():
        if price > 0:
            live[address] = price

    for pos in snapshot.positions:
        if pos.usd_price is not None and pos.usd_price > 0:
            live[pos.asset_id] = pos.usd_price

    if blnd_address and snapshot.blnd_price is not None and snapshot.blnd_price > 0:
        live[blnd_address] = snapshot.blnd_price
    if lp_address and snapshot.lp_token_price is not None and snapshot.lp_token_price > 0:
        live[lp_address] = snapshot.lp_token_price

    return PriceBook(historical=dict(historical or {}), live=live, pegged=pegged)


def resolve_price(
    prices: PriceBook,
    asset_address: str,
    on: date,
    mode: ValuationMode = ValuationMode.HISTORICAL,
) -> tuple[Decimal | None, str]:
    """Return ``(price, source)`` for an asset on a date; price is None when unknown."""
    if asset_address in prices.pegged:
        return ONE, "pegged"

    if mode is ValuationMode.HISTORICAL:
        price = prices.historical_price(asset_address, on)
        if price is not None:
            return price, "historical"

    price = prices.live_price(asset_address)
    if price is not None:
        return price, "live"
    return None, "missing"


def value_amount(
    prices: PriceBook,
    amount: Decimal,
    asset_address: str,
    on: date,
    mode: ValuationMode = ValuationMode.HISTORICAL,
) -> Valuation:
    """Value a human-unit amount; a missing price values it at zero."""
    price, source = resolve_price(prices, asset_address, on, mode)
    if price is None:
        logger.debug("No price for %s on %s; valuing at zero", asset_address, on)
        return Valuation(price_usd=ZERO, value_usd=ZERO, price_source=source)
    return Valuation(price_usd=price, value_usd=amount * price, price_source=source)


def resolve_usd_value(
    raw_amount: int | None,
    asset_address: str,
    decimals: int | None,
    timestamp: datetime,
    mode: ValuationMode,
    prices: PriceBook,
) -> Decimal | None:
    """USD value of a raw on-chain amount at ``timestamp``.

    Returns None for a zero or missing amount, so callers can tell "nothing to
    value" apart from "worth zero".
    """
    if not raw_amount:
        return None
    amount = to_human_units(raw_amount, decimals)
    return value_amount(prices, amount, asset_address, timestamp.date(), mode).value_usd
