"""End-to-end P&L computation: classify -> aggregate -> borrow cost -> reconcile.

``compute_pnl`` is a pure function of its arguments. Every call rebuilds the
whole result; ``PnlCache`` skips the work when the inputs are unchanged.
"""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Mapping, Sequence

from ..config import TokensConfig
from ..models import (
    ZERO,
    AggregateTotals,
    LivePositionSnapshot,
    PnlResult,
    PoolBreakdown,
    PricePreferences,
    RawEvent,
    UnclaimedEmissions,
    ValuationMode,
    YieldBreakdown,
)
from .aggregation import aggregate
from .borrow import build_borrow_positions, compute_borrow_cost
from .classifier import classify_events
from .reconciliation import build_headline, percent_of, reconcile
from .valuation import build_price_book
from .yield_breakdown import derive_yield_breakdown

logger = logging.getLogger(__name__)

HistoricalPrices = Mapping[str, Mapping[date, Decimal]]


def days_active(first: date | None, last: date | None) -> int:
    if first is None or last is None:
        return 0
    return max(1, (last - first).days)


def annualized_roi(roi_percent: Decimal | None, days: int) -> Decimal | None:
    """Compound a period ROI to a yearly rate; undefined at or below -100%."""
    if roi_percent is None or days <= 0:
        return None
    roi = roi_percent / 100
    if roi <= -1:
        return None
    return ((1 + roi) ** (Decimal(365) / Decimal(days)) - 1) * 100


def displayed_pools(totals: AggregateTotals) -> tuple[PoolBreakdown, ...]:
    """Pools with deposits, largest first."""
    pools = [p for p in totals.per_pool.values() if p.total_deposited > 0]
    pools.sort(key=lambda p: p.pool_id)
    pools.sort(key=lambda p: p.total_deposited, reverse=True)
    return tuple(pools)


def unclaimed_emissions(snapshot: LivePositionSnapshot) -> UnclaimedEmissions:
    blnd_price = snapshot.blnd_price or ZERO
    backstop_blnd = sum((bp.claimable_blnd for bp in snapshot.backstop_positions), ZERO)
    return UnclaimedEmissions(
        pool_blnd=snapshot.total_emissions,
        pool_usd=snapshot.total_emissions * blnd_price,
        backstop_blnd=backstop_blnd,
        backstop_usd=backstop_blnd * blnd_price,
    )


def compute_pnl(
    events: Sequence[RawEvent],
    snapshot: LivePositionSnapshot,
    preferences: PricePreferences,
    tokens: TokensConfig,
    historical_prices: HistoricalPrices | None = None,
    yields: YieldBreakdown | None = None,
    mode: ValuationMode = ValuationMode.HISTORICAL,
) -> PnlResult:
    """Compute the full P&L result for one account.

    Args:
        events: The account's event log, in any order.
        snapshot: Current balances and prices.
        preferences: Price-change and BLND valuation toggles.
        tokens: Token addresses, decimals and pegged assets.
        historical_prices: ``asset -> date -> price``.
        yields: Yield breakdown from an external source. Derived from the
            event log and snapshot when omitted.
        mode: Valuation mode for everything except BLND claims.
    """
    prices = build_price_book(
        snapshot,
        historical_prices,
        blnd_address=tokens.blnd_address,
        lp_address=tokens.lp_address,
        pegged=tokens.pegged_assets(),
    )

    transactions, borrow_legs = classify_events(events, prices, tokens, preferences, mode)
    totals = aggregate(transactions, tokens)

    if yields is None:
        yields = derive_yield_breakdown(totals.transactions, snapshot)

    borrow = compute_borrow_cost(
        build_borrow_positions(borrow_legs, snapshot), preferences.show_price_changes
    )
    reconciliation = reconcile(totals, snapshot, yields, preferences, borrow)
    headline = build_headline(reconciliation, borrow, totals.total_deposited_usd)

    roi = percent_of(totals.realized_pnl, totals.total_deposited_usd)
    days = days_active(totals.first_activity_date, totals.last_activity_date)

    logger.debug(
        "%s: %s (deposited %s, withdrawn %s, emissions %s)",
        headline.label, headline.value, totals.total_deposited_usd,
        totals.total_withdrawn_usd, totals.realized_pnl,
    )

    return PnlResult(
        total_deposited_usd=totals.total_deposited_usd,
        total_withdrawn_usd=totals.total_withdrawn_usd,
        realized_pnl=totals.realized_pnl,
        pools=totals.pools,
        backstop=totals.backstop,
        emissions=totals.emissions,
        emissions_by_source=totals.emissions_by_source,
        cumulative_realized=totals.cumulative_realized,
        cumulative_by_source=totals.cumulative_by_source,
        cumulative_by_pool=totals.cumulative_by_pool,
        per_pool_breakdown=displayed_pools(totals),
        first_activity_date=totals.first_activity_date,
        last_activity_date=totals.last_activity_date,
        days_active=days,
        roi_percent=roi,
        annualized_roi_percent=annualized_roi(roi, days),
        reconciliation=reconciliation,
        borrow=borrow,
        headline=headline,
        unclaimed_emissions=unclaimed_emissions(snapshot),
        transactions=totals.transactions,
    )


def _copy_prices(prices: HistoricalPrices | None) -> dict[str, dict[date, Decimal]] | None:
    if prices is None:
        return None
    return {asset: dict(series) for asset, series in prices.items()}


def _copy_yields(yields: YieldBreakdown | None) -> YieldBreakdown | None:
    if yields is None:
        return None
    return YieldBreakdown(
        lending={pool: dict(assets) for pool, assets in yields.lending.items()},
        backstop=dict(yields.backstop),
    )


class PnlCache:
    """Remembers the last computation and returns it while the inputs are equal."""

    def __init__(self) -> None:
        self._key: tuple[Any, ...] | None = None
        self._result: PnlResult | None = None
        self.hits = 0

    def compute(
        self,
        events: Sequence[RawEvent],
        snapshot: LivePositionSnapshot,
        preferences: PricePreferences,
        tokens: TokensConfig,
        historical_prices: HistoricalPrices | None = None,
        yields: YieldBreakdown | None = None,
        mode: ValuationMode = ValuationMode.HISTORICAL,
    ) -> PnlResult:
        # Nested mappings are copied so in-place edits by the caller change the key.
        key = (
            tuple(events), snapshot, preferences, tokens,
            _copy_prices(historical_prices), _copy_yields(yields), mode,
        )
        if self._result is not None and key == self._key:
            self.hits += 1
            return self._result

        result = compute_pnl(
            events, snapshot, preferences, tokens, historical_prices, yields, mode
        )
        self._key = key
        self._result = result
        return result

    def clear(self) -> None:
        self._key = None
        self._result = None
