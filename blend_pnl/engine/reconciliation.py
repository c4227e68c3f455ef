"""Reconciliation engine — historical totals against the live snapshot.

Per source:

    cost_basis  = deposited - withdrawn          (claims are yield, not principal)
    unrealized  = current_usd - cost_basis
    total_pnl   = current_usd + withdrawn - deposited

Display figures come from the yield breakdown: protocol yield only, or
protocol yield plus price movement when price changes are shown. Each pool's
figure is computed once and the per-source and overall figures are sums of
those, so all three levels agree exactly.

A pool/source with no current balance contributes its exit gain
``max(0, withdrawn - deposited)``; an exit loss is not shown as negative
yield here and stays visible only in ``total_pnl``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from ..models import (
    ZERO,
    AggregateTotals,
    AssetYield,
    BorrowCostSummary,
    Headline,
    HeadlineState,
    LivePositionSnapshot,
    PoolBreakdown,
    PoolPnl,
    PricePreferences,
    Reconciliation,
    SourceReconciliation,
    SourceTotals,
    YieldBreakdown,
)

logger = logging.getLogger(__name__)

TOTAL_PNL_LABEL = "Total P&L"
NET_PNL_LABEL = "Net P&L"
REALIZED_PROFITS_LABEL = "Realized Profits"
NET_CASH_FLOW_LABEL = "Net Cash Flow"


@dataclass
class _SourceYieldAcc:
    exit_realized: Decimal = ZERO
    protocol_yield: Decimal = ZERO
    price_change: Decimal = ZERO
    total_earned: Decimal = ZERO
    display: Decimal = ZERO


def percent_of(value: Decimal, base: Decimal) -> Decimal | None:
    """``value / base * 100``, or None when the base is not positive."""
    if base <= 0:
        return None
    return value / base * 100


def exit_realized_yield(totals: SourceTotals, current_usd: Decimal) -> Decimal:
    """Gain locked in by fully exiting a position; losses are capped at zero."""
    if current_usd != 0 or totals.deposited <= 0:
        return ZERO
    return max(ZERO, totals.withdrawn - totals.deposited)


def _sum_yields(rows: Iterable[AssetYield]) -> AssetYield:
    protocol = price = earned = ZERO
    for row in rows:
        protocol += row.protocol_yield_usd
        price += row.price_change_usd
        earned += row.total_earned_usd
    return AssetYield(protocol, price, earned)


def _current_by_pool(
    snapshot: LivePositionSnapshot,
) -> tuple[dict[str, Decimal], dict[str, Decimal]]:
    lending: dict[str, Decimal] = {}
    backstop: dict[str, Decimal] = {}
    for pos in snapshot.positions:
        lending[pos.pool_id] = lending.get(pos.pool_id, ZERO) + pos.supply_usd_value
    for bp in snapshot.backstop_positions:
        backstop[bp.pool_id] = backstop.get(bp.pool_id, ZERO) + bp.lp_tokens_usd
    return lending, backstop


def _pool_ids(
    totals: AggregateTotals,
    yields: YieldBreakdown,
    lending_current: dict[str, Decimal],
    backstop_current: dict[str, Decimal],
    borrow: BorrowCostSummary,
) -> list[str]:
    ids = set(totals.per_pool)
    ids.update(yields.lending, yields.backstop)
    ids.update(lending_current, backstop_current)
    ids.update(borrow.by_pool)
    return sorted(ids)


def _source_result(
    totals: SourceTotals, current_usd: Decimal, acc: _SourceYieldAcc
) -> SourceReconciliation:
    return SourceReconciliation(
        current_usd=current_usd,
        cost_basis_usd=totals.cost_basis,
        unrealized_pnl=current_usd - totals.cost_basis,
        exit_realized_yield=acc.exit_realized,
        protocol_yield_usd=acc.protocol_yield,
        price_change_usd=acc.price_change,
        total_earned_usd=acc.total_earned,
        display_yield_usd=acc.display,
        emissions_usd=totals.emissions_claimed,
    )


def reconcile(
    totals: AggregateTotals,
    snapshot: LivePositionSnapshot,
    yields: YieldBreakdown,
    preferences: PricePreferences,
    borrow: BorrowCostSummary | None = None,
) -> Reconciliation:
    """Combine event-log totals with current balances into unrealized and total P&L."""
    borrow = borrow or BorrowCostSummary()
    show = preferences.show_price_changes
    lending_current, backstop_current = _current_by_pool(snapshot)

    pools_acc = _SourceYieldAcc()
    backstop_acc = _SourceYieldAcc()
    per_pool: list[tuple[Decimal, PoolPnl]] = []

    for pool_id in _pool_ids(totals, yields, lending_current, backstop_current, borrow):
        breakdown = totals.per_pool.get(pool_id) or PoolBreakdown(pool_id, None)
        lend_now = lending_current.get(pool_id, ZERO)
        back_now = backstop_current.get(pool_id, ZERO)

        lend_exit = exit_realized_yield(breakdown.lending, lend_now)
        back_exit = exit_realized_yield(breakdown.backstop, back_now)
        lend_rows = _sum_yields(yields.lending.get(pool_id, {}).values())
        back_rows = _sum_yields([yields.backstop[pool_id]] if pool_id in yields.backstop else [])

        lend_display = lend_rows.selected(show) + lend_exit
        back_display = back_rows.selected(show) + back_exit

        for acc, rows, exit_gain, display in (
            (pools_acc, lend_rows, lend_exit, lend_display),
            (backstop_acc, back_rows, back_exit, back_display),
        ):
            acc.exit_realized += exit_gain
            acc.protocol_yield += rows.protocol_yield_usd + exit_gain
            acc.price_change += rows.price_change_usd
            acc.total_earned += rows.total_earned_usd + exit_gain
            acc.display += display

        pool_borrow = borrow.by_pool.get(pool_id)
        borrow_cost = pool_borrow.total_cost_usd if pool_borrow else ZERO
        lend_emissions = breakdown.lending.emissions_claimed
        back_emissions = breakdown.backstop.emissions_claimed

        per_pool.append(
            (
                breakdown.total_deposited,
                PoolPnl(
                    pool_id=pool_id,
                    pool_name=breakdown.pool_name,
                    lending_current_usd=lend_now,
                    backstop_current_usd=back_now,
                    lending_yield_usd=lend_display,
                    backstop_yield_usd=back_display,
                    lending_price_change_usd=lend_rows.price_change_usd,
                    backstop_price_change_usd=back_rows.price_change_usd,
                    lending_emissions_usd=lend_emissions,
                    backstop_emissions_usd=back_emissions,
                    borrow_cost_usd=borrow_cost,
                    total_pnl_usd=(
                        lend_display + back_display + lend_emissions
                        + back_emissions - borrow_cost
                    ),
                ),
            )
        )

    pools = _source_result(totals.pools, snapshot.pools_current_usd, pools_acc)
    backstop = _source_result(totals.backstop, snapshot.backstop_current_usd, backstop_acc)

    total_current = pools.current_usd + backstop.current_usd
    total_cost_basis = pools.cost_basis_usd + backstop.cost_basis_usd
    display_unrealized = pools.display_yield_usd + backstop.display_yield_usd
    emissions_usd = totals.emissions.usd_value

    # Stable sort: pool id order is kept among equal deposit totals.
    per_pool.sort(key=lambda item: item[0], reverse=True)

    return Reconciliation(
        pools=pools,
        backstop=backstop,
        total_current_usd=total_current,
        total_cost_basis_usd=total_cost_basis,
        total_unrealized_pnl=total_current - total_cost_basis,
        total_pnl=total_current + totals.total_withdrawn_usd - totals.total_deposited_usd,
        display_unrealized=display_unrealized,
        emissions_usd=emissions_usd,
        yield_pnl=display_unrealized + emissions_usd,
        per_pool=tuple(pnl for _, pnl in per_pool),
    )


def build_headline(
    reconciliation: Reconciliation,
    borrow: BorrowCostSummary,
    total_deposited_usd: Decimal,
) -> Headline:
    """Pick the headline figure for the account.

    Open debt shows Net P&L (total P&L less borrow cost). Held positions
    without debt show Total P&L. Once everything has been withdrawn the
    headline is the cash received (withdrawals plus claimed emissions) less
    the cash deposited, labelled Realized Profits or Net Cash Flow by sign.
    """
    if borrow.has_borrows:
        value = reconciliation.total_pnl - borrow.total.total_cost_usd
        state, label = HeadlineState.HAS_BORROW, NET_PNL_LABEL
    elif not reconciliation.has_current_positions and total_deposited_usd > 0:
        # total_pnl is withdrawn - deposited here since nothing is held
        value = reconciliation.total_pnl + reconciliation.emissions_usd
        state = HeadlineState.EXITED
        label = REALIZED_PROFITS_LABEL if value >= 0 else NET_CASH_FLOW_LABEL
    else:
        value = reconciliation.total_pnl
        state, label = HeadlineState.NO_BORROW, TOTAL_PNL_LABEL

    return Headline(
        state=state,
        label=label,
        value=value,
        percent=percent_of(value, total_deposited_usd),
    )
