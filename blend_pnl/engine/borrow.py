"""Borrow-cost engine — what open debt has cost, split into interest and price movement.

Principal uses the average-cost method over borrow/repay history:

    avg_price  = borrowed_usd / borrowed_tokens
    net_tokens = borrowed_tokens - repaid_tokens
    principal  = borrowed_usd - repaid_tokens * avg_price   (= net_tokens * avg_price)

Against the current debt from the snapshot:

    interest     = (current_tokens - net_tokens) * avg_price
    price_change = net_tokens * (current_price - avg_price)

A rising asset price makes the debt dearer to repay, so a positive
``price_change_on_debt_usd`` is a cost.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from ..models import (
    ZERO,
    BorrowBreakdown,
    BorrowCostSummary,
    BorrowKind,
    BorrowLeg,
    BorrowPosition,
    BorrowTotals,
    LivePositionSnapshot,
)

logger = logging.getLogger(__name__)


@dataclass
class _BorrowHistory:
    borrowed_tokens: Decimal = ZERO
    borrowed_usd: Decimal = ZERO
    repaid_tokens: Decimal = ZERO


@dataclass
class _TotalsAcc:
    principal_usd: Decimal = ZERO
    current_debt_usd: Decimal = ZERO
    interest_accrued_usd: Decimal = ZERO
    price_change_on_debt_usd: Decimal = ZERO
    total_cost_usd: Decimal = ZERO

    def add(self, b: BorrowBreakdown) -> None:
        self.principal_usd += b.principal_usd
        self.current_debt_usd += b.current_debt_usd
        self.interest_accrued_usd += b.interest_accrued_usd
        self.price_change_on_debt_usd += b.price_change_on_debt_usd
        self.total_cost_usd += b.total_cost_usd

    def freeze(self) -> BorrowTotals:
        return BorrowTotals(
            principal_usd=self.principal_usd,
            current_debt_usd=self.current_debt_usd,
            interest_accrued_usd=self.interest_accrued_usd,
            price_change_on_debt_usd=self.price_change_on_debt_usd,
            total_cost_usd=self.total_cost_usd,
        )


def build_borrow_positions(
    legs: Iterable[BorrowLeg], snapshot: LivePositionSnapshot
) -> tuple[BorrowPosition, ...]:
    """Pair each open debt in the snapshot with its borrow/repay history.

    A debt with no recorded borrows is taken at face value: principal equals
    the current debt at today's price, so it shows no interest.
    """
    history: dict[str, dict[str, _BorrowHistory]] = {}
    for leg in legs:
        h = history.setdefault(leg.pool_id, {}).setdefault(leg.asset_address, _BorrowHistory())
        if leg.kind is BorrowKind.BORROW:
            h.borrowed_tokens += leg.amount
            h.borrowed_usd += leg.value_usd
        else:
            h.repaid_tokens += leg.amount

    positions: list[BorrowPosition] = []
    for pos in snapshot.positions:
        if pos.borrow_amount <= 0:
            continue
        current_price = pos.usd_price or ZERO
        h = history.get(pos.pool_id, {}).get(pos.asset_id)

        if h is None or h.borrowed_tokens <= 0:
            logger.debug(
                "No borrow history for %s/%s; using current debt as principal",
                pos.pool_id, pos.asset_id,
            )
            net_tokens = pos.borrow_amount
            avg_price = current_price
            principal = net_tokens * avg_price
        else:
            avg_price = h.borrowed_usd / h.borrowed_tokens
            net_tokens = h.borrowed_tokens - h.repaid_tokens
            principal = h.borrowed_usd - h.repaid_tokens * avg_price

        positions.append(
            BorrowPosition(
                pool_id=pos.pool_id,
                asset_address=pos.asset_id,
                principal_usd=principal,
                net_borrowed_tokens=net_tokens,
                avg_borrow_price=avg_price,
                current_debt_tokens=pos.borrow_amount,
                current_price=current_price,
            )
        )
    return tuple(positions)


def borrow_breakdown(position: BorrowPosition, show_price_changes: bool) -> BorrowBreakdown:
    interest_tokens = position.current_debt_tokens - position.net_borrowed_tokens
    interest_usd = interest_tokens * position.avg_borrow_price
    price_change = position.net_borrowed_tokens * (
        position.current_price - position.avg_borrow_price
    )
    total_cost = interest_usd + price_change if show_price_changes else interest_usd

    return BorrowBreakdown(
        pool_id=position.pool_id,
        asset_address=position.asset_address,
        principal_usd=position.principal_usd,
        current_debt_usd=position.current_debt_tokens * position.current_price,
        interest_accrued_tokens=interest_tokens,
        interest_accrued_usd=interest_usd,
        price_change_on_debt_usd=price_change,
        total_cost_usd=total_cost,
    )


def compute_borrow_cost(
    positions: Iterable[BorrowPosition], show_price_changes: bool
) -> BorrowCostSummary:
    """Cost of every open debt, per (pool, asset), per pool and in total."""
    by_asset: dict[str, dict[str, BorrowBreakdown]] = {}
    pool_acc: dict[str, _TotalsAcc] = {}
    total = _TotalsAcc()

    for position in positions:
        if position.current_debt_tokens <= 0:
            continue
        breakdown = borrow_breakdown(position, show_price_changes)
        by_asset.setdefault(position.pool_id, {})[position.asset_address] = breakdown
        pool_acc.setdefault(position.pool_id, _TotalsAcc()).add(breakdown)
        total.add(breakdown)

    return BorrowCostSummary(
        by_asset=by_asset,
        by_pool={pool_id: acc.freeze() for pool_id, acc in pool_acc.items()},
        total=total.freeze(),
    )
