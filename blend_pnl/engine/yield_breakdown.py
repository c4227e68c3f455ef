"""Fallback yield breakdown derived from the event history and the live snapshot.

Used when no external yield-breakdown source is available. Average-cost method
per position:

    net_tokens     = deposited_tokens - withdrawn_tokens
    avg_price      = deposited_usd / deposited_tokens
    protocol_yield = (current_tokens - net_tokens) * current_price
    price_change   = net_tokens * (current_price - avg_price)

Only positions with a current balance get a row; exited positions are handled
by the reconciliation engine's exit-realized rule.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from ..models import (
    ZERO,
    AssetYield,
    LivePositionSnapshot,
    NormalizedTransaction,
    Source,
    TxType,
    YieldBreakdown,
)


@dataclass
class _CostBasis:
    deposited_tokens: Decimal = ZERO
    deposited_usd: Decimal = ZERO
    withdrawn_tokens: Decimal = ZERO

    def add(self, tx: NormalizedTransaction) -> None:
        if tx.type is TxType.DEPOSIT:
            self.deposited_tokens += tx.amount
            self.deposited_usd += tx.value_usd
        elif tx.type is TxType.WITHDRAW:
            self.withdrawn_tokens += tx.amount


def position_yield(
    basis: _CostBasis | None, current_tokens: Decimal, current_price: Decimal
) -> AssetYield:
    """Split a position's gain into protocol yield and price movement."""
    if basis is None:
        basis = _CostBasis()
    net_tokens = basis.deposited_tokens - basis.withdrawn_tokens
    if basis.deposited_tokens > 0:
        avg_price = basis.deposited_usd / basis.deposited_tokens
    else:
        avg_price = current_price

    protocol_yield = (current_tokens - net_tokens) * current_price
    price_change = net_tokens * (current_price - avg_price)
    return AssetYield(
        protocol_yield_usd=protocol_yield,
        price_change_usd=price_change,
        total_earned_usd=protocol_yield + price_change,
    )


def _tokens(amount: Decimal | None, usd_value: Decimal, price: Decimal) -> Decimal:
    if amount is not None:
        return amount
    if price > 0:
        return usd_value / price
    return ZERO


def derive_yield_breakdown(
    transactions: Iterable[NormalizedTransaction],
    snapshot: LivePositionSnapshot,
) -> YieldBreakdown:
    lending_basis: dict[tuple[str, str], _CostBasis] = {}
    backstop_basis: dict[str, _CostBasis] = {}

    for tx in transactions:
        if tx.type is TxType.CLAIM:
            continue
        if tx.source is Source.POOL:
            key = (tx.pool_id, tx.asset_address or "")
            lending_basis.setdefault(key, _CostBasis()).add(tx)
        else:
            backstop_basis.setdefault(tx.pool_id, _CostBasis()).add(tx)

    lending: dict[str, dict[str, AssetYield]] = {}
    for pos in snapshot.positions:
        if pos.supply_usd_value <= 0:
            continue
        price = pos.usd_price or ZERO
        current_tokens = _tokens(pos.supply_amount, pos.supply_usd_value, price)
        lending.setdefault(pos.pool_id, {})[pos.asset_id] = position_yield(
            lending_basis.get((pos.pool_id, pos.asset_id)), current_tokens, price
        )

    backstop: dict[str, AssetYield] = {}
    lp_price = snapshot.lp_token_price or ZERO
    for bp in snapshot.backstop_positions:
        if bp.lp_tokens_usd <= 0:
            continue
        current_tokens = _tokens(bp.lp_tokens, bp.lp_tokens_usd, lp_price)
        backstop[bp.pool_id] = position_yield(
            backstop_basis.get(bp.pool_id), current_tokens, lp_price
        )

    return YieldBreakdown(lending=lending, backstop=backstop)
