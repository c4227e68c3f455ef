"""Aggregation engine — folds normalized transactions into running totals and series."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable

from ..config import TokensConfig
from ..models import (
    ZERO,
    AggregateTotals,
    CumulativeBySource,
    CumulativePoint,
    EmissionsTotals,
    NormalizedTransaction,
    PoolBreakdown,
    PoolRealizedPoint,
    PoolSeries,
    Source,
    SourceTotals,
    TxType,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Mutable accumulators (local to one aggregation pass)
# ---------------------------------------------------------------------------


@dataclass
class _SourceAcc:
    deposited: Decimal = ZERO
    withdrawn: Decimal = ZERO
    emissions_claimed: Decimal = ZERO

    def add(self, tx: NormalizedTransaction) -> None:
        if tx.type is TxType.DEPOSIT:
            self.deposited += tx.value_usd
        elif tx.type is TxType.WITHDRAW:
            self.withdrawn += tx.value_usd
        else:
            self.emissions_claimed += tx.value_usd

    def freeze(self) -> SourceTotals:
        return SourceTotals(self.deposited, self.withdrawn, self.emissions_claimed)


@dataclass
class _EmissionsAcc:
    blnd_claimed: Decimal = ZERO
    lp_claimed: Decimal = ZERO
    usd_value: Decimal = ZERO

    def add(self, tx: NormalizedTransaction, tokens: TokensConfig) -> None:
        if tx.asset_address == tokens.blnd_address:
            self.blnd_claimed += tx.amount
        elif tx.asset_address == tokens.lp_address:
            self.lp_claimed += tx.amount
        self.usd_value += tx.value_usd

    def freeze(self) -> EmissionsTotals:
        return EmissionsTotals(self.blnd_claimed, self.lp_claimed, self.usd_value)


@dataclass
class _PoolAcc:
    pool_name: str | None = None
    lending: _SourceAcc = field(default_factory=_SourceAcc)
    backstop: _SourceAcc = field(default_factory=_SourceAcc)


@dataclass
class _DayAcc:
    deposited: Decimal = ZERO
    withdrawn: Decimal = ZERO
    realized: Decimal = ZERO

    def add(self, tx: NormalizedTransaction) -> None:
        if tx.type is TxType.DEPOSIT:
            self.deposited += tx.value_usd
        elif tx.type is TxType.WITHDRAW:
            self.withdrawn += tx.value_usd
        else:
            self.realized += tx.value_usd


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def sort_key(tx: NormalizedTransaction) -> tuple:
    """Total order on transactions so that any input order folds identically."""
    return (
        tx.timestamp,
        tx.tx_hash,
        tx.pool_id,
        tx.source.value,
        tx.type.value,
        tx.asset_address or "",
        tx.amount,
    )


def _cumulative(days: dict[date, _DayAcc]) -> tuple[CumulativePoint, ...]:
    points: list[CumulativePoint] = []
    deposited = withdrawn = realized = ZERO
    for day in sorted(days):
        acc = days[day]
        deposited += acc.deposited
        withdrawn += acc.withdrawn
        realized += acc.realized
        points.append(CumulativePoint(day, deposited, withdrawn, realized))
    return tuple(points)


def _pool_series(
    pool_id: str, pool_name: str | None, days: dict[date, list[Decimal]]
) -> PoolSeries:
    points: list[PoolRealizedPoint] = []
    lending = backstop = ZERO
    for day in sorted(days):
        lending += days[day][0]
        backstop += days[day][1]
        points.append(PoolRealizedPoint(day, lending, backstop))
    return PoolSeries(pool_id=pool_id, pool_name=pool_name, points=tuple(points))


def fill_missing_dates(
    points: Iterable[CumulativePoint], end: date | None = None
) -> tuple[CumulativePoint, ...]:
    """Forward-fill a cumulative series to one point per calendar day.

    The series runs from its first date to ``end`` (defaults to its last date);
    days without activity repeat the previous cumulative values.
    """
    by_day = {p.date: p for p in points}
    if not by_day:
        return ()

    first = min(by_day)
    last = max(by_day)
    if end is not None and end > last:
        last = end

    filled: list[CumulativePoint] = []
    previous = by_day[first]
    day = first
    while day <= last:
        current = by_day.get(day)
        if current is not None:
            previous = current
            filled.append(current)
        else:
            filled.append(
                CumulativePoint(
                    day,
                    previous.cumulative_deposited,
                    previous.cumulative_withdrawn,
                    previous.cumulative_realized_pnl,
                )
            )
        day += timedelta(days=1)
    return tuple(filled)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def aggregate(
    transactions: Iterable[NormalizedTransaction], tokens: TokensConfig
) -> AggregateTotals:
    """Fold transactions into per-source, per-pool and per-date running totals.

    Input order does not matter: transactions are sorted ascending first.
    Chart series carry one point per transaction date, and their realized P&L
    is emissions claimed only.
    """
    ordered = sorted(transactions, key=sort_key)

    sources = {Source.POOL: _SourceAcc(), Source.BACKSTOP: _SourceAcc()}
    emissions = _EmissionsAcc()
    emissions_by_source = {Source.POOL: _EmissionsAcc(), Source.BACKSTOP: _EmissionsAcc()}
    pools: dict[str, _PoolAcc] = {}

    all_days: dict[date, _DayAcc] = {}
    source_days: dict[Source, dict[date, _DayAcc]] = {Source.POOL: {}, Source.BACKSTOP: {}}
    pool_claim_days: dict[str, dict[date, list[Decimal]]] = {}

    for tx in ordered:
        sources[tx.source].add(tx)

        pool = pools.setdefault(tx.pool_id, _PoolAcc())
        if pool.pool_name is None and tx.pool_name:
            pool.pool_name = tx.pool_name
        (pool.lending if tx.source is Source.POOL else pool.backstop).add(tx)

        all_days.setdefault(tx.date, _DayAcc()).add(tx)
        source_days[tx.source].setdefault(tx.date, _DayAcc()).add(tx)

        if tx.type is TxType.CLAIM:
            emissions.add(tx, tokens)
            emissions_by_source[tx.source].add(tx, tokens)
            day = pool_claim_days.setdefault(tx.pool_id, {}).setdefault(
                tx.date, [ZERO, ZERO]
            )
            day[0 if tx.source is Source.POOL else 1] += tx.value_usd

    per_pool = {
        pool_id: PoolBreakdown(
            pool_id=pool_id,
            pool_name=acc.pool_name,
            lending=acc.lending.freeze(),
            backstop=acc.backstop.freeze(),
        )
        for pool_id, acc in pools.items()
    }

    totals = AggregateTotals(
        pools=sources[Source.POOL].freeze(),
        backstop=sources[Source.BACKSTOP].freeze(),
        emissions=emissions.freeze(),
        emissions_by_source={s: acc.freeze() for s, acc in emissions_by_source.items()},
        per_pool=per_pool,
        cumulative_realized=_cumulative(all_days),
        cumulative_by_source=CumulativeBySource(
            pools=_cumulative(source_days[Source.POOL]),
            backstop=_cumulative(source_days[Source.BACKSTOP]),
        ),
        cumulative_by_pool=tuple(
            _pool_series(pool_id, per_pool[pool_id].pool_name, days)
            for pool_id, days in pool_claim_days.items()
        ),
        first_activity_date=ordered[0].date if ordered else None,
        last_activity_date=ordered[-1].date if ordered else None,
        transactions=tuple(ordered),
    )

    logger.debug(
        "Aggregated %d transactions across %d pools", len(ordered), len(per_pool)
    )
    return totals
