"""Data models — all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Mapping

ZERO = Decimal("0")


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ActionType(str, Enum):
    """On-chain action recorded in the event log."""

    SUPPLY = "supply"
    SUPPLY_COLLATERAL = "supply_collateral"
    WITHDRAW = "withdraw"
    WITHDRAW_COLLATERAL = "withdraw_collateral"
    BORROW = "borrow"
    REPAY = "repay"
    CLAIM = "claim"
    BACKSTOP_DEPOSIT = "backstop_deposit"
    BACKSTOP_WITHDRAW = "backstop_withdraw"
    BACKSTOP_QUEUE_WITHDRAWAL = "backstop_queue_withdrawal"
    BACKSTOP_DEQUEUE_WITHDRAWAL = "backstop_dequeue_withdrawal"
    BACKSTOP_CLAIM = "backstop_claim"
    LIQUIDATE = "liquidate"
    FILL_AUCTION = "fill_auction"
    NEW_AUCTION = "new_auction"


class TxType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    CLAIM = "claim"


class Source(str, Enum):
    POOL = "pool"
    BACKSTOP = "backstop"


class ValuationMode(str, Enum):
    HISTORICAL = "historical"
    LIVE = "live"


class BorrowKind(str, Enum):
    BORROW = "borrow"
    REPAY = "repay"


class HeadlineState(str, Enum):
    """Which headline formula is shown."""

    NO_BORROW = "no_borrow"
    HAS_BORROW = "has_borrow"
    EXITED = "exited"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RawEvent:
    """Single on-chain action as delivered by the event log source.

    Amounts are raw integers in the asset's smallest unit. Which of the three
    amount fields is populated depends on the action type.
    """

    pool_id: str
    action_type: ActionType
    ledger_closed_at: datetime
    transaction_hash: str
    pool_name: str | None = None
    asset_address: str | None = None
    asset_symbol: str | None = None
    asset_decimals: int | None = None
    amount_underlying: int | None = None
    lp_tokens: int | None = None
    claim_amount: int | None = None


@dataclass(frozen=True)
class PricePreferences:
    """Display preferences that change how the engine values things."""

    show_price_changes: bool = False
    use_historical_blnd_prices: bool = True


@dataclass(frozen=True)
class LivePosition:
    """Current lending position for one (pool, asset) pair."""

    pool_id: str
    asset_id: str
    supply_usd_value: Decimal = ZERO
    borrow_amount: Decimal = ZERO
    usd_price: Decimal | None = None
    supply_amount: Decimal | None = None


@dataclass(frozen=True)
class BackstopPosition:
    """Current backstop deposit for one pool."""

    pool_id: str
    lp_tokens_usd: Decimal = ZERO
    claimable_blnd: Decimal = ZERO
    lp_tokens: Decimal | None = None


@dataclass(frozen=True)
class LivePositionSnapshot:
    """Point-in-time balances and prices for an account."""

    positions: tuple[LivePosition, ...] = ()
    backstop_positions: tuple[BackstopPosition, ...] = ()
    blnd_price: Decimal | None = None
    lp_token_price: Decimal | None = None
    total_backstop_usd: Decimal | None = None
    total_emissions: Decimal = ZERO
    as_of: datetime | None = None

    @property
    def pools_current_usd(self) -> Decimal:
        return sum((p.supply_usd_value for p in self.positions), ZERO)

    @property
    def backstop_current_usd(self) -> Decimal:
        """Sum of the per-pool backstop values; the reported total only when none are listed."""
        if not self.backstop_positions and self.total_backstop_usd is not None:
            return self.total_backstop_usd
        return sum((b.lp_tokens_usd for b in self.backstop_positions), ZERO)


@dataclass(frozen=True)
class AssetYield:
    """Yield split for one position: protocol yield vs. market price movement."""

    protocol_yield_usd: Decimal = ZERO
    price_change_usd: Decimal = ZERO
    total_earned_usd: Decimal = ZERO

    def selected(self, show_price_changes: bool) -> Decimal:
        return self.total_earned_usd if show_price_changes else self.protocol_yield_usd


@dataclass(frozen=True)
class YieldBreakdown:
    """Yield per lending position (pool -> asset) and per backstop (pool)."""

    lending: Mapping[str, Mapping[str, AssetYield]] = field(default_factory=dict)
    backstop: Mapping[str, AssetYield] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Classifier output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NormalizedTransaction:
    """A deposit, withdrawal or emissions claim valued in USD."""

    timestamp: datetime
    date: date
    type: TxType
    source: Source
    asset: str
    asset_address: str | None
    amount: Decimal
    price_usd: Decimal
    value_usd: Decimal
    pool_id: str
    pool_name: str | None
    tx_hash: str


@dataclass(frozen=True)
class BorrowLeg:
    """A borrow or repay valued at the price on its date."""

    timestamp: datetime
    date: date
    kind: BorrowKind
    pool_id: str
    asset_address: str
    asset: str
    amount: Decimal
    price_usd: Decimal
    value_usd: Decimal
    tx_hash: str


# ---------------------------------------------------------------------------
# Aggregation output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SourceTotals:
    deposited: Decimal = ZERO
    withdrawn: Decimal = ZERO
    emissions_claimed: Decimal = ZERO

    @property
    def cost_basis(self) -> Decimal:
        """Capital still in the protocol; claims are yield, not principal."""
        return self.deposited - self.withdrawn

    @property
    def realized(self) -> Decimal:
        return self.withdrawn - self.deposited


@dataclass(frozen=True)
class PoolBreakdown:
    pool_id: str
    pool_name: str | None
    lending: SourceTotals = field(default_factory=SourceTotals)
    backstop: SourceTotals = field(default_factory=SourceTotals)

    @property
    def total_deposited(self) -> Decimal:
        return self.lending.deposited + self.backstop.deposited


@dataclass(frozen=True)
class EmissionsTotals:
    blnd_claimed: Decimal = ZERO
    lp_claimed: Decimal = ZERO
    usd_value: Decimal = ZERO


@dataclass(frozen=True)
class CumulativePoint:
    date: date
    cumulative_deposited: Decimal
    cumulative_withdrawn: Decimal
    cumulative_realized_pnl: Decimal

    @property
    def cumulative_net_flow(self) -> Decimal:
        return self.cumulative_withdrawn - self.cumulative_deposited


@dataclass(frozen=True)
class PoolRealizedPoint:
    date: date
    lending_realized_pnl: Decimal
    backstop_realized_pnl: Decimal


@dataclass(frozen=True)
class PoolSeries:
    pool_id: str
    pool_name: str | None
    points: tuple[PoolRealizedPoint, ...] = ()


@dataclass(frozen=True)
class CumulativeBySource:
    pools: tuple[CumulativePoint, ...] = ()
    backstop: tuple[CumulativePoint, ...] = ()


@dataclass(frozen=True)
class AggregateTotals:
    """Everything the event log alone can tell about an account."""

    pools: SourceTotals = field(default_factory=SourceTotals)
    backstop: SourceTotals = field(default_factory=SourceTotals)
    emissions: EmissionsTotals = field(default_factory=EmissionsTotals)
    emissions_by_source: Mapping[Source, EmissionsTotals] = field(default_factory=dict)
    per_pool: Mapping[str, PoolBreakdown] = field(default_factory=dict)
    cumulative_realized: tuple[CumulativePoint, ...] = ()
    cumulative_by_source: CumulativeBySource = field(default_factory=CumulativeBySource)
    cumulative_by_pool: tuple[PoolSeries, ...] = ()
    first_activity_date: date | None = None
    last_activity_date: date | None = None
    transactions: tuple[NormalizedTransaction, ...] = ()

    @property
    def total_deposited_usd(self) -> Decimal:
        return self.pools.deposited + self.backstop.deposited

    @property
    def total_withdrawn_usd(self) -> Decimal:
        return self.pools.withdrawn + self.backstop.withdrawn

    @property
    def realized_pnl(self) -> Decimal:
        """Realized profit is emissions claimed; withdrawing principal is not profit."""
        return self.emissions.usd_value


# ---------------------------------------------------------------------------
# Borrow-cost output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BorrowPosition:
    """Open debt for one (pool, asset) pair with its historical principal."""

    pool_id: str
    asset_address: str
    principal_usd: Decimal
    net_borrowed_tokens: Decimal
    avg_borrow_price: Decimal
    current_debt_tokens: Decimal
    current_price: Decimal


@dataclass(frozen=True)
class BorrowBreakdown:
    pool_id: str
    asset_address: str
    principal_usd: Decimal
    current_debt_usd: Decimal
    interest_accrued_tokens: Decimal
    interest_accrued_usd: Decimal
    price_change_on_debt_usd: Decimal
    total_cost_usd: Decimal


@dataclass(frozen=True)
class BorrowTotals:
    principal_usd: Decimal = ZERO
    current_debt_usd: Decimal = ZERO
    interest_accrued_usd: Decimal = ZERO
    price_change_on_debt_usd: Decimal = ZERO
    total_cost_usd: Decimal = ZERO


@dataclass(frozen=True)
class BorrowCostSummary:
    by_asset: Mapping[str, Mapping[str, BorrowBreakdown]] = field(default_factory=dict)
    by_pool: Mapping[str, BorrowTotals] = field(default_factory=dict)
    total: BorrowTotals = field(default_factory=BorrowTotals)

    @property
    def has_borrows(self) -> bool:
        return self.total.current_debt_usd > 0


# ---------------------------------------------------------------------------
# Reconciliation output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SourceReconciliation:
    """Historical totals for one source reconciled against its live balance."""

    current_usd: Decimal
    cost_basis_usd: Decimal
    unrealized_pnl: Decimal
    exit_realized_yield: Decimal
    protocol_yield_usd: Decimal
    price_change_usd: Decimal
    total_earned_usd: Decimal
    display_yield_usd: Decimal
    emissions_usd: Decimal


@dataclass(frozen=True)
class PoolPnl:
    """Per-pool display figures; these sum to the per-source figures."""

    pool_id: str
    pool_name: str | None
    lending_current_usd: Decimal
    backstop_current_usd: Decimal
    lending_yield_usd: Decimal
    backstop_yield_usd: Decimal
    lending_price_change_usd: Decimal
    backstop_price_change_usd: Decimal
    lending_emissions_usd: Decimal
    backstop_emissions_usd: Decimal
    borrow_cost_usd: Decimal
    total_pnl_usd: Decimal


@dataclass(frozen=True)
class Reconciliation:
    pools: SourceReconciliation
    backstop: SourceReconciliation
    total_current_usd: Decimal
    total_cost_basis_usd: Decimal
    total_unrealized_pnl: Decimal
    total_pnl: Decimal
    display_unrealized: Decimal
    emissions_usd: Decimal
    yield_pnl: Decimal
    per_pool: tuple[PoolPnl, ...] = ()

    @property
    def has_current_positions(self) -> bool:
        return self.total_current_usd > 0


@dataclass(frozen=True)
class Headline:
    state: HeadlineState
    label: str
    value: Decimal
    percent: Decimal | None = None


@dataclass(frozen=True)
class UnclaimedEmissions:
    pool_blnd: Decimal = ZERO
    pool_usd: Decimal = ZERO
    backstop_blnd: Decimal = ZERO
    backstop_usd: Decimal = ZERO


@dataclass(frozen=True)
class PnlResult:
    """Complete P&L picture for one account; rebuilt from scratch on every input change."""

    total_deposited_usd: Decimal
    total_withdrawn_usd: Decimal
    realized_pnl: Decimal
    pools: SourceTotals
    backstop: SourceTotals
    emissions: EmissionsTotals
    emissions_by_source: Mapping[Source, EmissionsTotals]
    cumulative_realized: tuple[CumulativePoint, ...]
    cumulative_by_source: CumulativeBySource
    cumulative_by_pool: tuple[PoolSeries, ...]
    per_pool_breakdown: tuple[PoolBreakdown, ...]
    first_activity_date: date | None
    last_activity_date: date | None
    days_active: int
    roi_percent: Decimal | None
    annualized_roi_percent: Decimal | None
    reconciliation: Reconciliation
    borrow: BorrowCostSummary
    headline: Headline
    unclaimed_emissions: UnclaimedEmissions
    transactions: tuple[NormalizedTransaction, ...] = ()

    @property
    def total_pnl(self) -> Decimal:
        return self.reconciliation.total_pnl

    @property
    def total_pnl_percent(self) -> Decimal | None:
        if self.total_deposited_usd <= 0:
            return None
        return self.reconciliation.total_pnl / self.total_deposited_usd * 100
