"""Plain-text P&L summaries for the terminal and logs."""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from ..models import PnlResult, Source


def format_money(value: Decimal, currency: str = "USD") -> str:
    """Format a Decimal amount, e.g. ``-1234.5`` → ``-$1,234.50``."""
    symbol = "$" if currency.upper() == "USD" else f"{currency.upper()} "
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"


def format_percent(value: Decimal | None) -> str:
    if value is None:
        return "—"
    return f"{value:+.2f}%"


def format_account(address: str) -> str:
    if len(address) > 16:
        return f"{address[:6]}...{address[-4:]}"
    return address


def _now_str() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def build_report(result: PnlResult, label: str, currency: str = "USD") -> str:
    """Render the headline, source breakdown, borrow costs and per-pool lines."""

    def money(v: Decimal) -> str:
        return format_money(v, currency)

    rec = result.reconciliation
    headline = result.headline
    lines = [
        f"📊 {format_account(label)}",
        "",
        f"{headline.label}: {money(headline.value)} ({format_percent(headline.percent)})",
        f"Current value: {money(rec.total_current_usd)}",
        f"Deposited: {money(result.total_deposited_usd)} · "
        f"Withdrawn: {money(result.total_withdrawn_usd)}",
        f"Yield: {money(rec.display_unrealized)} · Emissions: {money(rec.emissions_usd)}",
    ]

    for name, source in (("Pools", rec.pools), ("Backstop", rec.backstop)):
        lines.append(
            f"  {name}: {money(source.current_usd)} now, "
            f"cost basis {money(source.cost_basis_usd)}, "
            f"yield {money(source.display_yield_usd)}"
        )

    emissions = result.emissions
    lines.append(
        f"Claimed: {emissions.blnd_claimed:,.2f} BLND, {emissions.lp_claimed:,.2f} LP "
        f"({money(result.emissions_by_source[Source.POOL].usd_value)} pools, "
        f"{money(result.emissions_by_source[Source.BACKSTOP].usd_value)} backstop)"
    )

    if result.borrow.has_borrows:
        total = result.borrow.total
        lines.append(
            f"Borrowed: {money(total.current_debt_usd)} debt, "
            f"interest {money(total.interest_accrued_usd)}, "
            f"cost {money(total.total_cost_usd)}"
        )

    if result.per_pool_breakdown:
        lines.append("")
        for pool in result.per_pool_breakdown:
            lines.append(
                f"{pool.pool_name or format_account(pool.pool_id)}: "
                f"deposited {money(pool.total_deposited)}"
            )

    if result.roi_percent is not None:
        lines.append("")
        lines.append(
            f"ROI: {format_percent(result.roi_percent)} over {result.days_active}d "
            f"(annualized {format_percent(result.annualized_roi_percent)})"
        )

    lines.append("")
    lines.append(f"{_now_str()} UTC")
    return "\n".join(lines)
