"""P&L computation engine — pure functions over events, snapshot and preferences."""
from .aggregation import aggregate, fill_missing_dates
from .borrow import build_borrow_positions, compute_borrow_cost
from .classifier import classify, classify_borrow, classify_events
from .pipeline import PnlCache, compute_pnl
from .reconciliation import build_headline, reconcile
from .valuation import PriceBook, build_price_book, resolve_price, resolve_usd_value
from .yield_breakdown import derive_yield_breakdown

__all__ = [
    "PnlCache",
    "PriceBook",
    "aggregate",
    "build_borrow_positions",
    "build_headline",
    "build_price_book",
    "classify",
    "classify_borrow",
    "classify_events",
    "compute_borrow_cost",
    "compute_pnl",
    "derive_yield_breakdown",
    "fill_missing_dates",
    "reconcile",
    "resolve_price",
    "resolve_usd_value",
]
