"""Transaction classifier — raw ledger events to valued deposit/withdraw/claim records.

Pure functions, no I/O. An event that cannot be classified (excluded action,
missing amount, missing asset) yields None and never aborts a batch.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from ..config import TokensConfig
from ..models import (
    ActionType,
    BorrowKind,
    BorrowLeg,
    NormalizedTransaction,
    PricePreferences,
    RawEvent,
    Source,
    TxType,
    ValuationMode,
)
from .valuation import PriceBook, to_human_units, value_amount

logger = logging.getLogger(__name__)

BLND_SYMBOL = "BLND"
LP_SYMBOL = "BLND-USDC LP"


@dataclass(frozen=True)
class _Rule:
    tx_type: TxType
    source: Source
    amount_field: str


_RULES: dict[ActionType, _Rule] = {
    ActionType.SUPPLY: _Rule(TxType.DEPOSIT, Source.POOL, "amount_underlying"),
    ActionType.SUPPLY_COLLATERAL: _Rule(TxType.DEPOSIT, Source.POOL, "amount_underlying"),
    ActionType.WITHDRAW: _Rule(TxType.WITHDRAW, Source.POOL, "amount_underlying"),
    ActionType.WITHDRAW_COLLATERAL: _Rule(TxType.WITHDRAW, Source.POOL, "amount_underlying"),
    ActionType.CLAIM: _Rule(TxType.CLAIM, Source.POOL, "claim_amount"),
    ActionType.BACKSTOP_DEPOSIT: _Rule(TxType.DEPOSIT, Source.BACKSTOP, "lp_tokens"),
    ActionType.BACKSTOP_WITHDRAW: _Rule(TxType.WITHDRAW, Source.BACKSTOP, "lp_tokens"),
    ActionType.BACKSTOP_CLAIM: _Rule(TxType.CLAIM, Source.BACKSTOP, "claim_amount"),
}

_BORROW_KINDS: dict[ActionType, BorrowKind] = {
    ActionType.BORROW: BorrowKind.BORROW,
    ActionType.REPAY: BorrowKind.REPAY,
}

# Queued withdrawals are not transfers; auction and liquidation legs are
# multi-asset and are left out of the P&L model.
EXCLUDED_ACTIONS: frozenset[ActionType] = frozenset(
    {
        ActionType.BACKSTOP_QUEUE_WITHDRAWAL,
        ActionType.BACKSTOP_DEQUEUE_WITHDRAWAL,
        ActionType.LIQUIDATE,
        ActionType.FILL_AUCTION,
        ActionType.NEW_AUCTION,
    }
)


def _asset_for(
    event: RawEvent, rule: _Rule, tokens: TokensConfig
) -> tuple[str, str, int] | None:
    """Return ``(address, symbol, decimals)`` of the asset an event moves."""
    if rule.source is Source.BACKSTOP:
        return tokens.lp_address, LP_SYMBOL, tokens.default_decimals
    if rule.tx_type is TxType.CLAIM:
        return tokens.blnd_address, BLND_SYMBOL, tokens.default_decimals
    return _underlying_asset(event, tokens)


def _underlying_asset(event: RawEvent, tokens: TokensConfig) -> tuple[str, str, int] | None:
    if not event.asset_address:
        return None
    meta = tokens.assets.get(event.asset_address)
    symbol = event.asset_symbol or (meta.symbol if meta and meta.symbol else event.asset_address)
    decimals = event.asset_decimals
    if decimals is None and meta is not None:
        decimals = meta.decimals
    if decimals is None:
        decimals = tokens.default_decimals
    return event.asset_address, symbol, decimals


def _positive_amount(event: RawEvent, field_name: str) -> int | None:
    raw = getattr(event, field_name)
    if raw is None or raw <= 0:
        return None
    return raw


def classify(
    event: RawEvent,
    prices: PriceBook,
    tokens: TokensConfig,
    preferences: PricePreferences,
    mode: ValuationMode = ValuationMode.HISTORICAL,
) -> NormalizedTransaction | None:
    """Normalize one event, or return None when it does not move realized value.

    BLND claims follow ``preferences.use_historical_blnd_prices`` instead of
    ``mode``: price at claim time, or today's price.
    """
    rule = _RULES.get(event.action_type)
    if rule is None:
        return None

    raw = _positive_amount(event, rule.amount_field)
    if raw is None:
        logger.debug(
            "Skipping %s %s: no %s", event.action_type.value,
            event.transaction_hash, rule.amount_field,
        )
        return None

    asset = _asset_for(event, rule, tokens)
    if asset is None:
        logger.debug(
            "Skipping %s %s: no asset address", event.action_type.value,
            event.transaction_hash,
        )
        return None
    address, symbol, decimals = asset

    valuation_mode = mode
    if rule.tx_type is TxType.CLAIM and address == tokens.blnd_address:
        valuation_mode = (
            ValuationMode.HISTORICAL
            if preferences.use_historical_blnd_prices
            else ValuationMode.LIVE
        )

    day = event.ledger_closed_at.date()
    amount = to_human_units(raw, decimals)
    valuation = value_amount(prices, amount, address, day, valuation_mode)

    return NormalizedTransaction(
        timestamp=event.ledger_closed_at,
        date=day,
        type=rule.tx_type,
        source=rule.source,
        asset=symbol,
        asset_address=address,
        amount=amount,
        price_usd=valuation.price_usd,
        value_usd=valuation.value_usd,
        pool_id=event.pool_id,
        pool_name=event.pool_name,
        tx_hash=event.transaction_hash,
    )


def classify_borrow(
    event: RawEvent,
    prices: PriceBook,
    tokens: TokensConfig,
    mode: ValuationMode = ValuationMode.HISTORICAL,
) -> BorrowLeg | None:
    """Normalize a borrow or repay; these feed the borrow-cost engine only."""
    kind = _BORROW_KINDS.get(event.action_type)
    if kind is None:
        return None

    raw = _positive_amount(event, "amount_underlying")
    asset = _underlying_asset(event, tokens)
    if raw is None or asset is None:
        logger.debug(
            "Skipping %s %s: incomplete borrow leg", event.action_type.value,
            event.transaction_hash,
        )
        return None
    address, symbol, decimals = asset

    day = event.ledger_closed_at.date()
    amount = to_human_units(raw, decimals)
    valuation = value_amount(prices, amount, address, day, mode)

    return BorrowLeg(
        timestamp=event.ledger_closed_at,
        date=day,
        kind=kind,
        pool_id=event.pool_id,
        asset_address=address,
        asset=symbol,
        amount=amount,
        price_usd=valuation.price_usd,
        value_usd=valuation.value_usd,
        tx_hash=event.transaction_hash,
    )


def classify_events(
    events: Iterable[RawEvent],
    prices: PriceBook,
    tokens: TokensConfig,
    preferences: PricePreferences,
    mode: ValuationMode = ValuationMode.HISTORICAL,
) -> tuple[list[NormalizedTransaction], list[BorrowLeg]]:
    """Split an event log into supply-side transactions and borrow legs."""
    transactions: list[NormalizedTransaction] = []
    borrow_legs: list[BorrowLeg] = []
    skipped = 0

    for event in events:
        if event.action_type in _BORROW_KINDS:
            leg = classify_borrow(event, prices, tokens, mode)
            if leg is None:
                skipped += 1
            else:
                borrow_legs.append(leg)
            continue

        tx = classify(event, prices, tokens, preferences, mode)
        if tx is not None:
            transactions.append(tx)
        elif event.action_type not in EXCLUDED_ACTIONS:
            skipped += 1

    if skipped:
        logger.debug("Skipped %d malformed events", skipped)
    return transactions, borrow_legs
