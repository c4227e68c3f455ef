"""Constants and builders shared by the unit and integration tests."""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from blend_pnl.config import BLND_TOKEN_ADDRESS, LP_TOKEN_ADDRESS
from blend_pnl.models import ActionType, RawEvent

POOL_A = "CPOOLAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA"
POOL_B = "CPOOLBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBB"
USDC = "CUSDCXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXX"
XLM = "CXLMXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXX"
BLND = BLND_TOKEN_ADDRESS
LP = LP_TOKEN_ADDRESS
ACCOUNT = "GACCOUNTXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXX"

UNIT = 10**7


def ts(day: int, hour: int = 12, month: int = 3) -> datetime:
    return datetime(2024, month, day, hour, tzinfo=timezone.utc)


def d(value: str | int) -> Decimal:
    return Decimal(str(value))


def make_event(
    action: ActionType,
    when: datetime,
    *,
    pool_id: str = POOL_A,
    tx: str | None = None,
    asset: str | None = USDC,
    amount: int | None = None,
    lp_tokens: int | None = None,
    claim: int | None = None,
    pool_name: str | None = "Pool A",
    decimals: int | None = 7,
) -> RawEvent:
    """Build a RawEvent; amounts are given in raw 7-decimal units."""
    return RawEvent(
        pool_id=pool_id,
        action_type=action,
        ledger_closed_at=when,
        transaction_hash=tx or f"{action.value}-{when.isoformat()}-{pool_id[:6]}",
        pool_name=pool_name,
        asset_address=asset,
        asset_symbol=None,
        asset_decimals=decimals,
        amount_underlying=amount,
        lp_tokens=lp_tokens,
        claim_amount=claim,
    )
