"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from blend_pnl.config import (
    AccountConfig,
    ApiConfig,
    AppConfig,
    AssetConfig,
    RefreshConfig,
    TokensConfig,
)
from blend_pnl.models import (
    ActionType,
    BackstopPosition,
    LivePosition,
    LivePositionSnapshot,
    PricePreferences,
    RawEvent,
)
from factories import ACCOUNT, BLND, LP, POOL_A, UNIT, USDC, XLM, d, make_event, ts


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def tokens() -> TokensConfig:
    return TokensConfig(
        assets={
            USDC: AssetConfig(symbol="USDC", decimals=7, pegged_currency="USD"),
            XLM: AssetConfig(symbol="XLM", decimals=7),
        },
    )


@pytest.fixture()
def preferences() -> PricePreferences:
    return PricePreferences()


@pytest.fixture()
def sample_app_config(tokens: TokensConfig) -> AppConfig:
    return AppConfig(
        accounts=(AccountConfig(label="main", address=ACCOUNT),),
        api=ApiConfig(
            endpoints=("https://api1.example.com", "https://api2.example.com"),
            timeout=5,
            page_size=2,
        ),
        tokens=tokens,
        refresh=RefreshConfig(interval_minutes=5, snapshot_max_lag_seconds=120),
    )


# ---------------------------------------------------------------------------
# Price fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def historical_prices() -> dict[str, dict[date, Decimal]]:
    return {
        XLM: {date(2024, 3, 1): d("0.10"), date(2024, 3, 5): d("0.12")},
        BLND: {date(2024, 3, 2): d("0.50"), date(2024, 3, 3): d("0.40")},
        LP: {date(2024, 3, 1): d("2.00"), date(2024, 3, 4): d("2.50")},
    }


@pytest.fixture()
def empty_snapshot() -> LivePositionSnapshot:
    return LivePositionSnapshot(
        blnd_price=d("0.30"),
        lp_token_price=d("3.00"),
        as_of=ts(10),
    )


@pytest.fixture()
def sample_snapshot() -> LivePositionSnapshot:
    """Open USDC and XLM supply in pool A plus a backstop deposit."""
    return LivePositionSnapshot(
        positions=(
            LivePosition(
                pool_id=POOL_A,
                asset_id=USDC,
                supply_usd_value=d("1050"),
                usd_price=d("1"),
                supply_amount=d("1050"),
            ),
            LivePosition(
                pool_id=POOL_A,
                asset_id=XLM,
                supply_usd_value=d("130"),
                usd_price=d("0.13"),
                supply_amount=d("1000"),
            ),
        ),
        backstop_positions=(
            BackstopPosition(
                pool_id=POOL_A,
                lp_tokens_usd=d("330"),
                claimable_blnd=d("10"),
                lp_tokens=d("110"),
            ),
        ),
        blnd_price=d("0.30"),
        lp_token_price=d("3.00"),
        total_emissions=d("20"),
        as_of=ts(10),
    )


@pytest.fixture()
def sample_events() -> list[RawEvent]:
    """Deposits into pool A lending and backstop, one claim of each kind."""
    return [
        make_event(ActionType.SUPPLY, ts(1), asset=USDC, amount=1000 * UNIT),
        make_event(ActionType.SUPPLY_COLLATERAL, ts(1, 13), asset=XLM, amount=1000 * UNIT),
        make_event(ActionType.BACKSTOP_DEPOSIT, ts(1, 14), asset=None, lp_tokens=100 * UNIT),
        make_event(ActionType.CLAIM, ts(2), asset=None, claim=40 * UNIT),
        make_event(ActionType.BACKSTOP_CLAIM, ts(4), asset=None, claim=10 * UNIT),
    ]


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent(f"""\
    accounts:
      - label: main
        address: "{ACCOUNT}"
    api:
      endpoints: ["https://api.example.com"]
      timeout: 10
    tokens:
      default_decimals: 7
      assets:
        {USDC}:
          symbol: USDC
          decimals: 7
          pegged_currency: USD
        {XLM}:
          symbol: XLM
    preferences:
      show_price_changes: true
      use_historical_blnd_prices: false
    refresh:
      interval_minutes: 10
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
