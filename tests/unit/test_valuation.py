"""Unit tests for the valuation resolver — price lookup order and unit conversion."""
from __future__ import annotations

from datetime import date

import pytest

from blend_pnl.engine.valuation import (
    PriceBook,
    build_price_book,
    resolve_price,
    resolve_usd_value,
    to_human_units,
    value_amount,
)
from blend_pnl.models import LivePosition, LivePositionSnapshot, ValuationMode
from factories import BLND, LP, POOL_A, UNIT, USDC, XLM, d, ts


@pytest.fixture()
def book(historical_prices) -> PriceBook:
    snapshot = LivePositionSnapshot(
        positions=(
            LivePosition(pool_id=POOL_A, asset_id=XLM, usd_price=d("0.13")),
        ),
        blnd_price=d("0.30"),
        lp_token_price=d("3.00"),
    )
    return build_price_book(
        snapshot, historical_prices, blnd_address=BLND, lp_address=LP,
        pegged=frozenset({USDC}),
    )


class TestToHumanUnits:
    def test_seven_decimals(self) -> None:
        assert to_human_units(12_345_678, 7) == d("1.2345678")

    def test_default_decimals(self) -> None:
        assert to_human_units(5 * UNIT) == d("5")

    def test_six_decimals(self) -> None:
        assert to_human_units(2_500_000, 6) == d("2.5")


class TestBuildPriceBook:
    def test_collects_live_prices(self, book: PriceBook) -> None:
        assert book.live_price(XLM) == d("0.13")
        assert book.live_price(BLND) == d("0.30")
        assert book.live_price(LP) == d("3.00")

    def test_ignores_non_positive_prices(self) -> None:
        snapshot = LivePositionSnapshot(
            positions=(LivePosition(pool_id=POOL_A, asset_id=XLM, usd_price=d("0")),),
            blnd_price=d("-1"),
        )
        book = build_price_book(snapshot, blnd_address=BLND)
        assert book.live_price(XLM) is None
        assert book.live_price(BLND) is None

    def test_extra_live_prices_are_overridden_by_snapshot(self) -> None:
        snapshot = LivePositionSnapshot(
            positions=(LivePosition(pool_id=POOL_A, asset_id=XLM, usd_price=d("0.2")),),
        )
        book = build_price_book(snapshot, extra_live={XLM: d("0.1"), USDC: d("1")})
        assert book.live_price(XLM) == d("0.2")
        assert book.live_price(USDC) == d("1")


class TestResolvePrice:
    def test_historical_hit(self, book: PriceBook) -> None:
        assert resolve_price(book, XLM, date(2024, 3, 1)) == (d("0.10"), "historical")

    def test_historical_miss_falls_back_to_live(self, book: PriceBook) -> None:
        assert resolve_price(book, XLM, date(2024, 3, 2)) == (d("0.13"), "live")

    def test_live_mode_skips_history(self, book: PriceBook) -> None:
        price, source = resolve_price(book, XLM, date(2024, 3, 1), ValuationMode.LIVE)
        assert (price, source) == (d("0.13"), "live")

    def test_pegged_asset_is_one(self, book: PriceBook) -> None:
        assert resolve_price(book, USDC, date(2024, 3, 1)) == (d("1"), "pegged")

    def test_unknown_asset(self, book: PriceBook) -> None:
        assert resolve_price(book, "CUNKNOWN", date(2024, 3, 1)) == (None, "missing")


class TestValueAmount:
    def test_missing_price_values_at_zero(self, book: PriceBook) -> None:
        valuation = value_amount(book, d("10"), "CUNKNOWN", date(2024, 3, 1))
        assert valuation.value_usd == 0
        assert valuation.price_source == "missing"

    def test_multiplies_amount_by_price(self, book: PriceBook) -> None:
        valuation = value_amount(book, d("1000"), XLM, date(2024, 3, 5))
        assert valuation.value_usd == d("120.00")


class TestResolveUsdValue:
    def test_raw_amount(self, book: PriceBook) -> None:
        value = resolve_usd_value(
            1000 * UNIT, XLM, 7, ts(1), ValuationMode.HISTORICAL, book
        )
        assert value == d("100.0")

    def test_zero_amount_is_none(self, book: PriceBook) -> None:
        assert resolve_usd_value(0, XLM, 7, ts(1), ValuationMode.HISTORICAL, book) is None

    def test_missing_amount_is_none(self, book: PriceBook) -> None:
        assert resolve_usd_value(None, XLM, 7, ts(1), ValuationMode.HISTORICAL, book) is None

    def test_default_decimals_when_unknown(self, book: PriceBook) -> None:
        value = resolve_usd_value(3 * UNIT, USDC, None, ts(1), ValuationMode.LIVE, book)
        assert value == d("3")
