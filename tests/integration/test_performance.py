"""Integration tests for the performance service — full flow with mocked sources."""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from unittest.mock import AsyncMock, patch

import pytest

from blend_pnl.config import AccountConfig, AppConfig
from blend_pnl.models import HeadlineState, LivePositionSnapshot
from blend_pnl.services.performance import EngineNotReadyError, PerformanceService
from factories import ACCOUNT, d, ts


@pytest.fixture()
def sources(sample_events, sample_snapshot, historical_prices):
    events = AsyncMock()
    events.fetch_events.return_value = sample_events
    snapshots = AsyncMock()
    snapshots.fetch_snapshot.return_value = sample_snapshot
    prices = AsyncMock()
    prices.fetch_prices.return_value = historical_prices
    return events, snapshots, prices


@pytest.fixture()
def service(sample_app_config: AppConfig, sources) -> PerformanceService:
    events, snapshots, prices = sources
    return PerformanceService(
        sample_app_config, events=events, snapshots=snapshots, prices=prices
    )


class TestReadiness:
    def test_compute_before_load_raises(self, service: PerformanceService) -> None:
        with pytest.raises(EngineNotReadyError):
            service.compute(ACCOUNT)

    def test_events_alone_are_not_enough(self, service, sample_events) -> None:
        service.update_events(ACCOUNT, sample_events)
        assert not service.is_ready(ACCOUNT)
        with pytest.raises(EngineNotReadyError):
            service.compute(ACCOUNT)

    def test_pushed_inputs(self, service, sample_events, sample_snapshot) -> None:
        service.update_events(ACCOUNT, sample_events)
        service.update_snapshot(ACCOUNT, sample_snapshot)
        assert service.is_ready(ACCOUNT)
        # no historical prices: everything at live prices
        result = service.compute(ACCOUNT)
        assert result.pools.deposited == d("1130")

    def test_error_is_a_runtime_error(self) -> None:
        assert issubclass(EngineNotReadyError, RuntimeError)


class TestRefresh:
    @pytest.mark.asyncio
    async def test_computes_from_fetched_inputs(self, service, sources) -> None:
        events, snapshots, prices = sources
        result = await service.refresh(ACCOUNT)

        events.fetch_events.assert_awaited_once_with(ACCOUNT)
        snapshots.fetch_snapshot.assert_awaited_once_with(ACCOUNT)
        assert result.total_deposited_usd == d("1300")
        assert result.headline.state is HeadlineState.NO_BORROW
        assert result.headline.value == d("210")

    @pytest.mark.asyncio
    async def test_requests_prices_for_event_range(self, service, sources, tokens) -> None:
        _, _, prices = sources
        await service.refresh(ACCOUNT)

        assets, start, end = prices.fetch_prices.call_args[0]
        assert tokens.blnd_address in assets
        assert tokens.lp_address in assets
        assert start.isoformat() == "2024-03-01"
        assert end.isoformat() == "2024-03-04"

    @pytest.mark.asyncio
    async def test_price_failure_falls_back_to_live(self, service, sources, caplog) -> None:
        _, _, prices = sources
        prices.fetch_prices.side_effect = RuntimeError("All API endpoints failed")

        with caplog.at_level(logging.WARNING):
            result = await service.refresh(ACCOUNT)

        assert result.pools.deposited == d("1130")
        assert "Historical prices unavailable" in caplog.text

    @pytest.mark.asyncio
    async def test_fetch_failure_leaves_service_not_ready(self, service, sources) -> None:
        _, snapshots, _ = sources
        snapshots.fetch_snapshot.side_effect = RuntimeError("down")

        with pytest.raises(RuntimeError):
            await service.refresh(ACCOUNT)
        assert not service.is_ready(ACCOUNT)

    @pytest.mark.asyncio
    async def test_unchanged_inputs_reuse_result(self, service) -> None:
        first = await service.refresh(ACCOUNT)
        second = await service.refresh(ACCOUNT)
        assert second is first


class TestStaleness:
    @pytest.mark.asyncio
    async def test_stale_snapshot_is_refetched(
        self, service, sources, sample_snapshot
    ) -> None:
        _, snapshots, _ = sources
        stale = dataclasses.replace(sample_snapshot, as_of=ts(1))
        snapshots.fetch_snapshot.side_effect = [stale, sample_snapshot]

        result = await service.refresh(ACCOUNT)

        assert snapshots.fetch_snapshot.await_count == 2
        assert result.reconciliation.total_current_usd == d("1510")

    @pytest.mark.asyncio
    async def test_still_stale_warns_and_computes(
        self, service, sources, sample_snapshot, caplog
    ) -> None:
        _, snapshots, _ = sources
        stale = dataclasses.replace(sample_snapshot, as_of=ts(1))
        snapshots.fetch_snapshot.side_effect = [stale, stale]

        with caplog.at_level(logging.WARNING):
            result = await service.refresh(ACCOUNT)

        assert snapshots.fetch_snapshot.await_count == 2
        assert "still" in caplog.text
        assert result.total_deposited_usd == d("1300")

    @pytest.mark.asyncio
    async def test_within_tolerance_is_not_refetched(
        self, service, sources, sample_events
    ) -> None:
        _, snapshots, _ = sources
        newest = max(e.ledger_closed_at for e in sample_events)
        snapshots.fetch_snapshot.return_value = LivePositionSnapshot(as_of=newest)

        await service.refresh(ACCOUNT)

        assert snapshots.fetch_snapshot.await_count == 1


class TestReport:
    @pytest.mark.asyncio
    async def test_report_per_account(self, service) -> None:
        reports = await service.report()
        assert len(reports) == 1
        assert "main" in reports[0]
        assert "Total P&L: $210.00" in reports[0]

    @pytest.mark.asyncio
    async def test_failing_account_is_skipped(
        self, sample_app_config, sources, sample_events
    ) -> None:
        events, snapshots, prices = sources
        config = dataclasses.replace(
            sample_app_config,
            accounts=(
                AccountConfig(label="broken", address="GBROKEN"),
                AccountConfig(label="main", address=ACCOUNT),
            ),
        )

        async def fetch_events(account: str):
            if account == "GBROKEN":
                raise RuntimeError("All API endpoints failed")
            return sample_events

        events.fetch_events.side_effect = fetch_events
        service = PerformanceService(config, events=events, snapshots=snapshots, prices=prices)

        results = await service.refresh_all()
        assert list(results) == [ACCOUNT]


class TestRunContinuous:
    @pytest.mark.asyncio
    async def test_refreshes_then_sleeps(self, service, sources) -> None:
        events, _, _ = sources
        sleep = AsyncMock(side_effect=asyncio.CancelledError)

        with patch("blend_pnl.services.performance.asyncio.sleep", sleep):
            with pytest.raises(asyncio.CancelledError):
                await service.run_continuous(2)

        events.fetch_events.assert_awaited_once_with(ACCOUNT)
        sleep.assert_awaited_once_with(120)
