"""Performance orchestration — fetches inputs per account and recomputes P&L."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal

from ..config import AccountConfig, AppConfig
from ..engine import PnlCache
from ..interfaces import EventLogSource, HistoricalPriceSource, SnapshotSource
from ..models import LivePositionSnapshot, PnlResult, RawEvent, ValuationMode
from ..sources import BlendApiClient
from .report import build_report

logger = logging.getLogger(__name__)


class EngineNotReadyError(RuntimeError):
    """Raised when P&L is requested before both events and snapshot have loaded."""


@dataclass
class _AccountInputs:
    events: list[RawEvent] | None = None
    snapshot: LivePositionSnapshot | None = None
    historical_prices: dict[str, dict[date, Decimal]] = field(default_factory=dict)
    cache: PnlCache = field(default_factory=PnlCache)

    @property
    def ready(self) -> bool:
        return self.events is not None and self.snapshot is not None


class PerformanceService:
    """Keeps the latest inputs for each account and derives P&L from them."""

    def __init__(
        self,
        config: AppConfig,
        events: EventLogSource | None = None,
        snapshots: SnapshotSource | None = None,
        prices: HistoricalPriceSource | None = None,
        mode: ValuationMode = ValuationMode.HISTORICAL,
    ) -> None:
        self._config = config
        self._mode = mode

        client: BlendApiClient | None = None
        if events is None or snapshots is None or prices is None:
            client = BlendApiClient(config.api)
        self._events: EventLogSource = events or client
        self._snapshots: SnapshotSource = snapshots or client
        self._prices: HistoricalPriceSource = prices or client

        self._inputs: dict[str, _AccountInputs] = {}

    def _state(self, account: str) -> _AccountInputs:
        return self._inputs.setdefault(account, _AccountInputs())

    # ------------------------------------------------------------------
    # Input updates
    # ------------------------------------------------------------------

    def update_events(self, account: str, events: list[RawEvent]) -> None:
        self._state(account).events = list(events)

    def update_snapshot(self, account: str, snapshot: LivePositionSnapshot) -> None:
        self._state(account).snapshot = snapshot

    def update_historical_prices(
        self, account: str, prices: dict[str, dict[date, Decimal]]
    ) -> None:
        self._state(account).historical_prices = prices

    def is_ready(self, account: str) -> bool:
        state = self._inputs.get(account)
        return state is not None and state.ready

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def _snapshot_lag(
        self, events: list[RawEvent], snapshot: LivePositionSnapshot
    ) -> timedelta | None:
        """How far the newest event is ahead of the snapshot, if beyond tolerance."""
        if not events or snapshot.as_of is None:
            return None
        newest = max(e.ledger_closed_at for e in events)
        lag = newest - snapshot.as_of
        tolerance = timedelta(seconds=self._config.refresh.snapshot_max_lag_seconds)
        return lag if lag > tolerance else None

    def _price_assets(self, events: list[RawEvent]) -> list[str]:
        tokens = self._config.tokens
        assets = {e.asset_address for e in events if e.asset_address}
        assets.update((tokens.blnd_address, tokens.lp_address))
        return sorted(assets)

    async def _load_historical_prices(
        self, events: list[RawEvent]
    ) -> dict[str, dict[date, Decimal]]:
        if not events:
            return {}
        start = min(e.ledger_closed_at for e in events).date()
        end = max(e.ledger_closed_at for e in events).date()
        try:
            return await self._prices.fetch_prices(self._price_assets(events), start, end)
        except Exception as e:
            logger.warning("Historical prices unavailable, valuing at live prices: %s", e)
            return {}

    async def load(self, account: str) -> None:
        """Fetch events and snapshot concurrently, then the price history they need."""
        events, snapshot = await asyncio.gather(
            self._events.fetch_events(account),
            self._snapshots.fetch_snapshot(account),
        )

        if self._snapshot_lag(events, snapshot) is not None:
            logger.info("Snapshot for %s is behind the event log; refetching", account)
            snapshot = await self._snapshots.fetch_snapshot(account)
            lag = self._snapshot_lag(events, snapshot)
            if lag is not None:
                logger.warning(
                    "Snapshot for %s still %ds behind newest event; computing anyway",
                    account, int(lag.total_seconds()),
                )

        prices = await self._load_historical_prices(events)

        state = self._state(account)
        state.events = events
        state.snapshot = snapshot
        state.historical_prices = prices

    # ------------------------------------------------------------------
    # Computation
    # ------------------------------------------------------------------

    def compute(self, account: str) -> PnlResult:
        """P&L from the inputs already loaded; memoized while they are unchanged."""
        state = self._inputs.get(account)
        if state is None or not state.ready:
            raise EngineNotReadyError(f"Inputs for {account} have not loaded yet")

        result = state.cache.compute(
            state.events,
            state.snapshot,
            self._config.preferences,
            self._config.tokens,
            historical_prices=state.historical_prices,
            mode=self._mode,
        )
        logger.info(
            "%s for %s: %s", result.headline.label, account, result.headline.value
        )
        return result

    async def refresh(self, account: str) -> PnlResult:
        await self.load(account)
        return self.compute(account)

    async def refresh_all(self) -> dict[str, PnlResult]:
        """Refresh every configured account; a failing account is logged and skipped."""
        results: dict[str, PnlResult] = {}
        for account in self._config.accounts:
            try:
                results[account.address] = await self.refresh(account.address)
            except Exception as e:
                logger.error("Failed to refresh %s: %s", account.label or account.address, e)
        return results

    async def report(self) -> list[str]:
        """Refresh all accounts and render a text report for each."""
        results = await self.refresh_all()
        reports: list[str] = []
        for account in self._config.accounts:
            result = results.get(account.address)
            if result is not None:
                reports.append(self._render(account, result))
        return reports

    def _render(self, account: AccountConfig, result: PnlResult) -> str:
        return build_report(
            result,
            account.label or account.address,
            currency=self._config.tokens.display_currency,
        )

    async def run_continuous(self, interval_minutes: int | None = None) -> None:
        """Refresh all accounts on a fixed interval."""
        interval = interval_minutes or self._config.refresh.interval_minutes
        logger.info("Starting P&L refresh loop (every %d minutes)", interval)

        while True:
            try:
                for text in await self.report():
                    logger.info("\n%s", text)
                await asyncio.sleep(interval * 60)
            except Exception as e:
                logger.error("Error in refresh loop: %s", e)
                await asyncio.sleep(60)
