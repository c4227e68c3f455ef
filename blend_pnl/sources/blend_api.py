"""Blend data API client with endpoint fallback support."""
from __future__ import annotations

import logging
import ssl
from datetime import date
from decimal import Decimal
from typing import Any

import aiohttp
import certifi

from ..config import ApiConfig
from ..models import LivePositionSnapshot, RawEvent
from . import parser

logger = logging.getLogger(__name__)


class BlendApiClient:
    """HTTP client for the event log, wallet snapshot and price history endpoints.

    Implements the ``EventLogSource``, ``SnapshotSource`` and
    ``HistoricalPriceSource`` protocols.
    """

    def __init__(self, config: ApiConfig) -> None:
        self.endpoints = [e.rstrip("/") for e in config.endpoints]
        self.timeout = config.timeout
        self.page_size = config.page_size
        self.current_endpoint_index = 0

    async def get_json(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        """GET ``path`` with fallback to alternative endpoints."""
        ssl_context = ssl.create_default_context(cafile=certifi.where())

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            index = (self.current_endpoint_index + attempt) % len(self.endpoints)
            url = f"{self.endpoints[index]}/{path}"

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.get(
                        url,
                        params=params,
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ) as response:
                        if response.status != 200:
                            raise RuntimeError(f"HTTP {response.status} from {url}")
                        result = await response.json()
                        if isinstance(result, dict) and "error" in result:
                            raise RuntimeError(f"API Error: {result['error']}")

                        if index != self.current_endpoint_index:
                            logger.info("Switched to API endpoint: %s", self.endpoints[index])
                            self.current_endpoint_index = index

                        return result
            except Exception as e:
                last_error = e
                logger.warning("API endpoint %s failed: %s", url, e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")
                continue

        raise RuntimeError(f"All API endpoints failed. Last error: {last_error}")

    async def fetch_events(self, account: str) -> list[RawEvent]:
        """Fetch the account's full action history (paginated by offset)."""
        rows: list[dict[str, Any]] = []
        offset = 0

        while True:
            result = await self.get_json(
                "user-actions",
                {"user": account, "limit": self.page_size, "offset": offset},
            )
            page = result.get("actions", [])
            rows.extend(page)

            if len(page) < self.page_size:
                break
            offset += len(page)

        events = parser.parse_events(rows)
        logger.info("Fetched %d events for %s", len(events), account)
        return events

    async def fetch_snapshot(self, account: str) -> LivePositionSnapshot:
        """Fetch current balances and prices."""
        result = await self.get_json("blend-snapshot", {"user": account})
        snapshot = parser.parse_snapshot(result)
        logger.debug(
            "Snapshot for %s: %d positions, %d backstop positions",
            account, len(snapshot.positions), len(snapshot.backstop_positions),
        )
        return snapshot

    async def fetch_prices(
        self, assets: list[str], start: date, end: date
    ) -> dict[str, dict[date, Decimal]]:
        """Fetch daily USD prices for ``assets`` between ``start`` and ``end``."""
        if not assets:
            return {}
        result = await self.get_json(
            "historical-prices",
            {
                "assets": ",".join(sorted(assets)),
                "start": start.isoformat(),
                "end": end.isoformat(),
            },
        )
        return parser.parse_historical_prices(result)
