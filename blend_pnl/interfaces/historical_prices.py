"""Historical price protocol — daily USD prices per asset."""
from datetime import date
from decimal import Decimal
from typing import Protocol


class HistoricalPriceSource(Protocol):
    """Abstract interface for fetching daily prices.

    Returns ``asset_address -> date -> price``; days without a price are
    simply absent.
    """

    async def fetch_prices(
        self, assets: list[str], start: date, end: date
    ) -> dict[str, dict[date, Decimal]]: ...
