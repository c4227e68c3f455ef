"""Snapshot protocol — current balances and prices for an account."""
from typing import Protocol

from ..models import LivePositionSnapshot


class SnapshotSource(Protocol):
    """Abstract interface for fetching a live position snapshot."""

    async def fetch_snapshot(self, account: str) -> LivePositionSnapshot: ...
