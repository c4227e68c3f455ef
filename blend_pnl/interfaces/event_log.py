"""Event log protocol — per-account history of pool and backstop actions."""
from typing import Protocol

from ..models import RawEvent


class EventLogSource(Protocol):
    """Abstract interface for fetching an account's on-chain actions."""

    async def fetch_events(self, account: str) -> list[RawEvent]: ...
