"""Protocol interfaces for the Blend P&L engine's data sources."""
from .event_log import EventLogSource
from .historical_prices import HistoricalPriceSource
from .snapshot import SnapshotSource

__all__ = ["EventLogSource", "HistoricalPriceSource", "SnapshotSource"]
