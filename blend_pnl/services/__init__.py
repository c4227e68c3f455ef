"""Service modules."""
from .performance import EngineNotReadyError, PerformanceService
from .report import build_report

__all__ = ["EngineNotReadyError", "PerformanceService", "build_report"]
