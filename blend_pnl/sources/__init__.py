"""Data sources for the P&L engine."""
from .blend_api import BlendApiClient

__all__ = ["BlendApiClient"]
