"""Blend P&L engine — lending, backstop and borrow performance for Stellar accounts."""

__version__ = "0.1.0"
