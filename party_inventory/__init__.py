"""Shared party inventory: item ownership ledger and document persistence."""

__version__ = "0.1.0"
