"""Cellar materialization, receipts, linking, relocation, discovery and install state."""

__version__ = "0.1.0"