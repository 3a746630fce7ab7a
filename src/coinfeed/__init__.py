"""Resilient CoinAPI price streaming."""

__version__ = "0.1.0"
