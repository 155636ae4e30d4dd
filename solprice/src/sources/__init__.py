"""
Price sources for the SOL/USD oracle.

This module provides a unified interface for fetching SOL/USD quotes
from exchanges, oracle networks and DEX aggregators.

Usage:
    from solprice.src.sources import get_source, get_available_sources

    # Get list of available sources
    available = get_available_sources()
    # ['binance', 'hermes', 'jupiter', 'mock']

    # Create a source instance and fetch one quote
    source = get_source("hermes", timeout=5.0)
    quote = await source.fetch_quote()
"""

# Import base classes and utilities
from .base import (
    SOURCE_REGISTRY,
    BaseSource,
    FetchError,
    FetchHTTPError,
    FetchTimeoutError,
    get_available_sources,
    get_source,
    register_source,
)

# Import all source implementations to trigger registration
from .binance import BinanceSource
from .hermes import HermesSource
from .jupiter import JupiterSource
from .mock import MockSource

__all__ = [
    # Base classes
    "BaseSource",
    "FetchError",
    "FetchHTTPError",
    "FetchTimeoutError",
    # Registry functions
    "register_source",
    "get_source",
    "get_available_sources",
    "SOURCE_REGISTRY",
    # Source implementations
    "BinanceSource",
    "HermesSource",
    "JupiterSource",
    "MockSource",
]
