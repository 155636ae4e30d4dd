"""
SOL/USD Price Oracle - Multi-Source Aggregation Module

This module maintains one reference SOL/USD price from several quote feeds:
- Quote: Immutable price observation
- SourceRunner: Timeout, retry with backoff and health per source
- PriceCache: Time-boxed cache with lazy expiry
- PriceAggregator: Median calculation with outlier rejection and quorum
- PriceOracle: Single-flight aggregation cycles, cache, persistence, subscribers
- PriceScheduler: Fixed-interval driver with tick skipping
- PriceService: Facade used by consumers
- sources: Modular price source implementations
"""

from .PriceAggregator import AggregationResult, PriceAggregator
from .PriceCache import AGGREGATE_KEY, PriceCache
from .PriceConfig import AggregatorConfig, SourceConfig, load_config
from .PriceObservers import PriceObservers, Subscription
from .PriceOracle import NoQuorumError, PriceOracle, SourceStatusReport
from .PriceScheduler import PriceScheduler
from .PriceService import HealthReport, PriceService
from .PriceStore import NullPriceStore, PersistError, PriceStore, SqlPriceStore
from .Quote import AGGREGATED_SOURCE, Quote
from .SourceRunner import SourceHealth, SourceRunner
from .sources import FetchError

__all__ = [
    "AGGREGATED_SOURCE",
    "AGGREGATE_KEY",
    "AggregationResult",
    "AggregatorConfig",
    "FetchError",
    "HealthReport",
    "NoQuorumError",
    "NullPriceStore",
    "PersistError",
    "PriceAggregator",
    "PriceCache",
    "PriceObservers",
    "PriceOracle",
    "PriceScheduler",
    "PriceService",
    "PriceStore",
    "Quote",
    "SourceConfig",
    "SourceHealth",
    "SourceRunner",
    "SourceStatusReport",
    "SqlPriceStore",
    "Subscription",
    "load_config",
]
