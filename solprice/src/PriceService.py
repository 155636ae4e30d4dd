"""PriceService: The read/subscribe facade used by the rest of the platform.

Build one service at the composition root and pass it to its consumers:

.. code-block:: python

    service = PriceService.from_config(load_config(), store=store)
    await service.start()
    sol_usd = await service.get_price()
    subscription = service.subscribe(lambda quote: print(quote.value))
    ...
    service.unsubscribe(subscription)
    await service.aclose()
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from .PriceAggregator import PriceAggregator
from .PriceCache import PriceCache
from .PriceConfig import AggregatorConfig
from .PriceObservers import PriceCallback, Subscription
from .PriceOracle import PriceOracle, SourceStatusReport
from .PriceScheduler import PriceScheduler
from .PriceStore import PriceStore
from .Quote import Quote
from .SourceRunner import SourceRunner
from .sources import BaseSource, get_available_sources, get_source

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HealthReport:
    """Service health summary.

    :ivar sources: Per-source health in priority order.
    :ivar cache_size: Number of cache entries.
    :ivar is_running: Whether scheduled updates are active.
    """

    sources: list[SourceStatusReport] = field(default_factory=list)
    cache_size: int = 0
    is_running: bool = False

    def to_dict(self) -> dict:
        return {
            "sources": [s.to_dict() for s in self.sources],
            "cache_size": self.cache_size,
            "is_running": self.is_running,
        }


class PriceService:
    """Facade over a PriceOracle and its scheduler.

    :ivar oracle: The aggregation engine.
    :ivar scheduler: Periodic driver of the oracle.
    """

    def __init__(self, oracle: PriceOracle, scheduler: PriceScheduler) -> None:
        self.oracle = oracle
        self.scheduler = scheduler

    @classmethod
    def from_config(
        cls,
        config: AggregatorConfig,
        store: PriceStore | None = None,
        sources: Mapping[str, BaseSource] | None = None,
    ) -> PriceService:
        """Wire sources, runners, cache, oracle and scheduler.

        :param config: Aggregator configuration.
        :param store: Persistence collaborator (default: discard writes).
        :param sources: Pre-built source instances by name, overriding the registry.
        :returns: The service, not yet started.
        :raises ValueError: If a configured source is unknown.
        """
        sources = sources or {}

        unknown = [
            name for name in config.sources
            if name not in sources and name not in get_available_sources()
        ]
        if unknown:
            raise ValueError(
                f"Unknown sources: {unknown}. Available: {get_available_sources()}"
            )

        runners = []
        for name, source_config in config.ordered_sources():
            source = sources.get(name) or get_source(name, timeout=source_config.timeout)
            runners.append(SourceRunner(source, source_config))

        oracle = PriceOracle(
            runners=runners,
            cache=PriceCache(config.cache_time),
            aggregator=PriceAggregator(
                min_sources=config.min_sources,
                outlier_threshold=config.outlier_threshold,
            ),
            store=store,
        )
        return cls(oracle, PriceScheduler(oracle, config.update_interval))

    async def get_price(self) -> float:
        """Get the current SOL/USD price.

        :returns: Aggregated price.
        :raises NoQuorumError: If no quorum was reached and nothing valid is cached.
        """
        quote = await self.oracle.get_current_price()
        return quote.value

    async def get_price_with_details(self) -> Quote:
        """Get the current aggregated quote with timestamp and confidence.

        :raises NoQuorumError: If no quorum was reached and nothing valid is cached.
        """
        return await self.oracle.get_current_price()

    async def start(self) -> None:
        """Start scheduled price updates."""
        await self.scheduler.start()

    def stop(self) -> None:
        """Stop scheduled price updates."""
        self.scheduler.stop()

    async def aclose(self) -> None:
        """Stop updates and release the shared HTTP client."""
        self.stop()
        await BaseSource.close_shared_client()

    def subscribe(self, callback: PriceCallback) -> Subscription:
        """Register a listener for every published aggregate.

        :param callback: Called with each aggregated quote.
        :returns: Handle for unsubscribe().
        """
        return self.oracle.subscribe(callback)

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a listener registration.

        :param subscription: Handle returned by subscribe().
        """
        if not self.oracle.unsubscribe(subscription):
            logger.debug(f"Subscription #{subscription.id} was not registered")

    def get_health(self) -> HealthReport:
        """Get the health of sources, cache and scheduler."""
        return HealthReport(
            sources=self.oracle.get_health_status(),
            cache_size=self.oracle.cache.size(),
            is_running=self.scheduler.is_running,
        )
