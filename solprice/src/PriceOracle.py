"""PriceOracle: Orchestrates aggregation cycles across all sources.

One cycle:
    - Fetches from every SourceRunner concurrently (each under its own policy)
    - Aggregates the successful quotes via median with outlier rejection
    - Fails with NoQuorumError if too few quotes survive (cache untouched)
    - Caches the aggregate and the contributing source quotes
    - Writes them to the PriceStore (best effort)
    - Notifies subscribers in registration order

Cycles never overlap. Any trigger arriving while a cycle is in flight
(timer, run_cycle() or get_current_price()) shares that cycle's outcome.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import asdict, dataclass

from .PriceAggregator import AggregationResult, PriceAggregator
from .PriceCache import AGGREGATE_KEY, PriceCache
from .PriceObservers import PriceCallback, PriceObservers, Subscription
from .PriceStore import NullPriceStore, PersistError, PriceStore
from .Quote import AGGREGATED_SOURCE, Quote, utc_now
from .SourceRunner import SourceRunner

logger = logging.getLogger(__name__)


class NoQuorumError(Exception):
    """Raised when too few quotes survive outlier rejection.

    :ivar result: The failed aggregation, with error type and counts.
    """

    def __init__(self, result: AggregationResult, message: str | None = None) -> None:
        self.result = result
        if message is None:
            message = f"No quorum ({result.error}): {dict(result.metadata)}"
        super().__init__(message)

    @property
    def available(self) -> int:
        """Number of quotes fetched in the failed cycle."""
        return self.result.metadata.get("available", 0)

    @property
    def dropped(self) -> dict[str, float]:
        """Quotes rejected as outliers in the failed cycle."""
        return dict(self.result.metadata.get("dropped", {}))


@dataclass(frozen=True)
class SourceStatusReport:
    """Health of one source as reported to callers.

    :ivar name: Source name.
    :ivar healthy: Whether the source is currently healthy.
    :ivar last_error: Message of the last failed attempt, if any.
    """

    name: str
    healthy: bool
    last_error: str | None

    def to_dict(self) -> dict:
        return asdict(self)


class PriceOracle:
    """Aggregates quotes from several sources into one reference price.

    :ivar runners: Source runners, ordered by priority then name.
    :ivar cache: Cache of the aggregate and the contributing quotes.
    :ivar aggregator: Median/outlier/quorum computation.
    :ivar store: Persistence collaborator.
    """

    def __init__(
        self,
        runners: Sequence[SourceRunner],
        cache: PriceCache,
        aggregator: PriceAggregator,
        store: PriceStore | None = None,
        observers: PriceObservers | None = None,
    ) -> None:
        """Initialize the oracle.

        :param runners: One runner per configured source.
        :param cache: Cache shared with readers.
        :param aggregator: Aggregation rules.
        :param store: Persistence collaborator (default: discard writes).
        :param observers: Subscriber registry (default: a new one).
        :raises ValueError: If no runners are given or names repeat.
        """
        if not runners:
            raise ValueError("At least one source runner is required")
        names = [r.name for r in runners]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate sources: {duplicates}")

        self.runners = sorted(runners, key=lambda r: (r.config.priority, r.name))
        self.cache = cache
        self.aggregator = aggregator
        self.store: PriceStore = store if store is not None else NullPriceStore()
        self.observers = observers if observers is not None else PriceObservers()
        self._cycle_task: asyncio.Task[Quote] | None = None

        logger.info(
            f"PriceOracle initialized: sources={names}, "
            f"min_sources={aggregator.min_sources}, "
            f"outlier_threshold={aggregator.outlier_threshold:.2%}, "
            f"cache_time={cache.cache_time}s"
        )

    @property
    def cycle_in_flight(self) -> bool:
        """Check if an aggregation cycle is currently running."""
        return self._cycle_task is not None and not self._cycle_task.done()

    async def run_cycle(self) -> Quote:
        """Run one aggregation cycle, or join the one already in flight.

        Cancelling the caller does not cancel the shared cycle.

        :returns: The aggregated quote.
        :raises NoQuorumError: If fewer than min_sources quotes survive.
        """
        task = self._cycle_task
        if task is None or task.done():
            task = asyncio.create_task(self._cycle())
            task.add_done_callback(self._on_cycle_done)
            self._cycle_task = task
        else:
            logger.debug("Joining in-flight aggregation cycle")
        return await asyncio.shield(task)

    def _on_cycle_done(self, task: asyncio.Task[Quote]) -> None:
        if self._cycle_task is task:
            self._cycle_task = None
        if not task.cancelled():
            # Retrieve the outcome so an unobserved failure is not reported.
            task.exception()

    async def _cycle(self) -> Quote:
        results = await asyncio.gather(
            *(runner.fetch_with_retry() for runner in self.runners),
            return_exceptions=True,
        )

        quotes: list[Quote] = []
        for runner, result in zip(self.runners, results, strict=True):
            if isinstance(result, BaseException):
                logger.debug(f"[{runner.name}] Skipped this cycle: {result}")
            else:
                quotes.append(result)

        agg_result = self.aggregator.aggregate(quotes)
        if not agg_result.success:
            prices = ", ".join(f"{q.source}=${q.value:.4f}" for q in quotes)
            logger.warning(
                f"Aggregation failed ({agg_result.error}): prices=[{prices}], "
                f"meta={agg_result.metadata}"
            )
            raise NoQuorumError(agg_result)

        assert agg_result.price is not None
        aggregate = Quote(
            value=agg_result.price,
            source=AGGREGATED_SOURCE,
            timestamp=utc_now(),
            confidence=agg_result.confidence,
        )

        self.cache.set(AGGREGATE_KEY, aggregate)
        for quote in agg_result.accepted:
            self.cache.set(quote.source, quote)

        self._log_aggregate(aggregate, agg_result)
        await self._persist([aggregate, *agg_result.accepted])
        self.observers.notify(aggregate)
        return aggregate

    async def _persist(self, quotes: list[Quote]) -> None:
        try:
            await self.store.save_quotes(quotes)
        except PersistError as e:
            logger.warning(f"Failed to persist {len(quotes)} quote(s): {e}")
        except Exception as e:  # Store implementations outside SqlPriceStore
            logger.warning(
                f"Failed to persist {len(quotes)} quote(s): unexpected {type(e).__name__}: {e}"
            )

    def _log_aggregate(self, aggregate: Quote, agg_result: AggregationResult) -> None:
        breakdown = ", ".join(f"{q.source}=${q.value:.4f}" for q in agg_result.accepted)
        log_msg = f"SOL/USD: ${aggregate.value:.4f} (median of [{breakdown}]"
        dropped = agg_result.metadata.get("dropped", {})
        if dropped:
            dropped_strs = [f"{s}=${p:.4f}" for s, p in dropped.items()]
            log_msg += f", dropped: [{', '.join(dropped_strs)}]"
        log_msg += ")"
        logger.info(log_msg)

    async def get_current_price(self) -> Quote:
        """Get the current aggregated quote.

        Serves the cached aggregate while it is fresh; otherwise runs (or
        joins) a cycle. If the cycle fails quorum, a still valid cached
        aggregate is served instead.

        :returns: The aggregated quote.
        :raises NoQuorumError: If the cycle failed and nothing valid is cached.
        """
        cached = self.cache.get(AGGREGATE_KEY)
        if cached is not None:
            logger.debug(f"Cache hit: ${cached.value:.4f}")
            return cached

        try:
            return await self.run_cycle()
        except NoQuorumError as e:
            fallback = self.cache.get(AGGREGATE_KEY)
            if fallback is not None:
                logger.warning(f"Serving cached price after failed cycle: {e}")
                return fallback
            raise NoQuorumError(
                e.result, f"No quorum, no cached fallback: {e}"
            ) from e

    def get_health_status(self) -> list[SourceStatusReport]:
        """Get the health of every source, in priority order.

        :returns: One report per source.
        """
        reports = []
        for runner in self.runners:
            error = runner.get_last_error()
            reports.append(
                SourceStatusReport(
                    name=runner.name,
                    healthy=runner.is_healthy(),
                    last_error=str(error) if error is not None else None,
                )
            )
        return reports

    def subscribe(self, callback: PriceCallback) -> Subscription:
        """Register a listener for every published aggregate.

        :param callback: Called synchronously with each aggregate.
        :returns: Handle for unsubscribe().
        """
        return self.observers.subscribe(callback)

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Remove a listener registration.

        :param subscription: Handle returned by subscribe().
        :returns: True if the registration existed.
        """
        return self.observers.unsubscribe(subscription)
