"""PriceAggregator: Median aggregation with outlier rejection and quorum.

Algorithm:
    1. Calculate the lower median across all quotes
    2. Exclude outliers (relative deviation from the median > outlier_threshold)
    3. Fail if fewer than min_sources quotes remain
    4. Price = lower median of the survivors
    5. Confidence = mean confidence of the survivors that report one

.. code-block:: python

    >>> aggregator = PriceAggregator(min_sources=2, outlier_threshold=0.05)
    >>> result = aggregator.aggregate([
    ...     Quote(100.0, "hermes"), Quote(100.5, "binance"), Quote(200.0, "rogue"),
    ... ])
    >>> result.success
    True
    >>> result.price
    100.0
    >>> result.metadata["dropped"]
    {'rogue': 200.0}
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from statistics import fmean, median_low
from typing import TypedDict

from .Quote import Quote


class AggregationError(TypedDict, total=False):
    """Error information when aggregation fails.

    :ivar error: Error type identifier.
    :ivar available: Number of quotes received.
    :ivar required: Minimum number of surviving quotes required.
    :ivar dropped: Dict of sources dropped as outliers.
    """

    error: str
    available: int
    required: int
    dropped: dict[str, float]


class AggregationMetadata(TypedDict, total=False):
    """Metadata about a successful aggregation.

    :ivar sources: List of sources used in final calculation.
    :ivar dropped: Dict of sources dropped as outliers.
    :ivar count: Number of sources used.
    :ivar initial_median: Lower median before outlier filtering.
    """

    sources: list[str]
    dropped: dict[str, float]
    count: int
    initial_median: float


@dataclass
class AggregationResult:
    """Result of price aggregation.

    :ivar price: Aggregated price, or None if aggregation failed.
    :ivar confidence: Mean confidence of the accepted quotes, if any reported one.
    :ivar accepted: Quotes that survived outlier rejection.
    :ivar metadata: Additional information about the aggregation.
    """

    price: float | None
    metadata: AggregationMetadata | AggregationError
    confidence: float | None = None
    accepted: list[Quote] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Check if aggregation was successful."""
        return self.price is not None

    @property
    def error(self) -> str | None:
        """Get error type if aggregation failed."""
        if self.price is None:
            return self.metadata.get("error")
        return None


def relative_deviation(value: float, reference: float) -> float:
    """Absolute deviation of ``value`` from ``reference`` as a fraction."""
    return abs(value - reference) / reference


class PriceAggregator:
    """Aggregates quotes from multiple sources with outlier rejection.

    :ivar min_sources: Minimum surviving quotes required for a valid price.
    :ivar outlier_threshold: Max allowed relative deviation from the median.

    .. code-block:: python

        >>> agg = PriceAggregator(min_sources=1, outlier_threshold=0.05)
        >>> agg.aggregate([Quote(100.0, "a"), Quote(101.0, "b"), Quote(150.0, "c")]).price
        100.0
    """

    def __init__(self, min_sources: int = 1, outlier_threshold: float = 0.05) -> None:
        """Initialize the aggregator.

        :param min_sources: Minimum number of surviving quotes required.
        :param outlier_threshold: Maximum relative deviation from the median
            before a quote is considered an outlier (0.05 = 5%).
        :raises ValueError: If parameters are invalid.
        """
        if min_sources < 1:
            raise ValueError("min_sources must be at least 1")
        if outlier_threshold <= 0:
            raise ValueError("outlier_threshold must be positive")

        self.min_sources = min_sources
        self.outlier_threshold = outlier_threshold

    def aggregate(self, quotes: Sequence[Quote]) -> AggregationResult:
        """Aggregate quotes into a single median price.

        :param quotes: Successfully fetched quotes of this cycle.
        :returns: AggregationResult with price and metadata, or None price with error info.
        """
        if len(quotes) < self.min_sources:
            return AggregationResult(
                price=None,
                metadata={
                    "error": "insufficient_sources",
                    "available": len(quotes),
                    "required": self.min_sources,
                },
            )

        # Step 1: Lower median of all quotes (even counts resolve downwards)
        initial_median = median_low(q.value for q in quotes)

        # Step 2: Filter outliers
        accepted: list[Quote] = []
        dropped: dict[str, float] = {}
        for quote in quotes:
            if relative_deviation(quote.value, initial_median) > self.outlier_threshold:
                dropped[quote.source] = quote.value
            else:
                accepted.append(quote)

        # Step 3: Quorum
        if len(accepted) < self.min_sources:
            return AggregationResult(
                price=None,
                metadata={
                    "error": "too_many_outliers",
                    "available": len(quotes),
                    "required": self.min_sources,
                    "dropped": dropped,
                },
            )

        # Step 4: Lower median of the survivors
        final_median = median_low(q.value for q in accepted)

        # Step 5: Mean confidence of the survivors that report one
        confidences = [q.confidence for q in accepted if q.confidence is not None]
        confidence = fmean(confidences) if confidences else None

        return AggregationResult(
            price=final_median,
            confidence=confidence,
            accepted=accepted,
            metadata={
                "sources": [q.source for q in accepted],
                "dropped": dropped,
                "count": len(accepted),
                "initial_median": initial_median,
            },
        )
