"""Quote: A single price observation.

Every source produces Quotes, and the aggregated price published by the
oracle is a Quote as well, tagged with the ``"aggregated"`` source name.

.. code-block:: python

    >>> quote = Quote(value=145.2, source="binance")
    >>> quote.value
    145.2
    >>> Quote(value=0.0, source="binance")
    Traceback (most recent call last):
        ...
    ValueError: Quote value must be positive, got 0.0
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone

# Source name used for the published aggregate.
AGGREGATED_SOURCE = "aggregated"


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Quote:
    """An immutable price observation.

    :ivar value: Price of the base asset in the quote currency (always > 0).
    :ivar source: Name of the source that produced the quote.
    :ivar timestamp: Observation time (UTC).
    :ivar confidence: Optional confidence interval reported by the source.
    """

    value: float
    source: str
    timestamp: datetime = field(default_factory=utc_now)
    confidence: float | None = None

    def __post_init__(self) -> None:
        """Reject non-positive and non-finite values."""
        if not math.isfinite(self.value) or self.value <= 0:
            raise ValueError(f"Quote value must be positive, got {self.value}")

    @property
    def is_aggregate(self) -> bool:
        """Check if this quote is a published aggregate."""
        return self.source == AGGREGATED_SOURCE
