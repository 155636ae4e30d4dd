"""Unit tests for Quote."""

import dataclasses
import math
from datetime import timezone

import pytest

from solprice.src.Quote import AGGREGATED_SOURCE, Quote


class TestQuote:
    """Test Quote construction and invariants."""

    def test_defaults(self) -> None:
        """Timestamp defaults to now (UTC), confidence to None."""
        quote = Quote(value=145.2, source="binance")
        assert quote.timestamp.tzinfo == timezone.utc
        assert quote.confidence is None
        assert not quote.is_aggregate

    def test_aggregate_flag(self) -> None:
        """Quotes from the aggregated source are aggregates."""
        assert Quote(value=1.0, source=AGGREGATED_SOURCE).is_aggregate

    @pytest.mark.parametrize("value", [0.0, -1.0, math.nan, math.inf])
    def test_rejects_invalid_values(self, value: float) -> None:
        """Non-positive and non-finite values should raise ValueError."""
        with pytest.raises(ValueError, match="must be positive"):
            Quote(value=value, source="x")

    def test_immutable(self) -> None:
        """Quotes cannot be modified after creation."""
        quote = Quote(value=1.0, source="x")
        with pytest.raises(dataclasses.FrozenInstanceError):
            quote.value = 2.0  # type: ignore[misc]
