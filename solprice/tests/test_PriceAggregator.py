"""Unit tests for PriceAggregator."""

from statistics import median_low

import pytest

from solprice.src.PriceAggregator import (
    AggregationResult,
    PriceAggregator,
    relative_deviation,
)
from solprice.src.Quote import Quote


def quotes(**prices: float) -> list[Quote]:
    return [Quote(value=v, source=s) for s, v in prices.items()]


class TestPriceAggregatorInit:
    """Test PriceAggregator initialization."""

    def test_default_values(self) -> None:
        """Default values should be reasonable."""
        agg = PriceAggregator()
        assert agg.min_sources == 1
        assert agg.outlier_threshold == 0.05

    def test_custom_values(self) -> None:
        """Custom values should be stored."""
        agg = PriceAggregator(min_sources=3, outlier_threshold=0.1)
        assert agg.min_sources == 3
        assert agg.outlier_threshold == 0.1

    def test_invalid_min_sources(self) -> None:
        """min_sources < 1 should raise ValueError."""
        with pytest.raises(ValueError, match="min_sources must be at least 1"):
            PriceAggregator(min_sources=0)

    def test_invalid_outlier_threshold(self) -> None:
        """outlier_threshold <= 0 should raise ValueError."""
        with pytest.raises(ValueError, match="outlier_threshold must be positive"):
            PriceAggregator(outlier_threshold=0)

        with pytest.raises(ValueError, match="outlier_threshold must be positive"):
            PriceAggregator(outlier_threshold=-0.01)


class TestPriceAggregatorBasicAggregation:
    """Test basic aggregation scenarios."""

    def test_simple_median_odd(self) -> None:
        """Median of odd number of values."""
        agg = PriceAggregator(min_sources=2)
        result = agg.aggregate(quotes(a=100.0, b=101.0, c=102.0))

        assert result.success
        assert result.price == 101.0
        assert result.metadata["count"] == 3

    def test_even_count_uses_lower_middle(self) -> None:
        """Even counts resolve to the lower of the two middle values."""
        agg = PriceAggregator(min_sources=2)
        result = agg.aggregate(quotes(a=100.0, b=101.0, c=102.0, d=103.0))

        assert result.success
        assert result.price == 101.0

    def test_close_sources_both_counted(self) -> None:
        """100.00 and 100.02 agree within 5%; both are used."""
        agg = PriceAggregator(min_sources=1, outlier_threshold=0.05)
        result = agg.aggregate(quotes(hermes=100.00, binance=100.02))

        assert result.success
        assert result.metadata["count"] == 2
        assert result.metadata["dropped"] == {}
        assert result.price == pytest.approx(100.01, rel=1e-3)

    def test_far_source_rejected(self) -> None:
        """150.00 deviates 50% from the lower median 100.00 and is dropped."""
        agg = PriceAggregator(min_sources=1, outlier_threshold=0.05)
        result = agg.aggregate(quotes(hermes=100.0, binance=150.0))

        assert result.success
        assert result.price == 100.0
        assert result.metadata["initial_median"] == 100.0
        assert result.metadata["dropped"] == {"binance": 150.0}
        assert [q.source for q in result.accepted] == ["hermes"]

    def test_outlier_among_three_rejected(self) -> None:
        """A 50% outlier next to two agreeing sources is excluded."""
        agg = PriceAggregator(min_sources=1, outlier_threshold=0.05)
        result = agg.aggregate(quotes(hermes=100.0, jupiter=100.0, binance=150.0))

        assert result.success
        assert result.price == 100.0
        assert result.metadata["dropped"] == {"binance": 150.0}

    def test_single_source(self) -> None:
        """Single source should work with min_sources=1."""
        agg = PriceAggregator(min_sources=1)
        result = agg.aggregate(quotes(a=100.0))

        assert result.success
        assert result.price == 100.0

    def test_sources_list_in_metadata(self) -> None:
        """Metadata should contain list of sources used."""
        agg = PriceAggregator(min_sources=2)
        result = agg.aggregate(quotes(hermes=100.0, binance=101.0))

        assert result.success
        assert set(result.metadata["sources"]) == {"hermes", "binance"}
        assert [q.source for q in result.accepted] == ["hermes", "binance"]


class TestPriceAggregatorConfidence:
    """Test confidence averaging."""

    def test_mean_confidence_of_survivors(self) -> None:
        """Confidence is the mean over accepted quotes that report one."""
        agg = PriceAggregator(min_sources=1)
        result = agg.aggregate([
            Quote(value=100.0, source="a", confidence=0.2),
            Quote(value=100.1, source="b", confidence=0.4),
            Quote(value=100.2, source="c"),
            Quote(value=300.0, source="rogue", confidence=9.0),
        ])

        assert result.success
        assert result.confidence == pytest.approx(0.3)

    def test_no_confidence_reported(self) -> None:
        """Confidence is None when no accepted quote reports one."""
        agg = PriceAggregator(min_sources=1)
        result = agg.aggregate(quotes(a=100.0, b=100.1))

        assert result.confidence is None


class TestPriceAggregatorInsufficientSources:
    """Test insufficient source handling."""

    def test_empty_quotes(self) -> None:
        """No quotes should fail."""
        agg = PriceAggregator(min_sources=1)
        result = agg.aggregate([])

        assert not result.success
        assert result.error == "insufficient_sources"
        assert result.metadata["available"] == 0

    def test_fewer_than_min_sources(self) -> None:
        """Should fail if fewer quotes than min_sources arrived."""
        agg = PriceAggregator(min_sources=2)
        result = agg.aggregate(quotes(a=100.0))

        assert not result.success
        assert result.error == "insufficient_sources"
        assert result.metadata["available"] == 1
        assert result.metadata["required"] == 2


class TestPriceAggregatorOutlierDetection:
    """Test outlier detection functionality."""

    def test_multiple_outliers(self) -> None:
        """Multiple outliers should all be excluded."""
        agg = PriceAggregator(min_sources=2, outlier_threshold=0.05)

        result = agg.aggregate(quotes(a=100.0, b=101.0, c=102.0, rogue1=50.0, rogue2=200.0))

        assert result.success
        assert set(result.metadata["dropped"].keys()) == {"rogue1", "rogue2"}

    def test_too_many_outliers_fails(self) -> None:
        """Should fail if too many outliers leave insufficient sources."""
        agg = PriceAggregator(min_sources=2, outlier_threshold=0.01)

        result = agg.aggregate(quotes(a=100.0, b=150.0))

        assert not result.success
        assert result.error == "too_many_outliers"
        assert result.metadata["dropped"] == {"b": 150.0}

    def test_borderline_deviation(self) -> None:
        """Quote exactly at the threshold should be included."""
        agg = PriceAggregator(min_sources=3, outlier_threshold=0.25)

        # median=100, 125 deviates exactly 25%
        result = agg.aggregate(quotes(a=100.0, b=100.0, c=125.0))

        assert result.success
        assert result.metadata["count"] == 3
        assert len(result.metadata["dropped"]) == 0

    def test_initial_median_in_metadata(self) -> None:
        """Initial median should be in metadata."""
        agg = PriceAggregator(min_sources=2, outlier_threshold=0.05)
        result = agg.aggregate(quotes(a=100.0, b=102.0, rogue=200.0))

        assert result.success
        assert result.metadata["initial_median"] == 102.0

    @pytest.mark.parametrize("threshold", [0.001, 0.01, 0.05, 0.1, 0.5])
    @pytest.mark.parametrize(
        "values",
        [
            [100.0, 100.02],
            [100.0, 150.0],
            [99.0, 100.0, 101.0, 130.0],
            [10.0, 10.5, 11.0, 9.0, 50.0],
            [142.31, 142.35, 142.2, 142.9, 139.0, 145.0],
        ],
    )
    def test_excluded_iff_deviation_exceeds_threshold(
        self, threshold: float, values: list[float]
    ) -> None:
        """A quote is dropped exactly when it deviates more than the threshold."""
        agg = PriceAggregator(min_sources=1, outlier_threshold=threshold)
        batch = [Quote(value=v, source=f"s{i}") for i, v in enumerate(values)]
        result = agg.aggregate(batch)

        reference = median_low(values)
        expected_dropped = {
            q.source for q in batch if relative_deviation(q.value, reference) > threshold
        }
        assert set(result.metadata["dropped"]) == expected_dropped
        if result.success:
            assert {q.source for q in result.accepted} == {
                q.source for q in batch
            } - expected_dropped


class TestAggregationResult:
    """Test AggregationResult properties."""

    def test_success_property(self) -> None:
        """success should be True when price is not None."""
        result = AggregationResult(price=100.0, metadata={"sources": ["a"]})
        assert result.success is True

        result = AggregationResult(price=None, metadata={"error": "test"})
        assert result.success is False

    def test_error_property(self) -> None:
        """error should return error string or None."""
        success_result = AggregationResult(price=100.0, metadata={"sources": ["a"]})
        assert success_result.error is None

        error_result = AggregationResult(
            price=None, metadata={"error": "insufficient_sources"}
        )
        assert error_result.error == "insufficient_sources"
