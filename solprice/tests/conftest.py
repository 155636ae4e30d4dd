"""Shared test fixtures: scripted sources, oracle factory, mocked HTTP."""

import asyncio
from collections.abc import Sequence

import httpx
import pytest

from solprice.src.PriceAggregator import PriceAggregator
from solprice.src.PriceCache import PriceCache
from solprice.src.PriceConfig import SourceConfig
from solprice.src.PriceOracle import PriceOracle
from solprice.src.Quote import Quote
from solprice.src.SourceRunner import SourceRunner
from solprice.src.sources import BaseSource


class StubSource(BaseSource):
    """Source replaying scripted outcomes.

    Each call consumes the next outcome (a price, a Quote or an exception
    to raise); the last outcome repeats once the script is exhausted.
    ``delays`` works the same way and sets how long each call takes.
    """

    def __init__(
        self,
        name: str,
        outcomes: Sequence = (100.0,),
        delays: Sequence[float] = (0.0,),
    ) -> None:
        super().__init__()
        self.name = name
        self.outcomes = list(outcomes)
        self.delays = list(delays)
        self.calls = 0

    async def fetch_quote(self) -> Quote:
        index = self.calls
        self.calls += 1

        delay = self.delays[min(index, len(self.delays) - 1)]
        if delay:
            await asyncio.sleep(delay)

        outcome = self.outcomes[min(index, len(self.outcomes) - 1)]
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, Quote):
            return outcome
        return Quote(value=outcome, source=self.name)


class RecordingStore:
    """PriceStore keeping every batch it receives."""

    def __init__(self) -> None:
        self.batches: list[list[Quote]] = []

    async def save_quotes(self, quotes: Sequence[Quote]) -> None:
        self.batches.append(list(quotes))


def fast_config(priority: int = 1, **overrides) -> SourceConfig:
    """SourceConfig with no retries and no backoff."""
    params = {"priority": priority, "timeout": 1.0, "retry_count": 0, "retry_delay": 0.0}
    params.update(overrides)
    return SourceConfig(**params)


@pytest.fixture
def make_source():
    """Factory for StubSource instances."""
    return StubSource


@pytest.fixture
def make_oracle():
    """Factory building a PriceOracle around stub sources."""

    def _make_oracle(
        sources: Sequence[BaseSource],
        *,
        min_sources: int = 1,
        outlier_threshold: float = 0.05,
        cache_time: float = 60.0,
        store=None,
        **source_config,
    ) -> PriceOracle:
        runners = [
            SourceRunner(source, fast_config(priority=i + 1, **source_config))
            for i, source in enumerate(sources)
        ]
        return PriceOracle(
            runners=runners,
            cache=PriceCache(cache_time),
            aggregator=PriceAggregator(
                min_sources=min_sources, outlier_threshold=outlier_threshold
            ),
            store=store,
        )

    return _make_oracle


@pytest.fixture
def recording_store():
    return RecordingStore()


@pytest.fixture
async def mock_http():
    """Install an httpx.MockTransport handler as the shared source client."""

    def install(handler) -> None:
        BaseSource.set_shared_client(
            httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )

    yield install
    await BaseSource.close_shared_client()
