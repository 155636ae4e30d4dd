"""PriceConfig: Source and aggregator configuration.

Durations are in seconds. Environment overrides apply only to the update
interval and the cache time and are given in milliseconds:

    SOL_PRICE_UPDATE_INTERVAL=5000 SOL_PRICE_CACHE_TIME=4000

.. code-block:: python

    >>> config = load_config({"SOL_PRICE_CACHE_TIME": "3000"})
    >>> config.cache_time
    3.0
    >>> sorted(config.sources)
    ['binance', 'hermes']
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace

logger = logging.getLogger(__name__)

ENV_UPDATE_INTERVAL = "SOL_PRICE_UPDATE_INTERVAL"
ENV_CACHE_TIME = "SOL_PRICE_CACHE_TIME"


@dataclass(frozen=True)
class SourceConfig:
    """Fetch policy for a single source.

    :ivar priority: Ordering hint (lower first); never weights the price.
    :ivar timeout: Time budget per attempt in seconds.
    :ivar retry_count: Retries after the first attempt.
    :ivar retry_delay: Base backoff delay in seconds, doubled per attempt.
    """

    priority: int = 1
    timeout: float = 5.0
    retry_count: int = 2
    retry_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.retry_count < 0:
            raise ValueError("retry_count must not be negative")
        if self.retry_delay < 0:
            raise ValueError("retry_delay must not be negative")


def _default_sources() -> dict[str, SourceConfig]:
    return {
        "hermes": SourceConfig(priority=1, timeout=5.0, retry_count=3, retry_delay=1.0),
        "binance": SourceConfig(priority=2, timeout=10.0, retry_count=2, retry_delay=2.0),
    }


@dataclass(frozen=True)
class AggregatorConfig:
    """Configuration of the aggregation engine.

    :ivar sources: Mapping of source name to its fetch policy.
    :ivar update_interval: Seconds between scheduled cycles.
    :ivar cache_time: Seconds an aggregated quote stays fresh.
    :ivar outlier_threshold: Max relative deviation from the median (0.05 = 5%).
    :ivar min_sources: Minimum surviving quotes required to publish.
    """

    sources: dict[str, SourceConfig] = field(default_factory=_default_sources)
    update_interval: float = 2.0
    cache_time: float = 1.5
    outlier_threshold: float = 0.05
    min_sources: int = 1

    def __post_init__(self) -> None:
        if not self.sources:
            raise ValueError("At least one source must be configured")
        if self.update_interval <= 0:
            raise ValueError("update_interval must be positive")
        if self.cache_time <= 0:
            raise ValueError("cache_time must be positive")
        if self.outlier_threshold <= 0:
            raise ValueError("outlier_threshold must be positive")
        if self.min_sources < 1:
            raise ValueError("min_sources must be at least 1")

    def ordered_sources(self) -> list[tuple[str, SourceConfig]]:
        """Return sources sorted by priority, then name."""
        return sorted(self.sources.items(), key=lambda item: (item[1].priority, item[0]))


def _millis_from_env(environ: Mapping[str, str], key: str) -> float | None:
    raw = environ.get(key)
    if not raw:
        return None
    try:
        return int(raw) / 1000.0
    except ValueError as e:
        raise ValueError(f"{key} must be an integer number of milliseconds, got {raw!r}") from e


def load_config(
    environ: Mapping[str, str] | None = None,
    base: AggregatorConfig | None = None,
) -> AggregatorConfig:
    """Build the configuration, applying environment overrides.

    :param environ: Environment mapping (default: os.environ).
    :param base: Configuration to override (default: built-in defaults).
    :returns: The effective configuration.
    :raises ValueError: If an override is not an integer or is invalid.
    """
    environ = os.environ if environ is None else environ
    config = base or AggregatorConfig()

    overrides: dict[str, float] = {}
    update_interval = _millis_from_env(environ, ENV_UPDATE_INTERVAL)
    if update_interval is not None:
        overrides["update_interval"] = update_interval
    cache_time = _millis_from_env(environ, ENV_CACHE_TIME)
    if cache_time is not None:
        overrides["cache_time"] = cache_time

    if overrides:
        logger.debug(f"Configuration overrides from environment: {overrides}")
        config = replace(config, **overrides)
    return config
