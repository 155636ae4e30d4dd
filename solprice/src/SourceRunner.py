"""SourceRunner: Timeout, retry with exponential backoff and health tracking.

Each configured source is wrapped in a SourceRunner. A fetch makes up to
``retry_count + 1`` attempts, each bounded by ``timeout``. Between attempts
the runner waits ``retry_delay * 2**attempt`` seconds. Every attempt updates
the runner's SourceHealth; a success resets the failure counter.

A source is healthy when it has fewer than 5 consecutive failures and has
succeeded within the last 5 minutes.

.. code-block:: python

    >>> runner = SourceRunner(get_source("binance"), SourceConfig(retry_count=2))
    >>> quote = await runner.fetch_with_retry()
    >>> runner.is_healthy()
    True
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace

from .PriceConfig import SourceConfig
from .Quote import Quote
from .sources import BaseSource, FetchError, FetchTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class SourceHealth:
    """Tracks the health of a single source.

    :ivar consecutive_failures: Number of consecutive failed attempts.
    :ivar last_success_time: Unix timestamp of the last success, or None.
    :ivar last_error: Error of the last failed attempt, cleared on success.
    :ivar total_failures: Failed attempts since construction.
    :ivar total_successes: Successful attempts since construction.
    """

    consecutive_failures: int = 0
    last_success_time: float | None = None
    last_error: Exception | None = None
    total_failures: int = 0
    total_successes: int = 0


class SourceRunner:
    """Runs a source under its fetch policy and tracks its health.

    :cvar MAX_CONSECUTIVE_FAILURES: Failures at which a source turns unhealthy.
    :cvar HEALTH_WINDOW_SECONDS: Max age of the last success for a healthy source.
    :ivar source: The wrapped source.
    :ivar config: Timeout and retry policy.
    """

    MAX_CONSECUTIVE_FAILURES = 5
    HEALTH_WINDOW_SECONDS = 300  # 5 minutes

    def __init__(self, source: BaseSource, config: SourceConfig) -> None:
        """Initialize the runner.

        :param source: Source to wrap.
        :param config: Fetch policy for the source.
        """
        self.source = source
        self.config = config
        self._health = SourceHealth()

    @property
    def name(self) -> str:
        """Name of the wrapped source."""
        return self.source.name

    @property
    def health(self) -> SourceHealth:
        """Snapshot of the current health state."""
        return replace(self._health)

    async def fetch_with_retry(self) -> Quote:
        """Fetch a quote, retrying with exponential backoff.

        :returns: The first successfully fetched quote.
        :raises FetchError: The last error once all attempts have failed.
        """
        last_error: FetchError | None = None
        attempts = self.config.retry_count + 1

        for attempt in range(attempts):
            try:
                quote = await self._attempt()
            except FetchError as e:
                last_error = e
                self._record_failure(e)
                logger.debug(
                    f"[{self.name}] Attempt {attempt + 1}/{attempts} failed: {e}"
                )
                if attempt < self.config.retry_count:
                    await asyncio.sleep(self.config.retry_delay * (2 ** attempt))
                continue

            self._record_success()
            return quote

        assert last_error is not None
        logger.warning(f"[{self.name}] All {attempts} attempts failed: {last_error}")
        raise last_error

    async def _attempt(self) -> Quote:
        """Make one time-boxed call to the source.

        :returns: The fetched quote.
        :raises FetchError: On timeout, source failure or unexpected error.
        """
        try:
            return await asyncio.wait_for(
                self.source.fetch_quote(), timeout=self.config.timeout
            )
        except asyncio.TimeoutError as e:
            raise FetchTimeoutError("timeout") from e
        except FetchError:
            raise
        except Exception as e:  # Misbehaving source must not abort the cycle
            raise FetchError(f"Unexpected error: {e!r}") from e

    def _record_success(self) -> None:
        health = self._health
        health.consecutive_failures = 0
        health.last_success_time = time.time()
        health.last_error = None
        health.total_successes += 1

    def _record_failure(self, error: Exception) -> None:
        health = self._health
        health.consecutive_failures += 1
        health.last_error = error
        health.total_failures += 1

    def is_healthy(self) -> bool:
        """Check if the source is currently healthy.

        :returns: True if recently successful and not failing repeatedly.
        """
        health = self._health
        if health.consecutive_failures >= self.MAX_CONSECUTIVE_FAILURES:
            return False
        if health.last_success_time is None:
            return False
        return time.time() - health.last_success_time <= self.HEALTH_WINDOW_SECONDS

    def get_last_error(self) -> Exception | None:
        """Get the error of the last failed attempt.

        :returns: The error, or None if the last attempt succeeded.
        """
        return self._health.last_error
