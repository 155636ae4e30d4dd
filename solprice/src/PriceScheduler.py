"""PriceScheduler: Drives aggregation cycles on a fixed interval.

The first cycle runs immediately on start(). Afterwards a cycle is
triggered every ``update_interval`` seconds on a fixed cadence. A tick that
finds a cycle already in flight (e.g. one started by an on-demand read) is
skipped, and ticks missed while a cycle overran are dropped, not queued.
A failing cycle is logged and never stops the timer.
"""

from __future__ import annotations

import asyncio
import logging

from .PriceOracle import NoQuorumError, PriceOracle
from .Quote import Quote

logger = logging.getLogger(__name__)


class PriceScheduler:
    """Periodic driver for a PriceOracle.

    :ivar oracle: Oracle whose cycles are scheduled.
    :ivar update_interval: Seconds between ticks.
    :ivar cycles_run: Number of cycles this scheduler triggered.
    :ivar ticks_skipped: Number of ticks skipped because a cycle was in flight.
    """

    def __init__(self, oracle: PriceOracle, update_interval: float) -> None:
        """Initialize the scheduler.

        :param oracle: Oracle to drive.
        :param update_interval: Seconds between ticks.
        :raises ValueError: If update_interval is not positive.
        """
        if update_interval <= 0:
            raise ValueError("update_interval must be positive")
        self.oracle = oracle
        self.update_interval = update_interval
        self.cycles_run = 0
        self.ticks_skipped = 0
        self._timer: asyncio.Task[None] | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Check if the scheduler is started."""
        return self._running

    async def start(self) -> None:
        """Run one cycle immediately, then start the periodic timer."""
        if self._running:
            logger.info("Price scheduler is already running")
            return

        self._running = True
        logger.info(f"Starting price updates every {self.update_interval}s")

        quote = await self._tick()
        if quote is not None:
            logger.info(f"Initial SOL/USD price: ${quote.value:.4f}")

        # stop() may have been called while the first cycle ran
        if self._running:
            self._timer = asyncio.create_task(self._run_timer())

    def stop(self) -> None:
        """Cancel the timer. A cycle already in flight is allowed to finish."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._running:
            self._running = False
            logger.info("Price scheduler stopped")

    async def _run_timer(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.update_interval

        while True:
            await asyncio.sleep(max(0.0, next_tick - loop.time()))

            if self.oracle.cycle_in_flight:
                self.ticks_skipped += 1
                logger.debug("Cycle already in flight, skipping tick")
            else:
                await self._tick()

            next_tick += self.update_interval
            now = loop.time()
            if next_tick <= now:
                missed = int((now - next_tick) // self.update_interval) + 1
                self.ticks_skipped += missed
                next_tick += missed * self.update_interval
                logger.debug(f"Cycle overran the interval, skipped {missed} tick(s)")

    async def _tick(self) -> Quote | None:
        self.cycles_run += 1
        try:
            return await self.oracle.run_cycle()
        except NoQuorumError as e:
            logger.error(f"Failed to update price: {e}")
            return None
        except Exception as exc:  # Keep the timer alive
            logger.error(f"Unexpected error during price update: {exc!r}")
            return None
