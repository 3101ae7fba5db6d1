"""Cancellable periodic driver for pipeline ticks."""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional
import logging

logger = logging.getLogger(__name__)


class TickScheduler:
    """
    Invokes an async tick function at a bounded rate.

    Ticks never overlap: the next tick starts only after the previous one has
    returned and at least ``interval_s`` seconds after the previous tick
    started. This caps the inference rate independently of how fast frames
    arrive.
    """

    def __init__(
        self,
        tick: Callable[[], Awaitable[Any]],
        interval_s: float = 0.15,
        stop_when_idle: bool = True,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize tick scheduler.

        Args:
            tick: Coroutine function run once per period
            interval_s: Minimum spacing between tick starts in seconds
            stop_when_idle: End the loop when a tick returns None
            clock: Monotonic clock
        """
        if interval_s <= 0:
            raise ValueError(f"interval_s must be positive, got {interval_s}")

        self._tick = tick
        self.interval_s = interval_s
        self.stop_when_idle = stop_when_idle
        self._clock = clock

        self._cancelled = asyncio.Event()
        self.tick_count = 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Request the loop to end after the current tick."""
        self._cancelled.set()

    async def run(self, max_ticks: Optional[int] = None) -> int:
        """
        Run ticks until cancelled.

        Args:
            max_ticks: Stop after this many ticks (unbounded if None)

        Returns:
            Number of ticks run
        """
        logger.info(f"Tick scheduler started: interval={self.interval_s * 1000:.0f}ms")

        while not self._cancelled.is_set():
            started = self._clock()
            result = await self._tick()

            if result is None and self.stop_when_idle:
                logger.info("Tick reported not running, scheduler exiting")
                break

            self.tick_count += 1

            if max_ticks is not None and self.tick_count >= max_ticks:
                break

            delay = max(0.0, self.interval_s - (self._clock() - started))
            try:
                await asyncio.wait_for(self._cancelled.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

        logger.info(f"Tick scheduler stopped after {self.tick_count} ticks")
        return self.tick_count
