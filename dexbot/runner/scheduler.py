"""Cancellable periodic task used to drive the bot cycles."""

import asyncio
from collections.abc import Awaitable, Callable
from contextvars import ContextVar

import structlog

logger = structlog.get_logger(__name__)

# Task whose tick owns the current context; inherited by tasks the tick spawns
_current_tick: ContextVar["PeriodicTask | None"] = ContextVar("current_tick", default=None)


class PeriodicTask:
    """Run a coroutine function on a fixed interval.

    The timer and the tick run as separate tasks: stopping cancels the timer
    only, so a tick in flight completes but nothing is scheduled after it. A
    tick that comes due while the previous one is still running is skipped.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[None]],
        interval_fn: Callable[[], float],
        run_immediately: bool = True,
    ) -> None:
        """Initialize periodic task.

        Args:
            name: Name used in logs
            func: Coroutine function run on every tick
            interval_fn: Returns the interval in seconds, read before every wait
            run_immediately: Fire the first tick without waiting
        """
        self.name = name
        self.func = func
        self.interval_fn = interval_fn
        self.run_immediately = run_immediately

        self.tick_count = 0
        self.skipped_ticks = 0
        self._timer: asyncio.Task | None = None
        self._in_flight: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        """Whether the timer is scheduled."""
        return self._timer is not None and not self._timer.done()

    @property
    def busy(self) -> bool:
        """Whether a tick is currently executing."""
        return self._in_flight is not None and not self._in_flight.done()

    def start(self) -> None:
        """Start the timer. No-op if already running."""
        if self.running:
            logger.debug("Periodic task already running", task=self.name)
            return

        self._timer = asyncio.create_task(self._run(), name=f"{self.name}-timer")
        logger.debug("Periodic task started", task=self.name)

    async def stop(self) -> None:
        """Cancel the timer and wait for an in-flight tick to finish."""
        timer, self._timer = self._timer, None
        if timer is not None and not timer.done():
            timer.cancel()
            try:
                await timer
            except asyncio.CancelledError:
                pass

        # A tick that stops its own task must not wait on itself
        if self.busy and _current_tick.get() is not self:
            logger.debug("Waiting for in-flight tick", task=self.name)
            await asyncio.wait({self._in_flight})

        logger.debug(
            "Periodic task stopped",
            task=self.name,
            ticks=self.tick_count,
            skipped=self.skipped_ticks,
        )

    async def _run(self) -> None:
        if not self.run_immediately:
            await asyncio.sleep(self.interval_fn())

        while True:
            self._fire()
            await asyncio.sleep(self.interval_fn())

    def _fire(self) -> None:
        if self.busy:
            self.skipped_ticks += 1
            logger.warning(
                "Previous tick still running, skipping", task=self.name
            )
            return

        self.tick_count += 1
        self._in_flight = asyncio.create_task(
            self._tick(), name=f"{self.name}-tick-{self.tick_count}"
        )

    async def _tick(self) -> None:
        _current_tick.set(self)
        try:
            await self.func()
        except Exception as e:
            logger.error("Periodic task tick failed", task=self.name, error=str(e))
