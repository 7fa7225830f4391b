"""Fixed-rate background tasks."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from embedkv.observability import Timer, emit_timer, get_logger

logger = get_logger(__name__)


class PeriodicTask:
    """Runs a coroutine function on a fixed-rate asyncio ticker.

    Ticks are scheduled from the start time, so a slow tick shortens the
    following sleep instead of drifting. A failing tick is logged and the
    ticker keeps going.

    Example:
        task = PeriodicTask(10, publisher.publish_once, name="orders")
        task.start()
        ...
        await task.stop()
    """

    def __init__(
        self,
        interval: float,
        func: Callable[[], Awaitable[Any]],
        name: str = "periodic",
    ) -> None:
        """Initialize periodic task.

        Args:
            interval: Seconds between tick starts
            func: Async function to call on each tick
            name: Name used in logs and metrics
        """
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self.name = name
        self.runs = 0
        self.failures = 0
        self._func = func
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._loop(), name=f"embedkv-{self.name}"
        )
        logger.debug("Periodic task started", context={"task": self.name})

    async def stop(self) -> None:
        """Cancel the ticker and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Periodic task stopped", context={"task": self.name})

    async def run_once(self) -> Any:
        """Run one tick now, outside the schedule."""
        with Timer() as timer:
            result = await self._func()
        self.runs += 1
        emit_timer("scheduler.tick", timer.duration_ms, {"task": self.name})
        return result

    async def _loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_run = loop.time() + self.interval
        while True:
            await asyncio.sleep(max(0.0, next_run - loop.time()))
            next_run += self.interval
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failures += 1
                logger.error("Periodic task failed", context={"task": self.name}, error=e)
