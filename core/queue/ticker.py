import asyncio
import logging
import traceback
from typing import Awaitable, Callable, Optional

logger = logging.getLogger("NotifyQueue.PeriodicTask")


class PeriodicTask:
    """
    Runs a coroutine function once on start and then every `interval` seconds.

    Runs start on a fixed schedule measured from the previous start, not from
    the previous end. Runs never overlap: a run that takes longer than the
    interval is followed immediately by the next one.

    stop() only prevents further runs; a run that is already in progress is
    allowed to finish. Await wait_closed() to wait for it.
    """

    def __init__(self, name: str, callback: Callable[[], Awaitable], interval: float):
        if interval <= 0:
            raise ValueError("interval must be positive")

        self.name = name
        self.callback = callback
        self.interval = interval
        self.runs = 0

        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the loop on the running event loop."""
        if self.is_running:
            logger.debug(f"Periodic task '{self.name}' already running")
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(
            self._run(self._stop_event), name=f"periodic:{self.name}"
        )
        logger.info(f"Periodic task '{self.name}' started (every {self.interval}s)")

    def stop(self) -> None:
        """Request the loop to end after the current run."""
        if self._stop_event is not None and not self._stop_event.is_set():
            self._stop_event.set()
            logger.info(f"Periodic task '{self.name}' stop requested")

    async def wait_closed(self) -> None:
        """Wait for the loop, including an in-flight run, to finish."""
        if self._task is not None:
            await self._task
            self._task = None

    async def _run(self, stop_event: asyncio.Event) -> None:
        loop = asyncio.get_running_loop()
        next_run = loop.time()
        while not stop_event.is_set():
            try:
                await self.callback()
            except Exception as e:
                logger.error(f"Periodic task '{self.name}' failed: {str(e)}")
                logger.debug(traceback.format_exc())
            self.runs += 1

            next_run += self.interval
            delay = next_run - loop.time()
            if delay <= 0:
                # Overran the interval: run again now and restart the schedule from here
                logger.warning(f"Periodic task '{self.name}' took longer than its {self.interval}s interval")
                next_run = loop.time()
                continue

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

        logger.info(f"Periodic task '{self.name}' stopped after {self.runs} runs")
