import asyncio
from datetime import datetime

from core.clock import FakeClock
from core.config import QueueConfig
from core.job import NotificationPayload
from core.queue import ChannelDispatcher, DeliveryResult, MemoryJobStore, NotificationQueue

START = datetime(2024, 3, 1, 9, 0, 0)


def make_payload(title="Welcome", **kwargs):
    return NotificationPayload(title=title, body="Thanks for joining", **kwargs)


class StubDispatcher(ChannelDispatcher):
    """Dispatcher returning queued results; an Exception instance in the queue is raised."""

    def __init__(self, *results, default=None):
        self.results = list(results)
        self.default = default if default is not None else DeliveryResult(email=True)
        self.calls = []
        self.gate = None

    async def dispatch(self, recipient_id, payload):
        self.calls.append(recipient_id)
        await asyncio.sleep(0)
        if self.gate is not None:
            await self.gate.wait()
        result = self.results.pop(0) if self.results else self.default
        if isinstance(result, Exception):
            raise result
        return result


def make_queue(dispatcher=None, **config_overrides):
    """Queue over a memory store with a fake clock and no throttling."""
    options = {"throttle": 0}
    options.update(config_overrides)
    clock = FakeClock(START)
    store = MemoryJobStore()
    queue = NotificationQueue(
        store,
        dispatcher or StubDispatcher(),
        QueueConfig(**options),
        clock=clock,
    )
    return queue, store, clock


async def wait_until(predicate, timeout=1.0):
    """Poll a predicate until it holds or the timeout expires."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)
