import asyncio
import unittest

from core.queue import PeriodicTask
from tests.unit.support import wait_until


class TestPeriodicTask(unittest.IsolatedAsyncioTestCase):
    async def test_runs_immediately_then_on_interval(self):
        calls = []

        async def tick():
            calls.append(asyncio.get_running_loop().time())

        task = PeriodicTask("tick", tick, 0.02)
        task.start()
        await wait_until(lambda: len(calls) >= 3)
        task.stop()
        await task.wait_closed()

        self.assertGreaterEqual(len(calls), 3)
        self.assertFalse(task.is_running)

    async def test_stop_prevents_further_runs(self):
        calls = []

        async def tick():
            calls.append(1)

        task = PeriodicTask("tick", tick, 60)
        task.start()
        await wait_until(lambda: calls)
        task.stop()
        await asyncio.wait_for(task.wait_closed(), timeout=1)

        self.assertEqual(len(calls), 1)
        self.assertEqual(task.runs, 1)

    async def test_in_flight_run_completes_after_stop(self):
        started = asyncio.Event()
        release = asyncio.Event()
        finished = []

        async def slow():
            started.set()
            await release.wait()
            finished.append(True)

        task = PeriodicTask("slow", slow, 60)
        task.start()
        await started.wait()

        task.stop()
        self.assertTrue(task.is_running)
        release.set()
        await task.wait_closed()

        self.assertEqual(finished, [True])

    async def test_failing_callback_does_not_end_the_loop(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("database unavailable")

        task = PeriodicTask("flaky", flaky, 0.01)
        task.start()
        await wait_until(lambda: len(calls) >= 2)
        task.stop()
        await task.wait_closed()

        self.assertGreaterEqual(task.runs, 2)

    async def test_start_twice_keeps_one_loop(self):
        calls = []

        async def tick():
            calls.append(1)

        task = PeriodicTask("tick", tick, 60)
        task.start()
        task.start()
        await wait_until(lambda: calls)
        await asyncio.sleep(0.01)
        task.stop()
        await task.wait_closed()

        self.assertEqual(len(calls), 1)

    async def test_interval_measured_between_starts(self):
        """A run's own duration does not push the next start back."""
        starts = []
        loop = asyncio.get_running_loop()

        async def busy():
            starts.append(loop.time())
            await asyncio.sleep(0.15)

        task = PeriodicTask("busy", busy, 0.2)
        task.start()
        await wait_until(lambda: len(starts) >= 2, timeout=2)
        task.stop()
        await task.wait_closed()

        self.assertLess(starts[1] - starts[0], 0.3)

    async def test_overrunning_run_is_followed_immediately(self):
        starts = []
        loop = asyncio.get_running_loop()

        async def slow():
            starts.append(loop.time())
            await asyncio.sleep(0.1)

        task = PeriodicTask("slow", slow, 0.05)
        task.start()
        await wait_until(lambda: len(starts) >= 3, timeout=2)
        task.stop()
        await task.wait_closed()

        gaps = [later - earlier for earlier, later in zip(starts, starts[1:])]
        self.assertTrue(all(gap < 0.2 for gap in gaps))

    def test_interval_must_be_positive(self):
        async def tick():
            pass

        with self.assertRaises(ValueError):
            PeriodicTask("tick", tick, 0)


if __name__ == "__main__":
    unittest.main()
