import asyncio
import unittest

from core.job import JobStatus
from tests.unit.support import make_queue, make_payload, wait_until, StubDispatcher


class TestProcessingLifecycle(unittest.IsolatedAsyncioTestCase):
    async def test_start_processing_delivers_immediately(self):
        dispatcher = StubDispatcher()
        queue, store, clock = make_queue(dispatcher, poll_interval=60)
        [job_id] = await queue.enqueue("n-1", ["user-1"], make_payload())

        queue.start_processing()
        self.assertTrue(queue.is_running)
        await wait_until(lambda: dispatcher.calls)
        await queue.stop_processing()

        self.assertFalse(queue.is_running)
        self.assertEqual((await store.get(job_id)).status, JobStatus.COMPLETED)

    async def test_stop_lets_in_flight_batch_finish(self):
        """Outcomes of a batch running at shutdown are still recorded."""
        dispatcher = StubDispatcher()
        dispatcher.gate = asyncio.Event()
        queue, store, clock = make_queue(dispatcher, poll_interval=60)
        [job_id] = await queue.enqueue("n-1", ["user-1"], make_payload())

        queue.start_processing()
        await wait_until(lambda: dispatcher.calls)

        stopping = asyncio.ensure_future(queue.stop_processing())
        await asyncio.sleep(0.01)
        self.assertFalse(stopping.done())

        dispatcher.gate.set()
        await stopping

        self.assertEqual((await store.get(job_id)).status, JobStatus.COMPLETED)

    async def test_start_processing_runs_reaper(self):
        queue, store, clock = make_queue(poll_interval=60, reaper_interval=60)
        [job_id] = await queue.enqueue("n-1", ["user-1"], make_payload())
        await queue.try_claim(job_id)
        clock.advance(minutes=10)

        queue.start_processing()
        await wait_until(lambda: queue.reaper.jobs_reset >= 1)
        await queue.stop_processing()

        job = await store.get(job_id)
        self.assertIn(job.status, (JobStatus.PENDING, JobStatus.COMPLETED))

    async def test_restart_replaces_timers(self):
        queue, store, clock = make_queue(poll_interval=60)

        queue.start_processing()
        first = queue._processing_task
        queue.start_processing()

        self.assertIsNot(queue._processing_task, first)
        await queue.stop_processing()
        await first.wait_closed()
        self.assertFalse(first.is_running)

    async def test_stop_without_start(self):
        queue, store, clock = make_queue()
        await queue.stop_processing()
        self.assertFalse(queue.is_running)


if __name__ == "__main__":
    unittest.main()
