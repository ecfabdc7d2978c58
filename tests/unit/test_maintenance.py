import unittest

from core.job import JobStatus
from core.queue import DeliveryResult
from tests.unit.support import make_queue, make_payload, StubDispatcher


class TestCleanup(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        dispatcher = StubDispatcher(DeliveryResult(email=True), DeliveryResult(), DeliveryResult(sms=True))
        self.queue, self.store, self.clock = make_queue(dispatcher, batch_size=10)

    async def test_cleanup_is_idempotent(self):
        """Finished jobs past retention are deleted once, the second pass finds nothing."""
        await self.queue.enqueue("n-1", ["a", "b", "c"], make_payload(), max_attempts=1)
        await self.queue.process_queue()
        [pending] = await self.queue.enqueue("n-2", ["d"], make_payload())

        self.clock.advance(days=8)

        self.assertEqual(await self.queue.cleanup_old(7), 3)
        self.assertEqual(await self.queue.cleanup_old(7), 0)
        self.assertEqual(len(self.store), 1)
        self.assertIsNotNone(await self.store.get(pending))

    async def test_recent_jobs_are_kept(self):
        await self.queue.enqueue("n-1", ["a"], make_payload())
        await self.queue.process_queue()
        self.clock.advance(days=6)

        self.assertEqual(await self.queue.cleanup_old(7), 0)
        self.assertEqual(len(self.store), 1)

    async def test_cleanup_respects_batch_limit(self):
        await self.queue.enqueue("n-1", ["a", "b", "c"], make_payload(), max_attempts=1)
        await self.queue.process_queue()
        self.clock.advance(days=30)

        self.assertEqual(await self.queue.cleanup_old(batch_limit=2), 2)
        self.assertEqual(await self.queue.cleanup_old(batch_limit=2), 1)

    async def test_cleanup_uses_configured_retention(self):
        queue, store, clock = make_queue(retention_days=1)
        await queue.enqueue("n-1", ["a"], make_payload())
        await queue.process_queue()
        clock.advance(days=2)

        self.assertEqual(await queue.cleanup_old(), 1)

    async def test_negative_retention_rejected(self):
        with self.assertRaises(ValueError):
            await self.queue.cleanup_old(-1)

    async def test_invalid_batch_limit_rejected(self):
        """A non-positive limit deletes nothing instead of most of the matches."""
        await self.queue.enqueue("n-1", ["a", "b", "c"], make_payload(), max_attempts=1)
        await self.queue.process_queue()
        self.clock.advance(days=30)

        for limit in (0, -1):
            with self.assertRaises(ValueError):
                await self.queue.cleanup_old(7, batch_limit=limit)
        self.assertEqual(len(self.store), 3)


class TestFailedJobs(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.dispatcher = StubDispatcher(default=DeliveryResult())
        self.queue, self.store, self.clock = make_queue(self.dispatcher, batch_size=10)
        self.job_ids = await self.queue.enqueue("n-1", ["a", "b"], make_payload(), max_attempts=1)
        await self.queue.process_queue()

    async def test_get_failed(self):
        failed = await self.queue.get_failed()

        self.assertEqual(sorted(job.id for job in failed), sorted(self.job_ids))
        self.assertTrue(all(job.status == JobStatus.FAILED for job in failed))
        self.assertEqual(len(await self.queue.get_failed(limit=1)), 1)

    async def test_retry_all_failed(self):
        self.clock.advance(minutes=5)

        self.assertEqual(await self.queue.retry_all_failed(), 2)

        for job_id in self.job_ids:
            job = await self.store.get(job_id)
            self.assertEqual(job.status, JobStatus.PENDING)
            self.assertEqual(job.attempts, 0)
            self.assertIsNone(job.last_error)
            self.assertEqual(job.scheduled_for, self.clock.now())

        self.assertEqual(await self.queue.retry_all_failed(), 0)

    async def test_retried_jobs_are_delivered(self):
        await self.queue.retry_all_failed()
        self.dispatcher.default = DeliveryResult(push=True)

        report = await self.queue.process_queue()

        self.assertEqual(report.completed, 2)

    async def test_retry_single_failed_job(self):
        first, second = self.job_ids

        self.assertTrue(await self.queue.retry_failed(first))
        self.assertFalse(await self.queue.retry_failed(first))

        self.assertEqual((await self.store.get(first)).status, JobStatus.PENDING)
        self.assertEqual((await self.store.get(second)).status, JobStatus.FAILED)

    async def test_get_job(self):
        job = await self.queue.get_job(self.job_ids[0])
        self.assertEqual(job.recipient_id, "a")
        self.assertIsNone(await self.queue.get_job("missing"))


class TestCancel(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.dispatcher = StubDispatcher()
        self.queue, self.store, self.clock = make_queue(self.dispatcher)

    async def test_cancelled_job_is_never_delivered(self):
        [job_id] = await self.queue.enqueue("n-1", ["a"], make_payload())

        self.assertTrue(await self.queue.cancel(job_id))
        report = await self.queue.process_queue()

        self.assertEqual(report.fetched, 0)
        self.assertEqual(self.dispatcher.calls, [])
        job = await self.store.get(job_id)
        self.assertEqual(job.status, JobStatus.CANCELLED)
        self.assertEqual(job.metadata["cancelledAt"], self.clock.now().isoformat())

    async def test_claimed_job_cannot_be_cancelled(self):
        [job_id] = await self.queue.enqueue("n-1", ["a"], make_payload())
        await self.queue.try_claim(job_id)

        self.assertFalse(await self.queue.cancel(job_id))
        self.assertEqual((await self.store.get(job_id)).status, JobStatus.PROCESSING)

    async def test_unknown_job(self):
        self.assertFalse(await self.queue.cancel("missing"))

    async def test_cancelled_jobs_are_cleaned_up(self):
        [job_id] = await self.queue.enqueue("n-1", ["a"], make_payload())
        await self.queue.cancel(job_id)
        self.clock.advance(days=8)

        self.assertEqual(await self.queue.cleanup_old(), 1)


if __name__ == "__main__":
    unittest.main()
