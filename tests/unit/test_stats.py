import unittest
from datetime import timedelta
from unittest.mock import AsyncMock

from core.queue import DeliveryResult, QueueStats, HealthThresholds, StoreError, evaluate_health
from core.queue.stats import HEALTHY, WARNING, CRITICAL
from tests.unit.support import make_queue, make_payload, StubDispatcher


class TestQueueStats(unittest.TestCase):
    def test_success_rate(self):
        stats = QueueStats(completed=80, failed=20)
        self.assertEqual(stats.total_processed, 100)
        self.assertEqual(stats.success_rate, 80.0)

    def test_success_rate_without_processed_jobs(self):
        self.assertEqual(QueueStats(pending=3).success_rate, 0.0)

    def test_to_dict(self):
        data = QueueStats(completed=2, failed=1, average_processing_time=1.5).to_dict()
        self.assertEqual(data["total_processed"], 3)
        self.assertEqual(data["success_rate"], 66.67)
        self.assertEqual(data["average_processing_time"], 1.5)
        self.assertIsNone(data["oldest_pending_age"])


class TestEvaluateHealth(unittest.TestCase):
    def test_healthy(self):
        health = evaluate_health(QueueStats(pending=3, completed=40, failed=1))
        self.assertEqual(health.status, HEALTHY)
        self.assertEqual(health.issues, [])

    def test_backlog_alone_is_a_warning(self):
        """A large backlog with a good success rate only warns."""
        health = evaluate_health(QueueStats(pending=60, processing=1, completed=80, failed=5))

        self.assertEqual(health.status, WARNING)
        self.assertEqual(len(health.issues), 1)
        self.assertIn("pending", health.issues[0])
        self.assertEqual(len(health.recommendations), 1)

    def test_very_low_success_rate_is_critical(self):
        health = evaluate_health(QueueStats(completed=10, failed=15))

        self.assertEqual(health.status, CRITICAL)
        self.assertIn("Low success rate: 40.0%", health.issues)

    def test_low_success_rate_is_a_warning(self):
        health = evaluate_health(QueueStats(completed=70, failed=30))
        self.assertEqual(health.status, WARNING)

    def test_success_rate_ignored_for_small_samples(self):
        health = evaluate_health(QueueStats(completed=1, failed=3))
        self.assertEqual(health.status, HEALTHY)

    def test_many_issues_are_critical(self):
        stats = QueueStats(pending=51, processing=6, failed=21, completed=500)
        health = evaluate_health(stats)

        self.assertEqual(len(health.issues), 3)
        self.assertEqual(health.status, CRITICAL)

    def test_old_backlog(self):
        health = evaluate_health(QueueStats(pending=1, oldest_pending_age=2 * 60 * 60))
        self.assertEqual(health.status, WARNING)
        self.assertIn("120 minutes", health.issues[0])

    def test_custom_thresholds(self):
        health = evaluate_health(QueueStats(pending=11), HealthThresholds(max_pending=10))
        self.assertEqual(health.status, WARNING)


class TestStatsCollector(unittest.IsolatedAsyncioTestCase):
    async def test_aggregates_store_contents(self):
        dispatcher = StubDispatcher(DeliveryResult(email=True), DeliveryResult())
        queue, store, clock = make_queue(dispatcher)
        start = clock.now()

        await queue.enqueue("n-1", ["a", "b"], make_payload(), max_attempts=1)
        await queue.process_queue()
        await queue.enqueue("n-2", ["c"], make_payload())
        await queue.schedule_notification("n-3", ["d"], make_payload(), start + timedelta(hours=1))
        clock.advance(minutes=10)

        stats = await queue.get_queue_stats()

        self.assertEqual(stats.pending, 2)
        self.assertEqual(stats.processing, 0)
        self.assertEqual(stats.completed, 1)
        self.assertEqual(stats.failed, 1)
        self.assertEqual(stats.throughput_per_hour, 1)
        self.assertEqual(stats.average_processing_time, 0.0)
        self.assertEqual(stats.oldest_pending_age, 600)
        self.assertEqual(stats.success_rate, 50.0)

    async def test_throughput_window_is_one_hour(self):
        queue, store, clock = make_queue()
        await queue.enqueue("n-1", ["a"], make_payload())
        await queue.process_queue()

        clock.advance(hours=2)
        stats = await queue.get_queue_stats()

        self.assertEqual(stats.completed, 1)
        self.assertEqual(stats.throughput_per_hour, 0)
        self.assertIsNone(stats.oldest_pending_age)

    async def test_stats_do_not_change_the_queue(self):
        queue, store, clock = make_queue()
        [job_id] = await queue.enqueue("n-1", ["a"], make_payload())
        before = await store.get(job_id)

        await queue.get_queue_stats()
        await queue.get_queue_health()

        self.assertEqual(await store.get(job_id), before)

    async def test_health_reports_store_failure_as_critical(self):
        queue, store, clock = make_queue()
        store.count_by_status = AsyncMock(side_effect=StoreError("count_by_status", "connection refused"))

        health = await queue.get_queue_health()

        self.assertEqual(health.status, CRITICAL)
        self.assertEqual(health.issues, ["Unable to check queue health"])
        self.assertIsNone(health.stats)

    async def test_stats_propagate_store_failure(self):
        queue, store, clock = make_queue()
        store.count_by_status = AsyncMock(side_effect=StoreError("count_by_status", "connection refused"))

        with self.assertRaises(StoreError):
            await queue.get_queue_stats()


if __name__ == "__main__":
    unittest.main()
