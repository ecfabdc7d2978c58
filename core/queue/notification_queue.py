import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Union

from core.clock import SystemClock, to_naive_utc
from core.config import QueueConfig
from core.queue.dispatcher import ChannelDispatcher
from core.queue.job_store import JobStore
from core.queue.queue_worker import QueueWorker, CycleReport
from core.job import QueuedJob, JobStatus, Priority, NotificationPayload
from core.queue.reaper import StuckJobReaper
from core.queue.retry import RetryScheduler
from core.queue.stats import StatsCollector, QueueStats, QueueHealth, HealthThresholds
from core.queue.ticker import PeriodicTask

logger = logging.getLogger("NotifyQueue.NotificationQueue")


class NotificationQueue:
    """
    Notification delivery queue.

    Fans a notification out to one job per recipient, delivers jobs in the
    background with retries, recovers stuck jobs and reports health.

    Usage:
        queue = NotificationQueue(MemoryJobStore(), dispatcher)
        await queue.enqueue("welcome-42", ["user-1", "user-2"], payload, priority="high")
        queue.start_processing()
        ...
        await queue.stop_processing()
    """

    def __init__(
        self,
        store: JobStore,
        dispatcher: ChannelDispatcher,
        config: Optional[QueueConfig] = None,
        clock=None,
        thresholds: Optional[HealthThresholds] = None,
        sleep=None,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.config = config or QueueConfig()
        self.clock = clock or SystemClock()

        self.retry_scheduler = RetryScheduler(store, self.clock, self.config.backoff_table)
        self.worker = QueueWorker(
            store,
            dispatcher,
            self.retry_scheduler,
            self.clock,
            batch_size=self.config.batch_size,
            throttle=self.config.throttle,
            sleep=sleep,
        )
        self.reaper = StuckJobReaper(store, self.clock, self.config.processing_timeout)
        self.stats = StatsCollector(store, self.clock, thresholds)

        self._processing_task: Optional[PeriodicTask] = None
        self._reaper_task: Optional[PeriodicTask] = None

    # Enqueueing

    async def enqueue(
        self,
        notification_id: str,
        recipient_ids: Iterable[str],
        payload: Union[NotificationPayload, Dict[str, Any]],
        priority: Union[Priority, str] = Priority.MEDIUM,
        scheduled_for: Optional[datetime] = None,
        max_attempts: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[str]:
        """
        Create one pending job per recipient, all in one transaction.

        Args:
            notification_id: Groups the jobs of one broadcast
            recipient_ids: Target identities; duplicates are collapsed
            payload: Notification content (NotificationPayload or its dict form)
            priority: low, medium, high or urgent
            scheduled_for: Earliest delivery time (now when omitted)
            max_attempts: Attempt ceiling (config default when omitted)
            metadata: Free-form data stored with every job

        Returns:
            Ids of the created jobs, in recipient order
        """
        if isinstance(recipient_ids, (str, bytes)):
            raise ValueError("recipient_ids must be a collection of ids, not a single string")
        recipients = list(dict.fromkeys(recipient_ids))
        if not recipients:
            raise ValueError("recipient_ids must not be empty")

        priority = Priority(priority)
        max_attempts = self.config.max_attempts if max_attempts is None else max_attempts
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if isinstance(payload, dict):
            payload = NotificationPayload.from_dict(payload)
        else:
            payload = payload.copy()

        now = self.clock.now()
        # Stored timestamps are naive UTC
        scheduled_for = now if scheduled_for is None else to_naive_utc(scheduled_for)
        jobs = [
            QueuedJob(
                id=uuid.uuid4().hex,
                notification_id=notification_id,
                recipient_id=recipient_id,
                payload=payload,
                priority=priority,
                status=JobStatus.PENDING,
                attempts=0,
                max_attempts=max_attempts,
                scheduled_for=scheduled_for,
                created_at=now,
                updated_at=now,
                metadata=dict(metadata or {}),
            )
            for recipient_id in recipients
        ]

        try:
            await self.store.insert_many(jobs)
        except Exception as e:
            logger.error(f"Error enqueuing notification {notification_id}: {str(e)}")
            raise

        logger.info(
            f"Enqueued {len(jobs)} jobs for notification {notification_id} "
            f"(priority {priority.value}, scheduled for {jobs[0].scheduled_for.isoformat()})"
        )
        return [job.id for job in jobs]

    async def schedule_notification(
        self,
        notification_id: str,
        recipient_ids: Iterable[str],
        payload: Union[NotificationPayload, Dict[str, Any]],
        scheduled_for: datetime,
        priority: Union[Priority, str] = Priority.MEDIUM,
        max_attempts: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[str]:
        """Enqueue for delivery at a given time."""
        return await self.enqueue(
            notification_id,
            recipient_ids,
            payload,
            priority=priority,
            scheduled_for=scheduled_for,
            max_attempts=max_attempts,
            metadata=metadata,
        )

    # Processing

    async def try_claim(self, job_id: str) -> bool:
        return await self.worker.try_claim(job_id)

    async def process_queue(self) -> CycleReport:
        """Run one processing cycle now."""
        return await self.worker.process_queue()

    async def reap_stuck_jobs(self) -> int:
        """Run one stuck job scan now."""
        return await self.reaper.reap()

    @property
    def is_running(self) -> bool:
        return self._processing_task is not None and self._processing_task.is_running

    def start_processing(self) -> None:
        """
        Start the processing and reaper timers on the running event loop.
        Both run once immediately. Calling it again restarts them.
        """
        if self._processing_task is not None or self._reaper_task is not None:
            self._stop_timers()

        logger.info("Starting notification queue processing")
        self._processing_task = PeriodicTask(
            "process-queue", self.worker.process_queue, self.config.poll_interval
        )
        self._reaper_task = PeriodicTask(
            "reap-stuck-jobs", self.reaper.reap, self.config.reaper_interval
        )
        self._processing_task.start()
        self._reaper_task.start()

    async def stop_processing(self) -> None:
        """Stop the timers; an in-flight batch finishes and its outcomes are recorded."""
        processing_task, reaper_task = self._processing_task, self._reaper_task
        self._stop_timers()

        for task in (processing_task, reaper_task):
            if task is not None:
                await task.wait_closed()
        logger.info("Stopped notification queue processing")

    def _stop_timers(self) -> None:
        for task in (self._processing_task, self._reaper_task):
            if task is not None:
                task.stop()
        self._processing_task = None
        self._reaper_task = None

    # Observability

    async def get_queue_stats(self) -> QueueStats:
        return await self.stats.get_queue_stats()

    async def get_queue_health(self) -> QueueHealth:
        return await self.stats.get_queue_health()

    # Maintenance

    async def get_job(self, job_id: str) -> Optional[QueuedJob]:
        return await self.store.get(job_id)

    async def get_failed(self, limit: int = 50) -> List[QueuedJob]:
        """Failed jobs, most recently updated first."""
        return await self.store.list_by_status(JobStatus.FAILED, limit)

    async def cancel(self, job_id: str) -> bool:
        """
        Cancel a job that has not been claimed yet.

        Returns:
            False if the job is not pending (already claimed, finished or unknown)
        """
        job = await self.store.get(job_id)
        if job is None:
            logger.warning(f"Cannot cancel job {job_id}: not found")
            return False

        now = self.clock.now()
        metadata = dict(job.metadata)
        metadata["cancelledAt"] = now.isoformat()
        cancelled = await self.store.try_transition(
            job_id,
            JobStatus.PENDING,
            JobStatus.CANCELLED,
            {"metadata": metadata, "updated_at": now},
        )
        if cancelled:
            logger.info(f"Cancelled queued job {job_id}")
        else:
            logger.info(f"Job {job_id} is no longer pending and cannot be cancelled")
        return cancelled

    async def retry_failed(self, job_id: str) -> bool:
        """Manually return one failed job to pending with a fresh attempt budget."""
        reset = await self.store.reset_failed(self.clock.now(), job_id=job_id)
        if reset:
            logger.info(f"Manually retrying job {job_id}")
        return reset > 0

    async def retry_all_failed(self) -> int:
        """Return every failed job to pending with a fresh attempt budget."""
        reset = await self.store.reset_failed(self.clock.now())
        logger.info(f"Retried {reset} failed jobs")
        return reset

    async def cleanup_old(self, retention_days: Optional[int] = None, batch_limit: Optional[int] = None) -> int:
        """
        Delete completed, failed and cancelled jobs not updated within the retention window.

        Args:
            retention_days: Window in days (config default when omitted)
            batch_limit: Maximum deletions in this call (config default when omitted)

        Returns:
            Number of jobs deleted
        """
        retention_days = self.config.retention_days if retention_days is None else retention_days
        if retention_days < 0:
            raise ValueError("retention_days must not be negative")
        batch_limit = self.config.cleanup_batch_limit if batch_limit is None else batch_limit
        if batch_limit < 1:
            raise ValueError("batch_limit must be at least 1")

        cutoff = self.clock.now() - timedelta(days=retention_days)
        deleted = await self.store.delete_terminal_before(cutoff, batch_limit)
        logger.info(f"Cleaned up {deleted} jobs older than {retention_days} days")
        return deleted
