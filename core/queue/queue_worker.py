import asyncio
import logging
import traceback
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional

from core.queue.dispatcher import ChannelDispatcher, DeliveryResult
from core.queue.job_store import JobStore
from core.queue.outcome import CompletionMetadata, merge_outcome
from core.job import QueuedJob, JobStatus
from core.queue.retry import RetryScheduler

logger = logging.getLogger("NotifyQueue.QueueWorker")


@dataclass
class CycleReport:
    """What one polling cycle did."""

    fetched: int = 0
    claimed: int = 0
    completed: int = 0
    retried: int = 0
    failed: int = 0
    skipped: int = 0
    errors: int = 0
    ran: bool = True


class QueueWorker:
    """
    Polls due jobs, claims them one by one and drives delivery.

    A cycle never overlaps with another cycle of the same worker. Running
    several workers against one store is safe because a claim is a
    conditional update that only one of them can win.
    """

    def __init__(
        self,
        store: JobStore,
        dispatcher: ChannelDispatcher,
        retry_scheduler: RetryScheduler,
        clock,
        batch_size: int = 5,
        throttle: float = 0.1,
        sleep: Optional[Callable[[float], Awaitable]] = None,
    ):
        """
        Initialize the queue worker.

        Args:
            store: Job store shared with the enqueuer and the reaper
            dispatcher: Channel dispatcher used for delivery
            retry_scheduler: Decides retries and terminal failures
            clock: Object with a now() method returning naive UTC datetimes
            batch_size: Maximum number of jobs fetched per cycle
            throttle: Seconds to wait between deliveries of the same batch
            sleep: Coroutine used for throttling (asyncio.sleep by default)
        """
        self.store = store
        self.dispatcher = dispatcher
        self.retry_scheduler = retry_scheduler
        self.clock = clock
        self.batch_size = batch_size
        self.throttle = throttle
        self.sleep = sleep or asyncio.sleep

        self.jobs_processed = 0
        self._is_processing = False

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    async def try_claim(self, job_id: str) -> bool:
        """
        Atomically move a job from pending to processing.

        A lost race (claimed elsewhere, cancelled or deleted) is not an error:
        the job is simply no longer ours to deliver.
        """
        return await self._claim(job_id) is not None

    async def _claim(self, job_id: str) -> Optional[datetime]:
        """Claim a job and return the stored processing_started_at, or None if lost."""
        now = self.clock.now()
        claimed = await self.store.try_transition(
            job_id,
            JobStatus.PENDING,
            JobStatus.PROCESSING,
            {"processing_started_at": now, "updated_at": now},
        )
        if not claimed:
            logger.debug(f"Job {job_id} is no longer pending, skipping")
            return None
        return now

    async def process_queue(self) -> CycleReport:
        """
        Run one polling cycle.
        This is the callback of the processing timer.
        """
        if self._is_processing:
            logger.info("Queue processing already in progress, skipping cycle")
            return CycleReport(ran=False)

        self._is_processing = True
        report = CycleReport()
        try:
            try:
                jobs = await self.store.fetch_due(self.clock.now(), self.batch_size)
            except Exception as e:
                logger.error(f"Failed to fetch due jobs, aborting cycle: {str(e)}")
                logger.debug(traceback.format_exc())
                report.errors += 1
                return report

            report.fetched = len(jobs)
            if not jobs:
                logger.debug("No pending notifications to process")
                return report

            logger.info(f"Processing {len(jobs)} queued notifications")
            for index, job in enumerate(jobs):
                try:
                    dispatched = await self._process_job(job, report)
                except Exception as e:
                    report.errors += 1
                    logger.error(f"Error processing job {job.id}: {str(e)}")
                    logger.debug(traceback.format_exc())
                    continue

                if dispatched and self.throttle > 0 and index < len(jobs) - 1:
                    await self.sleep(self.throttle)

            logger.info(
                f"Batch finished: {report.completed} completed, {report.retried} retried, "
                f"{report.failed} failed, {report.skipped} skipped"
            )
            return report

        finally:
            self._is_processing = False

    async def _process_job(self, job: QueuedJob, report: CycleReport) -> bool:
        """
        Claim, deliver and record the outcome of one job.

        Returns:
            True if the dispatcher was called
        """
        claimed_at = await self._claim(job.id)
        if claimed_at is None:
            report.skipped += 1
            return False

        report.claimed += 1
        job.status = JobStatus.PROCESSING
        job.processing_started_at = claimed_at

        logger.info(
            f"Processing job {job.id} (notification {job.notification_id}, recipient {job.recipient_id}, "
            f"attempt {job.attempts + 1}/{job.max_attempts})"
        )

        try:
            result = await self.dispatcher.dispatch(job.recipient_id, job.payload)
            if not isinstance(result, DeliveryResult):
                result = DeliveryResult.from_mapping(result)
        except Exception as e:
            logger.error(f"Dispatch of job {job.id} raised: {str(e)}")
            logger.debug(traceback.format_exc())
            await self._retry(job, str(e) or e.__class__.__name__, report)
            return True

        if result.any_success:
            await self._complete(job, result, report)
        else:
            await self._retry(job, "All delivery channels failed", report, channels=result.to_dict())
        return True

    async def _complete(self, job: QueuedJob, result: DeliveryResult, report: CycleReport) -> None:
        now = self.clock.now()
        attempts = job.attempts + 1
        duration_ms = max(0, int((now - job.processing_started_at).total_seconds() * 1000))
        completion = CompletionMetadata(
            channels=result.to_dict(),
            completed_at=now,
            processing_ms=duration_ms,
            attempts=attempts,
        )

        applied = await self.store.try_transition(
            job.id,
            JobStatus.PROCESSING,
            JobStatus.COMPLETED,
            {
                "attempts": attempts,
                "completed_at": now,
                "processing_started_at": None,
                "duration_ms": duration_ms,
                "metadata": merge_outcome(job.metadata, completion),
                "updated_at": now,
            },
        )
        if not applied:
            # Reset by the reaper while we were delivering; it will be delivered again
            logger.warning(f"Job {job.id} was no longer processing, completion not recorded")
            report.skipped += 1
            return

        self.jobs_processed += 1
        report.completed += 1
        logger.info(f"Job {job.id} delivered to {job.recipient_id} via {result.to_dict()}")

    async def _retry(self, job: QueuedJob, error_message: str, report: CycleReport, channels=None) -> None:
        status = await self.retry_scheduler.schedule_retry(job, error_message, channels=channels)
        if status == JobStatus.FAILED:
            self.jobs_processed += 1
            report.failed += 1
        elif status == JobStatus.PENDING:
            report.retried += 1
        else:
            report.skipped += 1
