import logging
from datetime import timedelta
from typing import List, Optional, Sequence

from core.queue.job_store import JobStore
from core.job import QueuedJob, JobStatus
from core.queue.outcome import FailureMetadata, merge_outcome
from core.config import DEFAULT_BACKOFF_TABLE

logger = logging.getLogger("NotifyQueue.RetryScheduler")


class RetryScheduler:
    """
    Decides what happens to a job after a failed delivery attempt.
    Delays come from a fixed ascending table; attempts past the end of the
    table reuse its last entry.
    """

    def __init__(self, store: JobStore, clock, backoff_table: Optional[Sequence[int]] = None):
        self.store = store
        self.clock = clock
        self.backoff_table: List[int] = list(DEFAULT_BACKOFF_TABLE if backoff_table is None else backoff_table)
        if not self.backoff_table:
            raise ValueError("backoff_table must contain at least one delay")

    def next_delay(self, attempts: int) -> int:
        """
        Delay in seconds before the next try, given the attempts already made.

        Args:
            attempts: Attempt count after the failure (1 for the first failure)
        """
        index = min(max(attempts, 1) - 1, len(self.backoff_table) - 1)
        return self.backoff_table[index]

    async def schedule_retry(self, job: QueuedJob, error_message: str, channels=None) -> JobStatus:
        """
        Record a failed attempt and either reschedule the job or fail it for good.

        Args:
            job: The job as claimed by the worker (status processing)
            error_message: Description stored in last_error
            channels: Optional per-channel results of the attempt

        Returns:
            The resulting status (pending or failed), or the job's status
            unchanged if the write lost to the reaper
        """
        now = self.clock.now()
        attempts = job.attempts + 1

        if attempts >= job.max_attempts:
            failure = FailureMetadata(
                failed_at=now,
                final_error=error_message,
                attempts=attempts,
                channels=channels,
            )
            applied = await self.store.try_transition(
                job.id,
                JobStatus.PROCESSING,
                JobStatus.FAILED,
                {
                    "attempts": attempts,
                    "last_error": error_message,
                    "processing_started_at": None,
                    "metadata": merge_outcome(job.metadata, failure),
                    "updated_at": now,
                },
            )
            if not applied:
                logger.warning(f"Job {job.id} was no longer processing, failure not recorded")
                return job.status

            logger.error(
                f"Job {job.id} for recipient {job.recipient_id} failed after {attempts} attempts: {error_message}"
            )
            return JobStatus.FAILED

        delay = self.next_delay(attempts)
        applied = await self.store.try_transition(
            job.id,
            JobStatus.PROCESSING,
            JobStatus.PENDING,
            {
                "attempts": attempts,
                "last_error": error_message,
                "scheduled_for": now + timedelta(seconds=delay),
                "processing_started_at": None,
                "updated_at": now,
            },
        )
        if not applied:
            logger.warning(f"Job {job.id} was no longer processing, retry not recorded")
            return job.status

        logger.warning(
            f"Job {job.id} scheduled for retry in {delay}s "
            f"(attempt {attempts}/{job.max_attempts}): {error_message}"
        )
        return JobStatus.PENDING
