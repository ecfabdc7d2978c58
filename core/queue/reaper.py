import logging
from datetime import timedelta

from core.queue.job_store import JobStore
from core.job import JobStatus

logger = logging.getLogger("NotifyQueue.StuckJobReaper")

TIMEOUT_ERROR = "Processing timeout - reset to pending"


class StuckJobReaper:
    """
    Returns jobs abandoned in processing (crashed or killed worker) to pending.

    A timeout is not a delivery failure, so attempts are left untouched and
    the retry budget is not consumed.
    """

    def __init__(self, store: JobStore, clock, processing_timeout: float = 5 * 60):
        self.store = store
        self.clock = clock
        self.processing_timeout = processing_timeout
        self.jobs_reset = 0

    async def reap(self) -> int:
        """
        Reset every job stuck in processing longer than the timeout.

        Returns:
            Number of jobs reset by this call
        """
        now = self.clock.now()
        cutoff = now - timedelta(seconds=self.processing_timeout)
        stuck = await self.store.find_stuck(cutoff)
        if not stuck:
            return 0

        reset = 0
        for job in stuck:
            applied = await self.store.try_transition(
                job.id,
                JobStatus.PROCESSING,
                JobStatus.PENDING,
                {
                    "processing_started_at": None,
                    "last_error": TIMEOUT_ERROR,
                    "updated_at": now,
                },
            )
            if applied:
                reset += 1
                logger.warning(
                    f"Job {job.id} stuck in processing since {job.processing_started_at.isoformat()}, "
                    f"reset to pending (attempts {job.attempts}/{job.max_attempts})"
                )
            else:
                logger.debug(f"Job {job.id} finished before it could be reset")

        self.jobs_reset += reset
        logger.info(f"Reset {reset} stuck jobs")
        return reset
