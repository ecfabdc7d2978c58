import asyncio
import copy
import logging
from datetime import datetime
from typing import Optional, Dict, List, Any

from core.queue.job_store import JobStore
from core.job import QueuedJob, JobStatus, TERMINAL_STATUSES

logger = logging.getLogger("NotifyQueue.MemoryJobStore")


class MemoryJobStore(JobStore):
    """
    In-process job store.
    Used when no database is configured and in tests. Every mutation runs under
    one asyncio lock, which gives the same single-winner guarantee as a
    conditional UPDATE within one event loop.
    """

    def __init__(self):
        self._jobs: Dict[str, QueuedJob] = {}
        self._lock = asyncio.Lock()

    async def insert_many(self, jobs: List[QueuedJob]) -> None:
        async with self._lock:
            duplicate = [job.id for job in jobs if job.id in self._jobs]
            if duplicate:
                raise ValueError(f"Job ids already exist: {', '.join(duplicate)}")
            for job in jobs:
                self._jobs[job.id] = job.copy()
        logger.debug(f"Inserted {len(jobs)} jobs")

    async def get(self, job_id: str) -> Optional[QueuedJob]:
        job = self._jobs.get(job_id)
        return job.copy() if job else None

    async def fetch_due(self, now: datetime, limit: int) -> List[QueuedJob]:
        due = [job for job in self._jobs.values() if job.is_due(now)]
        due.sort(key=lambda job: (job.scheduled_for, -job.priority.rank, job.created_at))
        return [job.copy() for job in due[:limit]]

    async def try_transition(
        self,
        job_id: str,
        expected_status: JobStatus,
        new_status: JobStatus,
        changes: Optional[Dict[str, Any]] = None,
    ) -> bool:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != expected_status:
                return False

            changes = changes or {}
            unknown = [key for key in changes if not hasattr(job, key)]
            if unknown:
                raise AttributeError(f"QueuedJob has no field(s): {', '.join(unknown)}")

            for key, value in changes.items():
                setattr(job, key, copy.deepcopy(value))
            job.status = new_status
            return True

    async def find_stuck(self, started_before: datetime, limit: Optional[int] = None) -> List[QueuedJob]:
        stuck = [
            job for job in self._jobs.values()
            if job.status == JobStatus.PROCESSING
            and job.processing_started_at is not None
            and job.processing_started_at < started_before
        ]
        stuck.sort(key=lambda job: job.processing_started_at)
        if limit is not None:
            stuck = stuck[:limit]
        return [job.copy() for job in stuck]

    async def list_by_status(self, status: JobStatus, limit: int) -> List[QueuedJob]:
        jobs = [job for job in self._jobs.values() if job.status == status]
        jobs.sort(key=lambda job: job.updated_at, reverse=True)
        return [job.copy() for job in jobs[:limit]]

    async def reset_failed(self, now: datetime, job_id: Optional[str] = None) -> int:
        reset = 0
        async with self._lock:
            for job in self._jobs.values():
                if job.status != JobStatus.FAILED:
                    continue
                if job_id is not None and job.id != job_id:
                    continue
                job.status = JobStatus.PENDING
                job.attempts = 0
                job.last_error = None
                job.scheduled_for = now
                job.updated_at = now
                reset += 1
        return reset

    async def delete_terminal_before(self, cutoff: datetime, limit: int) -> int:
        async with self._lock:
            expired = [
                job.id for job in self._jobs.values()
                if job.status in TERMINAL_STATUSES and job.updated_at < cutoff
            ][:limit]
            for job_id in expired:
                del self._jobs[job_id]
        return len(expired)

    async def count_by_status(self) -> Dict[JobStatus, int]:
        counts = {status: 0 for status in JobStatus}
        for job in self._jobs.values():
            counts[job.status] += 1
        return counts

    async def average_duration_ms(self) -> Optional[float]:
        durations = [
            job.duration_ms for job in self._jobs.values()
            if job.status == JobStatus.COMPLETED and job.duration_ms is not None
        ]
        if not durations:
            return None
        return sum(durations) / len(durations)

    async def count_completed_since(self, since: datetime) -> int:
        return sum(
            1 for job in self._jobs.values()
            if job.status == JobStatus.COMPLETED
            and job.completed_at is not None
            and job.completed_at >= since
        )

    async def oldest_due_scheduled_for(self, now: datetime) -> Optional[datetime]:
        due = [job.scheduled_for for job in self._jobs.values() if job.is_due(now)]
        return min(due) if due else None

    def __len__(self):
        return len(self._jobs)
