from abc import ABC, abstractmethod
from typing import Optional, Dict, List, Any
from datetime import datetime

from core.job import QueuedJob, JobStatus


class JobStore(ABC):
    """
    Abstract base class for queue job storage.
    Implementations can use a SQL database, memory, or any other backend that
    offers an atomic conditional update.
    """

    @abstractmethod
    async def insert_many(self, jobs: List[QueuedJob]) -> None:
        """
        Persist a batch of new jobs atomically: all of them or none.

        Args:
            jobs: Jobs to insert, all in pending status
        """
        pass

    @abstractmethod
    async def get(self, job_id: str) -> Optional[QueuedJob]:
        """
        Fetch a single job.

        Args:
            job_id: Job identifier

        Returns:
            The job or None if it does not exist
        """
        pass

    @abstractmethod
    async def fetch_due(self, now: datetime, limit: int) -> List[QueuedJob]:
        """
        Fetch pending jobs whose scheduled time has come.

        Ordered by scheduled_for ascending, priority descending, created_at ascending.

        Args:
            now: Reference time
            limit: Maximum number of jobs to return
        """
        pass

    @abstractmethod
    async def try_transition(
        self,
        job_id: str,
        expected_status: JobStatus,
        new_status: JobStatus,
        changes: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Atomically move a job from one status to another.

        The update is applied only if the job is still in expected_status.
        When several callers race on the same job exactly one of them wins.

        Args:
            job_id: Job identifier
            expected_status: Status the job must currently have
            new_status: Status to set
            changes: Other fields to set in the same update

        Returns:
            True if this call performed the transition, False otherwise
        """
        pass

    @abstractmethod
    async def find_stuck(self, started_before: datetime, limit: Optional[int] = None) -> List[QueuedJob]:
        """
        Fetch processing jobs claimed before the given time.

        Args:
            started_before: Jobs with processing_started_at earlier than this are returned
            limit: Optional maximum number of jobs
        """
        pass

    @abstractmethod
    async def list_by_status(self, status: JobStatus, limit: int) -> List[QueuedJob]:
        """
        List jobs in a status, most recently updated first.

        Args:
            status: Status to filter on
            limit: Maximum number of jobs
        """
        pass

    @abstractmethod
    async def reset_failed(self, now: datetime, job_id: Optional[str] = None) -> int:
        """
        Return failed jobs to pending with a fresh attempt budget.

        Args:
            now: Time used for scheduled_for and updated_at
            job_id: Restrict the reset to one job; all failed jobs when None

        Returns:
            Number of jobs reset
        """
        pass

    @abstractmethod
    async def delete_terminal_before(self, cutoff: datetime, limit: int) -> int:
        """
        Delete completed, failed and cancelled jobs last updated before cutoff.

        Args:
            cutoff: Jobs updated before this time are eligible
            limit: Maximum number of jobs deleted by this call

        Returns:
            Number of jobs deleted
        """
        pass

    @abstractmethod
    async def count_by_status(self) -> Dict[JobStatus, int]:
        """
        Count jobs per status.

        Returns:
            Mapping with an entry for every JobStatus
        """
        pass

    @abstractmethod
    async def average_duration_ms(self) -> Optional[float]:
        """Mean processing duration of completed jobs, or None if there are none."""
        pass

    @abstractmethod
    async def count_completed_since(self, since: datetime) -> int:
        """Number of jobs completed at or after the given time."""
        pass

    @abstractmethod
    async def oldest_due_scheduled_for(self, now: datetime) -> Optional[datetime]:
        """Earliest scheduled_for among pending jobs that are already due."""
        pass
