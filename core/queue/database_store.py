import logging
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, List, Any
from sqlalchemy import select, update, delete, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from core.queue.job_store import JobStore
from core.job import QueuedJob, JobStatus, Priority, PRIORITY_RANK, TERMINAL_STATUSES
from core.queue.exceptions import StoreError, StoreUnavailableError
from core.model import Model
from app.models.queued_job import QueuedJobRecord

logger = logging.getLogger("NotifyQueue.DatabaseJobStore")

# Domain field name -> mapped attribute name where they differ
_COLUMN_NAMES = {"metadata": "job_metadata"}

_PRIORITY_ORDER = case(
    {priority.value: rank for priority, rank in PRIORITY_RANK.items()},
    value=QueuedJobRecord.priority,
    else_=PRIORITY_RANK[Priority.MEDIUM],
)


def _to_columns(changes: Dict[str, Any]) -> Dict[str, Any]:
    values = {}
    for key, value in changes.items():
        column = _COLUMN_NAMES.get(key, key)
        if not hasattr(QueuedJobRecord, column):
            raise AttributeError(f"QueuedJobRecord has no column for '{key}'")
        if isinstance(value, Enum):
            value = value.value
        values[column] = value
    return values


class DatabaseJobStore(JobStore):
    """
    Database-backed job store using SQLAlchemy.
    Claims and outcome writes are single conditional UPDATE statements, so two
    workers racing on one job can never both win.
    """

    def __init__(self):
        """Initialize the database job store."""
        self.connection_name = "database"

    async def _session(self, operation: str) -> AsyncSession:
        if not Model._is_enabled:
            logger.error(f"Cannot run {operation} - database is disabled")
            raise StoreUnavailableError(operation, "database is disabled")
        return await Model.get_session()

    async def insert_many(self, jobs: List[QueuedJob]) -> None:
        """Insert every job of a fan-out in one transaction."""
        session = await self._session("insert_many")
        try:
            session.add_all([QueuedJobRecord.from_job(job) for job in jobs])
            await session.commit()
            logger.debug(f"Inserted {len(jobs)} jobs")

        except Exception as e:
            await session.rollback()
            logger.error(f"Failed to insert jobs: {str(e)}")
            raise StoreError("insert_many", str(e)) from e
        finally:
            await session.close()

    async def get(self, job_id: str) -> Optional[QueuedJob]:
        session = await self._session("get")
        try:
            result = await session.execute(
                select(QueuedJobRecord).where(QueuedJobRecord.id == job_id)
            )
            record = result.scalars().first()
            return record.to_job() if record else None

        except Exception as e:
            logger.error(f"Failed to load job {job_id}: {str(e)}")
            raise StoreError("get", str(e)) from e
        finally:
            await session.close()

    async def fetch_due(self, now: datetime, limit: int) -> List[QueuedJob]:
        """Fetch due pending jobs: earliest first, then highest priority, then oldest."""
        session = await self._session("fetch_due")
        try:
            stmt = (
                select(QueuedJobRecord)
                .where(
                    QueuedJobRecord.status == JobStatus.PENDING.value,
                    QueuedJobRecord.scheduled_for <= now,
                )
                .order_by(
                    QueuedJobRecord.scheduled_for.asc(),
                    _PRIORITY_ORDER.desc(),
                    QueuedJobRecord.created_at.asc(),
                )
                .limit(limit)
            )

            result = await session.execute(stmt)
            return [record.to_job() for record in result.scalars().all()]

        except Exception as e:
            logger.error(f"Failed to fetch due jobs: {str(e)}")
            raise StoreError("fetch_due", str(e)) from e
        finally:
            await session.close()

    async def try_transition(
        self,
        job_id: str,
        expected_status: JobStatus,
        new_status: JobStatus,
        changes: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Conditional UPDATE ... WHERE id = ? AND status = ?; wins iff one row changed."""
        values = _to_columns(changes or {})
        values["status"] = new_status.value

        session = await self._session("try_transition")
        try:
            stmt = (
                update(QueuedJobRecord)
                .where(
                    QueuedJobRecord.id == job_id,
                    QueuedJobRecord.status == expected_status.value,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )

            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount == 1

        except Exception as e:
            await session.rollback()
            logger.error(
                f"Failed to move job {job_id} from {expected_status.value} to {new_status.value}: {str(e)}"
            )
            raise StoreError("try_transition", str(e)) from e
        finally:
            await session.close()

    async def find_stuck(self, started_before: datetime, limit: Optional[int] = None) -> List[QueuedJob]:
        session = await self._session("find_stuck")
        try:
            stmt = (
                select(QueuedJobRecord)
                .where(
                    QueuedJobRecord.status == JobStatus.PROCESSING.value,
                    QueuedJobRecord.processing_started_at < started_before,
                )
                .order_by(QueuedJobRecord.processing_started_at.asc())
            )
            if limit is not None:
                stmt = stmt.limit(limit)

            result = await session.execute(stmt)
            return [record.to_job() for record in result.scalars().all()]

        except Exception as e:
            logger.error(f"Failed to scan for stuck jobs: {str(e)}")
            raise StoreError("find_stuck", str(e)) from e
        finally:
            await session.close()

    async def list_by_status(self, status: JobStatus, limit: int) -> List[QueuedJob]:
        session = await self._session("list_by_status")
        try:
            stmt = (
                select(QueuedJobRecord)
                .where(QueuedJobRecord.status == status.value)
                .order_by(QueuedJobRecord.updated_at.desc())
                .limit(limit)
            )

            result = await session.execute(stmt)
            return [record.to_job() for record in result.scalars().all()]

        except Exception as e:
            logger.error(f"Failed to list {status.value} jobs: {str(e)}")
            raise StoreError("list_by_status", str(e)) from e
        finally:
            await session.close()

    async def reset_failed(self, now: datetime, job_id: Optional[str] = None) -> int:
        session = await self._session("reset_failed")
        try:
            stmt = update(QueuedJobRecord).where(
                QueuedJobRecord.status == JobStatus.FAILED.value
            )
            if job_id is not None:
                stmt = stmt.where(QueuedJobRecord.id == job_id)
            stmt = stmt.values(
                status=JobStatus.PENDING.value,
                attempts=0,
                last_error=None,
                scheduled_for=now,
                updated_at=now,
            ).execution_options(synchronize_session=False)

            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount

        except Exception as e:
            await session.rollback()
            logger.error(f"Failed to reset failed jobs: {str(e)}")
            raise StoreError("reset_failed", str(e)) from e
        finally:
            await session.close()

    async def delete_terminal_before(self, cutoff: datetime, limit: int) -> int:
        """Delete at most `limit` expired terminal jobs (select ids, then delete by id)."""
        session = await self._session("delete_terminal_before")
        try:
            id_stmt = (
                select(QueuedJobRecord.id)
                .where(
                    QueuedJobRecord.status.in_([status.value for status in TERMINAL_STATUSES]),
                    QueuedJobRecord.updated_at < cutoff,
                )
                .order_by(QueuedJobRecord.updated_at.asc())
                .limit(limit)
            )
            ids = list((await session.execute(id_stmt)).scalars().all())
            if not ids:
                return 0

            stmt = (
                delete(QueuedJobRecord)
                .where(QueuedJobRecord.id.in_(ids))
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount

        except Exception as e:
            await session.rollback()
            logger.error(f"Failed to delete old jobs: {str(e)}")
            raise StoreError("delete_terminal_before", str(e)) from e
        finally:
            await session.close()

    async def count_by_status(self) -> Dict[JobStatus, int]:
        session = await self._session("count_by_status")
        try:
            stmt = select(QueuedJobRecord.status, func.count(QueuedJobRecord.id)).group_by(
                QueuedJobRecord.status
            )
            result = await session.execute(stmt)

            counts = {status: 0 for status in JobStatus}
            for status, count in result.all():
                counts[JobStatus(status)] = count
            return counts

        except Exception as e:
            logger.error(f"Failed to count jobs: {str(e)}")
            raise StoreError("count_by_status", str(e)) from e
        finally:
            await session.close()

    async def average_duration_ms(self) -> Optional[float]:
        session = await self._session("average_duration_ms")
        try:
            stmt = select(func.avg(QueuedJobRecord.duration_ms)).where(
                QueuedJobRecord.status == JobStatus.COMPLETED.value,
                QueuedJobRecord.duration_ms.is_not(None),
            )
            value = (await session.execute(stmt)).scalar()
            return float(value) if value is not None else None

        except Exception as e:
            logger.error(f"Failed to average processing time: {str(e)}")
            raise StoreError("average_duration_ms", str(e)) from e
        finally:
            await session.close()

    async def count_completed_since(self, since: datetime) -> int:
        session = await self._session("count_completed_since")
        try:
            stmt = select(func.count(QueuedJobRecord.id)).where(
                QueuedJobRecord.status == JobStatus.COMPLETED.value,
                QueuedJobRecord.completed_at >= since,
            )
            return (await session.execute(stmt)).scalar() or 0

        except Exception as e:
            logger.error(f"Failed to count completed jobs: {str(e)}")
            raise StoreError("count_completed_since", str(e)) from e
        finally:
            await session.close()

    async def oldest_due_scheduled_for(self, now: datetime) -> Optional[datetime]:
        session = await self._session("oldest_due_scheduled_for")
        try:
            stmt = select(func.min(QueuedJobRecord.scheduled_for)).where(
                QueuedJobRecord.status == JobStatus.PENDING.value,
                QueuedJobRecord.scheduled_for <= now,
            )
            return (await session.execute(stmt)).scalar()

        except Exception as e:
            logger.error(f"Failed to find oldest pending job: {str(e)}")
            raise StoreError("oldest_due_scheduled_for", str(e)) from e
        finally:
            await session.close()
