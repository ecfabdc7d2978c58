from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Index
from core.model import Base
from core.job import QueuedJob, JobStatus, Priority, NotificationPayload


class QueuedJobRecord(Base):
    """Model for notification_queue_jobs table - one row per notification and recipient."""

    __tablename__ = "notification_queue_jobs"

    id = Column(String(64), primary_key=True)
    notification_id = Column(String(255), nullable=False, index=True)
    recipient_id = Column(String(255), nullable=False)
    payload = Column(JSON, nullable=False)
    priority = Column(String(16), nullable=False, default=Priority.MEDIUM.value)
    status = Column(String(16), nullable=False, default=JobStatus.PENDING.value)
    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)
    scheduled_for = Column(DateTime, nullable=False)
    processing_started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    last_error = Column(Text, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    job_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    # Composite indexes for the due-job poll, the reaper scan and cleanup
    __table_args__ = (
        Index("notification_queue_jobs_status_scheduled_index", "status", "scheduled_for"),
        Index("notification_queue_jobs_status_started_index", "status", "processing_started_at"),
        Index("notification_queue_jobs_status_updated_index", "status", "updated_at"),
    )

    @classmethod
    def from_job(cls, job: QueuedJob) -> "QueuedJobRecord":
        return cls(
            id=job.id,
            notification_id=job.notification_id,
            recipient_id=job.recipient_id,
            payload=job.payload.to_dict(),
            priority=job.priority.value,
            status=job.status.value,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            scheduled_for=job.scheduled_for,
            processing_started_at=job.processing_started_at,
            completed_at=job.completed_at,
            last_error=job.last_error,
            duration_ms=job.duration_ms,
            job_metadata=dict(job.metadata),
            created_at=job.created_at,
            updated_at=job.updated_at,
        )

    def to_job(self) -> QueuedJob:
        return QueuedJob(
            id=self.id,
            notification_id=self.notification_id,
            recipient_id=self.recipient_id,
            payload=NotificationPayload.from_dict(self.payload),
            priority=Priority(self.priority),
            status=JobStatus(self.status),
            attempts=self.attempts,
            max_attempts=self.max_attempts,
            scheduled_for=self.scheduled_for,
            created_at=self.created_at,
            updated_at=self.updated_at,
            processing_started_at=self.processing_started_at,
            completed_at=self.completed_at,
            last_error=self.last_error,
            duration_ms=self.duration_ms,
            metadata=dict(self.job_metadata or {}),
        )

    def __repr__(self):
        return f"<QueuedJobRecord(id={self.id}, status='{self.status}', attempts={self.attempts})>"
