import copy
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        """Ordering weight, higher is served first."""
        return PRIORITY_RANK[self]


PRIORITY_RANK = {
    Priority.LOW: 0,
    Priority.MEDIUM: 1,
    Priority.HIGH: 2,
    Priority.URGENT: 3,
}


@dataclass(frozen=True)
class NotificationPayload:
    """Content handed to the channel dispatcher. Never changes after enqueue."""

    title: str
    body: str
    type: str = "info"
    priority: str = Priority.MEDIUM.value
    category: str = "general"
    action_url: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "body": self.body,
            "type": self.type,
            "priority": self.priority,
            "category": self.category,
            "action_url": self.action_url,
            "data": copy.deepcopy(self.data),
        }

    def copy(self) -> "NotificationPayload":
        """Copy with its own data dict, so no caller can change a queued payload."""
        return replace(self, data=copy.deepcopy(self.data))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NotificationPayload":
        return cls(
            title=data["title"],
            body=data["body"],
            type=data.get("type", "info"),
            priority=data.get("priority", Priority.MEDIUM.value),
            category=data.get("category", "general"),
            action_url=data.get("action_url"),
            data=copy.deepcopy(data.get("data") or {}),
        )


@dataclass
class QueuedJob:
    """One notification to one recipient, as seen by the queue components."""

    id: str
    notification_id: str
    recipient_id: str
    payload: NotificationPayload
    priority: Priority
    status: JobStatus
    attempts: int
    max_attempts: int
    scheduled_for: datetime
    created_at: datetime
    updated_at: datetime
    processing_started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_error: Optional[str] = None
    duration_ms: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def is_due(self, now: datetime) -> bool:
        return self.status == JobStatus.PENDING and self.scheduled_for <= now

    def copy(self) -> "QueuedJob":
        """Detached copy, so callers never share mutable state with a store."""
        return replace(self, payload=self.payload.copy(), metadata=copy.deepcopy(self.metadata))

    def __repr__(self):
        return (
            f"<QueuedJob(id={self.id}, recipient={self.recipient_id}, status={self.status.value}, "
            f"attempts={self.attempts}/{self.max_attempts})>"
        )
