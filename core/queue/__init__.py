"""
Notification delivery queue - persistent, at-least-once fan-out with retries.
"""

from core.job import QueuedJob, JobStatus, Priority, NotificationPayload
from core.queue.exceptions import QueueError, StoreError, StoreUnavailableError
from core.queue.job_store import JobStore
from core.queue.memory_store import MemoryJobStore
from core.queue.database_store import DatabaseJobStore
from core.queue.dispatcher import ChannelDispatcher, DeliveryResult
from core.queue.retry import RetryScheduler
from core.queue.queue_worker import QueueWorker, CycleReport
from core.queue.reaper import StuckJobReaper
from core.queue.stats import StatsCollector, QueueStats, QueueHealth, HealthThresholds, evaluate_health
from core.queue.ticker import PeriodicTask
from core.queue.notification_queue import NotificationQueue

__all__ = [
    "QueuedJob",
    "JobStatus",
    "Priority",
    "NotificationPayload",
    "QueueError",
    "StoreError",
    "StoreUnavailableError",
    "JobStore",
    "MemoryJobStore",
    "DatabaseJobStore",
    "ChannelDispatcher",
    "DeliveryResult",
    "RetryScheduler",
    "QueueWorker",
    "CycleReport",
    "StuckJobReaper",
    "StatsCollector",
    "QueueStats",
    "QueueHealth",
    "HealthThresholds",
    "evaluate_health",
    "PeriodicTask",
    "NotificationQueue",
]
