import logging
import traceback
from dataclasses import dataclass, field, asdict
from datetime import timedelta
from typing import Any, Dict, List, Optional

from core.queue.job_store import JobStore
from core.job import JobStatus

logger = logging.getLogger("NotifyQueue.StatsCollector")

HEALTHY = "healthy"
WARNING = "warning"
CRITICAL = "critical"


@dataclass
class QueueStats:
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    average_processing_time: float = 0.0
    throughput_per_hour: int = 0
    oldest_pending_age: Optional[float] = None

    @property
    def total_processed(self) -> int:
        return self.completed + self.failed

    @property
    def success_rate(self) -> float:
        """Percentage of processed jobs that were delivered, 0 when none were processed."""
        if self.total_processed == 0:
            return 0.0
        return self.completed / self.total_processed * 100

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["total_processed"] = self.total_processed
        data["success_rate"] = round(self.success_rate, 2)
        return data


@dataclass
class HealthThresholds:
    min_success_rate: float = 80.0
    critical_success_rate: float = 50.0
    min_processed_for_rate: int = 10
    max_processing: int = 5
    max_pending: int = 50
    max_failed: int = 20
    max_pending_age: float = 60 * 60
    max_issues_before_critical: int = 2


@dataclass
class QueueHealth:
    status: str
    issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    stats: Optional[QueueStats] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "issues": list(self.issues),
            "recommendations": list(self.recommendations),
            "stats": self.stats.to_dict() if self.stats else None,
        }


def evaluate_health(stats: QueueStats, thresholds: Optional[HealthThresholds] = None) -> QueueHealth:
    """Derive the health verdict from a stats snapshot. Pure function."""
    thresholds = thresholds or HealthThresholds()
    issues = []
    recommendations = []

    rate_is_meaningful = stats.total_processed >= thresholds.min_processed_for_rate
    if rate_is_meaningful and stats.success_rate < thresholds.min_success_rate:
        issues.append(f"Low success rate: {stats.success_rate:.1f}%")
        recommendations.append("Check channel provider configuration and credentials")

    if stats.processing > thresholds.max_processing:
        issues.append(f"High number of processing items: {stats.processing}")
        recommendations.append("Check that the queue worker and stuck job reaper are running")

    if stats.pending > thresholds.max_pending:
        issues.append(f"High number of pending items: {stats.pending}")
        recommendations.append("Consider increasing the poll frequency or batch size")

    if stats.failed > thresholds.max_failed:
        issues.append(f"High number of failed items: {stats.failed}")
        recommendations.append("Review failed notifications and retry them once the cause is fixed")

    if stats.oldest_pending_age is not None and stats.oldest_pending_age > thresholds.max_pending_age:
        issues.append(f"Oldest pending item has waited {stats.oldest_pending_age / 60:.0f} minutes")
        recommendations.append("The queue is falling behind; add workers or check for stalled processing")

    if len(issues) > thresholds.max_issues_before_critical or (
        rate_is_meaningful and stats.success_rate < thresholds.critical_success_rate
    ):
        status = CRITICAL
    elif issues:
        status = WARNING
    else:
        status = HEALTHY

    return QueueHealth(status=status, issues=issues, recommendations=recommendations, stats=stats)


class StatsCollector:
    """Read-only aggregation over the job store. Never changes the queue."""

    def __init__(self, store: JobStore, clock, thresholds: Optional[HealthThresholds] = None):
        self.store = store
        self.clock = clock
        self.thresholds = thresholds or HealthThresholds()

    async def get_queue_stats(self) -> QueueStats:
        now = self.clock.now()
        counts = await self.store.count_by_status()
        average_ms = await self.store.average_duration_ms()
        throughput = await self.store.count_completed_since(now - timedelta(hours=1))
        oldest = await self.store.oldest_due_scheduled_for(now)

        return QueueStats(
            pending=counts.get(JobStatus.PENDING, 0),
            processing=counts.get(JobStatus.PROCESSING, 0),
            completed=counts.get(JobStatus.COMPLETED, 0),
            failed=counts.get(JobStatus.FAILED, 0),
            cancelled=counts.get(JobStatus.CANCELLED, 0),
            average_processing_time=(average_ms or 0.0) / 1000,
            throughput_per_hour=throughput,
            oldest_pending_age=(now - oldest).total_seconds() if oldest else None,
        )

    async def get_queue_health(self) -> QueueHealth:
        try:
            stats = await self.get_queue_stats()
        except Exception as e:
            logger.error(f"Error checking queue health: {str(e)}")
            logger.debug(traceback.format_exc())
            return QueueHealth(
                status=CRITICAL,
                issues=["Unable to check queue health"],
                recommendations=["Check database connectivity and permissions"],
            )

        return evaluate_health(stats, self.thresholds)
