import logging
import os
from typing import List, Optional

logger = logging.getLogger("NotifyQueue.Config")

DEFAULT_BACKOFF_TABLE = [
    30,          # 30 seconds
    2 * 60,      # 2 minutes
    5 * 60,      # 5 minutes
    15 * 60,     # 15 minutes
    30 * 60,     # 30 minutes
    60 * 60,     # 1 hour
    2 * 60 * 60, # 2 hours
    4 * 60 * 60, # 4 hours
]


def _parse_backoff(raw: Optional[str]) -> List[int]:
    if not raw:
        return list(DEFAULT_BACKOFF_TABLE)

    table = [int(part.strip()) for part in raw.split(",") if part.strip()]
    if not table:
        raise ValueError("QUEUE_BACKOFF_TABLE must contain at least one delay")
    if any(delay < 0 for delay in table):
        raise ValueError("QUEUE_BACKOFF_TABLE delays must not be negative")
    if table != sorted(table):
        raise ValueError("QUEUE_BACKOFF_TABLE must be in ascending order")
    return table


class QueueConfig:
    """
    Tunables for the notification queue.
    All intervals and timeouts are expressed in seconds.
    """

    def __init__(
        self,
        poll_interval: float = 15,
        batch_size: int = 5,
        throttle: float = 0.1,
        processing_timeout: float = 5 * 60,
        reaper_interval: float = 60,
        backoff_table: Optional[List[int]] = None,
        max_attempts: int = 3,
        retention_days: int = 7,
        cleanup_batch_limit: int = 500,
        cleanup_interval: float = 24 * 60 * 60,
        health_interval: float = 5 * 60,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if cleanup_batch_limit < 1:
            raise ValueError("cleanup_batch_limit must be at least 1")
        if backoff_table is not None and not backoff_table:
            raise ValueError("backoff_table must contain at least one delay")

        self.poll_interval = poll_interval
        self.batch_size = batch_size
        self.throttle = throttle
        self.processing_timeout = processing_timeout
        self.reaper_interval = reaper_interval
        self.backoff_table = list(DEFAULT_BACKOFF_TABLE if backoff_table is None else backoff_table)
        self.max_attempts = max_attempts
        self.retention_days = retention_days
        self.cleanup_batch_limit = cleanup_batch_limit
        self.cleanup_interval = cleanup_interval
        self.health_interval = health_interval

    @classmethod
    def from_env(cls) -> "QueueConfig":
        """Build a config from QUEUE_* environment variables."""
        config = cls(
            poll_interval=float(os.getenv("QUEUE_POLL_INTERVAL", "15")),
            batch_size=int(os.getenv("QUEUE_BATCH_SIZE", "5")),
            throttle=float(os.getenv("QUEUE_THROTTLE", "0.1")),
            processing_timeout=float(os.getenv("QUEUE_PROCESSING_TIMEOUT", "300")),
            reaper_interval=float(os.getenv("QUEUE_REAPER_INTERVAL", "60")),
            backoff_table=_parse_backoff(os.getenv("QUEUE_BACKOFF_TABLE")),
            max_attempts=int(os.getenv("QUEUE_MAX_ATTEMPTS", "3")),
            retention_days=int(os.getenv("QUEUE_RETENTION_DAYS", "7")),
            cleanup_batch_limit=int(os.getenv("QUEUE_CLEANUP_BATCH", "500")),
            cleanup_interval=float(os.getenv("QUEUE_CLEANUP_INTERVAL", "86400")),
            health_interval=float(os.getenv("QUEUE_HEALTH_INTERVAL", "300")),
        )
        logger.debug(
            f"Queue config loaded: poll={config.poll_interval}s, batch={config.batch_size}, "
            f"timeout={config.processing_timeout}s"
        )
        return config

    def __repr__(self):
        return (
            f"<QueueConfig(poll_interval={self.poll_interval}, batch_size={self.batch_size}, "
            f"max_attempts={self.max_attempts})>"
        )
