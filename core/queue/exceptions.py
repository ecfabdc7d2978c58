class QueueError(Exception):
    """Base class for notification queue errors."""


class StoreError(QueueError):
    """A job store query or update failed. The original error is chained."""

    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation


class StoreUnavailableError(StoreError):
    """The backing store is not configured or has been disabled."""
