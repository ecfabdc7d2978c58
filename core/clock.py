from datetime import datetime, timedelta, timezone


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are taken as UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class SystemClock:
    """Wall clock returning naive UTC datetimes, matching the stored columns."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FakeClock:
    """
    Manually driven clock for tests and simulations.

    Usage:
        clock = FakeClock(datetime(2024, 1, 1))
        clock.advance(seconds=30)
    """

    def __init__(self, start: datetime = None):
        self._now = start or datetime(2024, 1, 1, 12, 0, 0)

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value

    def advance(self, seconds: float = 0, **kwargs) -> datetime:
        self._now += timedelta(seconds=seconds, **kwargs)
        return self._now
