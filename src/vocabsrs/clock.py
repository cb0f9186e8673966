"""Clock collaborators supplying the current time."""
from datetime import UTC, datetime, timedelta
from typing import Optional, Protocol


def as_utc(moment: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


class Clock(Protocol):
    """Anything that can tell the current time."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class ManualClock:
    """Clock that only moves when told to. Used by tests and replays."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = as_utc(start) if start is not None else datetime.now(UTC)

    def now(self) -> datetime:
        return self._now

    def set(self, moment: datetime) -> None:
        self._now = as_utc(moment)

    def advance(self, **kwargs) -> datetime:
        """Move forward by a timedelta built from kwargs (days=1, hours=2, ...)."""
        delta = timedelta(**kwargs)
        if delta < timedelta(0):
            raise ValueError("ManualClock cannot move backwards")
        self._now = self._now + delta
        return self._now
