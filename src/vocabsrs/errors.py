"""Errors raised by the scheduling core."""


class SchedulingError(Exception):
    """Base class for all scheduler errors."""


class InvalidGrade(SchedulingError, ValueError):
    """Grade is not one of Fail, Hard, Good or Easy."""

    def __init__(self, grade):
        super().__init__(f"Invalid grade: {grade!r}")
        self.grade = grade


class ClockRegression(SchedulingError):
    """Review time precedes the record's last review."""

    def __init__(self, item_id, now, last_reviewed_at):
        super().__init__(
            f"Review of item {item_id} at {now.isoformat()} precedes "
            f"last review at {last_reviewed_at.isoformat()}"
        )
        self.item_id = item_id
        self.now = now
        self.last_reviewed_at = last_reviewed_at


class CapacityExceeded(SchedulingError):
    """Write would push the progress store over its byte budget."""

    def __init__(self, item_id, required: int, capacity: int):
        super().__init__(
            f"Storing progress for item {item_id} needs {required} bytes, "
            f"capacity is {capacity} bytes"
        )
        self.item_id = item_id
        self.required = required
        self.capacity = capacity


class ConcurrentModification(SchedulingError):
    """Stored record changed since it was read."""

    def __init__(self, item_id, expected_version: int):
        super().__init__(
            f"Progress for item {item_id} was modified since version {expected_version}"
        )
        self.item_id = item_id
        self.expected_version = expected_version


class NotInSession(SchedulingError):
    """No active session, or item is not in the remaining queue."""


class SessionAlreadyActive(SchedulingError):
    """A session is already running for this user context."""
