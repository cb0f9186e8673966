"""Models for review progress and session data structures."""
import json
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional

from vocabsrs.clock import as_utc
from vocabsrs.errors import InvalidGrade

# Hard floor for the ease factor of any stored record
MIN_EASE = Decimal("1.3")
DEFAULT_EASE = Decimal("2.5")


class Grade(str, Enum):
    """Performance signal supplied by the UI after a review."""
    FAIL = "fail"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"

    @property
    def passed(self) -> bool:
        return self is not Grade.FAIL

    @classmethod
    def coerce(cls, value: Any) -> "Grade":
        """Accept a Grade, its name or value, or an SM-2 quality from 0 to 5."""
        if isinstance(value, Grade):
            return value
        if isinstance(value, bool):
            raise InvalidGrade(value)
        if isinstance(value, int):
            if 0 <= value <= 2:
                return cls.FAIL
            quality = {3: cls.HARD, 4: cls.GOOD, 5: cls.EASY}
            if value in quality:
                return quality[value]
            raise InvalidGrade(value)
        if isinstance(value, str):
            key = value.strip().lower()
            for grade in cls:
                if key == grade.value:
                    return grade
        raise InvalidGrade(value)


def to_decimal(value: Any) -> Decimal:
    """Convert a number or numeric string to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a decimal: {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Not a decimal: {value!r}") from e


@dataclass(frozen=True)
class ProgressRecord:
    """Scheduling state of one vocabulary item.

    ``version`` is the store's concurrency token. It does not take part in
    equality, so a record read back after a write compares equal to the one
    that was written.
    """
    item_id: int
    streak: int = 0
    ease_factor: Decimal = DEFAULT_EASE
    interval_days: int = 0
    last_reviewed_at: Optional[datetime] = None
    next_review_at: Optional[datetime] = None
    version: int = field(default=0, compare=False)

    def __post_init__(self):
        if not isinstance(self.ease_factor, Decimal):
            object.__setattr__(self, "ease_factor", to_decimal(self.ease_factor))

    @classmethod
    def initial(cls, item_id: int, ease_factor: Any = DEFAULT_EASE, version: int = 0) -> "ProgressRecord":
        """Lazy default for an item that was never reviewed."""
        return cls(item_id=item_id, ease_factor=to_decimal(ease_factor), version=version)

    @classmethod
    def scheduled(
        cls,
        item_id: int,
        streak: int,
        ease_factor: Any,
        interval_days: int,
        reviewed_at: datetime,
        version: int = 0,
    ) -> "ProgressRecord":
        """Build a reviewed state; the due date is always derived from the interval."""
        reviewed_at = as_utc(reviewed_at)
        return cls(
            item_id=item_id,
            streak=streak,
            ease_factor=to_decimal(ease_factor),
            interval_days=interval_days,
            last_reviewed_at=reviewed_at,
            next_review_at=reviewed_at + timedelta(days=interval_days),
            version=version,
        )

    @property
    def is_new(self) -> bool:
        return self.last_reviewed_at is None

    def is_due(self, now: datetime) -> bool:
        return self.next_review_at is None or self.next_review_at <= as_utc(now)

    def with_version(self, version: int) -> "ProgressRecord":
        return replace(self, version=version)

    def validate(self) -> None:
        """Raise ValueError if the record breaks a structural invariant."""
        for name in ("item_id", "streak", "interval_days", "version"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}")

        if not self.ease_factor.is_finite() or self.ease_factor < MIN_EASE:
            raise ValueError(f"ease_factor must be at least {MIN_EASE}, got {self.ease_factor}")

        if self.last_reviewed_at is None:
            if self.next_review_at is not None:
                raise ValueError("next_review_at set on a record that was never reviewed")
            if self.streak or self.interval_days:
                raise ValueError("Unreviewed record must have zero streak and interval")
            return

        for name in ("last_reviewed_at", "next_review_at"):
            value = getattr(self, name)
            if not isinstance(value, datetime) or value.tzinfo is None:
                raise ValueError(f"{name} must be a timezone-aware datetime, got {value!r}")

        if self.interval_days < 1:
            raise ValueError("Reviewed record must have a positive interval")

        try:
            expected = self.last_reviewed_at + timedelta(days=self.interval_days)
        except OverflowError as e:
            raise ValueError("interval_days pushes next_review_at out of range") from e
        if self.next_review_at != expected:
            raise ValueError("next_review_at does not match last_reviewed_at + interval_days")


def encode_record(record: ProgressRecord) -> str:
    """Serialize a record to its stored JSON form."""
    return json.dumps(
        {
            "streak": record.streak,
            "ease_factor": str(record.ease_factor),
            "interval_days": record.interval_days,
            "last_reviewed_at": _encode_time(record.last_reviewed_at),
            "next_review_at": _encode_time(record.next_review_at),
        },
        separators=(",", ":"),
        sort_keys=True,
    )


def decode_record(item_id: int, payload: str, version: int = 0) -> ProgressRecord:
    """Parse and validate a stored record. Raises ValueError on any defect."""
    try:
        data = json.loads(payload)
    except (TypeError, json.JSONDecodeError) as e:
        raise ValueError(f"Unreadable progress payload for item {item_id}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Progress payload for item {item_id} is not an object")

    try:
        record = ProgressRecord(
            item_id=item_id,
            streak=data["streak"],
            ease_factor=to_decimal(data["ease_factor"]),
            interval_days=data["interval_days"],
            last_reviewed_at=_decode_time(data["last_reviewed_at"]),
            next_review_at=_decode_time(data["next_review_at"]),
            version=version,
        )
    except KeyError as e:
        raise ValueError(f"Progress payload for item {item_id} is missing {e}") from e
    except ArithmeticError as e:
        raise ValueError(f"Progress payload for item {item_id} is out of range") from e

    record.validate()
    return record


def _encode_time(moment: Optional[datetime]) -> Optional[str]:
    return None if moment is None else as_utc(moment).isoformat()


def _decode_time(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"Timestamp must be a string, got {value!r}")
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        raise ValueError(f"Timestamp {value!r} has no timezone")
    return as_utc(moment)


@dataclass
class ReviewEvent:
    """One committed review inside a session."""
    item_id: int
    grade: Grade
    reviewed_at: datetime
    streak: int
    interval_days: int


@dataclass
class SessionStats:
    """Aggregate statistics reported when a session ends."""
    reviewed: int = 0
    passed: int = 0
    failed: int = 0
    streak_distribution: Dict[int, int] = field(default_factory=dict)

    def record(self, grade: Grade, streak: int) -> None:
        self.reviewed += 1
        if grade.passed:
            self.passed += 1
        else:
            self.failed += 1
        counts = Counter(self.streak_distribution)
        counts[streak] += 1
        self.streak_distribution = dict(sorted(counts.items()))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "reviewed": self.reviewed,
            "passed": self.passed,
            "failed": self.failed,
            "streak_distribution": dict(self.streak_distribution),
        }
