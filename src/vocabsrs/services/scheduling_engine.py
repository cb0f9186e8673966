"""SM-2 style scheduling: computes the next progress record from a review."""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from vocabsrs.clock import as_utc
from vocabsrs.config import settings
from vocabsrs.errors import ClockRegression
from vocabsrs.models.progress_models import MIN_EASE, Grade, ProgressRecord, to_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchedulingParameters:
    """Tunable constants of the scheduling algorithm."""
    initial_ease: Decimal = Decimal("2.5")
    min_ease: Decimal = MIN_EASE
    fail_penalty: Decimal = Decimal("0.2")
    hard_delta: Decimal = Decimal("0.15")
    easy_delta: Decimal = Decimal("0.15")
    first_interval: int = 1
    second_interval: int = 6
    max_interval: int = 36500

    def __post_init__(self):
        for name in ("initial_ease", "min_ease", "fail_penalty", "hard_delta", "easy_delta"):
            object.__setattr__(self, name, to_decimal(getattr(self, name)))

        if self.min_ease < MIN_EASE:
            raise ValueError(f"min_ease cannot be below {MIN_EASE}")
        if self.initial_ease < self.min_ease:
            raise ValueError("initial_ease cannot be below min_ease")
        if min(self.fail_penalty, self.hard_delta, self.easy_delta) < 0:
            raise ValueError("Ease adjustments must be non-negative")
        if self.first_interval < 1 or self.second_interval < self.first_interval:
            raise ValueError("Intervals must be positive and non-decreasing")
        if self.max_interval < self.second_interval:
            raise ValueError("max_interval cannot be below second_interval")

    @classmethod
    def from_settings(cls) -> "SchedulingParameters":
        cfg = settings.scheduling
        return cls(
            initial_ease=cfg.initial_ease,
            min_ease=cfg.min_ease,
            fail_penalty=cfg.fail_penalty,
            hard_delta=cfg.hard_delta,
            easy_delta=cfg.easy_delta,
            first_interval=cfg.first_interval,
            second_interval=cfg.second_interval,
            max_interval=cfg.max_interval,
        )


class SchedulingEngine:
    """Pure state transition of a progress record. No I/O and no shared state."""

    def __init__(self, params: Optional[SchedulingParameters] = None):
        self.params = params or SchedulingParameters.from_settings()

    def initial_record(self, item_id: int) -> ProgressRecord:
        return ProgressRecord.initial(item_id, ease_factor=self.params.initial_ease)

    def next_state(self, record: ProgressRecord, grade: Any, now: datetime) -> ProgressRecord:
        """Apply one review to ``record`` and return the new record.

        Raises InvalidGrade for anything that is not a grade and
        ClockRegression if ``now`` precedes the last review.
        """
        grade = Grade.coerce(grade)
        now = as_utc(now)
        if record.last_reviewed_at is not None and now < record.last_reviewed_at:
            raise ClockRegression(record.item_id, now, record.last_reviewed_at)

        p = self.params
        if grade is Grade.FAIL:
            streak = 0
            ease = max(p.min_ease, record.ease_factor - p.fail_penalty)
            interval = p.first_interval
        else:
            streak = record.streak + 1
            if streak == 1:
                interval = p.first_interval
            elif streak == 2:
                interval = p.second_interval
            else:
                interval = self._grow_interval(record.interval_days, record.ease_factor, p.max_interval)

            if grade is Grade.HARD:
                ease = max(p.min_ease, record.ease_factor - p.hard_delta)
            elif grade is Grade.EASY:
                ease = record.ease_factor + p.easy_delta
            else:
                ease = record.ease_factor

        logger.debug(
            "Item %s graded %s: streak %d -> %d, interval %d -> %d, ease %s -> %s",
            record.item_id, grade.value, record.streak, streak,
            record.interval_days, interval, record.ease_factor, ease,
        )
        return ProgressRecord.scheduled(
            item_id=record.item_id,
            streak=streak,
            ease_factor=ease,
            interval_days=interval,
            reviewed_at=now,
            version=record.version,
        )

    @staticmethod
    def _grow_interval(interval_days: int, ease_factor: Decimal, max_interval: int) -> int:
        grown = (Decimal(interval_days) * ease_factor).quantize(Decimal(1), rounding=ROUND_HALF_UP)
        # Strict forward progress even when the ease factor sits near its floor,
        # but never past max_interval so due dates stay representable
        return min(max(int(grown), interval_days + 1), max_interval)


def next_state(
    record: ProgressRecord,
    grade: Any,
    now: datetime,
    params: Optional[SchedulingParameters] = None,
) -> ProgressRecord:
    """Module-level shortcut for SchedulingEngine(params).next_state(...)."""
    return SchedulingEngine(params).next_state(record, grade, now)
