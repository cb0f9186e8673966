"""Service driving one study session from due-item snapshot to statistics."""
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Deque, List, Optional, Protocol, Tuple

from vocabsrs import monitoring
from vocabsrs.clock import Clock, SystemClock, as_utc
from vocabsrs.config import settings
from vocabsrs.errors import (
    ClockRegression,
    ConcurrentModification,
    InvalidGrade,
    NotInSession,
    SessionAlreadyActive,
)
from vocabsrs.models.progress_models import Grade, ProgressRecord, ReviewEvent, SessionStats
from vocabsrs.services.progress_store import ProgressStore
from vocabsrs.services.review_selector import ReviewSelector
from vocabsrs.services.scheduling_engine import SchedulingEngine

logger = logging.getLogger(__name__)


class Analytics(Protocol):
    """Receives statistics of finished sessions."""

    def record_session(self, stats: SessionStats) -> None:
        ...


@dataclass
class StudySession:
    """Snapshot of due items taken when the session started."""
    items: Tuple[int, ...]
    started_at: datetime
    remaining: List[int]
    history: Deque[ReviewEvent]
    stats: SessionStats = field(default_factory=SessionStats)

    @property
    def is_finished(self) -> bool:
        return not self.remaining


class SessionCoordinator:
    """Runs study sessions for one user context, one session at a time."""

    def __init__(
        self,
        store: ProgressStore,
        selector: ReviewSelector,
        engine: Optional[SchedulingEngine] = None,
        clock: Optional[Clock] = None,
        analytics: Optional[Analytics] = None,
        max_commit_retries: Optional[int] = None,
        history_size: Optional[int] = None,
    ):
        self.store = store
        self.selector = selector
        self.engine = engine or SchedulingEngine()
        self.clock = clock or SystemClock()
        self.analytics = analytics or monitoring.PrometheusAnalytics()
        self.max_commit_retries = (
            max_commit_retries if max_commit_retries is not None
            else settings.session.max_commit_retries
        )
        self.history_size = history_size if history_size is not None else settings.session.history_size
        if self.max_commit_retries < 1:
            raise ValueError("max_commit_retries must be at least 1")
        if self.history_size < 1:
            raise ValueError("history_size must be at least 1")
        self._session: Optional[StudySession] = None

    @property
    def active_session(self) -> Optional[StudySession]:
        return self._session

    @property
    def remaining(self) -> List[int]:
        """Items of the active session still waiting for a grade."""
        return list(self._session.remaining) if self._session else []

    def start_session(self, limit: Optional[int] = None) -> StudySession:
        """Snapshot up to ``limit`` due items into a new session."""
        if self._session is not None:
            monitoring.error_count.labels(error_type="SessionAlreadyActive").inc()
            raise SessionAlreadyActive("A study session is already active")

        limit = settings.session.limit if limit is None else limit
        if limit < 1:
            raise ValueError("Session limit must be positive")

        now = self.clock.now()
        items = tuple(self.selector.due_items(now, limit=limit))
        self._session = StudySession(
            items=items,
            started_at=now,
            remaining=list(items),
            history=deque(maxlen=self.history_size),
        )
        monitoring.sessions_started.inc()
        monitoring.session_size.observe(len(items))
        logger.info("Started session with %d due items", len(items))
        return self._session

    def submit_review(self, item_id: int, grade: Any, now: Optional[datetime] = None) -> ProgressRecord:
        """Grade one item of the session and commit its new schedule.

        Compare-and-swap conflicts are retried with a fresh read up to
        ``max_commit_retries`` attempts. Caller errors and capacity errors
        propagate immediately; the item then stays in the queue.
        """
        session = self._require_session()
        if item_id not in session.remaining:
            monitoring.error_count.labels(error_type="NotInSession").inc()
            raise NotInSession(f"Item {item_id} is not waiting for review in this session")

        now = as_utc(now) if now is not None else self.clock.now()
        try:
            grade = Grade.coerce(grade)
            stored = self._commit(item_id, grade, now)
        except (InvalidGrade, ClockRegression) as e:
            monitoring.error_count.labels(error_type=type(e).__name__).inc()
            raise

        session.remaining.remove(item_id)
        session.stats.record(grade, stored.streak)
        session.history.append(
            ReviewEvent(
                item_id=item_id,
                grade=grade,
                reviewed_at=now,
                streak=stored.streak,
                interval_days=stored.interval_days,
            )
        )
        monitoring.reviews_total.labels(grade=grade.value).inc()
        logger.info(
            "Item %s graded %s, next review %s",
            item_id, grade.value, stored.next_review_at.isoformat(),
        )
        return stored

    def end_session(self) -> SessionStats:
        """Close the session and hand its statistics to analytics."""
        session = self._require_session()
        self._session = None
        self.analytics.record_session(session.stats)
        logger.info(
            "Ended session: %d of %d items reviewed",
            session.stats.reviewed, len(session.items),
        )
        return session.stats

    def remove_item(self, item_id: int) -> bool:
        """Drop an item from the active session's queue, if it is there."""
        if self._session is None or item_id not in self._session.remaining:
            return False
        self._session.remaining.remove(item_id)
        logger.info("Removed item %s from the active session", item_id)
        return True

    def _commit(self, item_id: int, grade: Grade, now: datetime) -> ProgressRecord:
        for attempt in range(1, self.max_commit_retries + 1):
            record = self.store.get(item_id)
            updated = self.engine.next_state(record, grade, now)
            try:
                return self.store.put(item_id, updated)
            except ConcurrentModification:
                if attempt == self.max_commit_retries:
                    logger.error("Giving up on item %s after %d conflicting writes", item_id, attempt)
                    raise
                logger.warning("Retrying review of item %s (attempt %d)", item_id, attempt + 1)

    def _require_session(self) -> StudySession:
        if self._session is None:
            raise NotInSession("No study session is active")
        return self._session
