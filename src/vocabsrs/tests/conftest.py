"""Test configuration."""
import os
from datetime import UTC, datetime
from typing import Generator

import pytest
from faker import Faker

# Set test environment before any imports
os.environ["ENV"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite://")

# Import after environment setup
from sqlalchemy.orm import Session

from vocabsrs.clock import ManualClock
from vocabsrs.models.base import init_db, make_engine, make_session_factory
from vocabsrs.models.models import VocabularyItem
from vocabsrs.services.progress_store import ProgressStore
from vocabsrs.services.review_selector import ReviewSelector
from vocabsrs.services.scheduling_engine import SchedulingEngine, SchedulingParameters
from vocabsrs.services.session_coordinator import SessionCoordinator

fake = Faker()

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)


class RecordingAnalytics:
    """Analytics collaborator that keeps what it was given."""

    def __init__(self):
        self.sessions = []

    def record_session(self, stats) -> None:
        self.sessions.append(stats)


@pytest.fixture
def engine():
    """Fresh in-memory database for each test."""
    engine = make_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine) -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    db = make_session_factory(engine)()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(T0)


@pytest.fixture
def scheduling_engine() -> SchedulingEngine:
    return SchedulingEngine(SchedulingParameters())


@pytest.fixture
def store(db: Session) -> ProgressStore:
    return ProgressStore(db, capacity_bytes=1024 * 1024, initial_ease="2.5")


@pytest.fixture
def selector(db: Session, store: ProgressStore, clock: ManualClock) -> ReviewSelector:
    return ReviewSelector(db, store, clock)


@pytest.fixture
def analytics() -> RecordingAnalytics:
    return RecordingAnalytics()


@pytest.fixture
def coordinator(store, selector, scheduling_engine, clock, analytics) -> SessionCoordinator:
    return SessionCoordinator(
        store,
        selector,
        engine=scheduling_engine,
        clock=clock,
        analytics=analytics,
        max_commit_retries=3,
        history_size=5,
    )


@pytest.fixture
def make_items(db: Session):
    """Factory creating vocabulary items in order."""

    def _make(count: int):
        items = []
        for _ in range(count):
            item = VocabularyItem(text=fake.word(), translation=fake.word())
            db.add(item)
            db.commit()
            db.refresh(item)
            items.append(item)
        return items

    return _make


@pytest.fixture
def t0() -> datetime:
    return T0
