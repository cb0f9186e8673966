"""Application wiring: database, store, selector, engine and coordinator."""
import logging
from typing import Optional

from sqlalchemy.engine import Engine

from vocabsrs.clock import Clock, SystemClock
from vocabsrs.config import settings
from vocabsrs.models.base import engine as default_engine
from vocabsrs.models.base import init_db, make_session_factory
from vocabsrs.monitoring import start_monitoring
from vocabsrs.services.progress_store import ProgressStore
from vocabsrs.services.review_selector import ReviewSelector
from vocabsrs.services.scheduling_engine import SchedulingEngine
from vocabsrs.services.session_coordinator import Analytics, SessionCoordinator
from vocabsrs.services.vocabulary_service import VocabularyService


class StudyApp:
    """Main application class for one user context."""

    def __init__(
        self,
        bind: Optional[Engine] = None,
        clock: Optional[Clock] = None,
        analytics: Optional[Analytics] = None,
        capacity_bytes: Optional[int] = None,
    ):
        """Initialize the application."""
        self.logger = logging.getLogger(__name__)
        self.bind = bind or default_engine
        self.clock = clock or SystemClock()
        self.analytics = analytics
        self.capacity_bytes = capacity_bytes
        self.db = None
        self.running = False

    def start(self) -> None:
        """Create tables and build the services."""
        if self.running:
            return

        init_db(self.bind)
        self.db = make_session_factory(self.bind)()
        self.logger.info("Database initialized")

        self.store = ProgressStore(self.db, capacity_bytes=self.capacity_bytes)
        self.engine = SchedulingEngine()
        self.selector = ReviewSelector(self.db, self.store, self.clock)
        self.coordinator = SessionCoordinator(
            self.store,
            self.selector,
            engine=self.engine,
            clock=self.clock,
            analytics=self.analytics,
        )
        self.vocabulary = VocabularyService(self.db)

        if settings.monitoring.port:
            start_monitoring(settings.monitoring.port)
            self.logger.info("Metrics exported on port %d", settings.monitoring.port)

        self.running = True

    def stop(self) -> None:
        """Close the database session."""
        if not self.running:
            return
        self.db.close()
        self.db = None
        self.running = False
        self.logger.info("Application stopped")

    def __enter__(self) -> "StudyApp":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
