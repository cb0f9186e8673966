"""Selects the vocabulary items that are due for review."""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from vocabsrs.clock import Clock, SystemClock, as_utc
from vocabsrs.models.models import VocabularyItem
from vocabsrs.services.progress_store import ProgressStore

logger = logging.getLogger(__name__)


class ReviewSelector:
    """Read-only query over items and their progress."""

    def __init__(self, db: Session, store: ProgressStore, clock: Optional[Clock] = None):
        """Initialize the selector with a database session and a progress store."""
        self.db = db
        self.store = store
        self.clock = clock or SystemClock()

    def due_items(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> List[int]:
        """Return ids of due items.

        Never-reviewed items come first in creation order, then reviewed
        items whose due date has passed, most overdue first.
        """
        if limit is not None and limit < 0:
            raise ValueError("limit cannot be negative")
        now = as_utc(now) if now is not None else self.clock.now()

        item_ids = [
            row.id for row in self.db.query(VocabularyItem.id).order_by(VocabularyItem.id).all()
        ]
        records = self.store.get_many()

        never_reviewed = []
        overdue = []
        for item_id in item_ids:
            record = records.get(item_id)
            if record is None or record.is_new:
                never_reviewed.append(item_id)
            elif record.next_review_at <= now:
                overdue.append((record.next_review_at, item_id))

        overdue.sort()
        due = never_reviewed + [item_id for _, item_id in overdue]
        if limit is not None:
            due = due[:limit]

        logger.debug(
            "Due at %s: %d new, %d overdue", now.isoformat(), len(never_reviewed), len(overdue)
        )
        return due

    def count_due(self, now: Optional[datetime] = None) -> int:
        """Number of items due at ``now``."""
        return len(self.due_items(now))
