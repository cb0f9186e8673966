"""Service for managing vocabulary items."""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from vocabsrs.models.models import ProgressEntry, VocabularyItem
from vocabsrs.services.session_coordinator import SessionCoordinator

logger = logging.getLogger(__name__)


class VocabularyService:
    """Service for managing vocabulary items."""

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db

    def get_item(self, item_id: int) -> Optional[VocabularyItem]:
        """Get an item by its ID."""
        return self.db.query(VocabularyItem).filter(VocabularyItem.id == item_id).first()

    def list_items(self, limit: Optional[int] = None) -> List[VocabularyItem]:
        """Get items in creation order."""
        query = self.db.query(VocabularyItem).order_by(VocabularyItem.id)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def add_item(self, text: str, translation: str) -> VocabularyItem:
        """Create a new item. Its progress record is created on first review."""
        text = text.strip()
        translation = translation.strip()
        if not text or not translation:
            raise ValueError("Both text and translation are required")

        item = VocabularyItem(text=text, translation=translation)
        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        logger.info("Added item %s (%s)", item.id, item.text)
        return item

    def add_items(self, pairs: List[tuple]) -> List[VocabularyItem]:
        """Create several items at once, in the given order."""
        items = []
        for text, translation in pairs:
            items.append(self.add_item(text, translation))
        return items

    def remove_item(self, item_id: int, coordinator: Optional[SessionCoordinator] = None) -> bool:
        """Delete an item together with its progress record.

        When a coordinator is given, the item is also dropped from its
        active session. Returns False if the item does not exist.
        """
        item = self.get_item(item_id)
        if item is None:
            return False

        try:
            self.db.query(ProgressEntry).filter(ProgressEntry.item_id == item_id).delete(
                synchronize_session=False
            )
            self.db.delete(item)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if coordinator is not None:
            coordinator.remove_item(item_id)
        logger.info("Removed item %s and its progress", item_id)
        return True
