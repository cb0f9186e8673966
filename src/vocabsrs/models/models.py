"""Database models for vocabulary items and their review progress."""
from sqlalchemy import Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from vocabsrs.models.base import Base, TimestampMixin


class VocabularyItem(Base, TimestampMixin):
    """Vocabulary item. Ids follow creation order and are never reused."""

    __tablename__ = "vocabulary_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    text = Column(String, nullable=False)
    translation = Column(String, nullable=False)

    # Relationships
    progress = relationship(
        "ProgressEntry",
        back_populates="item",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<VocabularyItem {self.id} {self.text!r}>"


class ProgressEntry(Base, TimestampMixin):
    """Serialized progress record for one item, keyed by item id."""

    __tablename__ = "progress_entries"

    item_id = Column(
        Integer,
        ForeignKey("vocabulary_items.id", ondelete="CASCADE"),
        primary_key=True,
    )
    payload = Column(Text, nullable=False)  # JSON, see progress_models.encode_record
    version = Column(Integer, nullable=False, default=1)

    # Relationships
    item = relationship("VocabularyItem", back_populates="progress")
