"""Durable, size-limited store of per-item progress records."""
import json
import logging
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, Dict, Iterable, Iterator, Optional

from sqlalchemy import String, cast, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vocabsrs import monitoring
from vocabsrs.config import settings
from vocabsrs.errors import CapacityExceeded, ConcurrentModification
from vocabsrs.models.models import ProgressEntry
from vocabsrs.models.progress_models import (
    ProgressRecord,
    decode_record,
    encode_record,
    to_decimal,
)

logger = logging.getLogger(__name__)


def entry_size(item_id: int, payload: str) -> int:
    """Bytes charged against the budget for one stored entry."""
    return len(str(item_id).encode("utf-8")) + len(payload.encode("utf-8"))


class ProgressStore:
    """Maps item ids to progress records.

    Writes are compare-and-swap against ``record.version``: a record read
    with ``get`` carries the version it was read at, and ``put`` only succeeds
    if the stored entry still has that version. Entries are never evicted;
    a write that does not fit raises CapacityExceeded instead.
    """

    def __init__(
        self,
        db: Session,
        capacity_bytes: Optional[int] = None,
        initial_ease: Any = None,
    ):
        """Initialize the store with a database session."""
        self.db = db
        self.capacity_bytes = (
            capacity_bytes if capacity_bytes is not None else settings.storage.capacity_bytes
        )
        if self.capacity_bytes < 0:
            raise ValueError("capacity_bytes cannot be negative")
        self.initial_ease = to_decimal(
            initial_ease if initial_ease is not None else settings.scheduling.initial_ease
        )

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        """Commit on success, roll back on every failure path."""
        try:
            yield
            self.db.commit()
        except BaseException:
            self.db.rollback()
            raise

    def default(self, item_id: int, version: int = 0) -> ProgressRecord:
        return ProgressRecord.initial(item_id, ease_factor=self.initial_ease, version=version)

    def get(self, item_id: int) -> ProgressRecord:
        """Return the stored record, or the lazy default if there is none."""
        item_id = self._check_id(item_id)
        monitoring.store_operations.labels(operation_type="get").inc()
        row = self._read_row(item_id)
        if row is None:
            return self.default(item_id)

        record = self._decode(item_id, row.payload, row.version)
        if record is None:
            # Keep the version so the next put replaces the corrupt entry
            return self.default(item_id, version=row.version)
        return record

    def get_many(self, item_ids: Optional[Iterable[int]] = None) -> Dict[int, ProgressRecord]:
        """Bulk read of stored records. Corrupt entries are left out."""
        monitoring.store_operations.labels(operation_type="get_many").inc()
        query = self.db.query(ProgressEntry.item_id, ProgressEntry.payload, ProgressEntry.version)
        if item_ids is not None:
            ids = [self._check_id(item_id) for item_id in item_ids]
            if not ids:
                return {}
            query = query.filter(ProgressEntry.item_id.in_(ids))

        records = {}
        for row in query.order_by(ProgressEntry.item_id).all():
            record = self._decode(row.item_id, row.payload, row.version)
            if record is not None:
                records[row.item_id] = record
        return records

    def put(self, item_id: int, record: ProgressRecord) -> ProgressRecord:
        """Atomically replace the record for ``item_id``.

        Returns the stored record carrying its new version. Raises
        ConcurrentModification if the entry changed since ``record`` was
        read and CapacityExceeded if the write does not fit.
        """
        item_id = self._check_id(item_id)
        if record.item_id != item_id:
            raise ValueError(f"Record for item {record.item_id} cannot be stored under {item_id}")
        record.validate()

        payload = encode_record(record)
        expected = record.version
        monitoring.store_operations.labels(operation_type="put").inc()

        with self._transaction():
            row = self._read_row(item_id)
            current = row.version if row is not None else 0
            if current != expected:
                self._conflict(item_id, expected)

            old_size = entry_size(item_id, row.payload) if row is not None else 0
            required = self.usage_bytes() - old_size + entry_size(item_id, payload)
            if required > self.capacity_bytes:
                monitoring.error_count.labels(error_type="CapacityExceeded").inc()
                logger.error(
                    "Progress store full: item %s needs %d of %d bytes",
                    item_id, required, self.capacity_bytes,
                )
                raise CapacityExceeded(item_id, required, self.capacity_bytes)

            if row is None:
                self._insert(item_id, payload, expected)
            else:
                updated = (
                    self.db.query(ProgressEntry)
                    .filter(
                        ProgressEntry.item_id == item_id,
                        ProgressEntry.version == expected,
                    )
                    .update(
                        {
                            ProgressEntry.payload: payload,
                            ProgressEntry.version: expected + 1,
                            ProgressEntry.updated_at: datetime.now(UTC),
                        },
                        synchronize_session=False,
                    )
                )
                if updated != 1:
                    self._conflict(item_id, expected)

        monitoring.store_usage_bytes.set(required)
        logger.debug("Stored progress for item %s at version %d", item_id, expected + 1)
        return record.with_version(expected + 1)

    def delete(self, item_id: int) -> None:
        """Remove the record for ``item_id``. Missing records are not an error."""
        item_id = self._check_id(item_id)
        monitoring.store_operations.labels(operation_type="delete").inc()
        with self._transaction():
            deleted = (
                self.db.query(ProgressEntry)
                .filter(ProgressEntry.item_id == item_id)
                .delete(synchronize_session=False)
            )
        if deleted:
            logger.info("Deleted progress for item %s", item_id)

    def usage_bytes(self) -> int:
        """Bytes currently charged against the budget."""
        # Payloads are ASCII JSON, so character length equals byte length
        total = self.db.query(
            func.coalesce(
                func.sum(
                    func.length(ProgressEntry.payload)
                    + func.length(cast(ProgressEntry.item_id, String))
                ),
                0,
            )
        ).scalar()
        return int(total)

    def export(self) -> Dict[str, Dict[str, Any]]:
        """Serialized form of every readable record, keyed by item id."""
        return {
            str(item_id): json.loads(encode_record(record))
            for item_id, record in self.get_many().items()
        }

    def _insert(self, item_id: int, payload: str, expected: int) -> None:
        self.db.add(ProgressEntry(item_id=item_id, payload=payload, version=expected + 1))
        try:
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            if self._read_row(item_id) is not None:
                self._conflict(item_id, expected, cause=e)
            raise ValueError(f"Unknown vocabulary item {item_id}") from e

    def _read_row(self, item_id: int):
        return (
            self.db.query(ProgressEntry.payload, ProgressEntry.version)
            .filter(ProgressEntry.item_id == item_id)
            .first()
        )

    def _decode(self, item_id: int, payload: str, version: int) -> Optional[ProgressRecord]:
        try:
            return decode_record(item_id, payload, version)
        except ValueError as e:
            monitoring.corrupt_records.inc()
            logger.warning("Ignoring corrupt progress for item %s: %s", item_id, e)
            return None

    def _conflict(self, item_id: int, expected: int, cause: Optional[BaseException] = None) -> None:
        monitoring.commit_conflicts.inc()
        monitoring.error_count.labels(error_type="ConcurrentModification").inc()
        logger.warning("Concurrent modification of item %s (expected version %d)", item_id, expected)
        raise ConcurrentModification(item_id, expected) from cause

    @staticmethod
    def _check_id(item_id: Any) -> int:
        if isinstance(item_id, bool) or not isinstance(item_id, int) or item_id < 0:
            raise ValueError(f"Invalid item id: {item_id!r}")
        return item_id
