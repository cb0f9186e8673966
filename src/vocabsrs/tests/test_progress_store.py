"""Tests for the progress store."""
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from vocabsrs.errors import CapacityExceeded, ConcurrentModification
from vocabsrs.models.models import ProgressEntry
from vocabsrs.models.progress_models import ProgressRecord, encode_record
from vocabsrs.services.progress_store import ProgressStore, entry_size


def reviewed(item_id: int, at, streak: int = 1, ease: str = "2.5", interval: int = 1) -> ProgressRecord:
    return ProgressRecord.scheduled(
        item_id=item_id, streak=streak, ease_factor=ease, interval_days=interval, reviewed_at=at
    )


def test_get_missing_returns_default(store: ProgressStore, db: Session, make_items) -> None:
    """Absent records come back as the lazy default, without writing anything."""
    item, = make_items(1)

    first = store.get(item.id)
    second = store.get(item.id)

    assert first == second == ProgressRecord.initial(item.id)
    assert first.streak == 0
    assert first.ease_factor == Decimal("2.5")
    assert first.interval_days == 0
    assert first.next_review_at is None
    assert first.version == 0
    assert db.query(ProgressEntry).count() == 0


def test_get_unknown_item_id_returns_default(store: ProgressStore) -> None:
    assert store.get(12345) == ProgressRecord.initial(12345)


@pytest.mark.parametrize("item_id", [-1, "7", 1.0, None, True])
def test_get_rejects_malformed_ids(store: ProgressStore, item_id) -> None:
    with pytest.raises(ValueError):
        store.get(item_id)


@pytest.mark.parametrize(
    "streak, ease, interval",
    [(1, "2.5", 1), (2, "1.3", 6), (7, "3.05", 241), (3, "2.35", 15)],
)
def test_put_then_get_round_trips(store: ProgressStore, make_items, t0, streak, ease, interval) -> None:
    item, = make_items(1)
    record = reviewed(item.id, t0, streak, ease, interval)

    stored = store.put(item.id, record)
    fetched = store.get(item.id)

    assert fetched == record
    assert fetched.ease_factor == Decimal(ease)
    assert fetched.next_review_at == t0 + timedelta(days=interval)
    assert stored.version == fetched.version == 1


def test_put_increments_version(store: ProgressStore, make_items, t0) -> None:
    item, = make_items(1)

    first = store.put(item.id, reviewed(item.id, t0))
    second = store.put(item.id, reviewed(item.id, t0 + timedelta(days=1), streak=2, interval=6).with_version(first.version))

    assert (first.version, second.version) == (1, 2)
    assert store.get(item.id).streak == 2


def test_stale_write_raises_concurrent_modification(store: ProgressStore, make_items, t0) -> None:
    """Two writers holding the same read: the second one loses."""
    item, = make_items(1)
    store.put(item.id, reviewed(item.id, t0))
    read_a = store.get(item.id)
    read_b = store.get(item.id)

    store.put(item.id, reviewed(item.id, t0 + timedelta(days=1), streak=2, interval=6).with_version(read_a.version))

    with pytest.raises(ConcurrentModification):
        store.put(item.id, reviewed(item.id, t0 + timedelta(days=1), streak=0).with_version(read_b.version))
    assert store.get(item.id).streak == 2


def test_stale_insert_raises_concurrent_modification(store: ProgressStore, make_items, t0) -> None:
    item, = make_items(1)
    read_a = store.get(item.id)
    read_b = store.get(item.id)

    store.put(item.id, reviewed(item.id, t0).with_version(read_a.version))

    with pytest.raises(ConcurrentModification):
        store.put(item.id, reviewed(item.id, t0, streak=0, ease="2.3").with_version(read_b.version))


def test_write_after_delete_with_old_version_conflicts(store: ProgressStore, make_items, t0) -> None:
    item, = make_items(1)
    stored = store.put(item.id, reviewed(item.id, t0))
    store.delete(item.id)

    with pytest.raises(ConcurrentModification):
        store.put(item.id, reviewed(item.id, t0 + timedelta(days=1), streak=2, interval=6).with_version(stored.version))


def test_put_rejects_inconsistent_record(store: ProgressStore, make_items, t0) -> None:
    item, = make_items(1)
    bad = ProgressRecord(
        item_id=item.id,
        streak=1,
        ease_factor="2.5",
        interval_days=3,
        last_reviewed_at=t0,
        next_review_at=t0 + timedelta(days=1),
    )

    with pytest.raises(ValueError):
        store.put(item.id, bad)
    assert store.get(item.id) == ProgressRecord.initial(item.id)


def test_put_rejects_mismatched_item(store: ProgressStore, make_items, t0) -> None:
    first, second = make_items(2)

    with pytest.raises(ValueError):
        store.put(second.id, reviewed(first.id, t0))


def test_put_for_unknown_item_fails(store: ProgressStore, t0) -> None:
    with pytest.raises(ValueError):
        store.put(999, reviewed(999, t0))


def test_delete_is_idempotent(store: ProgressStore, make_items, t0) -> None:
    item, = make_items(1)
    store.put(item.id, reviewed(item.id, t0))

    store.delete(item.id)
    store.delete(item.id)
    store.delete(424242)

    assert store.get(item.id) == ProgressRecord.initial(item.id)


def test_capacity_exceeded_leaves_store_unchanged(db: Session, make_items, t0) -> None:
    first, second = make_items(2)
    record = reviewed(first.id, t0)
    one_entry = entry_size(first.id, encode_record(record))
    store = ProgressStore(db, capacity_bytes=one_entry + 5)

    store.put(first.id, record)

    with pytest.raises(CapacityExceeded) as excinfo:
        store.put(second.id, reviewed(second.id, t0))
    assert excinfo.value.capacity == one_entry + 5
    assert store.get(second.id) == ProgressRecord.initial(second.id)
    assert store.get(first.id) == record
    assert store.usage_bytes() == one_entry


def test_zero_capacity_rejects_every_write(db: Session, make_items, t0) -> None:
    item, = make_items(1)
    store = ProgressStore(db, capacity_bytes=0)

    assert store.capacity_bytes == 0
    with pytest.raises(CapacityExceeded):
        store.put(item.id, reviewed(item.id, t0))
    assert store.usage_bytes() == 0


def test_negative_capacity_is_rejected(db: Session) -> None:
    with pytest.raises(ValueError):
        ProgressStore(db, capacity_bytes=-1)


def test_replacing_entry_is_charged_only_for_the_difference(db: Session, make_items, t0) -> None:
    item, = make_items(1)
    record = reviewed(item.id, t0)
    store = ProgressStore(db, capacity_bytes=entry_size(item.id, encode_record(record)) + 2)

    stored = store.put(item.id, record)
    store.put(item.id, reviewed(item.id, t0 + timedelta(days=1), streak=2, interval=6).with_version(stored.version))

    assert store.get(item.id).interval_days == 6


def test_corrupt_entry_reads_as_default_and_is_replaced(store: ProgressStore, db: Session, make_items, t0) -> None:
    item, = make_items(1)
    db.add(ProgressEntry(item_id=item.id, payload="{not json", version=3))
    db.commit()

    record = store.get(item.id)
    assert record == ProgressRecord.initial(item.id)
    assert record.version == 3

    store.put(item.id, reviewed(item.id, t0).with_version(record.version))
    assert store.get(item.id).streak == 1


@pytest.mark.parametrize(
    "payload",
    [
        "[]",
        '{"streak": 1}',
        '{"streak": -1, "ease_factor": "2.5", "interval_days": 1, '
        '"last_reviewed_at": "2024-03-01T09:00:00+00:00", "next_review_at": "2024-03-02T09:00:00+00:00"}',
        '{"streak": 1, "ease_factor": "1.0", "interval_days": 1, '
        '"last_reviewed_at": "2024-03-01T09:00:00+00:00", "next_review_at": "2024-03-02T09:00:00+00:00"}',
        '{"streak": 1, "ease_factor": "2.5", "interval_days": 1, '
        '"last_reviewed_at": "2024-03-01T09:00:00+00:00", "next_review_at": "2024-03-05T09:00:00+00:00"}',
        '{"streak": 1, "ease_factor": "2.5", "interval_days": 1, '
        '"last_reviewed_at": "2024-03-01T09:00:00", "next_review_at": "2024-03-02T09:00:00"}',
        '{"streak": 1, "ease_factor": "abc", "interval_days": 1, '
        '"last_reviewed_at": "2024-03-01T09:00:00+00:00", "next_review_at": "2024-03-02T09:00:00+00:00"}',
        '{"streak": 1, "ease_factor": "2.5", "interval_days": 10000000000, '
        '"last_reviewed_at": "2024-03-01T09:00:00+00:00", "next_review_at": "2024-03-02T09:00:00+00:00"}',
        '{"streak": 1, "ease_factor": "2.5", "interval_days": 1, '
        '"last_reviewed_at": "9999-12-31T09:00:00+00:00", "next_review_at": "9999-12-31T09:00:00+00:00"}',
    ],
)
def test_structurally_invalid_entries_are_treated_as_absent(store: ProgressStore, db: Session, make_items, payload) -> None:
    item, = make_items(1)
    db.add(ProgressEntry(item_id=item.id, payload=payload, version=1))
    db.commit()

    assert store.get(item.id) == ProgressRecord.initial(item.id)
    assert store.get_many() == {}


def test_get_many(store: ProgressStore, make_items, t0) -> None:
    first, second, third = make_items(3)
    store.put(first.id, reviewed(first.id, t0))
    store.put(third.id, reviewed(third.id, t0, streak=2, interval=6))

    assert set(store.get_many()) == {first.id, third.id}
    assert set(store.get_many([second.id, third.id])) == {third.id}
    assert store.get_many([]) == {}


def test_export(store: ProgressStore, make_items, t0) -> None:
    item, = make_items(1)
    store.put(item.id, reviewed(item.id, t0, ease="2.35"))

    exported = store.export()

    assert exported == {
        str(item.id): {
            "streak": 1,
            "ease_factor": "2.35",
            "interval_days": 1,
            "last_reviewed_at": "2024-03-01T09:00:00+00:00",
            "next_review_at": "2024-03-02T09:00:00+00:00",
        }
    }
