"""Tests for RecordStore."""

import pytest

from history.records import EmotionRecord
from history.store import RECORDS_KEY, RecordStore


@pytest.fixture
def store(repo, clock):
    return RecordStore(repo, clock=clock)


def test_create_assigns_id_and_rev(store, clock):
    record = store.create("felt great", emotion="joy", intensity=0.8)
    assert record.rev == 1
    assert record.created_at == record.updated_at == clock.now
    assert store.get(record.id) == record


def test_create_clamps_intensity(store):
    assert store.create("x", intensity=80).intensity == 0.8


def test_upsert_keeps_one_record_per_id(store):
    store.upsert(EmotionRecord(id="r1", message="a", rev=1))
    store.upsert(EmotionRecord(id="r1", message="b", rev=2))
    assert len(store.all()) == 1
    assert store.get("r1").message == "b"


def test_apply_accepts_wire_dicts(store):
    store.apply([{"id": "r2", "message": "from remote", "updatedAt": 5}])
    assert store.get("r2").rev == 0


def test_patch_bumps_rev_and_updated_at(store, clock):
    record = store.create("a")
    patched = store.patch(record.id, message="b")
    assert patched.rev == 2
    assert patched.updated_at == record.updated_at + 1
    clock.advance(5000)
    again = store.patch(record.id, emotion="sadness")
    assert again.updated_at == clock.now
    assert again.rev == 3


def test_patch_unknown_id(store):
    with pytest.raises(KeyError):
        store.patch("nope", message="x")


def test_patch_rejects_sync_fields(store):
    record = store.create("a")
    with pytest.raises(ValueError):
        store.patch(record.id, rev=10)


def test_delete_is_a_tombstone(store):
    record = store.create("a")
    deleted = store.delete(record.id)
    assert deleted.deleted is True
    assert deleted.rev == 2
    assert store.get(record.id) is not None
    assert store.visible() == []
    assert len(store.all()) == 1


def test_visible_is_newest_first(store, clock):
    first = store.create("first")
    clock.advance()
    second = store.create("second")
    assert [r.id for r in store.visible()] == [second.id, first.id]


def test_load_collapses_legacy_duplicates(repo, clock):
    repo.set(
        RECORDS_KEY,
        [
            {"id": "r1", "message": "old", "rev": 1, "updatedAt": 10},
            {"id": "r1", "message": "new", "rev": 2, "updatedAt": 5},
            {"message": "no id"},
        ],
    )
    store = RecordStore(repo, clock=clock)
    assert len(store.all()) == 1
    assert store.get("r1").message == "new"


def test_clear(store):
    store.create("a")
    store.create("b")
    assert store.clear() == 2
    assert store.all() == []
