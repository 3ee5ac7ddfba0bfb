"""Tests for the key/value repositories."""

import pytest

from db import MemoryRepository, SQLiteRepository


def test_sqlite_roundtrip(tmp_path):
    repo = SQLiteRepository(tmp_path / "data.db")
    assert repo.get("missing") is None

    repo.set("sync.state.v1", {"shadow": {"r1": 2}, "syncToken": "5"})
    assert repo.get("sync.state.v1") == {"shadow": {"r1": 2}, "syncToken": "5"}

    repo.set("sync.state.v1", {"shadow": {}})
    assert repo.get("sync.state.v1") == {"shadow": {}}
    assert repo.keys() == ["sync.state.v1"]


def test_sqlite_persists_across_instances(tmp_path):
    SQLiteRepository(tmp_path / "data.db").set("k", [1, 2, 3])
    assert SQLiteRepository(tmp_path / "data.db").get("k") == [1, 2, 3]


def test_sqlite_clear(tmp_path):
    repo = SQLiteRepository(tmp_path / "data.db")
    repo.set("k", "v")
    repo.clear("k")
    assert repo.get("k") is None
    repo.clear("never-set")


def test_sqlite_creates_parent_dirs(tmp_path):
    repo = SQLiteRepository(tmp_path / "nested" / "dir" / "data.db")
    repo.set("k", 1)
    assert (tmp_path / "nested" / "dir" / "data.db").exists()


def test_memory_repository_copies_values():
    repo = MemoryRepository()
    value = {"shadow": {"r1": 1}}
    repo.set("k", value)
    value["shadow"]["r1"] = 99
    assert repo.get("k") == {"shadow": {"r1": 1}}

    loaded = repo.get("k")
    loaded["shadow"]["r2"] = 2
    assert repo.get("k") == {"shadow": {"r1": 1}}


@pytest.fixture(params=["memory", "sqlite"])
def any_repo(request, tmp_path):
    if request.param == "memory":
        return MemoryRepository()
    return SQLiteRepository(tmp_path / "data.db")


def test_transaction_commits_all_writes_together(any_repo):
    any_repo.set("old", 1)
    with any_repo.transaction():
        any_repo.set("a", {"x": 1})
        any_repo.set("b", [2])
        any_repo.clear("old")
        assert any_repo.get("a") == {"x": 1}
        assert any_repo.get("old") is None
    assert any_repo.get("a") == {"x": 1}
    assert any_repo.get("b") == [2]
    assert any_repo.get("old") is None


def test_transaction_discards_writes_on_error(any_repo):
    any_repo.set("a", "before")
    with pytest.raises(RuntimeError):
        with any_repo.transaction():
            any_repo.set("a", "after")
            any_repo.set("b", "new")
            raise RuntimeError("boom")
    assert any_repo.get("a") == "before"
    assert any_repo.get("b") is None


def test_nested_transaction_joins_outer(any_repo):
    with pytest.raises(RuntimeError):
        with any_repo.transaction():
            with any_repo.transaction():
                any_repo.set("inner", 1)
            assert any_repo.get("inner") == 1
            raise RuntimeError("boom")
    assert any_repo.get("inner") is None
