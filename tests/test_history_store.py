# tests/test_history_store.py

from __future__ import annotations

import json
from pathlib import Path

import pytest

from cron_keeper.errors import CorruptLedger
from cron_keeper.tasks.cron_expr import CroniterEvaluator
from cron_keeper.tasks.history_store import FileHistoryStore, MemoryHistoryStore, SqliteHistoryStore
from cron_keeper.tasks.ledger import RunLedger


@pytest.fixture(params=["file", "sqlite", "memory"])
def any_store(request, tmp_path: Path):
    if request.param == "file":
        return FileHistoryStore(tmp_path / "history.log")
    if request.param == "sqlite":
        return SqliteHistoryStore(tmp_path / "history.sqlite3")
    return MemoryHistoryStore()


def test_set_get_remove(any_store) -> None:
    assert any_store.get_item("history") is None

    assert any_store.set_item("history", '{"a": 1}') is True
    assert any_store.get_item("history") == '{"a": 1}'

    assert any_store.set_item("history", "{}") is True
    assert any_store.get_item("history") == "{}"

    assert any_store.remove_item("history") is True
    assert any_store.get_item("history") is None


def test_keys_are_independent(any_store) -> None:
    any_store.set_item("history", "x")
    any_store.set_item("other", "y")
    any_store.remove_item("history")
    assert any_store.get_item("other") == "y"


def test_remove_missing_key_is_fine(any_store) -> None:
    assert any_store.remove_item("nope") is True


def test_file_store_creates_file_and_parents(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "dir" / "history.log"
    FileHistoryStore(path)
    assert json.loads(path.read_text("utf-8")) == {}


def test_file_store_recreates_deleted_file(tmp_path: Path) -> None:
    path = tmp_path / "history.log"
    store = FileHistoryStore(path)
    store.set_item("history", "v")

    path.unlink()

    assert store.get_item("history") is None
    store.set_item("history", "again")
    assert json.loads(path.read_text("utf-8")) == {"history": "again"}


def test_file_store_layout_is_a_json_object_of_strings(tmp_path: Path) -> None:
    path = tmp_path / "history.log"
    store = FileHistoryStore(path)
    store.set_item("history", json.dumps({"job": {"createdAt": "x", "nextRunAt": "y"}}))

    on_disk = json.loads(path.read_text("utf-8"))
    assert isinstance(on_disk["history"], str)
    assert json.loads(on_disk["history"]) == {"job": {"createdAt": "x", "nextRunAt": "y"}}


def test_file_store_survives_reopen(tmp_path: Path) -> None:
    path = tmp_path / "history.log"
    FileHistoryStore(path).set_item("history", "persisted")
    assert FileHistoryStore(path).get_item("history") == "persisted"


def test_file_store_unreadable_file_is_corrupt_and_left_alone(tmp_path: Path) -> None:
    path = tmp_path / "history.log"
    store = FileHistoryStore(path)
    path.write_text('{"history": "{\\"a\\": {\\"createdAt', "utf-8")

    with pytest.raises(CorruptLedger) as exc_info:
        store.get_item("history")
    assert exc_info.value.raw.startswith('{"history"')

    with pytest.raises(CorruptLedger):
        store.set_item("history", "{}")
    assert path.read_text("utf-8").startswith('{"history": "{\\"a\\"')


def test_file_store_non_object_is_corrupt(tmp_path: Path) -> None:
    path = tmp_path / "history.log"
    store = FileHistoryStore(path)
    path.write_text("[1, 2]", "utf-8")

    with pytest.raises(CorruptLedger):
        store.get_item("history")


def test_truncated_history_file_reaches_ledger_as_corrupt(tmp_path: Path) -> None:
    path = tmp_path / "history.log"
    store = FileHistoryStore(path)
    path.write_text('{"history": "{\\"job\\": {\\"createdAt\\": \\"2030-', "utf-8")
    ledger = RunLedger(store, CroniterEvaluator("UTC"))

    with pytest.raises(CorruptLedger):
        ledger.load()


def test_sqlite_store_survives_reopen(tmp_path: Path) -> None:
    db = tmp_path / "history.sqlite3"
    SqliteHistoryStore(db).set_item("history", "persisted")
    assert SqliteHistoryStore(db).get_item("history") == "persisted"
