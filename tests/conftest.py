# tests/conftest.py

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from cron_keeper.tasks.cron_expr import CroniterEvaluator
from cron_keeper.tasks.ledger import RunLedger

from .fakes import FakeClock, FakeTicker, RecordingStore


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2030, 6, 15, 12, 0, 0, tzinfo=UTC))


@pytest.fixture()
def evaluator() -> CroniterEvaluator:
    return CroniterEvaluator("UTC")


@pytest.fixture()
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture()
def ledger(store: RecordingStore, evaluator: CroniterEvaluator, clock: FakeClock) -> RunLedger:
    return RunLedger(store, evaluator, clock=clock)


@pytest.fixture()
def ticker() -> FakeTicker:
    return FakeTicker()


@pytest.fixture()
def history_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "history.log"
