# src/cron_keeper/tasks/ledger.py

"""
Run ledger.

The ledger maps task name -> {createdAt, nextRunAt} and lives as one JSON
string under a single store key ("history"). Every mutating operation is a
read -> merge -> write cycle performed under one lock owned by the ledger, so
a tick advancing one task can never overwrite a record another caller wrote
a moment earlier.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterable, Mapping
from datetime import datetime

from ..core.ports import Clock, HistoryStore, ScheduleEvaluator
from ..errors import CorruptLedger, CronKeeperError, InvalidSchedule, StoreUnavailable
from .task_models import (
    Ledger,
    TaskDefinition,
    TaskRecord,
    ledger_from_dict,
    ledger_to_dict,
    utc_now,
)

logger = logging.getLogger(__name__)

HISTORY_KEY = "history"


class RunLedger:
    def __init__(
        self,
        store: HistoryStore,
        evaluator: ScheduleEvaluator,
        *,
        clock: Clock | None = None,
        key: str = HISTORY_KEY,
    ) -> None:
        self._store = store
        self._evaluator = evaluator
        self._clock = clock or utc_now
        self._key = key
        self._lock = threading.RLock()

    @property
    def key(self) -> str:
        return self._key

    def now(self) -> datetime:
        return self._clock()

    # ---- public API ----

    def load(self) -> Ledger:
        """
        Read the persisted ledger.

        A missing value is an empty ledger. A value that does not decode is
        CorruptLedger: falling back to {} would re-stamp createdAt for tasks
        that already ran and hide their missed runs.
        """
        raw = self._call_store("get_item", self._key)
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return {}

        try:
            data = json.loads(raw)
        except (TypeError, json.JSONDecodeError) as e:
            raise CorruptLedger(f"Stored ledger under {self._key!r} is not valid JSON: {e}", raw=raw) from e
        return ledger_from_dict(data)

    def ensure_defined(self, tasks: Mapping[str, TaskDefinition]) -> Ledger:
        """
        Create a record for every task name the ledger has not seen yet.

        Existing records are left untouched, so calling this twice with the
        same tasks yields the same ledger. Tasks with a rejected expression are
        skipped; the valid ones are persisted first and InvalidSchedule is
        raised afterwards.
        """
        with self._lock:
            ledger = self.load()
            now = self.now()
            rejected = self._define_missing(tasks, ledger, now)
            self._write(ledger)

        if rejected:
            raise InvalidSchedule(rejected=rejected, ledger=dict(ledger))
        return ledger

    def advance(self, tasks: Mapping[str, TaskDefinition], names: Iterable[str] | None = None) -> Ledger:
        """
        Recompute nextRunAt from now for `names` (default: every ledger name).

        Only names that are both in the ledger and in `tasks` are advanced;
        createdAt never changes. Active tasks missing from the ledger (store
        wiped behind our back) are re-defined in the same write.
        """
        with self._lock:
            ledger = self.load()
            now = self.now()

            if not ledger and tasks:
                logger.warning("Ledger is empty, re-defining %d task(s)", len(tasks))
            rejected = self._define_missing(tasks, ledger, now)
            for name, expr in rejected.items():
                logger.error("Cannot define task %s: invalid cron expression %r", name, expr)

            targets = list(ledger) if names is None else list(names)
            for name in targets:
                record = ledger.get(name)
                task = tasks.get(name)
                if record is None or task is None:
                    continue
                try:
                    record.next_run_at = self._evaluator.next_occurrence(task.schedule, now)
                except InvalidSchedule:
                    logger.error("Task %s has an invalid cron expression %r; not advanced", name, task.schedule)
                    continue
                logger.debug("Task %s advanced next_run_at=%s", name, record.next_run_at.isoformat())

            self._write(ledger)
            return ledger

    def drop_orphan(self, name: str) -> Ledger:
        """Remove the record of a task that is no longer registered."""
        with self._lock:
            ledger = self.load()
            if ledger.pop(name, None) is not None:
                logger.info("Dropped orphaned ledger entry %s", name)
                self._write(ledger)
            return ledger

    def remove(self, name: str) -> bool:
        with self._lock:
            ledger = self.load()
            if name not in ledger:
                return False
            del ledger[name]
            self._write(ledger)
            return True

    def clear(self) -> None:
        with self._lock:
            ok = self._call_store("remove_item", self._key)
            if ok is False:
                raise StoreUnavailable(f"Store refused to remove {self._key!r}")
            logger.info("Ledger cleared")

    # ---- internals ----

    def _define_missing(
        self,
        tasks: Mapping[str, TaskDefinition],
        ledger: Ledger,
        now: datetime,
    ) -> dict[str, str]:
        rejected: dict[str, str] = {}
        for name, task in tasks.items():
            if name in ledger:
                continue
            if not self._evaluator.validate(task.schedule):
                rejected[name] = task.schedule
                continue
            try:
                next_run_at = self._evaluator.next_occurrence(task.schedule, now)
            except InvalidSchedule:
                rejected[name] = task.schedule
                continue
            ledger[name] = TaskRecord(created_at=now, next_run_at=next_run_at)
            logger.info("Task %s defined next_run_at=%s", name, next_run_at.isoformat())
        return rejected

    def _write(self, ledger: Ledger) -> None:
        payload = json.dumps(ledger_to_dict(ledger), ensure_ascii=False, sort_keys=True)
        ok = self._call_store("set_item", self._key, payload)
        if ok is False:
            raise StoreUnavailable(f"Store refused to write {self._key!r}")

    def _call_store(self, method: str, *args: str):
        try:
            return getattr(self._store, method)(*args)
        except CronKeeperError:
            raise
        except Exception as e:
            raise StoreUnavailable(f"History store {method} failed: {e}") from e
