# src/cron_keeper/tasks/task_api.py

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

from ..core.ports import Clock, ErrorSink, HistoryStore, ScheduleEvaluator, TickMechanism
from ..errors import InvalidSchedule
from .catch_up import run_startup_catch_up
from .cron_expr import CroniterEvaluator
from .history_store import DEFAULT_HISTORY_FILE, FileHistoryStore
from .ledger import RunLedger
from .task_models import Ledger, TaskDefinition, TaskState, coerce_tasks, utc_now
from .task_scheduler import TickScheduler
from .ticker import APSchedulerTicker

logger = logging.getLogger(__name__)


class CronKeeper:
    """
    Cron jobs that survive restarts.

    Startup order (see start()):
    1. define ledger records for tasks seen for the first time,
    2. fire every task whose persisted nextRunAt already passed,
    3. recompute nextRunAt for every surviving task,
    4. register the tasks with the tick mechanism.

    Step 4 only begins once 1-3 are complete, so no tick can race a catch-up
    run of the same task.

    Collaborators default to a history file, croniter and APScheduler; each
    can be injected.
    """

    def __init__(
        self,
        tasks: Mapping[str, Any] | None = None,
        *,
        store: HistoryStore | None = None,
        evaluator: ScheduleEvaluator | None = None,
        ticker: TickMechanism | None = None,
        history_path: str | Path | None = None,
        timezone: str = "UTC",
        error_sink: ErrorSink | None = None,
        clock: Clock | None = None,
        autostart: bool = True,
    ) -> None:
        self._tasks: dict[str, TaskDefinition] = coerce_tasks(tasks)
        self.store: HistoryStore = store or FileHistoryStore(history_path or DEFAULT_HISTORY_FILE)
        self.evaluator: ScheduleEvaluator = evaluator or CroniterEvaluator(timezone)
        self.ticker: TickMechanism = ticker or APSchedulerTicker(timezone)
        self._error_sink = error_sink

        self.ledger = RunLedger(self.store, self.evaluator, clock=clock or utc_now)
        self.scheduler = TickScheduler(self.ledger, self.evaluator, self.ticker, error_sink=error_sink)

        self._started = False
        self._start_lock = threading.Lock()

        if tasks and autostart:
            self.start()

    # ---- lifecycle ----

    def start(self) -> Ledger:
        """
        Run the startup sequence once and return the ledger after catch-up.

        InvalidSchedule from defining or registering is raised after every
        valid task has been handled. CorruptLedger and StoreUnavailable abort
        the sequence before any handler runs.
        """
        with self._start_lock:
            if self._started:
                return self.ledger.load()

            # Tasks that already have a record are validated here as well.
            rejected: dict[str, str] = {
                name: t.schedule for name, t in self._tasks.items() if not self.evaluator.validate(t.schedule)
            }
            for name, expr in rejected.items():
                logger.error("Task %s skipped: invalid cron expression %r", name, expr)
            active = {name: t for name, t in self._tasks.items() if name not in rejected}

            try:
                snapshot = self.ledger.ensure_defined(active)
            except InvalidSchedule as e:
                rejected.update(e.rejected)
                snapshot = e.ledger if e.ledger is not None else self.ledger.load()
                active = {name: t for name, t in active.items() if name not in e.rejected}

            pending = {name: rec for name, rec in snapshot.items() if name not in rejected}
            ledger = run_startup_catch_up(self.ledger, active, pending, error_sink=self._error_sink)

            try:
                self.scheduler.register(active)
            except InvalidSchedule as e:
                rejected.update(e.rejected)

            self.ticker.start()
            self._started = True
            logger.info("CronKeeper started with %d task(s)", len(self.scheduler.handles))

        if rejected:
            raise InvalidSchedule(rejected=rejected, ledger=ledger)
        return ledger

    def shutdown(self, wait: bool = True) -> None:
        self.scheduler.cancel_all()
        self.ticker.shutdown(wait=wait)
        with self._start_lock:
            self._started = False

    def __enter__(self) -> CronKeeper:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    @property
    def started(self) -> bool:
        return self._started

    # ---- operational surface ----

    def get_history(self) -> Ledger:
        return self.ledger.load()

    def clear_history(self) -> None:
        self.ledger.clear()

    def get_registered_schedules(self) -> dict[str, Any]:
        return self.scheduler.handles

    def get_jobs(self) -> dict[str, Any]:
        return {
            "tasks": dict(self._tasks),
            "scheduled": self.scheduler.handles,
            "states": {name: self.scheduler.state_of(name) for name in self._tasks},
        }

    def state_of(self, name: str) -> TaskState:
        return self.scheduler.state_of(name)

    def unregister(self, name: str) -> bool:
        self._tasks.pop(name, None)
        return self.scheduler.unregister(name)

    def validate(self, expression: str) -> bool:
        return self.evaluator.validate(expression)

    def next_run_time(self, expression: str, after: datetime | None = None) -> datetime:
        return self.evaluator.next_occurrence(expression, after or self.ledger.now())
