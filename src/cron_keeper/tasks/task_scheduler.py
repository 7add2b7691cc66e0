# src/cron_keeper/tasks/task_scheduler.py

from __future__ import annotations

"""
Tick scheduler.

Registers every task with the tick mechanism. Each fire is two explicit steps:
1. invoke the handler (failures are isolated and reported),
2. advance that task's nextRunAt in the ledger.

Step 2 runs even when step 1 failed, so a task that keeps failing is retried
at its next natural occurrence instead of on every tick.
"""

import logging
import threading
from collections.abc import Mapping
from typing import Any

from ..core.ports import ErrorSink, ScheduleEvaluator, TickMechanism
from ..errors import CronKeeperError, InvalidSchedule
from .catch_up import invoke_task
from .ledger import RunLedger
from .task_models import TaskDefinition, TaskState

logger = logging.getLogger(__name__)


class TickScheduler:
    def __init__(
        self,
        ledger: RunLedger,
        evaluator: ScheduleEvaluator,
        ticker: TickMechanism,
        *,
        error_sink: ErrorSink | None = None,
    ) -> None:
        self._ledger = ledger
        self._evaluator = evaluator
        self._ticker = ticker
        self._error_sink = error_sink

        self._tasks: dict[str, TaskDefinition] = {}
        self._handles: dict[str, Any] = {}
        self._states: dict[str, TaskState] = {}
        self._lock = threading.Lock()

    @property
    def tasks(self) -> dict[str, TaskDefinition]:
        with self._lock:
            return dict(self._tasks)

    @property
    def handles(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._handles)

    def state_of(self, name: str) -> TaskState:
        with self._lock:
            return self._states.get(name, TaskState.UNREGISTERED)

    def register(self, tasks: Mapping[str, TaskDefinition]) -> dict[str, Any]:
        """
        Schedule every task with the tick mechanism.

        A task with a rejected expression is not registered; its siblings
        still are. InvalidSchedule naming all rejected tasks is raised once
        the loop is done.
        """
        rejected: dict[str, str] = {}
        registered: dict[str, Any] = {}

        for name, task in tasks.items():
            if not self._evaluator.validate(task.schedule):
                logger.error("Task %s not registered: invalid cron expression %r", name, task.schedule)
                rejected[name] = task.schedule
                continue

            with self._lock:
                previous = self._handles.get(name)
            if previous is not None:
                self._ticker.cancel(previous)

            with self._lock:
                self._tasks[name] = task
            try:
                handle = self._ticker.schedule(task.schedule, self._make_wrapper(name), dict(task.options))
            except InvalidSchedule:
                with self._lock:
                    self._tasks.pop(name, None)
                rejected[name] = task.schedule
                continue

            with self._lock:
                self._handles[name] = handle
                self._states[name] = TaskState.REGISTERED
            registered[name] = handle
            logger.info("Task %s registered schedule=%r", name, task.schedule)

        if rejected:
            raise InvalidSchedule(rejected=rejected)
        return registered

    def fire(self, name: str) -> None:
        """Run one occurrence of `name`: invoke, then advance."""
        with self._lock:
            task = self._tasks.get(name)
            if task is None:
                logger.warning("Tick for unregistered task %s ignored", name)
                return
            self._states[name] = TaskState.FIRING

        logger.info("Task %s started", name)
        invoke_task(task, error_sink=self._error_sink)

        self._set_state(name, TaskState.ADVANCING)
        try:
            self._ledger.advance(self.tasks, names=[name])
        except CronKeeperError:
            logger.exception("Failed to advance ledger for task %s", name)
        finally:
            self._set_state(name, TaskState.REGISTERED)

    def unregister(self, name: str) -> bool:
        """Stop ticking `name` and remove its ledger record."""
        with self._lock:
            handle = self._handles.pop(name, None)
            task = self._tasks.pop(name, None)
            self._states[name] = TaskState.UNREGISTERED

        if handle is not None:
            self._ticker.cancel(handle)
        removed = self._ledger.remove(name)

        if task is None and handle is None:
            return False
        logger.info("Task %s unregistered (ledger record removed=%s)", name, removed)
        return True

    def cancel_all(self) -> None:
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
            self._tasks.clear()
            for name in self._states:
                self._states[name] = TaskState.UNREGISTERED
        for handle in handles:
            self._ticker.cancel(handle)

    # ---- internals ----

    def _make_wrapper(self, name: str):
        def on_fire() -> None:
            self.fire(name)

        on_fire.__name__ = f"cron_keeper_fire_{name}"
        on_fire.__qualname__ = on_fire.__name__
        return on_fire

    def _set_state(self, name: str, state: TaskState) -> None:
        with self._lock:
            if name in self._tasks:
                self._states[name] = state
