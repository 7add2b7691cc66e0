# src/cron_keeper/tasks/catch_up.py

from __future__ import annotations

"""
Startup catch-up.

Runs once, before any tick is registered:
- entries whose task is gone are dropped (never fired),
- entries whose nextRunAt already passed fire exactly once,
- every surviving entry gets a fresh nextRunAt computed from now.

All decisions are taken against one instant captured at the start of the
sweep.
"""

import logging
from collections.abc import Mapping
from datetime import datetime

from ..core.ports import ErrorSink
from ..errors import TaskHandlerError
from .ledger import RunLedger
from .task_models import Ledger, TaskDefinition

logger = logging.getLogger(__name__)


def invoke_task(task: TaskDefinition, *, error_sink: ErrorSink | None = None) -> bool:
    """
    Call a task handler at the failure-isolation boundary.

    Returns True when the handler completed. A raising handler is logged and
    reported to `error_sink` as TaskHandlerError; nothing propagates.
    """
    try:
        task.handler()
        return True
    except Exception as e:
        err = TaskHandlerError(task.name, e)
        logger.exception("Task %s failed", task.name)
        if error_sink is not None:
            try:
                error_sink(err)
            except Exception:
                logger.exception("error_sink raised while reporting task %s", task.name)
        return False


def run_startup_catch_up(
    ledger: RunLedger,
    tasks: Mapping[str, TaskDefinition],
    snapshot: Ledger,
    *,
    now: datetime | None = None,
    error_sink: ErrorSink | None = None,
) -> Ledger:
    if now is None:
        now = ledger.now()

    logger.info("Checking %d ledger entries for missed runs (now=%s)", len(snapshot), now.isoformat())

    surviving: list[str] = []
    fired = 0
    for name, record in snapshot.items():
        task = tasks.get(name)
        if task is None:
            ledger.drop_orphan(name)
            continue

        surviving.append(name)
        if record.next_run_at <= now:
            logger.info("Task %s missed its run at %s, running now", name, record.next_run_at.isoformat())
            invoke_task(task, error_sink=error_sink)
            fired += 1

    updated = ledger.advance(tasks, names=surviving)
    logger.info("Catch-up done: fired=%d dropped=%d", fired, len(snapshot) - len(surviving))
    return updated
