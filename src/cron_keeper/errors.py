# src/cron_keeper/errors.py

"""
Error taxonomy.

- InvalidSchedule: the expression evaluator rejected a schedule string.
- CorruptLedger: the stored ledger is not a JSON mapping of name -> record.
- StoreUnavailable: the history store failed to read or write.
- TaskHandlerError: a task body raised; reported, never propagated.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .tasks.task_models import Ledger


class CronKeeperError(Exception):
    """Base class for every error raised by cron_keeper."""


class InvalidSchedule(CronKeeperError, ValueError):
    """
    One or more schedule expressions were rejected.

    `rejected` maps task name -> expression for every task that failed in the
    same call (empty when a bare expression was checked). `ledger` carries the
    state that was persisted for the valid siblings, when there was any.
    """

    def __init__(
        self,
        expression: str | None = None,
        *,
        rejected: dict[str, str] | None = None,
        ledger: Ledger | None = None,
    ) -> None:
        self.expression = expression
        self.rejected: dict[str, str] = dict(rejected or {})
        self.ledger = ledger

        if self.rejected:
            parts = ", ".join(f"{name}={expr!r}" for name, expr in self.rejected.items())
            msg = f"Invalid cron expression for task(s): {parts}"
        else:
            msg = f"Invalid cron expression {expression!r}"
        super().__init__(msg)


class CorruptLedger(CronKeeperError):
    """The persisted ledger could not be decoded."""

    def __init__(self, message: str, *, raw: Any = None) -> None:
        super().__init__(message)
        self.raw = raw


class StoreUnavailable(CronKeeperError):
    """The history store could not complete a read or write."""


class TaskHandlerError(CronKeeperError):
    """A task handler raised while being invoked."""

    def __init__(self, task_name: str, cause: BaseException) -> None:
        super().__init__(f"Task {task_name!r} failed: {cause!r}")
        self.task_name = task_name
        self.cause = cause
