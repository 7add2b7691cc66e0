# src/cron_keeper/tasks/ticker.py

"""
Default tick mechanism: APScheduler's BackgroundScheduler.

The trigger delegates to the same croniter evaluator the ledger uses, so the
times a job actually fires and the nextRunAt values persisted in the ledger
come from one grammar.

Recognized options (everything else is passed to add_job as-is):
- timezone: IANA name used to evaluate this job's expression
- scheduled: False adds the job paused
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger

from ..errors import InvalidSchedule
from .cron_expr import CroniterEvaluator

logger = logging.getLogger(__name__)

_JOB_DEFAULTS: dict[str, Any] = {
    "max_instances": 1,
    "coalesce": True,
}


class CroniterTrigger(BaseTrigger):
    """APScheduler trigger for a 5/6-field cron expression."""

    def __init__(self, expression: str, evaluator: CroniterEvaluator) -> None:
        if not evaluator.validate(expression):
            raise InvalidSchedule(expression)
        self.expression = expression
        self.evaluator = evaluator

    def get_next_fire_time(self, previous_fire_time: datetime | None, now: datetime) -> datetime | None:
        base = previous_fire_time or now
        return self.evaluator.next_occurrence(self.expression, base)

    def __str__(self) -> str:
        return f"cron[{self.expression}]"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} (expression={self.expression!r}, timezone={self.evaluator.timezone!r})>"


class APSchedulerTicker:
    def __init__(
        self,
        timezone: str = "UTC",
        *,
        scheduler: BackgroundScheduler | None = None,
    ) -> None:
        self.timezone = timezone
        self._evaluator = CroniterEvaluator(timezone)
        self._scheduler = scheduler or self._new_scheduler()

    def _new_scheduler(self) -> BackgroundScheduler:
        return BackgroundScheduler(timezone=self.timezone)

    @property
    def scheduler(self) -> BackgroundScheduler:
        return self._scheduler

    def schedule(self, expression: str, on_fire: Callable[[], None], options: dict[str, Any]) -> Job:
        opts = dict(options or {})
        tz = opts.pop("timezone", None)
        scheduled = bool(opts.pop("scheduled", True))

        evaluator = self._evaluator if not tz else CroniterEvaluator(str(tz))
        trigger = CroniterTrigger(expression, evaluator)

        job_kwargs = {**_JOB_DEFAULTS, **opts}
        job = self._scheduler.add_job(on_fire, trigger=trigger, **job_kwargs)
        if not scheduled:
            job.pause()
        logger.debug("Scheduled job id=%s trigger=%s paused=%s", job.id, trigger, not scheduled)
        return job

    def cancel(self, handle: Job) -> None:
        try:
            handle.remove()
        except JobLookupError:
            # Already removed.
            logger.debug("Job %s was not scheduled anymore", getattr(handle, "id", handle), exc_info=True)

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Tick scheduler started (timezone=%s)", self.timezone)

    def shutdown(self, wait: bool = True) -> None:
        """
        Stop ticking. The stopped scheduler is replaced by a fresh one, since
        APScheduler executors refuse new work once shut down; a later start()
        then ticks again.
        """
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            self._scheduler = self._new_scheduler()
            logger.info("Tick scheduler stopped")
