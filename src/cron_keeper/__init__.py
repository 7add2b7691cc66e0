"""
cron_keeper: cron jobs that survive restarts.

Public API:
- CronKeeper: facade (startup catch-up + tick registration + history access)
- TaskDefinition / TaskRecord / TaskState: data model
- RunLedger, TickScheduler, run_startup_catch_up: the building blocks
- FileHistoryStore / SqliteHistoryStore / MemoryHistoryStore: history stores
"""

from cron_keeper.errors import (
    CorruptLedger,
    CronKeeperError,
    InvalidSchedule,
    StoreUnavailable,
    TaskHandlerError,
)
from cron_keeper.tasks.catch_up import run_startup_catch_up
from cron_keeper.tasks.cron_expr import CroniterEvaluator
from cron_keeper.tasks.history_store import FileHistoryStore, MemoryHistoryStore, SqliteHistoryStore
from cron_keeper.tasks.ledger import HISTORY_KEY, RunLedger
from cron_keeper.tasks.task_api import CronKeeper
from cron_keeper.tasks.task_models import TaskDefinition, TaskRecord, TaskState
from cron_keeper.tasks.task_scheduler import TickScheduler
from cron_keeper.tasks.ticker import APSchedulerTicker

__all__ = [
    "APSchedulerTicker",
    "CorruptLedger",
    "CronKeeper",
    "CronKeeperError",
    "CroniterEvaluator",
    "FileHistoryStore",
    "HISTORY_KEY",
    "InvalidSchedule",
    "MemoryHistoryStore",
    "RunLedger",
    "SqliteHistoryStore",
    "StoreUnavailable",
    "TaskDefinition",
    "TaskHandlerError",
    "TaskRecord",
    "TaskState",
    "TickScheduler",
    "run_startup_catch_up",
]
