# src/cron_keeper/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- ensures local (gitignored) directories exist,
- picks the history store backend from settings,
- wires store/evaluator/ticker into a CronKeeper,
- resolves "module:attr" references to task mappings for `cron-keeper run`.
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Mapping
from typing import Any

from ..config import Settings, get_settings
from ..core.ports import HistoryStore
from ..tasks.cron_expr import CroniterEvaluator
from ..tasks.history_store import FileHistoryStore, MemoryHistoryStore, SqliteHistoryStore
from ..tasks.task_api import CronKeeper
from ..tasks.ticker import APSchedulerTicker

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    if settings.store_backend == "file":
        settings.history_path.parent.mkdir(parents=True, exist_ok=True)
    elif settings.store_backend == "sqlite":
        settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)


def create_store(settings: Settings) -> HistoryStore:
    if settings.store_backend == "sqlite":
        return SqliteHistoryStore(settings.sqlite_path)
    if settings.store_backend == "memory":
        return MemoryHistoryStore()
    return FileHistoryStore(settings.history_path)


def create_keeper(
    tasks: Mapping[str, Any] | None = None,
    *,
    settings: Settings | None = None,
    autostart: bool = True,
) -> CronKeeper:
    """
    Build a CronKeeper from settings.

    Keeping settings injectable makes the CLI easy to test; if settings is
    None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)
    store = create_store(settings)
    logger.debug("Using %s history store", settings.store_backend)

    return CronKeeper(
        tasks,
        store=store,
        evaluator=CroniterEvaluator(settings.timezone),
        ticker=APSchedulerTicker(settings.timezone),
        timezone=settings.timezone,
        autostart=autostart,
    )


def load_task_mapping(ref: str) -> Mapping[str, Any]:
    """Import "package.module:ATTR" and return the task mapping it names."""
    module_name, sep, attr = ref.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Expected 'module:attribute', got {ref!r}")

    module = importlib.import_module(module_name)
    obj: Any = module
    for part in attr.split("."):
        obj = getattr(obj, part)

    if callable(obj) and not isinstance(obj, Mapping):
        obj = obj()
    if not isinstance(obj, Mapping):
        raise TypeError(f"{ref} is not a mapping of task name -> task")
    return obj
