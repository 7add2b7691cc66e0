# src/cron_keeper/tasks/task_models.py

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from ..errors import CorruptLedger

TaskHandler = Callable[[], Any]


class TaskState(StrEnum):
    """
    Per-task lifecycle inside the tick scheduler.

    REGISTERED -> FIRING -> ADVANCING -> REGISTERED loops on every tick;
    UNREGISTERED is both the initial and the terminal state.
    """

    UNREGISTERED = "unregistered"
    REGISTERED = "registered"
    FIRING = "firing"
    ADVANCING = "advancing"


@dataclass(frozen=True, slots=True)
class TaskDefinition:
    name: str
    schedule: str
    handler: TaskHandler
    # Forwarded untouched to the tick mechanism.
    options: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class TaskRecord:
    created_at: datetime
    next_run_at: datetime

    def to_dict(self) -> dict[str, str]:
        return {
            "createdAt": format_timestamp(self.created_at),
            "nextRunAt": format_timestamp(self.next_run_at),
        }

    @classmethod
    def from_dict(cls, name: str, data: Any) -> TaskRecord:
        if not isinstance(data, dict):
            raise CorruptLedger(f"Ledger record for {name!r} is not an object", raw=data)

        created_raw = data.get("createdAt")
        # Older history files used "nextRunDate".
        next_raw = data.get("nextRunAt", data.get("nextRunDate"))
        if not created_raw or not next_raw:
            raise CorruptLedger(f"Ledger record for {name!r} is missing timestamps", raw=data)

        try:
            return cls(
                created_at=parse_timestamp(created_raw),
                next_run_at=parse_timestamp(next_raw),
            )
        except (TypeError, ValueError) as e:
            raise CorruptLedger(f"Ledger record for {name!r} has a bad timestamp: {e}", raw=data) from e


Ledger = dict[str, TaskRecord]


def utc_now() -> datetime:
    return datetime.now(UTC)


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with a trailing Z (the layout JavaScript's Date produces)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    text = value.astimezone(UTC).isoformat()
    return text.replace("+00:00", "Z")


def parse_timestamp(raw: str) -> datetime:
    if not isinstance(raw, str):
        raise TypeError(f"expected ISO-8601 string, got {type(raw).__name__}")
    value = datetime.fromisoformat(raw.strip())
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def ledger_to_dict(ledger: Mapping[str, TaskRecord]) -> dict[str, dict[str, str]]:
    return {name: record.to_dict() for name, record in ledger.items()}


def ledger_from_dict(data: Any) -> Ledger:
    if not isinstance(data, dict):
        raise CorruptLedger("Ledger is not a JSON object", raw=data)
    return {str(name): TaskRecord.from_dict(str(name), rec) for name, rec in data.items()}


def coerce_tasks(tasks: Mapping[str, Any] | None) -> dict[str, TaskDefinition]:
    """
    Normalize the registration mapping.

    Accepts TaskDefinition values as-is, and plain dicts of the form
    {"schedule": "...", "task": callable, "options": {...}} ("handler" is an
    alias of "task").
    """
    out: dict[str, TaskDefinition] = {}
    for name, entry in (tasks or {}).items():
        if isinstance(entry, TaskDefinition):
            if entry.name != name:
                entry = TaskDefinition(name=name, schedule=entry.schedule, handler=entry.handler, options=entry.options)
            out[name] = entry
            continue

        if not isinstance(entry, Mapping):
            raise TypeError(f"Task {name!r}: expected TaskDefinition or mapping, got {type(entry).__name__}")

        handler = entry.get("task", entry.get("handler"))
        if not callable(handler):
            raise TypeError(f"Task {name!r}: handler is not callable")

        out[name] = TaskDefinition(
            name=name,
            schedule=str(entry.get("schedule") or ""),
            handler=handler,
            options=dict(entry.get("options") or {}),
        )
    return out
