# tests/fakes.py

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from cron_keeper.errors import StoreUnavailable
from cron_keeper.tasks.history_store import MemoryHistoryStore


class FakeClock:
    """Settable clock; returns aware UTC datetimes."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2030, 6, 15, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@dataclass(slots=True)
class ScheduledCall:
    expression: str
    on_fire: Callable[[], None]
    options: dict[str, Any]
    cancelled: bool = False


@dataclass
class FakeTicker:
    """
    TickMechanism that never fires on its own.

    Tests call `fire(index)` to simulate an occurrence.
    """

    calls: list[ScheduledCall] = field(default_factory=list)
    started: bool = False
    stopped: bool = False
    events: list[str] = field(default_factory=list)

    def schedule(self, expression: str, on_fire: Callable[[], None], options: dict[str, Any]) -> ScheduledCall:
        call = ScheduledCall(expression=expression, on_fire=on_fire, options=options)
        self.calls.append(call)
        self.events.append(f"schedule:{expression}")
        return call

    def cancel(self, handle: ScheduledCall) -> None:
        handle.cancelled = True

    def start(self) -> None:
        self.started = True
        self.events.append("start")

    def shutdown(self, wait: bool = True) -> None:
        self.stopped = True

    def fire(self, index: int = 0) -> None:
        self.calls[index].on_fire()


class RecordingStore(MemoryHistoryStore):
    """In-memory store that counts writes."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        super().__init__(initial)
        self.writes = 0

    def set_item(self, key: str, value: str) -> bool:
        self.writes += 1
        return super().set_item(key, value)


class FailingStore:
    """Store whose medium is down."""

    def set_item(self, key: str, value: str) -> bool:
        raise StoreUnavailable("disk gone")

    def get_item(self, key: str) -> str | None:
        raise OSError("disk gone")

    def remove_item(self, key: str) -> bool:
        return False


class SlowStore(MemoryHistoryStore):
    """Store that yields the GIL between read and write to widen race windows."""

    def __init__(self) -> None:
        super().__init__()
        self._pause = threading.Event()

    def get_item(self, key: str) -> str | None:
        value = super().get_item(key)
        self._pause.wait(0.001)
        return value


class CallCounter:
    def __init__(self, exc: BaseException | None = None) -> None:
        self.calls = 0
        self.exc = exc

    def __call__(self) -> None:
        self.calls += 1
        if self.exc is not None:
            raise self.exc
