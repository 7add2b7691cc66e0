# src/cron_keeper/core/ports.py

"""
Ports (interfaces) used by the core.

The ledger, catch-up pass and tick scheduler depend on Protocols instead of
concrete implementations. This keeps the persistence medium, the cron grammar
and the timer facility swappable and makes testing easier.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol

from ..errors import TaskHandlerError

Clock = Callable[[], datetime]
# Must return a timezone-aware datetime.

ErrorSink = Callable[[TaskHandlerError], None]
# Observability hook for failing task handlers.


class HistoryStore(Protocol):
    """
    Durable key -> string map.

    Implementations raise StoreUnavailable when the medium fails; returning
    False from a write is also treated as a failure by the ledger.
    """

    def set_item(self, key: str, value: str) -> bool: ...

    def get_item(self, key: str) -> str | None: ...

    def remove_item(self, key: str) -> bool: ...


class ScheduleEvaluator(Protocol):
    """Validates schedule expressions and computes occurrences."""

    def validate(self, expression: str) -> bool: ...

    def next_occurrence(self, expression: str, after: datetime) -> datetime:
        """Next occurrence strictly after `after`; raises InvalidSchedule."""
        ...


class TickMechanism(Protocol):
    """
    Timer facility that calls `on_fire` at every occurrence of a schedule.

    `options` is opaque to the core and interpreted only by the mechanism.
    """

    def schedule(self, expression: str, on_fire: Callable[[], None], options: dict[str, Any]) -> Any: ...

    def cancel(self, handle: Any) -> None: ...

    def start(self) -> None: ...

    def shutdown(self, wait: bool = True) -> None: ...
