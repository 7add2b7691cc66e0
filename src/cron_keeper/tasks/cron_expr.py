# src/cron_keeper/tasks/cron_expr.py

"""
Cron expression evaluation backed by croniter.

Two layouts are accepted:
- 5 fields: "minute hour day month weekday" (classic crontab)
- 6 fields: "second minute hour day month weekday" (node-cron style)

Expressions are evaluated in a configured IANA timezone, so "0 8 * * *" means
08:00 local time in that zone; results are always returned in UTC.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import CroniterError, croniter

from ..errors import InvalidSchedule

logger = logging.getLogger(__name__)


def _load_zone(timezone: str) -> ZoneInfo:
    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, falling back to UTC", timezone)
        return ZoneInfo("UTC")


def normalize_expression(expression: str) -> str:
    """
    Return the croniter form of `expression`.

    croniter expects the optional seconds field last, node-cron puts it first,
    so 6-field expressions are rotated. Anything other than 5 or 6 fields is
    rejected.
    """
    if not isinstance(expression, str):
        raise InvalidSchedule(repr(expression))

    fields = expression.split()
    if len(fields) == 5:
        return " ".join(fields)
    if len(fields) == 6:
        return " ".join(fields[1:] + fields[:1])
    raise InvalidSchedule(expression)


class CroniterEvaluator:
    """Default ScheduleEvaluator."""

    def __init__(self, timezone: str = "UTC") -> None:
        self.timezone = timezone
        self._tz = _load_zone(timezone)

    def validate(self, expression: str) -> bool:
        try:
            normalized = normalize_expression(expression)
            # Building the iterator parses every field.
            croniter(normalized, datetime.now(self._tz))
        except (InvalidSchedule, CroniterError, ValueError, KeyError, TypeError):
            return False
        return True

    def next_occurrence(self, expression: str, after: datetime) -> datetime:
        normalized = normalize_expression(expression)
        if after.tzinfo is None:
            after = after.replace(tzinfo=UTC)

        base = after.astimezone(self._tz)
        try:
            nxt = croniter(normalized, base).get_next(datetime)
        except (CroniterError, ValueError, KeyError, TypeError) as e:
            raise InvalidSchedule(expression) from e

        return nxt.astimezone(UTC)

    def next_occurrences(self, expression: str, after: datetime, count: int) -> list[datetime]:
        out: list[datetime] = []
        cursor = after
        for _ in range(max(0, int(count))):
            cursor = self.next_occurrence(expression, cursor)
            out.append(cursor)
        return out
