# tests/test_ticker.py

from __future__ import annotations

import threading
from datetime import UTC, datetime

import pytest

from cron_keeper.errors import InvalidSchedule
from cron_keeper.tasks.cron_expr import CroniterEvaluator
from cron_keeper.tasks.ticker import APSchedulerTicker, CroniterTrigger


def test_trigger_uses_now_for_first_fire() -> None:
    trigger = CroniterTrigger("*/15 * * * *", CroniterEvaluator("UTC"))
    now = datetime(2030, 6, 15, 12, 7, tzinfo=UTC)

    assert trigger.get_next_fire_time(None, now) == datetime(2030, 6, 15, 12, 15, tzinfo=UTC)


def test_trigger_continues_from_previous_fire() -> None:
    trigger = CroniterTrigger("*/15 * * * *", CroniterEvaluator("UTC"))
    previous = datetime(2030, 6, 15, 12, 15, tzinfo=UTC)

    nxt = trigger.get_next_fire_time(previous, datetime(2030, 6, 15, 12, 15, 0, 5000, tzinfo=UTC))

    assert nxt == datetime(2030, 6, 15, 12, 30, tzinfo=UTC)


def test_trigger_rejects_invalid_expression() -> None:
    with pytest.raises(InvalidSchedule):
        CroniterTrigger("every tuesday", CroniterEvaluator("UTC"))


def test_trigger_str() -> None:
    trigger = CroniterTrigger("0 0 * * *", CroniterEvaluator("UTC"))
    assert str(trigger) == "cron[0 0 * * *]"


@pytest.fixture()
def running_ticker():
    ticker = APSchedulerTicker("UTC")
    ticker.start()
    yield ticker
    ticker.shutdown(wait=False)


def test_schedule_adds_job_with_next_fire_time(running_ticker: APSchedulerTicker) -> None:
    job = running_ticker.schedule("0 0 1 1 *", lambda: None, {})

    stored = running_ticker.scheduler.get_job(job.id)
    assert stored is not None
    assert stored.next_run_time is not None
    assert stored.next_run_time.month == 1 and stored.next_run_time.day == 1
    assert stored.max_instances == 1
    assert stored.coalesce is True


def test_schedule_forwards_unknown_options_to_add_job(running_ticker: APSchedulerTicker) -> None:
    job = running_ticker.schedule("0 0 1 1 *", lambda: None, {"misfire_grace_time": 30, "max_instances": 3})

    stored = running_ticker.scheduler.get_job(job.id)
    assert stored.misfire_grace_time == 30
    assert stored.max_instances == 3


def test_scheduled_false_adds_paused_job(running_ticker: APSchedulerTicker) -> None:
    job = running_ticker.schedule("0 0 1 1 *", lambda: None, {"scheduled": False})

    assert running_ticker.scheduler.get_job(job.id).next_run_time is None


def test_timezone_option_is_used_by_trigger(running_ticker: APSchedulerTicker) -> None:
    job = running_ticker.schedule("0 0 * * *", lambda: None, {"timezone": "Asia/Tokyo"})

    stored = running_ticker.scheduler.get_job(job.id)
    assert stored.trigger.evaluator.timezone == "Asia/Tokyo"


def test_cancel_removes_job_and_tolerates_repeats(running_ticker: APSchedulerTicker) -> None:
    job = running_ticker.schedule("0 0 1 1 *", lambda: None, {})

    running_ticker.cancel(job)
    running_ticker.cancel(job)

    assert running_ticker.scheduler.get_job(job.id) is None


def test_start_after_shutdown_runs_new_jobs() -> None:
    ticker = APSchedulerTicker("UTC")
    ticker.start()
    first = ticker.scheduler
    ticker.shutdown()

    ran = threading.Event()
    ticker.start()
    try:
        assert ticker.scheduler is not first
        ticker.schedule("* * * * * *", ran.set, {})
        assert ran.wait(5)
    finally:
        ticker.shutdown(wait=False)


def test_cancel_of_a_job_from_before_shutdown_is_harmless() -> None:
    ticker = APSchedulerTicker("UTC")
    ticker.start()
    job = ticker.schedule("0 0 1 1 *", lambda: None, {})
    ticker.shutdown()

    ticker.cancel(job)
