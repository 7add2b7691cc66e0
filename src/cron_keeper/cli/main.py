# src/cron_keeper/cli/main.py

"""
CLI entrypoint.

Initializes logging, then runs one of:
- history / clear: inspect or reset the persisted ledger,
- validate / next: check a cron expression,
- run MODULE:ATTR: catch up and keep ticking until SIGINT/SIGTERM.
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
from collections.abc import Sequence

from ..config import Settings, get_settings
from ..errors import CronKeeperError, InvalidSchedule
from ..logging_setup import setup_logging
from ..tasks.cron_expr import CroniterEvaluator
from ..tasks.task_models import format_timestamp, ledger_to_dict, utc_now
from .bootstrap import create_keeper, load_task_mapping

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cron-keeper",
        description="Cron jobs that catch up on runs missed while the process was down.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("history", help="Print the persisted run ledger as JSON.")
    sub.add_parser("clear", help="Remove the persisted run ledger.")

    p_validate = sub.add_parser("validate", help="Check a cron expression.")
    p_validate.add_argument("expression")

    p_next = sub.add_parser("next", help="Print upcoming occurrences of a cron expression.")
    p_next.add_argument("expression")
    p_next.add_argument("--count", type=int, default=5)

    p_run = sub.add_parser("run", help="Run tasks from MODULE:ATTR until interrupted.")
    p_run.add_argument("tasks", metavar="MODULE:ATTR")

    return parser


def _cmd_history(settings: Settings) -> int:
    keeper = create_keeper(settings=settings, autostart=False)
    print(json.dumps(ledger_to_dict(keeper.get_history()), indent=2, sort_keys=True))
    return 0


def _cmd_clear(settings: Settings) -> int:
    keeper = create_keeper(settings=settings, autostart=False)
    keeper.clear_history()
    print("History cleared.")
    return 0


def _cmd_validate(settings: Settings, expression: str) -> int:
    ok = CroniterEvaluator(settings.timezone).validate(expression)
    print("valid" if ok else "invalid")
    return 0 if ok else 1


def _cmd_next(settings: Settings, expression: str, count: int) -> int:
    evaluator = CroniterEvaluator(settings.timezone)
    try:
        times = evaluator.next_occurrences(expression, utc_now(), count)
    except InvalidSchedule as e:
        print(str(e), file=sys.stderr)
        return 1
    for t in times:
        print(format_timestamp(t))
    return 0


def _cmd_run(settings: Settings, ref: str) -> int:
    tasks = load_task_mapping(ref)
    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGINT, _handle_signal)
        signal.signal(signal.SIGTERM, _handle_signal)
    except (ValueError, OSError):
        # Not in the main thread, or the platform lacks the signal.
        pass

    keeper = create_keeper(tasks, settings=settings, autostart=False)
    try:
        keeper.start()
    except InvalidSchedule as e:
        logger.error("%s", e)

    logger.info("Running %d task(s). Press Ctrl+C to stop.", len(keeper.get_registered_schedules()))
    try:
        stop_main.wait()
    finally:
        keeper.shutdown()
        logger.info("Bye.")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()

    console_level = getattr(logging, settings.log_level, logging.INFO)
    log_file = setup_logging(
        log_dir=settings.data_dir if settings.log_to_file else None,
        console_level=console_level,
    )
    if log_file is not None:
        logger.debug("Logging to %s", log_file)

    try:
        if args.command == "history":
            return _cmd_history(settings)
        if args.command == "clear":
            return _cmd_clear(settings)
        if args.command == "validate":
            return _cmd_validate(settings, args.expression)
        if args.command == "next":
            return _cmd_next(settings, args.expression, args.count)
        if args.command == "run":
            return _cmd_run(settings, args.tasks)
    except CronKeeperError as e:
        logger.error("%s", e)
        return 2
    return 1


if __name__ == "__main__":
    sys.exit(main())
