"""Entry point: python -m cadence <command>"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from typing import Any

from cadence.errors import CadenceError
from cadence.infrastructure.config import SCHEDULER_POLL_INTERVAL
from cadence.infrastructure.logger import logger


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, default=str))


async def serve(interval_s: float) -> None:
    from cadence.app import Application

    app = Application()
    app.open()

    # Handle graceful shutdown
    shutdown_event = asyncio.Event()

    def signal_handler() -> None:
        logger.info("Received shutdown signal")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await app.serve(interval_s, stop=shutdown_event)
    finally:
        app.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cadence", description="Recurring workflow scheduler")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("tick", help="Dispatch every due schedule once and print the result")

    serve_parser = sub.add_parser("serve", help="Tick on an interval until interrupted")
    serve_parser.add_argument("--interval", type=float, default=SCHEDULER_POLL_INTERVAL, help="Seconds between ticks")

    create = sub.add_parser("create", help="Create a schedule")
    create.add_argument("--workflow-id", required=True)
    create.add_argument("--name", required=True)
    create.add_argument("--frequency", default="daily", help="hourly, daily, weekly or monthly")
    create.add_argument("--schedule-type", default="workflow")
    create.add_argument("--inputs", default="null", help="JSON value passed to the workflow")
    create.add_argument("--email", action="append", default=[], help="Failure notification recipient")
    create.add_argument("--no-failure-notification", action="store_true")

    list_parser = sub.add_parser("list", help="List schedules")
    list_parser.add_argument("--active", action="store_true", help="Only active schedules")

    for name, help_text in (
        ("show", "Show a schedule and its recent runs"),
        ("activate", "Activate a schedule"),
        ("deactivate", "Deactivate a schedule"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("schedule_id")

    sub.add_parser("sweep-cache", help="Delete expired cache entries")
    sub.add_parser("cache-stats", help="Show cache entry counts")
    return parser


def run_command(args: argparse.Namespace) -> int:
    from cadence.app import Application

    if args.command == "serve":
        try:
            asyncio.run(serve(args.interval))
        except KeyboardInterrupt:
            pass
        except CadenceError as err:
            logger.error("Command failed", command=args.command, error=str(err))
            return 1
        return 0

    app = Application()
    app.open()
    try:
        if args.command == "tick":
            _print_json(asyncio.run(app.tick()))
        elif args.command == "create":
            try:
                inputs = json.loads(args.inputs)
            except json.JSONDecodeError as err:
                logger.error("--inputs is not valid JSON", error=str(err))
                return 2
            schedule = app.schedule_manager().create({
                "workflow_id": args.workflow_id,
                "name": args.name,
                "schedule_type": args.schedule_type,
                "frequency": args.frequency,
                "inputs": inputs,
                "notification_emails": args.email,
                "notification_on_failure": not args.no_failure_notification,
            })
            _print_json(schedule.model_dump(mode="json"))
        elif args.command == "list":
            manager = app.schedule_manager()
            schedules = manager.get_active() if args.active else manager.get_all()
            _print_json([s.model_dump(mode="json") for s in schedules])
        elif args.command == "show":
            manager = app.schedule_manager()
            schedule = manager.get(args.schedule_id)
            runs = manager.get_runs(args.schedule_id, limit=10)
            _print_json({
                "schedule": schedule.model_dump(mode="json"),
                "runs": [r.model_dump(mode="json") for r in runs],
            })
        elif args.command == "activate":
            _print_json(app.schedule_manager().activate(args.schedule_id).model_dump(mode="json"))
        elif args.command == "deactivate":
            _print_json(app.schedule_manager().deactivate(args.schedule_id).model_dump(mode="json"))
        elif args.command == "sweep-cache":
            _print_json({"removed": app.cache().sweep_expired()})
        elif args.command == "cache-stats":
            _print_json(app.cache().stats().model_dump())
    except CadenceError as err:
        logger.error("Command failed", command=args.command, error=str(err))
        return 1
    finally:
        app.close()
    return 0


def run() -> None:
    args = build_parser().parse_args()
    sys.exit(run_command(args))


if __name__ == "__main__":
    run()
