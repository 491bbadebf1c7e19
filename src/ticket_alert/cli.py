from __future__ import annotations

import argparse
import logging

from apscheduler.triggers.cron import CronTrigger
from dotenv import load_dotenv

from ticket_alert.config import (
    MAIL_CREDENTIAL_ENVS,
    RUN_REQUIRED_ENVS,
    Settings,
    assert_required_envs,
    load_settings,
    mask_secret,
    missing_envs,
)
from ticket_alert.logging_config import configure_logging
from ticket_alert.pipeline import run_once
from ticket_alert.scheduler import TicketMonitor, build_scheduler, describe_interval

logger = logging.getLogger("ticket_alert.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ticket-alert")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("run", help="Check now, then keep checking on the cron schedule")
    subparsers.add_parser("check", help="Run a single scrape + classify + notify pass")
    subparsers.add_parser("healthcheck", help="Validate config and local runtime readiness")

    return parser


def _log_banner(settings: Settings) -> None:
    logger.info("ticket monitoring service started")
    logger.info(
        "checking for %s tickets %s",
        settings.target_event,
        describe_interval(settings.cron_schedule),
    )
    logger.info("notifications will be sent to: %s", ", ".join(settings.recipients))
    logger.info("using mail user: %s", mask_secret(settings.gmail_user) or "<unset>")


def _cmd_run(settings: Settings) -> int:
    assert_required_envs(RUN_REQUIRED_ENVS)
    _log_banner(settings)

    monitor = TicketMonitor(settings)
    scheduler = build_scheduler(settings, monitor)
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("shutting down ticket monitor")
    return 0


def _cmd_check(settings: Settings) -> int:
    assert_required_envs(RUN_REQUIRED_ENVS)
    result = run_once(settings)

    print(
        "run summary:",
        f"outcome={result.outcome.value}",
        f"started={result.started_at_utc}",
        f"finished={result.finished_at_utc}",
    )
    print(result.status)
    return 0 if result.succeeded else 1


def _cmd_healthcheck(settings: Settings) -> int:
    missing = missing_envs(RUN_REQUIRED_ENVS)
    if missing:
        print("missing required env vars:", ", ".join(missing))
        return 1

    missing_mail = missing_envs(MAIL_CREDENTIAL_ENVS)
    if missing_mail:
        print("warning: mail credentials missing, notifications will fail:", ", ".join(missing_mail))

    trigger = CronTrigger.from_crontab(settings.cron_schedule, timezone="UTC")
    print(f"target: {settings.target_event} @ {settings.ticket_url}")
    print(f"recipients: {', '.join(settings.recipients)}")
    print(f"schedule: {settings.cron_schedule} ({trigger})")
    print("healthcheck passed")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    load_dotenv()

    try:
        settings = load_settings()
        configure_logging(settings.log_level)
        if args.command == "run":
            return _cmd_run(settings)
        if args.command == "check":
            return _cmd_check(settings)
        if args.command == "healthcheck":
            return _cmd_healthcheck(settings)
    except ValueError as exc:
        print(exc)
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
