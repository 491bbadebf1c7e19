from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timezone

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from ticket_alert.config import Settings
from ticket_alert.models import RunResult
from ticket_alert.pipeline import run_once

logger = logging.getLogger(__name__)

JOB_ID = "ticket_check"

Runner = Callable[[Settings], RunResult]


def describe_interval(cron_schedule: str) -> str:
    minute_field = cron_schedule.split()[0]
    if minute_field.startswith("*/") and all(field == "*" for field in cron_schedule.split()[1:]):
        return f"every {minute_field[2:]} minutes"
    return f"on schedule '{cron_schedule}'"


class TicketMonitor:
    """Runs the pipeline at most once at a time.

    A tick that arrives while a run is still in progress is skipped.
    """

    def __init__(self, settings: Settings, *, runner: Runner = run_once) -> None:
        self.settings = settings
        self._runner = runner
        self._run_lock = threading.Lock()
        self.run_count = 0
        self.skipped_count = 0
        self._initial_done = False

    @property
    def running(self) -> bool:
        return self._run_lock.locked()

    def run(self, label: str = "scheduled") -> RunResult | None:
        if not self._run_lock.acquire(blocking=False):
            self.skipped_count += 1
            logger.warning("%s ticket check skipped: previous run still in progress", label)
            return None

        timestamp = datetime.now(timezone.utc).isoformat()
        try:
            logger.info("[%s] running %s ticket check", timestamp, label)
            try:
                result = self._runner(self.settings)
            except Exception:
                logger.exception("[%s] %s ticket check crashed", timestamp, label)
                return None
            self.run_count += 1
            logger.info("[%s] %s check finished. Result: %s", timestamp, label, result.status)
            return result
        finally:
            self._run_lock.release()

    def run_scheduled(self) -> None:
        label = "scheduled" if self._initial_done else "initial"
        self._initial_done = True
        self.run(label)


def build_scheduler(
    settings: Settings,
    monitor: TicketMonitor,
    *,
    run_immediately: bool = True,
) -> BlockingScheduler:
    """Build a scheduler with one cron job for ``monitor``; not yet started.

    With ``run_immediately`` the first run fires at start-up through the same
    job, so it is serialized with every later tick.
    """
    scheduler = BlockingScheduler(timezone="UTC")
    job_kwargs = {}
    if run_immediately:
        job_kwargs["next_run_time"] = datetime.now(timezone.utc)

    scheduler.add_job(
        monitor.run_scheduled,
        trigger=CronTrigger.from_crontab(settings.cron_schedule, timezone="UTC"),
        id=JOB_ID,
        name="Ticket availability check",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60,
        **job_kwargs,
    )
    return scheduler
