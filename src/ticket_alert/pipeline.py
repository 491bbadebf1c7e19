from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from functools import partial

from ticket_alert.classifier import build_classifier
from ticket_alert.config import Settings
from ticket_alert.fetcher import fetch_page_text
from ticket_alert.models import (
    STATUS_ERROR,
    STATUS_SCRAPE_FAILED,
    ClassificationVerdict,
    MatchQuery,
    RunOutcome,
    RunResult,
    ScrapeResult,
)
from ticket_alert.notifier_email import send_email_notification

logger = logging.getLogger(__name__)

Fetcher = Callable[[str, Settings], ScrapeResult]
Classifier = Callable[[str, MatchQuery], ClassificationVerdict]

SCRAPE_FAILED_STATUS = f"{STATUS_SCRAPE_FAILED}: Scraping failed. Will try again later."


def _now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def default_classifier(settings: Settings) -> Classifier:
    notify = partial(send_email_notification, settings=settings)
    return build_classifier(settings, notify=notify).classify


def run_once(
    settings: Settings,
    *,
    fetch_page: Fetcher = fetch_page_text,
    classify: Classifier | None = None,
) -> RunResult:
    """Scrape the ticket page, classify it, and let the classifier notify.

    Never raises; every failure is folded into the returned status.
    """
    started_at = _now_iso()
    query = MatchQuery(settings.target_event)
    logger.info("starting check for %s tickets", query.identifier)

    try:
        scrape = fetch_page(settings.ticket_url, settings)
        if not scrape.ok:
            logger.error("failed to retrieve website data (%s), skipping analysis", scrape.error)
            return RunResult(
                outcome=RunOutcome.SCRAPE_FAILED,
                status=SCRAPE_FAILED_STATUS,
                started_at_utc=started_at,
                finished_at_utc=_now_iso(),
            )

        classifier = classify if classify is not None else default_classifier(settings)
        verdict = classifier(scrape.text, query)
    except Exception as exc:
        logger.exception("error in check and notify process")
        return RunResult(
            outcome=RunOutcome.ERROR,
            status=f"{STATUS_ERROR}: Error checking tickets: {exc}",
            started_at_utc=started_at,
            finished_at_utc=_now_iso(),
        )

    logger.info("analysis status: %s", verdict.status)
    return RunResult(
        outcome=RunOutcome.CLASSIFIED,
        status=verdict.status,
        started_at_utc=started_at,
        finished_at_utc=_now_iso(),
        verdict=verdict,
    )
