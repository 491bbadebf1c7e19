from __future__ import annotations

import logging
import re

from ticket_alert.config import Settings
from ticket_alert.models import ScrapeResult

logger = logging.getLogger(__name__)


def normalize_whitespace(value: str | None) -> str:
    return re.sub(r"\s+", " ", value or "").strip()


def fetch_page_text(url: str, settings: Settings) -> ScrapeResult:
    """Render ``url`` in headless Chromium and return its visible text.

    Never raises: any failure comes back as a result whose ``text`` is None.
    The browser is closed before this function returns.
    """
    try:
        from playwright.sync_api import sync_playwright
    except Exception as exc:  # pragma: no cover - import depends on env
        logger.error("playwright import failed: %s", exc)
        return ScrapeResult(url=url, text=None, error=f"playwright import failed: {exc}")

    timeout_ms = int(settings.page_timeout_seconds * 1_000)
    raw_text = ""
    try:
        with sync_playwright() as playwright:
            browser = playwright.chromium.launch(headless=True)
            try:
                context = browser.new_context(user_agent=settings.user_agent)
                page = context.new_page()
                logger.info("navigating to %s", url)
                page.goto(url, wait_until="networkidle", timeout=timeout_ms)
                raw_text = page.inner_text("body", timeout=timeout_ms)
            finally:
                browser.close()
                logger.debug("browser closed")
    except Exception as exc:
        logger.error("scraping %s failed: %s", url, exc)
        return ScrapeResult(url=url, text=None, error=str(exc))

    text = normalize_whitespace(raw_text)
    if not text:
        logger.error("page %s rendered no visible text", url)
        return ScrapeResult(url=url, text=None, error="page rendered no visible text")

    logger.info("scraped %d characters from %s", len(text), url)
    return ScrapeResult(url=url, text=text)
