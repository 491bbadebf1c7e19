from __future__ import annotations

import logging
import smtplib
from collections.abc import Callable
from email.message import EmailMessage

from ticket_alert.config import Settings
from ticket_alert.models import DeliveryFailure, NotificationOutcome, NotificationRequest

logger = logging.getLogger(__name__)

SmtpFactory = Callable[..., smtplib.SMTP]

MISSING_CREDENTIALS_ERROR = "Email credentials (GMAIL_USER, GMAIL_APP_PASSWORD) not configured."


def build_message(sender: str, recipient: str, request: NotificationRequest) -> EmailMessage:
    message = EmailMessage()
    message["From"] = sender
    message["To"] = recipient
    message["Subject"] = request.subject
    message.set_content(request.body)
    return message


def send_email_notification(
    request: NotificationRequest,
    settings: Settings,
    *,
    smtp_factory: SmtpFactory = smtplib.SMTP,
) -> NotificationOutcome:
    """Deliver ``request`` to every recipient over one authenticated SMTP session.

    A failure for one recipient is recorded and the remaining recipients are
    still attempted.
    """
    if not settings.has_mail_credentials:
        logger.error(MISSING_CREDENTIALS_ERROR)
        return NotificationOutcome(config_error=MISSING_CREDENTIALS_ERROR)

    logger.info("sending '%s' to %s", request.subject, ", ".join(request.recipients))

    delivered: list[str] = []
    failures: list[DeliveryFailure] = []
    try:
        with smtp_factory(
            settings.smtp_host,
            settings.smtp_port,
            timeout=settings.smtp_timeout_seconds,
        ) as server:
            server.starttls()
            server.login(settings.gmail_user, settings.gmail_app_password)
            for recipient in request.recipients:
                try:
                    server.send_message(build_message(settings.gmail_user, recipient, request))
                except (smtplib.SMTPException, OSError) as exc:
                    logger.error("email to %s failed: %s", recipient, exc)
                    failures.append(DeliveryFailure(recipient=recipient, reason=str(exc)))
                    continue
                logger.info("email sent to %s", recipient)
                delivered.append(recipient)
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("smtp session failed: %s", exc)
        handled = set(delivered) | {failure.recipient for failure in failures}
        failures.extend(
            DeliveryFailure(recipient=recipient, reason=f"smtp session failed: {exc}")
            for recipient in request.recipients
            if recipient not in handled
        )

    outcome = NotificationOutcome(delivered=tuple(delivered), failures=tuple(failures))
    logger.info("notification outcome: %s", outcome.summary)
    return outcome
