from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

SUBJECT_PREFIX = "Ticket Alert: "


@dataclass(frozen=True)
class MatchQuery:
    identifier: str

    def __post_init__(self) -> None:
        if not self.identifier.strip():
            raise ValueError("match identifier must not be blank")

    @property
    def subject(self) -> str:
        return f"{SUBJECT_PREFIX}{self.identifier}"


@dataclass(frozen=True)
class ScrapeResult:
    url: str
    text: str | None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.text is not None


class Availability(str, Enum):
    AVAILABLE = "available"
    NOT_AVAILABLE = "not_available"
    ERROR = "error"


@dataclass(frozen=True)
class Decision:
    availability: Availability
    justification: str
    notification_body: str | None = None
    transcript: tuple[dict, ...] = field(default=(), repr=False, compare=False)


@dataclass(frozen=True)
class NotificationRequest:
    recipients: tuple[str, ...]
    subject: str
    body: str

    def __post_init__(self) -> None:
        if not self.recipients:
            raise ValueError("notification request needs at least one recipient")
        # keep first occurrence order, drop duplicates
        object.__setattr__(self, "recipients", tuple(dict.fromkeys(self.recipients)))


@dataclass(frozen=True)
class DeliveryFailure:
    recipient: str
    reason: str


@dataclass(frozen=True)
class NotificationOutcome:
    delivered: tuple[str, ...] = ()
    failures: tuple[DeliveryFailure, ...] = ()
    config_error: str | None = None

    @property
    def succeeded_count(self) -> int:
        return len(self.delivered)

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    @property
    def attempted(self) -> bool:
        return self.config_error is None

    @property
    def summary(self) -> str:
        if self.config_error:
            return f"not sent: {self.config_error}"
        text = f"sent to {self.succeeded_count} recipient(s), {self.failed_count} failed"
        if self.failures:
            details = "; ".join(f"{item.recipient}: {item.reason}" for item in self.failures)
            text = f"{text} ({details})"
        return text


STATUS_EMAIL_SENT = "EMAIL_SENT"
STATUS_EMAIL_FAILED = "EMAIL_FAILED"
STATUS_NOT_AVAILABLE = "NOT_AVAILABLE"
STATUS_CLASSIFICATION_ERROR = "CLASSIFICATION_ERROR"
STATUS_SCRAPE_FAILED = "SCRAPE_FAILED"
STATUS_ERROR = "ERROR"


@dataclass(frozen=True)
class ClassificationVerdict:
    availability: Availability
    justification: str
    notification: NotificationOutcome | None = None

    @property
    def prefix(self) -> str:
        if self.availability is Availability.NOT_AVAILABLE:
            return STATUS_NOT_AVAILABLE
        if self.availability is Availability.ERROR:
            return STATUS_CLASSIFICATION_ERROR
        if self.notification is not None and self.notification.succeeded_count > 0:
            return STATUS_EMAIL_SENT
        return STATUS_EMAIL_FAILED

    @property
    def status(self) -> str:
        return f"{self.prefix}: {self.justification}"


class RunOutcome(str, Enum):
    SCRAPE_FAILED = "scrape_failed"
    CLASSIFIED = "classified"
    ERROR = "error"


@dataclass(frozen=True)
class RunResult:
    outcome: RunOutcome
    status: str
    started_at_utc: str
    finished_at_utc: str
    verdict: ClassificationVerdict | None = None

    @property
    def succeeded(self) -> bool:
        if self.outcome is not RunOutcome.CLASSIFIED or self.verdict is None:
            return False
        return self.verdict.availability is not Availability.ERROR
