import smtplib

from helpers import RECIPIENTS, TARGET

from ticket_alert.models import NotificationRequest
from ticket_alert.notifier_email import MISSING_CREDENTIALS_ERROR, send_email_notification


class FakeSMTP:
    def __init__(self, host, port, timeout=None, *, fail_for=(), login_error=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.fail_for = set(fail_for)
        self.login_error = login_error
        self.started_tls = False
        self.logged_in_as = None
        self.attempted: list[str] = []
        self.sent: list = []
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True

    def starttls(self):
        self.started_tls = True

    def login(self, user, password):
        if self.login_error:
            raise self.login_error
        self.logged_in_as = user

    def send_message(self, message):
        self.attempted.append(message["To"])
        if message["To"] in self.fail_for:
            raise smtplib.SMTPRecipientsRefused({message["To"]: (550, b"mailbox unavailable")})
        self.sent.append(message)


def _factory(**options):
    created: list[FakeSMTP] = []

    def factory(host, port, timeout=None):
        server = FakeSMTP(host, port, timeout, **options)
        created.append(server)
        return server

    return factory, created


def _request() -> NotificationRequest:
    return NotificationRequest(
        recipients=RECIPIENTS,
        subject=f"Ticket Alert: {TARGET}",
        body="Tickets are on sale.",
    )


def test_sends_to_every_recipient_over_one_session(settings) -> None:
    factory, created = _factory()

    outcome = send_email_notification(_request(), settings, smtp_factory=factory)

    assert outcome.delivered == RECIPIENTS
    assert outcome.failures == ()
    assert len(created) == 1
    server = created[0]
    assert (server.host, server.port, server.timeout) == ("smtp.gmail.com", 587, 30.0)
    assert server.started_tls
    assert server.logged_in_as == "alerts@example.com"
    assert server.closed
    message = server.sent[0]
    assert message["From"] == "alerts@example.com"
    assert message["Subject"] == f"Ticket Alert: {TARGET}"
    assert message.get_content().strip() == "Tickets are on sale."


def test_one_recipient_failure_does_not_stop_the_rest(settings) -> None:
    factory, created = _factory(fail_for={RECIPIENTS[0]})

    outcome = send_email_notification(_request(), settings, smtp_factory=factory)

    assert created[0].attempted == list(RECIPIENTS)
    assert outcome.succeeded_count == 1
    assert outcome.failed_count == 1
    assert outcome.delivered == (RECIPIENTS[1],)
    assert outcome.failures[0].recipient == RECIPIENTS[0]
    assert "mailbox unavailable" in outcome.failures[0].reason


def test_missing_credentials_fail_fast_without_connecting(settings) -> None:
    factory, created = _factory()
    settings = settings.model_copy(update={"gmail_app_password": ""})

    outcome = send_email_notification(_request(), settings, smtp_factory=factory)

    assert created == []
    assert outcome.config_error == MISSING_CREDENTIALS_ERROR
    assert not outcome.attempted
    assert outcome.succeeded_count == 0
    assert outcome.summary.startswith("not sent:")


def test_login_failure_marks_every_recipient_failed(settings) -> None:
    factory, created = _factory(login_error=smtplib.SMTPAuthenticationError(535, b"bad credentials"))

    outcome = send_email_notification(_request(), settings, smtp_factory=factory)

    assert created[0].attempted == []
    assert outcome.succeeded_count == 0
    assert [failure.recipient for failure in outcome.failures] == list(RECIPIENTS)
    assert all("smtp session failed" in failure.reason for failure in outcome.failures)


def test_connection_error_is_contained(settings) -> None:
    def refusing_factory(host, port, timeout=None):
        raise ConnectionRefusedError("connection refused")

    outcome = send_email_notification(_request(), settings, smtp_factory=refusing_factory)

    assert outcome.failed_count == len(RECIPIENTS)
    assert outcome.attempted
