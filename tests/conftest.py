import logging

import pytest

from helpers import RECIPIENTS, TARGET

from ticket_alert.config import Settings
from ticket_alert.logging_config import LOGGER_NAME


@pytest.fixture
def settings() -> Settings:
    return Settings(
        target_event=TARGET,
        recipients=RECIPIENTS,
        gmail_user="alerts@example.com",
        gmail_app_password="app-password",
        openai_api_key="sk-test",
    )


@pytest.fixture(autouse=True)
def clean_logger():
    package_logger = logging.getLogger(LOGGER_NAME)
    package_logger.handlers.clear()
    yield package_logger
    package_logger.handlers.clear()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)
    logging.getLogger("apscheduler").handlers.clear()
