from __future__ import annotations

import os
from typing import Mapping, Sequence

from apscheduler.triggers.cron import CronTrigger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_TICKET_URL = "https://shop.royalchallengers.com/ticket"
DEFAULT_TARGET_EVENT = "May 03, 2025 07:30 PM Royal Challengers Bengaluru VS Chennai Super Kings"
DEFAULT_CRON_SCHEDULE = "*/2 * * * *"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

RUN_REQUIRED_ENVS = (
    "OPENAI_API_KEY",
    "EMAIL_RECIPIENTS",
)
MAIL_CREDENTIAL_ENVS = (
    "GMAIL_USER",
    "GMAIL_APP_PASSWORD",
)


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    ticket_url: str = DEFAULT_TICKET_URL
    target_event: str = DEFAULT_TARGET_EVENT
    recipients: tuple[str, ...] = ()
    cron_schedule: str = DEFAULT_CRON_SCHEDULE
    gmail_user: str = ""
    gmail_app_password: str = ""
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = Field(default=587, ge=1, le=65535)
    smtp_timeout_seconds: float = Field(default=30.0, gt=0)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str | None = None
    llm_timeout_seconds: float = Field(default=60.0, gt=0)
    page_timeout_seconds: float = Field(default=60.0, ge=1)
    user_agent: str = DEFAULT_USER_AGENT
    log_level: str = "INFO"

    @field_validator("ticket_url")
    @classmethod
    def _validate_ticket_url(cls, value: str) -> str:
        if not value.startswith("https://"):
            raise ValueError("TICKET_URL must use https://")
        return value

    @field_validator("target_event")
    @classmethod
    def _validate_target_event(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("TARGET_EVENT must not be blank")
        return value

    @field_validator("recipients")
    @classmethod
    def _validate_recipients(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        cleaned = tuple(dict.fromkeys(item.strip() for item in value if item.strip()))
        if not cleaned:
            raise ValueError("EMAIL_RECIPIENTS must list at least one address")
        invalid = [item for item in cleaned if "@" not in item]
        if invalid:
            raise ValueError(f"invalid recipient address: {', '.join(invalid)}")
        return cleaned

    @field_validator("cron_schedule")
    @classmethod
    def _validate_cron_schedule(cls, value: str) -> str:
        value = value.strip()
        CronTrigger.from_crontab(value)
        return value

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        value = value.strip().upper()
        if value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown LOG_LEVEL: {value}")
        return value

    @property
    def has_mail_credentials(self) -> bool:
        return bool(self.gmail_user and self.gmail_app_password)


def _env_value(environ: Mapping[str, str], key: str) -> str:
    return environ.get(key, "").strip()


def parse_recipients_csv(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def missing_envs(required: Sequence[str], environ: Mapping[str, str] | None = None) -> list[str]:
    source = os.environ if environ is None else environ
    return [key for key in required if not _env_value(source, key)]


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    source = os.environ if environ is None else environ
    payload = {
        "ticket_url": _env_value(source, "TICKET_URL") or DEFAULT_TICKET_URL,
        "target_event": _env_value(source, "TARGET_EVENT") or DEFAULT_TARGET_EVENT,
        "recipients": parse_recipients_csv(_env_value(source, "EMAIL_RECIPIENTS")),
        "cron_schedule": _env_value(source, "CRON_SCHEDULE") or DEFAULT_CRON_SCHEDULE,
        "gmail_user": _env_value(source, "GMAIL_USER"),
        "gmail_app_password": _env_value(source, "GMAIL_APP_PASSWORD"),
        "smtp_host": _env_value(source, "SMTP_HOST") or "smtp.gmail.com",
        "smtp_port": _env_value(source, "SMTP_PORT") or "587",
        "smtp_timeout_seconds": _env_value(source, "SMTP_TIMEOUT_SECONDS") or "30",
        "openai_api_key": _env_value(source, "OPENAI_API_KEY"),
        "openai_model": _env_value(source, "OPENAI_MODEL") or "gpt-4o-mini",
        "openai_base_url": _env_value(source, "OPENAI_BASE_URL") or None,
        "llm_timeout_seconds": _env_value(source, "LLM_TIMEOUT_SECONDS") or "60",
        "page_timeout_seconds": _env_value(source, "PAGE_TIMEOUT_SECONDS") or "60",
        "user_agent": _env_value(source, "USER_AGENT") or DEFAULT_USER_AGENT,
        "log_level": _env_value(source, "LOG_LEVEL") or "INFO",
    }
    try:
        return Settings(**payload)
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc


def assert_required_envs(required: Sequence[str], environ: Mapping[str, str] | None = None) -> None:
    missing = missing_envs(required, environ)
    if missing:
        keys = ", ".join(missing)
        raise ValueError(f"Missing required environment variables: {keys}")


def mask_secret(value: str, visible_prefix: int = 3, visible_suffix: int = 2) -> str:
    if not value:
        return ""
    if len(value) <= visible_prefix + visible_suffix:
        return "*" * len(value)
    hidden = "*" * (len(value) - visible_prefix - visible_suffix)
    return f"{value[:visible_prefix]}{hidden}{value[-visible_suffix:]}"
