from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    This uses pydantic-settings so that we get type validation and defaults.
    List values (ACCOUNTS, IGNORE_IN_SPENT_EARNED) are given as JSON arrays.
    """

    # App basics
    ENV: Literal["development", "staging", "production"] = "development"
    """Environment mode: affects log rendering."""

    DEBUG: bool = False
    """Enable debug mode: verbose logging."""

    LOG_LEVEL: str = "INFO"
    """Minimum log level when DEBUG is off."""

    # Transaction source
    TRANSACTION_SOURCE: Literal["nordigen", "mock"] = "nordigen"
    """Which transaction source implementation to use."""

    NORDIGEN_SECRET_ID: Optional[str] = None
    """GoCardless Bank Account Data (Nordigen) secret id."""

    NORDIGEN_SECRET_KEY: Optional[str] = None
    """GoCardless Bank Account Data (Nordigen) secret key."""

    NORDIGEN_BASE_URL: str = "https://bankaccountdata.gocardless.com/api/v2"
    """Base URL of the bank account data API."""

    ACCOUNTS: list[str] = []
    """Accounts to watch, each as 'name:external_id'."""

    IGNORE_IN_SPENT_EARNED: list[str] = []
    """Regexes on the label of transactions excluded from spent/earned totals."""

    # Slack
    SLACK_AUTH_TOKEN: Optional[str] = None
    """Slack bot token used for chat.postMessage."""

    SLACK_CHANNEL: Optional[str] = None
    """Destination channel id or name."""

    # Scheduling / presentation
    POLL_INTERVAL_MINUTES: int = 240
    """Base delay between two polling cycles."""

    POLL_SKEW_MINUTES: int = 5
    """Extra minutes added to each sleep to ride out upstream rate-limit windows."""

    CURRENCY: str = "EUR"
    """Currency code shown when the bank does not report one."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance to avoid re-parsing .env repeatedly."""
    return Settings()
