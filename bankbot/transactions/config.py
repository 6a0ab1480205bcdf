"""
Transaction poller configuration.

Defines settings for the polling interval, retry policy of the
transaction source, and message presentation.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from bankbot.core.config import Settings, get_settings
from bankbot.transactions.models import Account


class RetryConfig(BaseModel):
    """Configuration for retry behavior with exponential backoff."""

    max_attempts: int = Field(default=3, ge=1, description="Maximum retry attempts")
    initial_delay: float = Field(
        default=1.0, gt=0, description="Initial delay in seconds"
    )
    max_delay: float = Field(default=60.0, gt=0, description="Maximum delay in seconds")
    exponential_base: float = Field(default=2.0, gt=1, description="Backoff multiplier")
    jitter: bool = Field(
        default=True, description="Add random jitter to prevent thundering herd"
    )


class PollerConfig(BaseModel):
    """Main transaction poller configuration."""

    # Polling behavior
    poll_interval_minutes: int = Field(
        default=240, ge=1, description="Minutes between polling cycles"
    )
    interval_skew_minutes: int = Field(
        default=5,
        gt=0,
        description="Extra minutes added to every sleep for upstream rate limits",
    )

    # Destination
    channel_id: Optional[str] = Field(
        default=None, description="Chat channel receiving the digest"
    )

    # Presentation
    currency: str = Field(
        default="EUR", description="Currency code used when the source reports none"
    )
    ignore_in_spent_earned: List[str] = Field(
        default_factory=list,
        description="Label regexes excluded from spent/earned totals",
    )

    # Transaction source
    api_timeout: float = Field(
        default=60.0, gt=0, description="API request timeout in seconds"
    )
    retry: RetryConfig = Field(default_factory=RetryConfig)

    def get_sleep_seconds(self) -> int:
        """Get the delay between two cycles, skew included, in seconds."""
        return (self.poll_interval_minutes + self.interval_skew_minutes) * 60

    @classmethod
    def from_settings(cls, settings: Settings) -> "PollerConfig":
        return cls(
            poll_interval_minutes=settings.POLL_INTERVAL_MINUTES,
            interval_skew_minutes=settings.POLL_SKEW_MINUTES,
            channel_id=settings.SLACK_CHANNEL,
            currency=settings.CURRENCY,
            ignore_in_spent_earned=settings.IGNORE_IN_SPENT_EARNED,
        )


def get_poller_config() -> PollerConfig:
    """Build the poller configuration from the application settings."""
    return PollerConfig.from_settings(get_settings())


def get_accounts(settings: Optional[Settings] = None) -> List[Account]:
    """
    Parse the configured accounts, keeping their order.

    Raises:
        ValueError: If an entry is not of the form 'name:id'
    """
    settings = settings or get_settings()
    return [Account.parse(value) for value in settings.ACCOUNTS]
