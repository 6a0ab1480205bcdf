"""Delivery of the digest message to chat."""

from bankbot.notifications.base import BaseNotificationSink, DeliveryError
from bankbot.notifications.slack import ConsoleNotificationSink, SlackNotificationSink

__all__ = [
    "BaseNotificationSink",
    "ConsoleNotificationSink",
    "DeliveryError",
    "SlackNotificationSink",
]
