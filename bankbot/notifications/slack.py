"""Sinks delivering the digest to Slack or to the console."""

from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO

import httpx

from bankbot.core.result import Err, Ok, Result
from bankbot.notifications.base import BaseNotificationSink, DeliveryError

logger = logging.getLogger(__name__)

SLACK_API_URL = "https://slack.com/api"


class SlackNotificationSink(BaseNotificationSink):
    """Posts messages with the Slack Web API chat.postMessage method."""

    def __init__(
        self,
        auth_token: str,
        timeout: float = 30.0,
        base_url: str = SLACK_API_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Authorization": f"Bearer {auth_token}"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def post_message(self, text: str, channel_id: Optional[str]) -> Result[None]:
        """Send ``text`` to the Slack channel ``channel_id``."""
        if not channel_id:
            return Err(DeliveryError("No Slack channel configured"))

        try:
            response = await self._client.post(
                "/chat.postMessage",
                json={"channel": channel_id, "text": text, "mrkdwn": True},
            )
        except httpx.HTTPError as e:
            logger.error(f"Slack delivery failed: {e}")
            return Err(DeliveryError(f"Slack request failed: {e}"))

        if response.status_code >= 400:
            logger.error(f"Slack delivery failed with status {response.status_code}")
            return Err(
                DeliveryError(f"HTTP {response.status_code}: {response.text[:200]}")
            )

        try:
            body = response.json()
        except ValueError:
            return Err(DeliveryError("Slack answered with a non-JSON body"))

        # Slack reports most errors with HTTP 200 and ok=false
        if not body.get("ok", False):
            error = body.get("error", "unknown_error")
            logger.error(f"Slack rejected message: {error}")
            return Err(DeliveryError(f"Slack error: {error}"))

        logger.info(f"Message posted to Slack channel {channel_id}")
        return Ok(None)


class ConsoleNotificationSink(BaseNotificationSink):
    """Writes messages to a stream, for dry runs."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout

    async def post_message(self, text: str, channel_id: Optional[str]) -> Result[None]:
        header = f"--- #{channel_id} ---" if channel_id else "--- message ---"
        try:
            self.stream.write(f"{header}\n{text}\n")
            self.stream.flush()
        except OSError as e:
            return Err(DeliveryError(f"Could not write message: {e}"))
        return Ok(None)
