"""Base notification sink interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from bankbot.core.result import Result


class BaseNotificationSink(ABC):
    """Destination for the composed digest message."""

    @abstractmethod
    async def post_message(self, text: str, channel_id: Optional[str]) -> Result[None]:
        """Deliver ``text`` to ``channel_id``; never raises for delivery errors."""

    async def aclose(self) -> None:
        """Release network resources held by the sink."""


class DeliveryError(Exception):
    """Raised when a message could not be delivered."""

    pass
