"""
Base transaction source interface.

Defines the contract that all transaction sources must implement. The
public methods never raise: failures come back as ``Err`` values so the
account processor can degrade the affected lines only.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

import structlog

from bankbot.core.result import Err, Ok, Result
from bankbot.transactions.models import Balance, Transaction

logger = structlog.get_logger()


class BaseTransactionSource(ABC):
    """
    Abstract base class for transaction sources.

    Subclasses implement ``_get_transactions`` and ``_get_balance`` and may
    raise freely; the base class turns any exception into ``Err``.
    """

    @abstractmethod
    def get_source_name(self) -> str:
        """
        Get the name of this transaction source.

        Returns:
            Source identifier (e.g., 'nordigen', 'mock')
        """

    @abstractmethod
    async def _get_transactions(self, account_id: str) -> List[Transaction]:
        """Return booked transactions of ``account_id``, newest first."""

    @abstractmethod
    async def _get_balance(self, account_id: str) -> Balance:
        """Return the current balance of ``account_id``."""

    async def fetch_transactions(self, account_id: str) -> Result[List[Transaction]]:
        """
        Fetch booked transactions of an account.

        Args:
            account_id: External account identifier

        Returns:
            Ok with transactions ordered newest first (possibly empty),
            or Err with the failure
        """
        try:
            return Ok(await self._get_transactions(account_id))
        except Exception as e:
            logger.warning(
                "source.fetch_transactions_failed",
                source=self.get_source_name(),
                account_id=account_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return Err(e)

    async def fetch_balance(self, account_id: str) -> Result[Balance]:
        """
        Fetch the current balance of an account.

        Args:
            account_id: External account identifier

        Returns:
            Ok with the balance and its currency when known, or Err with
            the failure
        """
        try:
            return Ok(await self._get_balance(account_id))
        except Exception as e:
            logger.warning(
                "source.fetch_balance_failed",
                source=self.get_source_name(),
                account_id=account_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return Err(e)

    async def aclose(self) -> None:
        """Release network resources held by the source."""


class APIError(Exception):
    """Base exception for transaction source errors."""

    pass


class APIConnectionError(APIError):
    """Raised when connection to API fails."""

    pass


class APIAuthenticationError(APIError):
    """Raised when API authentication fails."""

    pass


class APIRateLimitError(APIError):
    """Raised when API rate limit is exceeded."""

    pass


class APIValidationError(APIError):
    """Raised when API returns invalid data."""

    pass


class APIResponseError(APIError):
    """Raised when the API answers with an error body."""

    def __init__(self, summary: str, detail: str = "", status_code: Optional[int] = None):
        self.summary = summary
        self.detail = detail
        self.status_code = status_code
        message = f"{summary}: {detail}" if detail else summary
        super().__init__(message)
