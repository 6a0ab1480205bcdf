"""Transaction source implementations."""

from bankbot.transactions.clients.base import BaseTransactionSource
from bankbot.transactions.clients.mock_client import MockTransactionSource
from bankbot.transactions.clients.nordigen_client import NordigenTransactionSource

__all__ = [
    "BaseTransactionSource",
    "MockTransactionSource",
    "NordigenTransactionSource",
]
