"""
Transaction polling module.

This module fetches account transactions from a bank data API, detects
the ones that are new since the previous cycle, aggregates monthly
spent/earned totals and composes the digest message.
"""

from bankbot.transactions.poller import Poller
from bankbot.transactions.processor import AccountProcessor
from bankbot.transactions.clients.base import BaseTransactionSource
from bankbot.transactions.clients.mock_client import MockTransactionSource
from bankbot.transactions.metrics import PollerMetrics

__all__ = [
    "Poller",
    "AccountProcessor",
    "BaseTransactionSource",
    "MockTransactionSource",
    "PollerMetrics",
]
