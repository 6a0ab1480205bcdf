"""
Mock transaction source for development.

Keeps a growing, randomly generated transaction history per account so
the poller can be exercised end to end without bank credentials.
"""

import asyncio
import random
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from bankbot.transactions.clients.base import APIConnectionError, BaseTransactionSource
from bankbot.transactions.models import Balance, Transaction

LABELS = [
    ("CARTE SUPERMARCHE", -1),
    ("CARTE BOULANGERIE", -1),
    ("PRLV SEPA ELECTRICITE", -1),
    ("PRLV SEPA TELEPHONE", -1),
    ("RETRAIT DAB", -1),
    ("VIR SEPA SALAIRE", 1),
    ("VIR SEPA REMBOURSEMENT", 1),
]


class MockTransactionSource(BaseTransactionSource):
    """
    Mock source that appends random transactions on every fetch.

    Simulates an upstream that returns its full history newest first,
    with occasional failures.
    """

    def __init__(
        self,
        failure_rate: float = 0.0,
        latency_ms: int = 100,
        new_per_fetch: int = 1,
        today: Optional[Callable[[], date]] = None,
    ):
        """
        Initialize mock source.

        Args:
            failure_rate: Probability of simulated failure (0.0 to 1.0)
            latency_ms: Simulated network latency in milliseconds
            new_per_fetch: Transactions added to an account on each fetch
            today: Clock used for booking dates
        """
        self.failure_rate = failure_rate
        self.latency_ms = latency_ms
        self.new_per_fetch = new_per_fetch
        self._today = today or date.today
        self._history: Dict[str, List[Transaction]] = {}
        self._counter = 0

    def get_source_name(self) -> str:
        return "mock"

    async def _get_transactions(self, account_id: str) -> List[Transaction]:
        await self._simulate_latency()

        if random.random() < self.failure_rate:
            raise APIConnectionError("Simulated API connection failure")

        history = self._history.setdefault(account_id, [])
        for _ in range(self.new_per_fetch):
            history.append(self._generate_transaction())

        # Newest first, like the real API
        return sorted(history, key=lambda tx: tx.date, reverse=True)

    async def _get_balance(self, account_id: str) -> Balance:
        await self._simulate_latency()

        if random.random() < self.failure_rate:
            raise APIConnectionError("Simulated API connection failure")

        history = self._history.get(account_id, [])
        total = Decimal("1000.00") + sum((tx.amount for tx in history), Decimal("0"))
        return Balance(amount=total)

    def _generate_transaction(self) -> Transaction:
        self._counter += 1
        label, sign = random.choice(LABELS)
        cents = random.randint(100, 250000 if sign > 0 else 15000)
        booked = self._today() - timedelta(days=random.randint(0, 3))

        return Transaction(
            internal_id=f"mock-int-{self._counter:06d}-{random.randint(0, 9999):04d}",
            stable_id=f"mock-{self._counter:06d}",
            date=booked,
            amount=Decimal(sign * cents) / 100,
            label=label,
        )

    async def _simulate_latency(self):
        """Simulate network latency."""
        if self.latency_ms > 0:
            await asyncio.sleep(self.latency_ms / 1000.0)
