"""Per-account memory kept between polling cycles."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable

from bankbot.transactions.models import Account, Transaction


@dataclass
class AccountState:
    """
    What the poller remembers about one account.

    Starts uninitialized (no baseline, empty snapshot). Only a successful
    fetch replaces the snapshot; a failed one only bumps the counter.
    """

    last_seen_transactions: FrozenSet[Transaction] = field(default_factory=frozenset)
    consecutive_failure_count: int = 0
    has_baseline: bool = False

    def record_success(self, transactions: Iterable[Transaction]) -> None:
        self.last_seen_transactions = frozenset(transactions)
        self.has_baseline = True
        self.consecutive_failure_count = 0

    def record_failure(self) -> None:
        self.consecutive_failure_count += 1


class AccountStates:
    """Account -> AccountState mapping owned by a single poller."""

    def __init__(self) -> None:
        self._states: Dict[Account, AccountState] = {}

    def get(self, account: Account) -> AccountState:
        """Return the state for ``account``, creating it uninitialized."""
        state = self._states.get(account)
        if state is None:
            state = AccountState()
            self._states[account] = state
        return state
