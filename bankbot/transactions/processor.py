"""
Per-account polling cycle.

Fetches an account's transactions, works out which ones are new since the
previous cycle, and renders the account's section of the digest. Every
collaborator call happens before the account state is touched, so a cycle
interrupted at any await leaves the state exactly as it was.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, List, Optional, Sequence

import structlog

from bankbot.core.result import Result
from bankbot.transactions import messages
from bankbot.transactions.aggregator import aggregate, exclude_ignored, month_windows
from bankbot.transactions.clients.base import BaseTransactionSource
from bankbot.transactions.dedup import collapse_duplicates, diff
from bankbot.transactions.models import Account, Balance, Transaction
from bankbot.transactions.state import AccountState

logger = structlog.get_logger()


class AccountStatus(str, Enum):
    """What happened to an account during one cycle."""

    BASELINE = "baseline"  # First successful fetch, state seeded silently
    NO_CHANGES = "no_changes"
    NEW_TRANSACTIONS = "new_transactions"
    FETCH_FAILED = "fetch_failed"


@dataclass
class AccountOutcome:
    """Result of processing one account."""

    account: Account
    status: AccountStatus
    text: str = ""
    new_transactions: List[Transaction] = field(default_factory=list)
    balance_failed: bool = False
    error: Optional[str] = None


def chronological(transactions: Sequence[Transaction]) -> List[Transaction]:
    """
    Order newest-first source output oldest-first.

    The source order is reversed, then stably sorted by date so same-day
    transactions keep the reversed source order.
    """
    return sorted(reversed(list(transactions)), key=lambda tx: tx.date)


class AccountProcessor:
    """
    Runs the fetch, dedupe, aggregate and compose steps for one account.

    Args:
        source: Transaction source
        currency: Currency code shown when the source reports none
        ignore_patterns: Label regexes excluded from spent/earned totals
        today: Clock anchoring the aggregation windows
    """

    def __init__(
        self,
        source: BaseTransactionSource,
        currency: str = "EUR",
        ignore_patterns: Sequence[re.Pattern[str]] = (),
        today: Optional[Callable[[], date]] = None,
    ):
        self.source = source
        self.currency = currency
        self.ignore_patterns = list(ignore_patterns)
        self._today = today or date.today

    async def process(self, account: Account, state: AccountState) -> AccountOutcome:
        log = logger.bind(account=account.name)

        fetched = await self.source.fetch_transactions(account.external_id)
        if not fetched.is_ok():
            state.record_failure()
            log.warning(
                "account.fetch_failed",
                error=fetched.message,
                consecutive_failures=state.consecutive_failure_count,
            )
            return AccountOutcome(
                account=account,
                status=AccountStatus.FETCH_FAILED,
                text=messages.fetch_warning(account, fetched.message),
                error=fetched.message,
            )

        transactions = collapse_duplicates(fetched.value)
        log.debug("account.transactions_fetched", count=len(transactions))

        if not state.has_baseline:
            state.record_success(transactions)
            log.info("account.baseline_established", count=len(transactions))
            return AccountOutcome(account=account, status=AccountStatus.BASELINE)

        new = diff(transactions, state.last_seen_transactions)
        if not new:
            state.record_success(transactions)
            log.debug("account.no_new_transactions")
            return AccountOutcome(account=account, status=AccountStatus.NO_CHANGES)

        # Keep source order for the new ones, then flip to oldest first
        new_ordered = chronological([tx for tx in transactions if tx in new])
        log.info("account.new_transactions", count=len(new_ordered))

        balance = await self.source.fetch_balance(account.external_id)

        # No await past this point; the state moves only once the text is built
        text = self._compose(account, new_ordered, transactions, balance)
        state.record_success(transactions)

        return AccountOutcome(
            account=account,
            status=AccountStatus.NEW_TRANSACTIONS,
            text=text,
            new_transactions=new_ordered,
            balance_failed=not balance.is_ok(),
        )

    def _account_currency(
        self, history: Sequence[Transaction], balance: Result[Balance]
    ) -> str:
        """Currency reported upstream for the account, else the configured one."""
        if balance.is_ok() and balance.value.currency:
            return balance.value.currency
        for tx in history:
            if tx.currency:
                return tx.currency
        return self.currency

    def _compose(
        self,
        account: Account,
        new_transactions: Sequence[Transaction],
        history: Sequence[Transaction],
        balance: Result[Balance],
    ) -> str:
        currency = self._account_currency(history, balance)

        text = messages.header(account)
        for tx in new_transactions:
            text += messages.transaction_line(tx, tx.currency or currency)

        counted = exclude_ignored(history, self.ignore_patterns)
        for window in month_windows(self._today()):
            totals = aggregate(counted, window)
            text += messages.aggregate_line(window, totals, currency)

        if balance.is_ok():
            text += messages.balance_line(account, balance.value.amount, currency)
        else:
            logger.warning(
                "account.balance_failed", account=account.name, error=balance.message
            )
            text += messages.balance_warning(account, balance.message)
        return text
