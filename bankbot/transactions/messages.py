"""Slack mrkdwn rendering of account sections."""

from __future__ import annotations

from decimal import Decimal

from bankbot.transactions.models import Account, Aggregate, AggregationWindow, Transaction

DOWN = "🔻"
UP = ":small_green_triangle:"


def format_amount(amount: Decimal, currency: str) -> str:
    return f"{amount:.2f} {currency}".rstrip()


def header(account: Account) -> str:
    return f"_{account.name}_\n"


def transaction_line(tx: Transaction, currency: str) -> str:
    arrow = DOWN if tx.amount < 0 else UP
    return f"{arrow} *{format_amount(tx.amount, currency)}* - {tx.label}\n"


def aggregate_line(window: AggregationWindow, totals: Aggregate, currency: str) -> str:
    return (
        f":bar_chart: {window.label}: "
        f"spent *{format_amount(totals.spent, currency)}*, "
        f"earned *{format_amount(totals.earned, currency)}*, "
        f"net *{format_amount(totals.net, currency)}*\n"
    )


def balance_line(account: Account, balance: Decimal, currency: str) -> str:
    return f":sum: _{account.name}_ balance: *{format_amount(balance, currency)}*\n\n"


def balance_warning(account: Account, error: str) -> str:
    return f":warning: _{account.name}_ Error getting balance: {error}\n\n"


def fetch_warning(account: Account, error: str) -> str:
    return f"{header(account)}:warning: Error getting transactions: {error}\n\n"
