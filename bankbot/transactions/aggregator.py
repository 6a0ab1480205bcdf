"""
Spent/earned/net aggregation over calendar windows.

All sums are exact ``Decimal`` arithmetic; rounding to two places only
happens when a message is rendered.
"""

from __future__ import annotations

import re
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Sequence

from bankbot.transactions.models import Aggregate, AggregationWindow, Transaction

ZERO = Decimal("0")


def aggregate(
    transactions: Iterable[Transaction], window: AggregationWindow
) -> Aggregate:
    """
    Sum outgoing and incoming amounts of the transactions inside ``window``.

    Zero amounts count in neither bucket. ``net`` is ``earned + spent``.
    """
    spent = ZERO
    earned = ZERO

    for tx in transactions:
        if not window.contains(tx.date):
            continue
        if tx.amount < 0:
            spent += tx.amount
        elif tx.amount > 0:
            earned += tx.amount

    return Aggregate(spent=spent, earned=earned, net=earned + spent)


def _first_of_month(year: int, month: int) -> date:
    # month may be out of 1..12 by a few units either way
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    return date(year, month, 1)


def month_windows(today: date) -> List[AggregationWindow]:
    """Windows for two months ago, last month and this month, oldest first."""
    this_month = _first_of_month(today.year, today.month)
    last_month = _first_of_month(today.year, today.month - 1)
    two_months_ago = _first_of_month(today.year, today.month - 2)

    return [
        AggregationWindow(start_inclusive=two_months_ago, end_exclusive=last_month),
        AggregationWindow(start_inclusive=last_month, end_exclusive=this_month),
        AggregationWindow(start_inclusive=this_month, end_exclusive=None),
    ]


def compile_patterns(patterns: Sequence[str]) -> List[re.Pattern[str]]:
    """Compile label regexes, raising ValueError on an invalid one."""
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as e:
            raise ValueError(f"Invalid ignore pattern {pattern!r}: {e}") from e
    return compiled


def exclude_ignored(
    transactions: Iterable[Transaction], patterns: Sequence[re.Pattern[str]]
) -> List[Transaction]:
    """Drop transactions whose label matches any of ``patterns``."""
    if not patterns:
        return list(transactions)
    return [
        tx
        for tx in transactions
        if not any(p.search(tx.label) for p in patterns)
    ]
