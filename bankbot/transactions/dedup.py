"""
Transaction deduplication.

Works out which fetched transactions were not present in the previous
snapshot of an account. Identity follows ``same_transaction``: stable ids
win when both records carry one, internal ids are the fallback.
"""

from __future__ import annotations

from typing import Iterable, List, Set

import structlog

from bankbot.transactions.models import Transaction, identity_key

logger = structlog.get_logger()


def collapse_duplicates(fetched: Iterable[Transaction]) -> List[Transaction]:
    """Drop exact repeats (equal on every field), keeping first occurrences."""
    return list(dict.fromkeys(fetched))


class IdentityIndex:
    """
    Constant-time identity lookups over a set of transactions.

    Records with a stable id are indexed by it; records without one by
    their internal id. Internal ids of stable records are kept aside for
    the mixed case where only one side carries a stable id.
    """

    def __init__(self, transactions: Iterable[Transaction]):
        self._keys: Set[tuple[str, str]] = set()
        self._internal_of_stable: Set[str] = set()

        for tx in transactions:
            self._keys.add(identity_key(tx))
            if tx.stable_id:
                self._internal_of_stable.add(tx.internal_id)

    def __contains__(self, tx: object) -> bool:
        if not isinstance(tx, Transaction):
            return False

        if identity_key(tx) in self._keys:
            return True

        # Only one side has a stable id: fall back to the internal id
        if tx.stable_id:
            matched = ("internal", tx.internal_id) in self._keys
        else:
            matched = tx.internal_id in self._internal_of_stable

        if matched:
            logger.warning(
                "identity.fallback_match",
                internal_id=tx.internal_id,
                stable_id=tx.stable_id,
                label=tx.label,
            )
        return matched


def diff(
    fetched: Iterable[Transaction], last_seen: Iterable[Transaction]
) -> Set[Transaction]:
    """
    Return the fetched transactions whose identity is absent from ``last_seen``.

    Args:
        fetched: Transactions from the current fetch (repeats allowed)
        last_seen: Snapshot from the previous successful fetch

    Returns:
        Set of new transactions, unordered
    """
    index = IdentityIndex(last_seen)
    return {tx for tx in collapse_duplicates(fetched) if tx not in index}
