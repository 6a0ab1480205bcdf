"""Data models for accounts, transactions and aggregation windows."""

from __future__ import annotations

import calendar
import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Transaction(BaseModel):
    """A booked transaction as returned by the transaction source.

    Default equality compares every field and is only used to collapse exact
    repeats inside one fetch. Use ``identity_key`` / ``same_transaction`` to
    decide whether two records denote the same real-world transaction.
    """

    model_config = ConfigDict(frozen=True)

    internal_id: str = Field(..., description="Upstream id, may change between fetches")
    stable_id: Optional[str] = Field(default=None, description="Preferred stable id, may be absent")
    date: datetime.date = Field(..., description="Booking date")
    amount: Decimal = Field(..., description="Signed amount, negative when money goes out")
    label: str = Field(default="?", description="Human readable label")
    currency: Optional[str] = Field(default=None, description="Currency code reported upstream")


def identity_key(tx: Transaction) -> tuple[str, str]:
    """Return the key identifying ``tx``: its stable id, else its internal id."""
    if tx.stable_id:
        return ("stable", tx.stable_id)
    return ("internal", tx.internal_id)


def same_transaction(a: Transaction, b: Transaction) -> bool:
    """Whether ``a`` and ``b`` are the same logical transaction.

    Two distinct stable ids always mean two transactions, even when the
    internal ids collide.
    """
    if a.stable_id and b.stable_id:
        return a.stable_id == b.stable_id
    return a.internal_id == b.internal_id


class Account(BaseModel):
    """A watched bank account."""

    model_config = ConfigDict(frozen=True)

    name: str
    external_id: str

    @classmethod
    def parse(cls, value: str) -> "Account":
        """Parse the ``name:external_id`` form used in configuration."""
        name, sep, external_id = value.partition(":")
        if not sep or not name.strip() or not external_id.strip():
            raise ValueError(f"Invalid account {value!r}, expected 'name:id'")
        return cls(name=name.strip(), external_id=external_id.strip())


class AggregationWindow(BaseModel):
    """Half-open calendar range ``[start_inclusive, end_exclusive)``."""

    model_config = ConfigDict(frozen=True)

    start_inclusive: datetime.date
    end_exclusive: Optional[datetime.date] = None

    def contains(self, day: datetime.date) -> bool:
        if day < self.start_inclusive:
            return False
        return self.end_exclusive is None or day < self.end_exclusive

    @property
    def label(self) -> str:
        return calendar.month_name[self.start_inclusive.month]


class Aggregate(BaseModel):
    """Spent/earned/net totals over one window."""

    model_config = ConfigDict(frozen=True)

    spent: Decimal = Field(default=Decimal("0"), le=0)
    earned: Decimal = Field(default=Decimal("0"), ge=0)
    net: Decimal = Decimal("0")


class Balance(BaseModel):
    """Closing booked balance of an account."""

    model_config = ConfigDict(frozen=True)

    amount: Decimal
    currency: Optional[str] = None
