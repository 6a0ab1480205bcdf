"""
Poller cycle metrics.

Tracks what every polling cycle did (accounts processed, new
transactions, failures, delivery) and keeps a bounded in-memory history.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class CycleStatus(str, Enum):
    """Status of a polling cycle."""

    SUCCESS = "success"
    PARTIAL = "partial"  # At least one account fetch failed
    FAILED = "failed"  # Unexpected error aborted the cycle


class DeliveryStatus(str, Enum):
    """What happened to the cycle's message."""

    SENT = "sent"
    FAILED = "failed"
    NOTHING_TO_SEND = "nothing_to_send"


@dataclass
class CycleMetrics:
    """Metrics for a single polling cycle."""

    cycle_id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    status: CycleStatus = CycleStatus.SUCCESS
    delivery: DeliveryStatus = DeliveryStatus.NOTHING_TO_SEND

    accounts_processed: int = 0
    new_transactions: int = 0
    fetch_failures: int = 0
    balance_failures: int = 0

    duration_seconds: float = 0.0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["ended_at"] = self.ended_at.isoformat() if self.ended_at else None
        data["status"] = self.status.value
        data["delivery"] = self.delivery.value
        return data


class PollerMetrics:
    """
    In-memory metrics tracker for the poller.

    Tracks the current cycle and maintains recent history. Nothing is
    persisted: a restart starts from scratch, like the account state.
    """

    def __init__(self, history_size: int = 100):
        self.history_size = history_size
        self._current: Optional[CycleMetrics] = None
        self._history: List[CycleMetrics] = []
        self._cycle_counter = 0

    def start_cycle(self) -> str:
        """
        Start tracking a new cycle.

        Returns:
            Cycle ID
        """
        self._cycle_counter += 1
        now = datetime.now(timezone.utc)
        cycle_id = f"cycle-{now.strftime('%Y%m%d-%H%M%S')}-{self._cycle_counter}"
        self._current = CycleMetrics(cycle_id=cycle_id, started_at=now)
        return cycle_id

    def record_account(
        self, new_transactions: int, fetch_failed: bool, balance_failed: bool
    ):
        """Record the outcome of one account."""
        if not self._current:
            return
        self._current.accounts_processed += 1
        self._current.new_transactions += new_transactions
        if fetch_failed:
            self._current.fetch_failures += 1
        if balance_failed:
            self._current.balance_failures += 1

    def record_delivery(self, status: DeliveryStatus):
        if self._current:
            self._current.delivery = status

    def record_error(self, error: str):
        """Record an error during the cycle."""
        if self._current:
            self._current.errors.append(error)

    def end_cycle(self, status: Optional[CycleStatus] = None):
        """
        End the current cycle.

        Args:
            status: Final status; derived from fetch failures when omitted
        """
        if not self._current:
            return

        run = self._current
        run.ended_at = datetime.now(timezone.utc)
        if status is None:
            status = CycleStatus.PARTIAL if run.fetch_failures else CycleStatus.SUCCESS
        run.status = status
        run.duration_seconds = (run.ended_at - run.started_at).total_seconds()

        self._history.append(run)
        if len(self._history) > self.history_size:
            self._history = self._history[-self.history_size :]

        self._current = None

    def get_current_cycle(self) -> Optional[CycleMetrics]:
        return self._current

    def get_last_cycle(self) -> Optional[CycleMetrics]:
        """Get metrics for the most recent completed cycle."""
        return self._history[-1] if self._history else None

    def get_history(self, limit: Optional[int] = None) -> List[CycleMetrics]:
        """
        Get recent cycle history.

        Args:
            limit: Maximum number of cycles to return (defaults to all)

        Returns:
            List of cycle metrics, newest first
        """
        history = list(reversed(self._history))
        if limit:
            history = history[:limit]
        return history

    def get_success_rate(self) -> float:
        """Fraction of completed cycles with status SUCCESS (0.0 to 1.0)."""
        if not self._history:
            return 0.0
        successes = sum(1 for r in self._history if r.status == CycleStatus.SUCCESS)
        return successes / len(self._history)
