"""
Transaction poller service.

Periodically processes every configured account, posts one digest message
for the whole cycle, then sleeps. A failing cycle is logged and retried on
the next one; nothing short of cancellation ends the loop.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import structlog

from bankbot.notifications.base import BaseNotificationSink
from bankbot.transactions.aggregator import compile_patterns
from bankbot.transactions.clients.base import BaseTransactionSource
from bankbot.transactions.config import PollerConfig, get_poller_config
from bankbot.transactions.metrics import CycleStatus, DeliveryStatus, PollerMetrics
from bankbot.transactions.models import Account
from bankbot.transactions.processor import AccountOutcome, AccountProcessor, AccountStatus
from bankbot.transactions.state import AccountStates

logger = structlog.get_logger()


@dataclass
class CycleResult:
    """What one cycle produced."""

    cycle_id: str
    message: str = ""
    outcomes: List[AccountOutcome] = field(default_factory=list)
    delivered: bool = False
    error: Optional[str] = None


class Poller:
    """
    Main polling service.

    Owns the per-account state; accounts are processed one after the other,
    never concurrently.
    """

    def __init__(
        self,
        source: BaseTransactionSource,
        sink: BaseNotificationSink,
        accounts: Sequence[Account],
        config: Optional[PollerConfig] = None,
        today: Optional[Callable[[], date]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """
        Initialize the poller.

        Args:
            source: Transaction source
            sink: Where the digest is delivered
            accounts: Accounts to watch, in message order
            config: Poller configuration (defaults to loaded config)
            today: Clock anchoring the aggregation windows
            sleep: Awaitable used between cycles (defaults to a sleep that
                returns early when the poller is stopped)
        """
        self.config = config or get_poller_config()
        self.source = source
        self.sink = sink
        self.accounts = list(accounts)
        self.states = AccountStates()
        self.metrics = PollerMetrics()
        self.processor = AccountProcessor(
            source,
            currency=self.config.currency,
            ignore_patterns=compile_patterns(self.config.ignore_in_spent_earned),
            today=today,
        )
        self._sleep = sleep or self._wait_for_stop

        self._stop_event = asyncio.Event()
        self._running = False
        self._task: Optional[asyncio.Task] = None

        logger.info(
            "poller.initialized",
            source=source.get_source_name(),
            accounts=[a.name for a in self.accounts],
            sleep_seconds=self.config.get_sleep_seconds(),
        )

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def request_stop(self) -> None:
        """Ask the loop to finish; the current sleep returns immediately."""
        self._stop_event.set()

    async def start(self):
        """Start the polling loop in the background."""
        if self._running or (self._task is not None and not self._task.done()):
            logger.warning("poller.already_running")
            return

        self._stop_event.clear()
        self._running = True
        self._task = asyncio.create_task(self.run())

    async def stop(self):
        """Stop the polling loop; an in-flight account is abandoned whole."""
        if not self._running and self._task is None:
            logger.debug("poller.not_running")
            return

        logger.info("poller.stopping")
        self.request_stop()

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        # A task cancelled before it ever ran never resets the flag itself
        self._running = False
        logger.info("poller.stopped")

    async def run(self):
        """Run cycles until stopped: cycle, deliver, sleep, repeat."""
        self._running = True
        logger.info("poller.started", interval_minutes=self.config.poll_interval_minutes)

        try:
            while not self._stop_event.is_set():
                await self.run_cycle()

                if self._stop_event.is_set():
                    break

                delay = self.config.get_sleep_seconds()
                logger.debug("poller.sleeping", seconds=delay)
                await self._sleep(delay)
        except asyncio.CancelledError:
            logger.info("poller.cancelled")
            raise
        finally:
            self._running = False

        logger.info("poller.loop_exited")

    async def run_cycle(self) -> CycleResult:
        """
        Execute a single polling cycle.

        Returns:
            The cycle's message and per-account outcomes. Unexpected errors
            are caught here and reported in ``error``.
        """
        cycle_id = self.metrics.start_cycle()
        log = logger.bind(cycle_id=cycle_id)
        log.info("poller.cycle_started", accounts=len(self.accounts))

        result = CycleResult(cycle_id=cycle_id)

        try:
            for account in self.accounts:
                outcome = await self.processor.process(account, self.states.get(account))
                result.outcomes.append(outcome)
                self.metrics.record_account(
                    new_transactions=len(outcome.new_transactions),
                    fetch_failed=outcome.status == AccountStatus.FETCH_FAILED,
                    balance_failed=outcome.balance_failed,
                )

            result.message = "".join(o.text for o in result.outcomes)
            log.debug("poller.message_composed", length=len(result.message))

            if result.message:
                result.delivered = await self._deliver(result.message)
            else:
                self.metrics.record_delivery(DeliveryStatus.NOTHING_TO_SEND)

        except Exception as e:
            log.error(
                "poller.cycle_failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            self.metrics.record_error(str(e))
            self.metrics.end_cycle(CycleStatus.FAILED)
            result.error = str(e)
            result.message = ""
            return result

        self.metrics.end_cycle()
        last = self.metrics.get_last_cycle()
        log.info(
            "poller.cycle_completed",
            status=last.status.value if last else None,
            new_transactions=sum(len(o.new_transactions) for o in result.outcomes),
            delivered=result.delivered,
        )
        return result

    async def _deliver(self, message: str) -> bool:
        sent = await self.sink.post_message(message, self.config.channel_id)
        if not sent.is_ok():
            # Not retried: the notification is lost
            logger.error("poller.delivery_failed", error=sent.message)
            self.metrics.record_delivery(DeliveryStatus.FAILED)
            return False
        self.metrics.record_delivery(DeliveryStatus.SENT)
        return True

    async def _wait_for_stop(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def get_status(self) -> Dict[str, Any]:
        """
        Get current poller status and metrics.

        Returns:
            Status dictionary
        """
        last = self.metrics.get_last_cycle()
        accounts = []
        for account in self.accounts:
            state = self.states.get(account)
            accounts.append(
                {
                    "name": account.name,
                    "has_baseline": state.has_baseline,
                    "known_transactions": len(state.last_seen_transactions),
                    "consecutive_failures": state.consecutive_failure_count,
                }
            )

        return {
            "running": self._running,
            "accounts": accounts,
            "last_cycle": last.to_dict() if last else None,
            "success_rate": self.metrics.get_success_rate(),
            "config": {
                "poll_interval_minutes": self.config.poll_interval_minutes,
                "interval_skew_minutes": self.config.interval_skew_minutes,
                "channel_id": self.config.channel_id,
                "source": self.source.get_source_name(),
            },
        }
