"""
Tests for the poller loop.

Tests failure isolation between accounts, delivery gating, the top-level
error boundary, sleeping, cancellation and metrics.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from bankbot.transactions.metrics import CycleStatus, DeliveryStatus, PollerMetrics
from bankbot.transactions.poller import Poller
from bankbot.transactions.processor import AccountStatus
from tests.fixtures.fakes import RecordingSink, make_tx

A1 = make_tx("a-1", amount="-5.00", day=date(2024, 1, 3), stable_id="sa-1", label="Bakery")
A2 = make_tx("a-2", amount="-20.00", day=date(2024, 1, 21), stable_id="sa-2", label="Fuel")
B1 = make_tx("b-1", amount="50.00", day=date(2024, 1, 2), stable_id="sb-1", label="Interest")


@pytest.fixture
def accounts(main_account, savings_account):
    return [main_account, savings_account]


@pytest.fixture
def make_poller(source, sink, accounts, poller_config, fixed_today):
    def factory(**kwargs):
        kwargs.setdefault("sink", sink)
        kwargs.setdefault("config", poller_config)
        kwargs.setdefault("today", fixed_today)
        return Poller(source=source, accounts=accounts, **kwargs)

    return factory


class TestCycle:
    """Tests for a single polling cycle."""

    @pytest.mark.asyncio
    async def test_baseline_cycle_sends_nothing(self, make_poller, source, sink, main_account, savings_account):
        source.transactions[main_account.external_id] = [A1]
        source.transactions[savings_account.external_id] = [B1]
        poller = make_poller()

        result = await poller.run_cycle()

        assert result.message == ""
        assert result.delivered is False
        assert sink.messages == []
        assert [o.status for o in result.outcomes] == [AccountStatus.BASELINE] * 2

    @pytest.mark.asyncio
    async def test_no_new_transactions_means_no_delivery(self, make_poller, source, sink, main_account, savings_account):
        source.transactions[main_account.external_id] = [A1]
        source.transactions[savings_account.external_id] = [B1]
        poller = make_poller()

        await poller.run_cycle()
        result = await poller.run_cycle()

        assert result.message == ""
        assert sink.messages == []
        assert poller.metrics.get_last_cycle().delivery == DeliveryStatus.NOTHING_TO_SEND

    @pytest.mark.asyncio
    async def test_failure_isolation(
        self, make_poller, source, sink, main_account, savings_account, connection_error
    ):
        source.transactions[main_account.external_id] = [A1]
        source.transactions[savings_account.external_id] = [B1]
        poller = make_poller()
        await poller.run_cycle()

        source.transactions[main_account.external_id] = [A2, A1]
        source.balances[main_account.external_id] = Decimal("980.00")
        source.transactions[savings_account.external_id] = connection_error

        result = await poller.run_cycle()

        assert len(sink.messages) == 1
        text, channel = sink.messages[0]
        assert channel == "C123"
        assert text == result.message
        assert text.startswith("_Main_\n🔻 *-20.00 EUR* - Fuel\n")
        assert ":sum: _Main_ balance: *980.00 EUR*\n\n" in text
        assert text.endswith(
            "_Savings_\n:warning: Error getting transactions: Service unavailable\n\n"
        )

        main_state = poller.states.get(main_account)
        savings_state = poller.states.get(savings_account)
        assert main_state.last_seen_transactions == frozenset({A1, A2})
        assert savings_state.last_seen_transactions == frozenset({B1})
        assert savings_state.consecutive_failure_count == 1
        assert main_state.consecutive_failure_count == 0

        last = poller.metrics.get_last_cycle()
        assert last.status == CycleStatus.PARTIAL
        assert last.fetch_failures == 1
        assert last.new_transactions == 1
        assert last.delivery == DeliveryStatus.SENT

    @pytest.mark.asyncio
    async def test_sections_follow_account_order(self, make_poller, source, sink, main_account, savings_account):
        source.transactions[main_account.external_id] = []
        source.transactions[savings_account.external_id] = []
        poller = make_poller()
        await poller.run_cycle()

        source.transactions[main_account.external_id] = [A1]
        source.transactions[savings_account.external_id] = [B1]
        result = await poller.run_cycle()

        assert result.message.index("_Main_") < result.message.index("_Savings_")

    @pytest.mark.asyncio
    async def test_accounts_are_processed_sequentially(self, make_poller, source, main_account, savings_account):
        source.transactions[main_account.external_id] = [A1]
        source.transactions[savings_account.external_id] = [B1]
        poller = make_poller()

        await poller.run_cycle()

        assert source.max_in_flight == 1
        assert [c for c in source.calls if c[0] == "transactions"] == [
            ("transactions", "acc-main"),
            ("transactions", "acc-savings"),
        ]

    @pytest.mark.asyncio
    async def test_first_fetch_failure_then_baseline(self, make_poller, source, sink, main_account, savings_account, connection_error):
        source.transactions[main_account.external_id] = connection_error
        source.transactions[savings_account.external_id] = [B1]
        poller = make_poller()

        first = await poller.run_cycle()
        assert "Error getting transactions" in first.message

        source.transactions[main_account.external_id] = [A2, A1]
        second = await poller.run_cycle()

        # Recovery establishes the baseline silently
        assert second.message == ""
        assert poller.states.get(main_account).has_baseline is True

    @pytest.mark.asyncio
    async def test_unexpected_error_is_contained(self, make_poller, source, sink):
        async def broken(account_id):
            raise RuntimeError("parse fault")

        source.fetch_transactions = broken
        poller = make_poller()

        result = await poller.run_cycle()

        assert result.error == "parse fault"
        assert result.message == ""
        assert sink.messages == []
        assert poller.metrics.get_last_cycle().status == CycleStatus.FAILED

    @pytest.mark.asyncio
    async def test_delivery_failure_is_only_logged(self, make_poller, source, main_account, savings_account):
        failing_sink = RecordingSink(fail=True)
        source.transactions[main_account.external_id] = []
        source.transactions[savings_account.external_id] = []
        poller = make_poller(sink=failing_sink)
        await poller.run_cycle()

        source.transactions[main_account.external_id] = [A1]
        result = await poller.run_cycle()

        assert result.error is None
        assert result.delivered is False
        assert len(failing_sink.messages) == 1
        assert poller.states.get(main_account).last_seen_transactions == frozenset({A1})
        assert poller.metrics.get_last_cycle().delivery == DeliveryStatus.FAILED

        # Not retried on the next cycle
        await poller.run_cycle()
        assert len(failing_sink.messages) == 1


class TestLoop:
    """Tests for the scheduling loop and cancellation."""

    @pytest.mark.asyncio
    async def test_sleeps_interval_plus_skew_between_cycles(self, make_poller, source):
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)
            if len(delays) == 2:
                poller.request_stop()

        poller = make_poller(sleep=fake_sleep)

        await poller.run()

        assert delays == [245 * 60, 245 * 60]
        assert len(poller.metrics.get_history()) == 2

    @pytest.mark.asyncio
    async def test_loop_survives_failing_cycles(self, make_poller, source):
        attempts = []

        async def broken(account_id):
            attempts.append(account_id)
            raise RuntimeError("boom")

        source.fetch_transactions = broken
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)
            if len(sleeps) == 3:
                poller.request_stop()

        poller = make_poller(sleep=fake_sleep)

        await poller.run()

        assert len(sleeps) == 3
        assert len(attempts) == 3
        assert all(r.status == CycleStatus.FAILED for r in poller.metrics.get_history())

    @pytest.mark.asyncio
    async def test_stop_requested_before_run_skips_cycles(self, make_poller, source):
        poller = make_poller()
        poller.request_stop()

        await poller.run()

        assert source.calls == []

    @pytest.mark.asyncio
    async def test_stop_interrupts_default_sleep(self, make_poller, source, main_account, savings_account):
        source.transactions[main_account.external_id] = [A1]
        source.transactions[savings_account.external_id] = [B1]
        poller = make_poller()

        await poller.start()
        for _ in range(100):
            if poller.metrics.get_last_cycle() is not None:
                break
            await asyncio.sleep(0.01)

        await asyncio.wait_for(poller.stop(), timeout=1.0)

        assert poller.get_status()["running"] is False
        assert len(poller.metrics.get_history()) == 1
        assert poller.states.get(main_account).has_baseline is True

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, make_poller):
        poller = make_poller()
        await poller.start()
        await asyncio.sleep(0.01)
        first_task = poller._task

        await poller.start()

        assert poller._task is first_task
        await poller.stop()

    @pytest.mark.asyncio
    async def test_back_to_back_start_runs_one_loop(self, make_poller, source):
        poller = make_poller()

        await poller.start()
        first_task = poller._task
        await poller.start()

        assert poller._task is first_task
        for _ in range(100):
            if poller.metrics.get_last_cycle() is not None:
                break
            await asyncio.sleep(0.01)

        assert source.max_in_flight == 1
        assert [c for c in source.calls if c[0] == "transactions"] == [
            ("transactions", "acc-main"),
            ("transactions", "acc-savings"),
        ]
        await poller.stop()

    @pytest.mark.asyncio
    async def test_stop_before_loop_starts(self, make_poller, source):
        poller = make_poller()

        await poller.start()
        await poller.stop()

        assert poller.get_status()["running"] is False
        assert source.calls == []


class TestStatus:
    """Tests for status reporting."""

    @pytest.mark.asyncio
    async def test_status_reports_accounts(self, make_poller, source, main_account, savings_account, connection_error):
        source.transactions[main_account.external_id] = [A1, A2]
        source.transactions[savings_account.external_id] = connection_error
        poller = make_poller()

        await poller.run_cycle()
        status = poller.get_status()

        assert status["running"] is False
        assert status["accounts"] == [
            {"name": "Main", "has_baseline": True, "known_transactions": 2, "consecutive_failures": 0},
            {"name": "Savings", "has_baseline": False, "known_transactions": 0, "consecutive_failures": 1},
        ]
        assert status["last_cycle"]["status"] == "partial"
        assert status["config"]["source"] == "fake"
        assert status["success_rate"] == 0.0


class TestPollerMetrics:
    """Tests for PollerMetrics bookkeeping."""

    def test_success_rate_calculation(self):
        metrics = PollerMetrics()
        for status in (CycleStatus.SUCCESS, CycleStatus.PARTIAL, CycleStatus.SUCCESS, CycleStatus.FAILED):
            metrics.start_cycle()
            metrics.end_cycle(status)

        assert metrics.get_success_rate() == 0.5

    def test_partial_derived_from_fetch_failures(self):
        metrics = PollerMetrics()
        metrics.start_cycle()
        metrics.record_account(new_transactions=2, fetch_failed=False, balance_failed=True)
        metrics.record_account(new_transactions=0, fetch_failed=True, balance_failed=False)
        metrics.end_cycle()

        last = metrics.get_last_cycle()
        assert last.status == CycleStatus.PARTIAL
        assert last.accounts_processed == 2
        assert last.new_transactions == 2
        assert last.balance_failures == 1
        assert metrics.get_current_cycle() is None

    def test_history_is_bounded_and_newest_first(self):
        metrics = PollerMetrics(history_size=3)
        ids = []
        for _ in range(5):
            ids.append(metrics.start_cycle())
            metrics.end_cycle()

        history = metrics.get_history()
        assert [m.cycle_id for m in history] == list(reversed(ids[-3:]))
        assert len(metrics.get_history(limit=1)) == 1
