import sys
from datetime import date
from pathlib import Path

import pytest

# Ensure project root is on sys.path so `import bankbot` works when running pytest from root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from bankbot.transactions.clients.base import APIConnectionError  # noqa: E402
from bankbot.transactions.config import PollerConfig  # noqa: E402
from bankbot.transactions.models import Account  # noqa: E402
from tests.fixtures.fakes import FakeTransactionSource, RecordingSink  # noqa: E402


@pytest.fixture
def source():
    return FakeTransactionSource()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def main_account():
    return Account(name="Main", external_id="acc-main")


@pytest.fixture
def savings_account():
    return Account(name="Savings", external_id="acc-savings")


@pytest.fixture
def poller_config():
    return PollerConfig(
        poll_interval_minutes=240,
        interval_skew_minutes=5,
        channel_id="C123",
        currency="EUR",
    )


@pytest.fixture
def fixed_today():
    """Clock pinned to 2024-01-25 for the aggregation windows."""
    return lambda: date(2024, 1, 25)


@pytest.fixture
def connection_error():
    return APIConnectionError("Service unavailable")
