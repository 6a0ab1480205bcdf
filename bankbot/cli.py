"""
Bank bot CLI commands.

Provides command-line interface for running the poller, doing a dry-run
poll, and renewing the bank access link.
"""

import asyncio
import signal
import sys
from typing import List, Optional

import structlog

from bankbot.core.config import Settings, get_settings
from bankbot.core.logging import configure_logging
from bankbot.notifications import (
    BaseNotificationSink,
    ConsoleNotificationSink,
    SlackNotificationSink,
)
from bankbot.transactions.clients import (
    BaseTransactionSource,
    MockTransactionSource,
    NordigenTransactionSource,
)
from bankbot.transactions.config import PollerConfig, get_accounts
from bankbot.transactions.models import Account
from bankbot.transactions.poller import Poller

logger = structlog.get_logger()


class ConfigurationError(Exception):
    """Raised when required settings are missing or invalid."""

    pass


def create_source(settings: Settings, config: PollerConfig) -> BaseTransactionSource:
    """Create the transaction source selected by TRANSACTION_SOURCE."""
    if settings.TRANSACTION_SOURCE == "mock":
        return MockTransactionSource()

    if not settings.NORDIGEN_SECRET_ID or not settings.NORDIGEN_SECRET_KEY:
        raise ConfigurationError(
            "NORDIGEN_SECRET_ID and NORDIGEN_SECRET_KEY must be set"
        )
    return NordigenTransactionSource(
        secret_id=settings.NORDIGEN_SECRET_ID,
        secret_key=settings.NORDIGEN_SECRET_KEY,
        base_url=settings.NORDIGEN_BASE_URL,
        timeout=config.api_timeout,
        retry=config.retry,
    )


def create_sink(settings: Settings) -> BaseNotificationSink:
    """Slack when a token is configured, the console otherwise."""
    if settings.SLACK_AUTH_TOKEN:
        if not settings.SLACK_CHANNEL:
            raise ConfigurationError("SLACK_CHANNEL must be set with SLACK_AUTH_TOKEN")
        return SlackNotificationSink(settings.SLACK_AUTH_TOKEN)
    logger.warning("cli.no_slack_token", falling_back="console")
    return ConsoleNotificationSink()


def load_accounts(settings: Settings) -> List[Account]:
    try:
        accounts = get_accounts(settings)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e
    if not accounts:
        raise ConfigurationError("ACCOUNTS must list at least one 'name:id' entry")
    return accounts


def print_status(status: dict):
    """Pretty print poller status."""
    print("\n=== Poller Status ===\n")
    for account in status["accounts"]:
        print(
            f"{account['name']}: baseline={account['has_baseline']} "
            f"known={account['known_transactions']} "
            f"failures={account['consecutive_failures']}"
        )

    if status["last_cycle"]:
        cycle = status["last_cycle"]
        print("\n--- Last Cycle ---")
        print(f"Cycle ID: {cycle['cycle_id']}")
        print(f"Status: {cycle['status']}")
        print(f"Delivery: {cycle['delivery']}")
        print(f"New transactions: {cycle['new_transactions']}")
        print(f"Duration: {cycle['duration_seconds']:.2f}s")
    print()


async def run_command(settings: Settings) -> int:
    """Run the poller until interrupted."""
    config = PollerConfig.from_settings(settings)
    accounts = load_accounts(settings)
    source = create_source(settings, config)
    sink = create_sink(settings)

    print("Starting bank bot...")
    print(f"Accounts: {', '.join(a.name for a in accounts)}")
    print(f"Sleep between cycles: {config.get_sleep_seconds() // 60} minutes")
    print("Press Ctrl+C to stop\n")

    poller = Poller(source, sink, accounts, config)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGTERM, poller.request_stop)
    except (NotImplementedError, RuntimeError):
        pass

    try:
        await poller.run()
    finally:
        await source.aclose()
        await sink.aclose()
    return 0


async def poll_command(settings: Settings) -> int:
    """Run a baseline cycle and a diff cycle, printing instead of posting."""
    config = PollerConfig.from_settings(settings)
    accounts = load_accounts(settings)
    source = create_source(settings, config)

    poller = Poller(source, ConsoleNotificationSink(), accounts, config)
    try:
        print("Establishing baseline...")
        await poller.run_cycle()
        print("Polling for new transactions...")
        result = await poller.run_cycle()
        if not result.message:
            print("No new transactions.")
    finally:
        await source.aclose()

    print_status(poller.get_status())
    return 0 if result.error is None else 1


async def renew_command(settings: Settings, institution_id: str) -> int:
    """Create an agreement and requisition, then print the bank link."""
    if not settings.NORDIGEN_SECRET_ID or not settings.NORDIGEN_SECRET_KEY:
        raise ConfigurationError(
            "NORDIGEN_SECRET_ID and NORDIGEN_SECRET_KEY must be set"
        )

    client = NordigenTransactionSource(
        secret_id=settings.NORDIGEN_SECRET_ID,
        secret_key=settings.NORDIGEN_SECRET_KEY,
        base_url=settings.NORDIGEN_BASE_URL,
    )
    try:
        agreement_id = await client.create_end_user_agreement(institution_id)
        logger.debug("cli.agreement_created", agreement_id=agreement_id)
        link = await client.create_requisition(institution_id, agreement_id)
    finally:
        await client.aclose()

    print(f"Go to this link: {link}")
    return 0


def usage() -> int:
    print("Usage: bankbot <command> [options]")
    print("\nCommands:")
    print("  run                       Run the poller continuously")
    print("  poll                      Poll twice and print the message")
    print("  renew <institution_id>    Print a new bank authorisation link")
    print("\nSettings come from the environment or a .env file")
    print("(ACCOUNTS, NORDIGEN_SECRET_ID, NORDIGEN_SECRET_KEY, SLACK_AUTH_TOKEN, ...)")
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        return usage()

    command = argv[0]

    try:
        settings = get_settings()
    except ValueError as e:
        print(f"Configuration error: {e}")
        return 1
    configure_logging(settings.ENV, "DEBUG" if settings.DEBUG else settings.LOG_LEVEL)

    try:
        if command == "run":
            return asyncio.run(run_command(settings))
        elif command == "poll":
            return asyncio.run(poll_command(settings))
        elif command == "renew":
            if len(argv) < 2:
                print("Usage: bankbot renew <institution_id>")
                return 1
            return asyncio.run(renew_command(settings, argv[1]))
        else:
            print(f"Unknown command: {command}")
            return 1
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130
    except Exception as e:
        print(f"Error: {str(e)}")
        logger.exception("cli_error", command=command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
