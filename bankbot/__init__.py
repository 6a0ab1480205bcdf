"""Bank account watcher posting new transactions and monthly totals to Slack."""

__version__ = "0.1.0"
