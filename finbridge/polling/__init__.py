"""
Polling for asynchronously generated Plaid resources.

poll_with_retries covers one-shot report fetches with a fixed retry
budget; sync_transactions drains the cursor-paginated transaction feed.
"""

from finbridge.polling.config import PollConfig, SyncConfig
from finbridge.polling.metrics import PollMetrics, PollOutcome, get_poll_metrics
from finbridge.polling.poller import (
    RetriesExhaustedError,
    classify_plaid_error,
    poll_with_retries,
    treat_all_as_transient,
)
from finbridge.polling.sync import SyncResult, sync_transactions

__all__ = [
    "PollConfig",
    "SyncConfig",
    "PollMetrics",
    "PollOutcome",
    "get_poll_metrics",
    "RetriesExhaustedError",
    "classify_plaid_error",
    "poll_with_retries",
    "treat_all_as_transient",
    "SyncResult",
    "sync_transactions",
]
