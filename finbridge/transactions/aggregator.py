"""
Recent-activity view over the synced transaction feed.

Drains /transactions/sync from the beginning and keeps the latest few
transactions by date.
"""

from typing import Any, Dict, Iterable, List, Optional, Set

import structlog

from finbridge.plaid.client import PlaidClient
from finbridge.plaid.models import Transaction
from finbridge.polling.config import SyncConfig
from finbridge.polling.sync import sync_transactions

logger = structlog.get_logger()

LATEST_TRANSACTIONS_LIMIT = 8


def latest_transactions(
    transactions: Iterable[Transaction],
    limit: int = LATEST_TRANSACTIONS_LIMIT,
    exclude_ids: Optional[Set[str]] = None,
) -> List[Transaction]:
    """
    The ``limit`` most recently dated transactions, oldest first.

    Dates are ISO strings and compared as strings. The sort is stable, so
    transactions sharing a date keep their feed order.
    """
    if limit <= 0:
        return []
    kept = [
        t for t in transactions
        if not exclude_ids or t.transaction_id not in exclude_ids
    ]
    return sorted(kept, key=lambda t: t.date)[-limit:]


async def get_latest_transactions(
    client: PlaidClient,
    access_token: str,
    config: Optional[SyncConfig] = None,
    exclude_removed: bool = True,
    limit: int = LATEST_TRANSACTIONS_LIMIT,
) -> Dict[str, Any]:
    """
    Sync the item's full transaction history and return the latest entries.

    Args:
        client: Plaid client
        access_token: Item access token
        config: Sync loop config (not-ready delay and bounds)
        exclude_removed: Leave out transactions the feed reported as removed
        limit: Number of transactions to return

    Returns:
        ``{"latest_transactions": [...]}``
    """

    async def fetch_page(cursor: Optional[str]):
        return await client.transactions_sync(access_token, cursor)

    result = await sync_transactions(fetch_page, config=config)

    exclude = result.removed_ids if exclude_removed else None
    latest = latest_transactions(result.added, limit=limit, exclude_ids=exclude)

    logger.info(
        "transactions.latest_computed",
        synced=len(result.added),
        removed=len(result.removed),
        returned=len(latest),
    )
    return {"latest_transactions": [t.to_dict() for t in latest]}
