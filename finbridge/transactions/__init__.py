"""
Transaction views built on the cursor sync loop.

get_latest_transactions returns the most recent activity for an item;
collect_financial_data gathers every data source with partial-failure
tolerance.
"""

from finbridge.transactions.aggregator import get_latest_transactions, latest_transactions
from finbridge.transactions.comprehensive import collect_financial_data, estimate_income

__all__ = [
    "get_latest_transactions",
    "latest_transactions",
    "collect_financial_data",
    "estimate_income",
]
