"""Plaid API client, payload models and errors."""

from finbridge.plaid.client import PlaidClient
from finbridge.plaid.errors import APIConnectionError, APIError, PlaidAPIError
from finbridge.plaid.models import RemovedTransaction, Transaction, TransactionsSyncPage

__all__ = [
    "PlaidClient",
    "APIError",
    "APIConnectionError",
    "PlaidAPIError",
    "Transaction",
    "RemovedTransaction",
    "TransactionsSyncPage",
]
