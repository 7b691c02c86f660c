"""
Multi-source financial data collection.

Fetches accounts, identity, transactions, balances and liabilities for one
item concurrently. A failing source degrades to an empty value instead of
failing the whole response.
"""

import asyncio
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

import structlog

from finbridge.plaid.client import PlaidClient
from finbridge.polling.config import SyncConfig
from finbridge.polling.sync import sync_transactions

logger = structlog.get_logger()

TRANSACTION_LOOKBACK_DAYS = 90
INCOME_MONTHS = 3

INCOME_CATEGORIES = ("Deposit", "Transfer", "Payroll")
INCOME_NAME_KEYWORDS = ("payroll", "salary")

EMPTY_IDENTITY: Dict[str, List[Any]] = {
    "addresses": [],
    "emails": [],
    "names": [],
    "phone_numbers": [],
}


async def fetch_recent_transactions(
    client: PlaidClient,
    access_token: str,
    fallback_config: SyncConfig,
    today: date,
) -> List[Dict[str, Any]]:
    """
    Transactions from the last 90 days.

    Uses /transactions/get; if that call fails for any reason, falls back to
    a record-capped drain of /transactions/sync.
    """
    start_date = (today - timedelta(days=TRANSACTION_LOOKBACK_DAYS)).isoformat()
    end_date = today.isoformat()

    try:
        response = await client.transactions_get(access_token, start_date, end_date)
        return response.get("transactions", [])
    except Exception as e:
        logger.warning(
            "comprehensive.transactions_get_failed",
            error=str(e),
            fallback="transactions_sync",
        )

    async def fetch_page(cursor: Optional[str]):
        return await client.transactions_sync(access_token, cursor)

    result = await sync_transactions(
        fetch_page,
        config=fallback_config,
        operation_name="transactions_sync_fallback",
    )
    return [t.to_dict() for t in result.added]


def is_income_transaction(transaction: Dict[str, Any]) -> bool:
    """Inflows (negative amounts) that look like deposits, transfers or pay."""
    if (transaction.get("amount") or 0) >= 0:
        return False
    categories = transaction.get("category") or []
    if any(category in categories for category in INCOME_CATEGORIES):
        return True
    name = (transaction.get("name") or "").lower()
    return any(keyword in name for keyword in INCOME_NAME_KEYWORDS)


def estimate_income(transactions: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Rough income estimate from 90 days of transactions."""
    income_total = sum(
        abs(t["amount"]) for t in transactions if is_income_transaction(t)
    )
    monthly_income = income_total / INCOME_MONTHS

    return {
        "projected_yearly_income": monthly_income * 12,
        # Gross-up estimate, not a tax calculation.
        "projected_yearly_income_before_tax": monthly_income * 12 * 1.25,
        "income_streams": [
            {
                "name": "Primary Income",
                "monthly_income": monthly_income,
                "confidence": 0.8,
                "days": TRANSACTION_LOOKBACK_DAYS,
            }
        ],
        "number_of_income_streams": 1,
    }


def _failed(source: str, result: Any) -> bool:
    if isinstance(result, BaseException):
        logger.warning(
            "comprehensive.source_unavailable",
            source=source,
            error=str(result),
            error_type=type(result).__name__,
        )
        return True
    return False


def _first_owner(identity_response: Dict[str, Any]) -> Dict[str, Any]:
    accounts = identity_response.get("accounts") or []
    if accounts:
        owners = accounts[0].get("owners") or []
        if owners:
            return owners[0]
    return dict(EMPTY_IDENTITY)


def _liability_groups(liabilities_response: Dict[str, Any]) -> Dict[str, Any]:
    liabilities = liabilities_response.get("liabilities") or {}
    return {
        "credit": liabilities.get("credit") or [],
        "mortgage": liabilities.get("mortgage") or [],
        "student": liabilities.get("student") or [],
    }


async def collect_financial_data(
    client: PlaidClient,
    access_token: str,
    fallback_config: Optional[SyncConfig] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Gather every data source for an item into one response.

    Args:
        client: Plaid client
        access_token: Item access token
        fallback_config: Sync config for the transactions fallback path
        today: End of the transaction window (defaults to today)

    Returns:
        Accounts, identity, transactions, balances, estimated income,
        liabilities (None when unavailable) and a summary
    """
    fallback_config = fallback_config or SyncConfig(not_ready_delay=1.0, max_records=100)
    today = today or date.today()

    logger.info("comprehensive.started")
    (
        accounts_result,
        identity_result,
        transactions_result,
        balances_result,
        liabilities_result,
    ) = await asyncio.gather(
        client.accounts_get(access_token),
        client.identity_get(access_token),
        fetch_recent_transactions(client, access_token, fallback_config, today),
        client.accounts_balance_get(access_token),
        client.liabilities_get(access_token),
        return_exceptions=True,
    )

    accounts = [] if _failed("accounts", accounts_result) else accounts_result.get("accounts", [])
    identity = (
        dict(EMPTY_IDENTITY) if _failed("identity", identity_result)
        else _first_owner(identity_result)
    )
    transactions = [] if _failed("transactions", transactions_result) else transactions_result
    balances = [] if _failed("balances", balances_result) else balances_result.get("accounts", [])
    liabilities = (
        None if _failed("liabilities", liabilities_result)
        else _liability_groups(liabilities_result)
    )

    data = {
        "accounts": accounts,
        "identity": identity,
        "transactions": transactions,
        "balances": balances,
        "income": estimate_income(transactions),
        "liabilities": liabilities,
        "assets": None,  # Asset reports need their own generation flow
        "summary": {
            "total_accounts": len(accounts),
            "total_transactions": len(transactions),
            "has_investments": False,
            "has_liabilities": liabilities is not None,
        },
    }

    logger.info(
        "comprehensive.completed",
        accounts=len(accounts),
        transactions=len(transactions),
        has_liabilities=liabilities is not None,
    )
    return data
