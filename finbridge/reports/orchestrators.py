"""
Report orchestrators.

Asset and Plaid Check reports are generated in the background. Each
orchestrator polls for the structured report until Plaid has built it,
then downloads the PDF rendering and returns both in one payload.
"""

import base64
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog

from finbridge.core.errors import ReportTimeoutError, StatementNotFoundError
from finbridge.plaid.client import PlaidClient
from finbridge.polling.config import PollConfig
from finbridge.polling.poller import (
    RetriesExhaustedError,
    classify_plaid_error,
    poll_with_retries,
)

logger = structlog.get_logger()

# Up to two years of history may be requested for an asset report.
ASSET_REPORT_DAYS_REQUESTED = 10

# Optional asset report options; a webhook could be set here instead of polling.
ASSET_REPORT_OPTIONS: Dict[str, Any] = {
    "client_report_id": "Custom Report ID #123",
    "user": {
        "client_user_id": "Custom User ID #456",
        "first_name": "Alice",
        "middle_name": "Bobcat",
        "last_name": "Cranberry",
        "ssn": "123-45-6789",
        "phone_number": "555-123-4567",
        "email": "alice@example.com",
    },
}

INCOME_INSIGHTS_ADD_ON = "cra_income_insights"


def encode_pdf(content: bytes) -> str:
    return base64.b64encode(content).decode("ascii")


async def poll_report(
    fetch: Callable[[], Awaitable[Dict[str, Any]]],
    report_name: str,
    config: Optional[PollConfig] = None,
) -> Dict[str, Any]:
    """Poll a report fetch, turning an exhausted budget into ReportTimeoutError."""
    try:
        return await poll_with_retries(
            fetch,
            config=config,
            operation_name=report_name,
            classify=classify_plaid_error,
        )
    except RetriesExhaustedError as e:
        raise ReportTimeoutError(
            f"{report_name} generation timed out after {e.attempts} attempts"
        ) from e


async def get_asset_report(
    client: PlaidClient,
    access_token: str,
    config: Optional[PollConfig] = None,
) -> Dict[str, Any]:
    """Create an asset report for one item, wait for it, and fetch its PDF."""
    created = await client.asset_report_create(
        access_tokens=[access_token],
        days_requested=ASSET_REPORT_DAYS_REQUESTED,
        options=ASSET_REPORT_OPTIONS,
    )
    asset_report_token = created["asset_report_token"]
    logger.info("report.asset.created", asset_report_id=created.get("asset_report_id"))

    response = await poll_report(
        lambda: client.asset_report_get(asset_report_token),
        "asset_report",
        config,
    )
    pdf = await client.asset_report_pdf_get(asset_report_token)

    return {"report": response["report"], "pdf": encode_pdf(pdf)}


async def get_base_report(
    client: PlaidClient,
    user_token: str,
    config: Optional[PollConfig] = None,
) -> Dict[str, Any]:
    """Plaid Check base report and its PDF, keyed by the user token."""
    response = await poll_report(
        lambda: client.cra_check_report_base_report_get(user_token),
        "cra_base_report",
        config,
    )
    pdf = await client.cra_check_report_pdf_get(user_token)

    return {"report": response["report"], "pdf": encode_pdf(pdf)}


async def get_income_insights(
    client: PlaidClient,
    user_token: str,
    config: Optional[PollConfig] = None,
) -> Dict[str, Any]:
    """Plaid Check income insights and the PDF with the insights add-on."""
    response = await poll_report(
        lambda: client.cra_check_report_income_insights_get(user_token),
        "cra_income_insights",
        config,
    )
    pdf = await client.cra_check_report_pdf_get(
        user_token, add_ons=[INCOME_INSIGHTS_ADD_ON]
    )

    return {"report": response["report"], "pdf": encode_pdf(pdf)}


async def get_partner_insights(
    client: PlaidClient,
    user_token: str,
    config: Optional[PollConfig] = None,
) -> Dict[str, Any]:
    # No PDF rendering exists for partner insights.
    return await poll_report(
        lambda: client.cra_check_report_partner_insights_get(user_token),
        "cra_partner_insights",
        config,
    )


async def get_first_statement(client: PlaidClient, access_token: str) -> Dict[str, Any]:
    """List statements and download the first one as a PDF."""
    listing = await client.statements_list(access_token)

    statement_id = None
    for account in listing.get("accounts", []):
        statements = account.get("statements") or []
        if statements:
            statement_id = statements[0]["statement_id"]
            break
    if statement_id is None:
        raise StatementNotFoundError("No statements are available for this item")

    pdf = await client.statements_download(access_token, statement_id)
    return {"report": listing, "pdf": encode_pdf(pdf)}
