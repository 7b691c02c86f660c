"""
Plaid quickstart API routes.

Most routes pass a single Plaid call through for the caller's session.
The report, transaction and comprehensive routes delegate to the polling
orchestrators.
"""

import uuid
from datetime import date, timedelta
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.formparsers import MultiPartException

from finbridge.api.dependencies import RequestContext, get_context
from finbridge.core.errors import InvalidRequestError, MissingCredentialError
from finbridge.polling.config import (
    get_fallback_sync_config,
    get_poll_config,
    get_sync_config,
)
from finbridge.polling.metrics import get_poll_metrics
from finbridge.reports import orchestrators
from finbridge.transactions.aggregator import get_latest_transactions
from finbridge.transactions.comprehensive import collect_financial_data

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["plaid"])

CLIENT_NAME = "Plaid Quickstart"
STATEMENTS_LOOKBACK_DAYS = 30
INVESTMENTS_LOOKBACK_DAYS = 30
CRA_DAYS_REQUESTED = 60

# Sample identities used by the sandbox flows.
CRA_USER_IDENTITY: Dict[str, Any] = {
    "date_of_birth": "1980-07-31",
    "first_name": "Harry",
    "last_name": "Potter",
    "phone_numbers": ["+16174567890"],
    "emails": ["harrypotter@example.com"],
    "primary_address": {
        "city": "New York",
        "region": "NY",
        "street": "4 Privet Drive",
        "postal_code": "11111",
        "country": "US",
    },
}

PAYMENT_RECIPIENT: Dict[str, Any] = {
    "name": "Harry Potter",
    "iban": "GB33BUKB20201555555555",
    "address": {
        "street": ["4 Privet Drive"],
        "city": "Little Whinging",
        "postal_code": "11111",
        "country": "GB",
    },
}

TRANSFER_USER: Dict[str, Any] = {
    "legal_name": "FirstName LastName",
    "email_address": "foobar@email.com",
    "address": {
        "street": "123 Main St.",
        "city": "San Francisco",
        "region": "CA",
        "postal_code": "94053",
        "country": "US",
    },
}


async def read_body(request: Request) -> Dict[str, Any]:
    """Decode a JSON or form request body; empty bodies give {}.

    Undecodable bodies raise InvalidRequestError (400) rather than being
    treated as empty.
    """
    raw = await request.body()
    try:
        raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidRequestError("Request body is not valid UTF-8") from exc

    if "application/json" not in request.headers.get("content-type", ""):
        try:
            form = await request.form()
        except MultiPartException as exc:
            raise InvalidRequestError(f"Invalid form body: {exc.message}") from exc
        return {key: value for key, value in form.items() if isinstance(value, str)}

    if not raw:
        return {}
    try:
        data = await request.json()
    except ValueError as exc:
        raise InvalidRequestError("Invalid JSON body") from exc
    if not isinstance(data, dict):
        raise InvalidRequestError("JSON body must be an object")
    return data


def _first_account_id(accounts_response: Dict[str, Any]) -> str:
    accounts = accounts_response.get("accounts") or []
    if not accounts:
        raise MissingCredentialError("The linked item has no accounts")
    return accounts[0]["account_id"]


@router.post("/info")
async def info(ctx: RequestContext = Depends(get_context)):
    credential = ctx.credential
    return {
        "item_id": credential.item_id,
        "access_token": credential.access_token,
        "products": ctx.settings.products,
    }


@router.post("/create_link_token")
async def create_link_token(ctx: RequestContext = Depends(get_context)):
    """Create a link token used to initialize Plaid Link client-side."""
    settings = ctx.settings
    configs: Dict[str, Any] = {
        # Should correspond to a unique id for the current user.
        "user": {"client_user_id": "user-id"},
        "client_name": CLIENT_NAME,
        "products": settings.products,
        "country_codes": settings.country_codes,
        "language": "en",
    }

    if settings.PLAID_REDIRECT_URI:
        configs["redirect_uri"] = settings.PLAID_REDIRECT_URI
    if settings.PLAID_ANDROID_PACKAGE_NAME:
        configs["android_package_name"] = settings.PLAID_ANDROID_PACKAGE_NAME

    if "statements" in settings.products:
        today = date.today()
        configs["statements"] = {
            "end_date": today.isoformat(),
            "start_date": (today - timedelta(days=STATEMENTS_LOOKBACK_DAYS)).isoformat(),
        }

    if settings.uses_cra:
        configs["user_token"] = ctx.credential.user_token
        configs["cra_options"] = {"days_requested": CRA_DAYS_REQUESTED}
        configs["consumer_report_permissible_purpose"] = "ACCOUNT_REVIEW_CREDIT"

    return await ctx.client.link_token_create(configs)


@router.post("/create_user_token")
async def create_user_token(ctx: RequestContext = Depends(get_context)):
    """Create a user token for Plaid Check, Income or multi-item Link flows."""
    request: Dict[str, Any] = {"client_user_id": f"user_{uuid.uuid4()}"}
    if ctx.settings.uses_cra:
        request["consumer_report_user_identity"] = CRA_USER_IDENTITY

    user = await ctx.client.user_create(request)
    await ctx.save(user_token=user["user_token"])
    return user


@router.post("/create_link_token_for_payment")
async def create_link_token_for_payment(ctx: RequestContext = Depends(get_context)):
    """Create a payment and a link token for the UK/EU payment initiation flow."""
    recipient = await ctx.client.payment_initiation_recipient_create(PAYMENT_RECIPIENT)
    payment = await ctx.client.payment_initiation_payment_create(
        {
            "recipient_id": recipient["recipient_id"],
            "reference": "paymentRef",
            "amount": {"value": 1.23, "currency": "GBP"},
        }
    )
    payment_id = payment["payment_id"]
    await ctx.save(payment_id=payment_id)

    configs: Dict[str, Any] = {
        "client_name": CLIENT_NAME,
        "user": {"client_user_id": str(uuid.uuid4())},
        "country_codes": ctx.settings.country_codes,
        "language": "en",
        # payment_initiation must be the only product in this flow.
        "products": ["payment_initiation"],
        "payment_initiation": {"payment_id": payment_id},
    }
    if ctx.settings.PLAID_REDIRECT_URI:
        configs["redirect_uri"] = ctx.settings.PLAID_REDIRECT_URI

    return await ctx.client.link_token_create(configs)


async def _exchange(ctx: RequestContext, public_token: str) -> Dict[str, Any]:
    token_response = await ctx.client.item_public_token_exchange(public_token)
    await ctx.save(
        public_token=public_token,
        access_token=token_response["access_token"],
        item_id=token_response["item_id"],
    )
    return token_response


@router.post("/set_access_token")
async def set_access_token(request: Request, ctx: RequestContext = Depends(get_context)):
    """Exchange a Link public_token for an access_token."""
    public_token = (await read_body(request)).get("public_token")
    if not public_token:
        raise MissingCredentialError("public_token is required")

    token_response = await _exchange(ctx, public_token)
    return {
        "access_token": token_response["access_token"],
        "item_id": token_response["item_id"],
        "error": None,
    }


@router.post("/exchange_public_token")
async def exchange_public_token(
    request: Request, ctx: RequestContext = Depends(get_context)
):
    public_token = (await read_body(request)).get("public_token")
    if not public_token:
        return JSONResponse(status_code=400, content={"error": "public_token is required"})

    token_response = await _exchange(ctx, public_token)
    return {
        "access_token": token_response["access_token"],
        "item_id": token_response["item_id"],
    }


@router.get("/auth")
async def auth(ctx: RequestContext = Depends(get_context)):
    return await ctx.client.auth_get(ctx.require("access_token"))


@router.get("/transactions")
async def transactions(ctx: RequestContext = Depends(get_context)):
    """Sync the item's transactions and return the 8 most recent."""
    return await get_latest_transactions(
        ctx.client,
        ctx.require("access_token"),
        config=get_sync_config(ctx.settings),
        exclude_removed=ctx.settings.SYNC_EXCLUDE_REMOVED,
    )


@router.get("/investments_transactions")
async def investments_transactions(ctx: RequestContext = Depends(get_context)):
    today = date.today()
    response = await ctx.client.investments_transactions_get(
        ctx.require("access_token"),
        start_date=(today - timedelta(days=INVESTMENTS_LOOKBACK_DAYS)).isoformat(),
        end_date=today.isoformat(),
    )
    return {"error": None, "investments_transactions": response}


@router.get("/identity")
async def identity(ctx: RequestContext = Depends(get_context)):
    response = await ctx.client.identity_get(ctx.require("access_token"))
    return {"identity": response["accounts"]}


@router.get("/balance")
async def balance(ctx: RequestContext = Depends(get_context)):
    return await ctx.client.accounts_balance_get(ctx.require("access_token"))


@router.get("/holdings")
async def holdings(ctx: RequestContext = Depends(get_context)):
    response = await ctx.client.investments_holdings_get(ctx.require("access_token"))
    return {"error": None, "holdings": response}


@router.get("/liabilities")
async def liabilities(ctx: RequestContext = Depends(get_context)):
    response = await ctx.client.liabilities_get(ctx.require("access_token"))
    return {"error": None, "liabilities": response}


@router.get("/item")
async def item(ctx: RequestContext = Depends(get_context)):
    """The item (products, billing, webhook info) and its institution."""
    item_response = await ctx.client.item_get(ctx.require("access_token"))
    institution_response = await ctx.client.institutions_get_by_id(
        item_response["item"]["institution_id"], ctx.settings.country_codes
    )
    return {
        "item": item_response["item"],
        "institution": institution_response["institution"],
    }


@router.get("/accounts")
async def accounts(ctx: RequestContext = Depends(get_context)):
    return await ctx.client.accounts_get(ctx.require("access_token"))


@router.get("/assets")
async def assets(ctx: RequestContext = Depends(get_context)):
    """Create an asset report for the item and return it with its PDF."""
    return await orchestrators.get_asset_report(
        ctx.client, ctx.require("access_token"), get_poll_config(ctx.settings)
    )


@router.get("/statements")
async def statements(ctx: RequestContext = Depends(get_context)):
    return await orchestrators.get_first_statement(
        ctx.client, ctx.require("access_token")
    )


@router.get("/payment")
async def payment(ctx: RequestContext = Depends(get_context)):
    response = await ctx.client.payment_initiation_payment_get(
        ctx.require("payment_id")
    )
    return {"error": None, "payment": response}


@router.get("/income/verification/paystubs")
async def income_verification_paystubs(ctx: RequestContext = Depends(get_context)):
    response = await ctx.client.income_verification_paystubs_get(
        ctx.require("access_token")
    )
    return {"error": None, "paystubs": response}


@router.get("/transfer_authorize")
async def transfer_authorize(ctx: RequestContext = Depends(get_context)):
    """Authorize a $1.00 ACH debit from the item's first account."""
    access_token = ctx.require("access_token")
    account_id = _first_account_id(await ctx.client.accounts_get(access_token))
    await ctx.save(account_id=account_id)

    response = await ctx.client.transfer_authorization_create(
        {
            "access_token": access_token,
            "account_id": account_id,
            "type": "debit",
            "network": "ach",
            "amount": "1.00",
            "ach_class": "ppd",
            "user": TRANSFER_USER,
        }
    )
    await ctx.save(authorization_id=response["authorization"]["id"])
    return response


@router.get("/transfer_create")
async def transfer_create(ctx: RequestContext = Depends(get_context)):
    credential = ctx.credential
    response = await ctx.client.transfer_create(
        {
            "access_token": credential.require("access_token"),
            "account_id": credential.require("account_id"),
            "authorization_id": credential.require("authorization_id"),
            "description": "Debit",
        }
    )
    await ctx.save(transfer_id=response["transfer"]["id"])
    return {"error": None, "transfer": response["transfer"]}


@router.get("/signal_evaluate")
async def signal_evaluate(ctx: RequestContext = Depends(get_context)):
    access_token = ctx.require("access_token")
    account_id = _first_account_id(await ctx.client.accounts_get(access_token))
    await ctx.save(account_id=account_id)

    return await ctx.client.signal_evaluate(
        {
            "access_token": access_token,
            "account_id": account_id,
            "client_transaction_id": "txn1234",
            "amount": 100.00,
        }
    )


@router.get("/cra/get_base_report")
async def cra_get_base_report(ctx: RequestContext = Depends(get_context)):
    return await orchestrators.get_base_report(
        ctx.client, ctx.require("user_token"), get_poll_config(ctx.settings)
    )


@router.get("/cra/get_income_insights")
async def cra_get_income_insights(ctx: RequestContext = Depends(get_context)):
    return await orchestrators.get_income_insights(
        ctx.client, ctx.require("user_token"), get_poll_config(ctx.settings)
    )


@router.get("/cra/get_partner_insights")
async def cra_get_partner_insights(ctx: RequestContext = Depends(get_context)):
    return await orchestrators.get_partner_insights(
        ctx.client, ctx.require("user_token"), get_poll_config(ctx.settings)
    )


@router.post("/comprehensive_financial_data")
async def comprehensive_financial_data(
    request: Request, ctx: RequestContext = Depends(get_context)
):
    """Every data source for the item, tolerating failures of individual sources."""
    access_token: Optional[str] = (await read_body(request)).get("access_token")
    access_token = access_token or ctx.credential.access_token
    if not access_token:
        return JSONResponse(status_code=400, content={"error": "access_token is required"})

    return await collect_financial_data(
        ctx.client,
        access_token,
        fallback_config=get_fallback_sync_config(ctx.settings),
    )


@router.delete("/session")
async def clear_session(ctx: RequestContext = Depends(get_context)):
    """Forget every token stored for the caller's session."""
    await ctx.store.clear(ctx.session_id)
    return {"session_id": ctx.session_id, "cleared": True}


@router.get("/metrics/polling")
async def polling_metrics(hours: Optional[int] = None):
    """Aggregate report-poll and transaction-sync session metrics."""
    return get_poll_metrics().summary(hours=hours)
