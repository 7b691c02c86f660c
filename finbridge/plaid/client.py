"""
Async Plaid API client.

Thin wrapper over the Plaid REST API using httpx. Every call posts a JSON
body carrying the client credentials; non-200 responses are raised as
PlaidAPIError with the decoded error body so callers can tell upstream
refusals apart from their own bugs.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import structlog

from finbridge.core.config import Settings
from finbridge.plaid.errors import APIConnectionError, PlaidAPIError
from finbridge.plaid.models import TransactionsSyncPage

logger = structlog.get_logger()

PLAID_API_VERSION = "2020-09-14"

SECRET_FIELDS = frozenset(
    {"access_token", "public_token", "user_token", "link_token", "asset_report_token", "secret"}
)
REDACTED = "***"


def redact_secrets(value: Any) -> Any:
    """Copy of a decoded response with token fields masked, at any depth."""
    if isinstance(value, dict):
        return {
            key: REDACTED if key in SECRET_FIELDS and item else redact_secrets(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [redact_secrets(item) for item in value]
    return value


class PlaidClient:
    """Client for the subset of the Plaid API used by the service."""

    def __init__(
        self,
        client_id: Optional[str],
        secret: Optional[str],
        base_url: str,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
        log_bodies: bool = False,
    ):
        """
        Initialize the client.

        Args:
            client_id: Plaid client id
            secret: Plaid secret for the target environment
            base_url: Environment base URL (sandbox, development, production)
            timeout: Request timeout in seconds
            http_client: Optional pre-built httpx client (used by tests)
            log_bodies: Log decoded response bodies at debug level
        """
        self.client_id = client_id
        self.secret = secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.log_bodies = log_bodies
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PlaidClient":
        return cls(
            client_id=settings.PLAID_CLIENT_ID,
            secret=settings.PLAID_SECRET,
            base_url=settings.plaid_base_url,
            timeout=settings.PLAID_TIMEOUT,
            log_bodies=settings.PLAID_LOG_BODIES,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Plaid-Version": PLAID_API_VERSION,
        }

    async def _send(self, path: str, payload: Dict[str, Any]) -> httpx.Response:
        body = {"client_id": self.client_id, "secret": self.secret}
        body.update({k: v for k, v in payload.items() if v is not None})

        try:
            response = await self._http.post(
                f"{self.base_url}{path}", json=body, headers=self._headers()
            )
        except httpx.TransportError as e:
            logger.warning("plaid.connection_failed", path=path, error=str(e))
            raise APIConnectionError(f"Request to {path} failed: {e}") from e

        if response.status_code != 200:
            try:
                error_body = response.json()
            except ValueError:
                error_body = {"error_message": response.text}
            logger.warning(
                "plaid.request_failed",
                path=path,
                status=response.status_code,
                error_code=error_body.get("error_code"),
                request_id=error_body.get("request_id"),
            )
            raise PlaidAPIError(response.status_code, error_body)

        return response

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._send(path, payload)
        data = response.json()
        if self.log_bodies:
            logger.debug("plaid.response", path=path, body=redact_secrets(data))
        else:
            logger.debug("plaid.response", path=path, request_id=data.get("request_id"))
        return data

    async def _post_binary(self, path: str, payload: Dict[str, Any]) -> bytes:
        response = await self._send(path, payload)
        logger.debug("plaid.binary_response", path=path, size=len(response.content))
        return response.content

    # Link and users

    async def link_token_create(self, configs: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post("/link/token/create", configs)

    async def user_create(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post("/user/create", request)

    async def item_public_token_exchange(self, public_token: str) -> Dict[str, Any]:
        return await self._post(
            "/item/public_token/exchange", {"public_token": public_token}
        )

    # Item data

    async def auth_get(self, access_token: str) -> Dict[str, Any]:
        return await self._post("/auth/get", {"access_token": access_token})

    async def accounts_get(self, access_token: str) -> Dict[str, Any]:
        return await self._post("/accounts/get", {"access_token": access_token})

    async def accounts_balance_get(self, access_token: str) -> Dict[str, Any]:
        return await self._post(
            "/accounts/balance/get", {"access_token": access_token}
        )

    async def identity_get(self, access_token: str) -> Dict[str, Any]:
        return await self._post("/identity/get", {"access_token": access_token})

    async def liabilities_get(self, access_token: str) -> Dict[str, Any]:
        return await self._post("/liabilities/get", {"access_token": access_token})

    async def investments_holdings_get(self, access_token: str) -> Dict[str, Any]:
        return await self._post(
            "/investments/holdings/get", {"access_token": access_token}
        )

    async def investments_transactions_get(
        self, access_token: str, start_date: str, end_date: str
    ) -> Dict[str, Any]:
        return await self._post(
            "/investments/transactions/get",
            {
                "access_token": access_token,
                "start_date": start_date,
                "end_date": end_date,
            },
        )

    async def item_get(self, access_token: str) -> Dict[str, Any]:
        return await self._post("/item/get", {"access_token": access_token})

    async def institutions_get_by_id(
        self, institution_id: str, country_codes: List[str]
    ) -> Dict[str, Any]:
        return await self._post(
            "/institutions/get_by_id",
            {"institution_id": institution_id, "country_codes": country_codes},
        )

    # Transactions

    async def transactions_sync(
        self, access_token: str, cursor: Optional[str] = None
    ) -> TransactionsSyncPage:
        data = await self._post(
            "/transactions/sync", {"access_token": access_token, "cursor": cursor}
        )
        return TransactionsSyncPage.model_validate(data)

    async def transactions_get(
        self, access_token: str, start_date: str, end_date: str
    ) -> Dict[str, Any]:
        return await self._post(
            "/transactions/get",
            {
                "access_token": access_token,
                "start_date": start_date,
                "end_date": end_date,
            },
        )

    # Assets and statements

    async def asset_report_create(
        self,
        access_tokens: List[str],
        days_requested: int,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        return await self._post(
            "/asset_report/create",
            {
                "access_tokens": access_tokens,
                "days_requested": days_requested,
                "options": options,
            },
        )

    async def asset_report_get(self, asset_report_token: str) -> Dict[str, Any]:
        return await self._post(
            "/asset_report/get", {"asset_report_token": asset_report_token}
        )

    async def asset_report_pdf_get(self, asset_report_token: str) -> bytes:
        return await self._post_binary(
            "/asset_report/pdf/get", {"asset_report_token": asset_report_token}
        )

    async def statements_list(self, access_token: str) -> Dict[str, Any]:
        return await self._post("/statements/list", {"access_token": access_token})

    async def statements_download(self, access_token: str, statement_id: str) -> bytes:
        return await self._post_binary(
            "/statements/download",
            {"access_token": access_token, "statement_id": statement_id},
        )

    # Payment initiation (UK/EU)

    async def payment_initiation_recipient_create(
        self, request: Dict[str, Any]
    ) -> Dict[str, Any]:
        return await self._post("/payment_initiation/recipient/create", request)

    async def payment_initiation_payment_create(
        self, request: Dict[str, Any]
    ) -> Dict[str, Any]:
        return await self._post("/payment_initiation/payment/create", request)

    async def payment_initiation_payment_get(self, payment_id: str) -> Dict[str, Any]:
        return await self._post(
            "/payment_initiation/payment/get", {"payment_id": payment_id}
        )

    # Income, transfer, signal

    async def income_verification_paystubs_get(
        self, access_token: str
    ) -> Dict[str, Any]:
        return await self._post(
            "/income/verification/paystubs/get", {"access_token": access_token}
        )

    async def transfer_authorization_create(
        self, request: Dict[str, Any]
    ) -> Dict[str, Any]:
        return await self._post("/transfer/authorization/create", request)

    async def transfer_create(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post("/transfer/create", request)

    async def signal_evaluate(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post("/signal/evaluate", request)

    # Plaid Check (CRA)

    async def cra_check_report_base_report_get(self, user_token: str) -> Dict[str, Any]:
        return await self._post(
            "/cra/check_report/base_report/get", {"user_token": user_token}
        )

    async def cra_check_report_income_insights_get(
        self, user_token: str
    ) -> Dict[str, Any]:
        return await self._post(
            "/cra/check_report/income_insights/get", {"user_token": user_token}
        )

    async def cra_check_report_partner_insights_get(
        self, user_token: str
    ) -> Dict[str, Any]:
        return await self._post(
            "/cra/check_report/partner_insights/get", {"user_token": user_token}
        )

    async def cra_check_report_pdf_get(
        self, user_token: str, add_ons: Optional[List[str]] = None
    ) -> bytes:
        return await self._post_binary(
            "/cra/check_report/pdf/get", {"user_token": user_token, "add_ons": add_ons}
        )
