"""
Tests for the httpx-based Plaid client.
"""

import json

import httpx
import pytest

from finbridge.core.config import Settings
from finbridge.plaid.client import PLAID_API_VERSION, PlaidClient, redact_secrets
from finbridge.plaid.errors import APIConnectionError, PlaidAPIError
from tests.fixtures.plaid_feeds import mock_plaid_client, plaid_error_body


class TestPlaidClient:
    """Tests for request construction and error mapping."""

    @pytest.mark.asyncio
    async def test_posts_credentials_and_version_header(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            seen["version"] = request.headers["Plaid-Version"]
            return httpx.Response(200, json={"accounts": [], "request_id": "r1"})

        client = mock_plaid_client(handler)
        response = await client.accounts_get("access-sandbox-1")

        assert response == {"accounts": [], "request_id": "r1"}
        assert seen["url"] == "https://sandbox.plaid.com/accounts/get"
        assert seen["version"] == PLAID_API_VERSION
        assert seen["body"] == {
            "client_id": "test-client-id",
            "secret": "test-secret",
            "access_token": "access-sandbox-1",
        }
        await client.aclose()

    @pytest.mark.asyncio
    async def test_none_fields_are_omitted(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(
                200, json={"added": [], "modified": [], "removed": [], "next_cursor": "c1", "has_more": False}
            )

        client = mock_plaid_client(handler)
        page = await client.transactions_sync("tok", None)

        assert "cursor" not in bodies[0]
        assert page.next_cursor == "c1"
        assert page.is_ready

    @pytest.mark.asyncio
    async def test_sync_page_parses_transactions(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "added": [
                        {"transaction_id": "t1", "date": "2024-01-02", "amount": 12.5, "merchant_name": "Cafe"}
                    ],
                    "modified": [],
                    "removed": [{"transaction_id": "t0"}],
                    "next_cursor": "c2",
                    "has_more": True,
                    "request_id": "r",
                },
            )

        client = mock_plaid_client(handler)
        page = await client.transactions_sync("tok", "c1")

        assert page.added[0].transaction_id == "t1"
        assert page.added[0].to_dict()["merchant_name"] == "Cafe"
        assert page.removed[0].transaction_id == "t0"
        assert page.has_more is True

    @pytest.mark.asyncio
    async def test_error_response_raises_plaid_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json=plaid_error_body("PRODUCT_NOT_READY"))

        client = mock_plaid_client(handler)

        with pytest.raises(PlaidAPIError) as exc_info:
            await client.asset_report_get("assets-token")

        assert exc_info.value.status_code == 400
        assert exc_info.value.error_code == "PRODUCT_NOT_READY"
        assert exc_info.value.is_product_not_ready

    @pytest.mark.asyncio
    async def test_non_json_error_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad Gateway")

        client = mock_plaid_client(handler)

        with pytest.raises(PlaidAPIError) as exc_info:
            await client.item_get("tok")

        assert exc_info.value.status_code == 502
        assert exc_info.value.error_message == "Bad Gateway"

    @pytest.mark.asyncio
    async def test_binary_response(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content)["add_ons"] == ["cra_income_insights"]
            return httpx.Response(200, content=b"%PDF-1.7")

        client = mock_plaid_client(handler)
        pdf = await client.cra_check_report_pdf_get("user", add_ons=["cra_income_insights"])

        assert pdf == b"%PDF-1.7"

    @pytest.mark.asyncio
    async def test_transport_error_becomes_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = mock_plaid_client(handler)

        with pytest.raises(APIConnectionError):
            await client.auth_get("tok")

    def test_from_settings_uses_environment_url(self):
        settings = Settings(
            PLAID_CLIENT_ID="id", PLAID_SECRET="secret", PLAID_ENV="production", _env_file=None
        )

        client = PlaidClient.from_settings(settings)

        assert client.base_url == "https://production.plaid.com"
        assert client.client_id == "id"

    def test_debug_does_not_enable_body_logging(self):
        settings = Settings(DEBUG=True, _env_file=None)

        assert PlaidClient.from_settings(settings).log_bodies is False
        assert PlaidClient.from_settings(
            Settings(PLAID_LOG_BODIES=True, _env_file=None)
        ).log_bodies is True


class TestRedactSecrets:
    """Tests for response body redaction."""

    def test_masks_tokens_at_any_depth(self):
        body = {
            "access_token": "access-sandbox-1",
            "item_id": "item-1",
            "items": [{"public_token": "public-1", "user_token": "user-1"}],
            "request_id": "r",
        }

        redacted = redact_secrets(body)

        assert redacted == {
            "access_token": "***",
            "item_id": "item-1",
            "items": [{"public_token": "***", "user_token": "***"}],
            "request_id": "r",
        }
        assert body["access_token"] == "access-sandbox-1"

    def test_empty_token_left_as_is(self):
        assert redact_secrets({"user_token": None}) == {"user_token": None}
