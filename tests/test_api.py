"""
Integration tests for the HTTP routes.

The Plaid client is replaced with an AsyncMock through FastAPI dependency
overrides; polling and sync delays are set to zero.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from finbridge.api.dependencies import get_plaid_client
from finbridge.core.config import Settings, get_settings
from finbridge.main import app
from finbridge.plaid.client import PlaidClient
from finbridge.plaid.errors import APIConnectionError, PlaidAPIError
from tests.fixtures.plaid_feeds import make_page, make_transaction, plaid_error_body


@pytest.fixture
def plaid():
    client = AsyncMock(spec=PlaidClient)
    client.item_public_token_exchange.return_value = {
        "access_token": "access-sandbox-1",
        "item_id": "item-1",
        "request_id": "r",
    }
    return client


@pytest.fixture
def settings():
    return Settings(
        PLAID_CLIENT_ID="id",
        PLAID_SECRET="secret",
        PLAID_PRODUCTS="transactions,assets",
        POLL_DELAY_SECONDS=0,
        POLL_MAX_ATTEMPTS=3,
        SYNC_NOT_READY_DELAY_SECONDS=0,
        FALLBACK_SYNC_NOT_READY_DELAY_SECONDS=0,
        _env_file=None,
    )


@pytest.fixture
def client(plaid, settings):
    app.dependency_overrides[get_plaid_client] = lambda: plaid
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


def link(client, session_id=None, public_token="public-sandbox-1"):
    headers = {"X-Session-ID": session_id} if session_id else {}
    return client.post(
        "/api/set_access_token", data={"public_token": public_token}, headers=headers
    )


class TestHealth:
    def test_root(self, client):
        assert client.get("/").json() == {"status": "ok"}


class TestTokenExchange:
    """Tests for public token exchange and session storage."""

    def test_set_access_token_stores_credentials(self, client, plaid):
        response = link(client)

        assert response.status_code == 200
        assert response.json() == {
            "access_token": "access-sandbox-1",
            "item_id": "item-1",
            "error": None,
        }
        plaid.item_public_token_exchange.assert_awaited_once_with("public-sandbox-1")

        info = client.post("/api/info").json()
        assert info["access_token"] == "access-sandbox-1"
        assert info["item_id"] == "item-1"
        assert info["products"] == ["transactions", "assets"]

    def test_sessions_do_not_share_tokens(self, client):
        link(client, session_id="alice")

        assert client.post("/api/info", headers={"X-Session-ID": "alice"}).json()["item_id"] == "item-1"
        assert client.post("/api/info", headers={"X-Session-ID": "bob"}).json()["item_id"] is None

    def test_exchange_public_token_json_body(self, client):
        response = client.post("/api/exchange_public_token", json={"public_token": "public-1"})

        assert response.status_code == 200
        assert response.json() == {"access_token": "access-sandbox-1", "item_id": "item-1"}

    def test_exchange_public_token_missing(self, client):
        response = client.post("/api/exchange_public_token", json={})

        assert response.status_code == 400
        assert response.json() == {"error": "public_token is required"}

    def test_set_access_token_missing(self, client):
        response = client.post("/api/set_access_token", data={})

        assert response.status_code == 400
        assert response.json()["error"]["error_code"] == "MISSING_CREDENTIAL"

    def test_form_body_with_invalid_utf8_is_rejected(self, client, plaid):
        response = client.post(
            "/api/set_access_token",
            content=b"public_token=\xff\xfe",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["error_code"] == "INVALID_REQUEST"
        plaid.item_public_token_exchange.assert_not_awaited()

    def test_malformed_json_body_is_rejected(self, client, plaid):
        response = client.post(
            "/api/exchange_public_token",
            content=b'{"public_token": ',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["error_code"] == "INVALID_REQUEST"
        plaid.item_public_token_exchange.assert_not_awaited()

    def test_non_object_json_body_is_rejected(self, client):
        response = client.post("/api/set_access_token", json=["public-1"])

        assert response.status_code == 400
        assert response.json()["error"]["error_code"] == "INVALID_REQUEST"

    def test_clear_session_forgets_tokens(self, client):
        link(client, session_id="alice")
        link(client, session_id="bob")

        response = client.delete("/api/session", headers={"X-Session-ID": "alice"})

        assert response.json() == {"session_id": "alice", "cleared": True}
        assert client.post("/api/info", headers={"X-Session-ID": "alice"}).json()["access_token"] is None
        assert client.post("/api/info", headers={"X-Session-ID": "bob"}).json()["access_token"] == "access-sandbox-1"


class TestErrorResponses:
    """Tests for error rendering at the HTTP boundary."""

    def test_missing_access_token(self, client):
        response = client.get("/api/auth")

        assert response.status_code == 400
        assert response.json()["error"]["error_code"] == "MISSING_CREDENTIAL"

    def test_plaid_error_passes_through_status_and_body(self, client, plaid):
        plaid.auth_get.side_effect = PlaidAPIError(
            400, plaid_error_body("PRODUCTS_NOT_SUPPORTED", "ITEM_ERROR")
        )
        link(client)

        response = client.get("/api/auth")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["error_code"] == "PRODUCTS_NOT_SUPPORTED"
        assert error["error_type"] == "ITEM_ERROR"
        assert error["status_code"] == 400

    def test_connection_error_is_bad_gateway(self, client, plaid):
        plaid.accounts_balance_get.side_effect = APIConnectionError("connection refused")
        link(client)

        response = client.get("/api/balance")

        assert response.status_code == 502
        assert response.json()["error"]["error_code"] == "INTERNAL_ERROR"

    def test_unexpected_error_is_internal(self, plaid, settings):
        app.dependency_overrides[get_plaid_client] = lambda: plaid
        app.dependency_overrides[get_settings] = lambda: settings
        client = TestClient(app, raise_server_exceptions=False)
        plaid.item_get.side_effect = RuntimeError("unexpected")
        try:
            link(client)
            response = client.get("/api/item", headers={"X-Request-ID": "req-500"})
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert response.json()["error"]["error_code"] == "INTERNAL_ERROR"
        assert response.headers["x-request-id"] == "req-500"

    def test_request_id_echoed(self, client):
        response = client.post("/api/info", headers={"X-Request-ID": "req-1"})

        assert response.headers["x-request-id"] == "req-1"


class TestReportRoutes:
    """Tests for the polling-backed routes."""

    def test_transactions_returns_latest(self, client, plaid):
        plaid.transactions_sync.side_effect = [
            make_page(next_cursor=""),
            make_page(
                added=[make_transaction(f"t{i}", f"2024-01-{i:02d}") for i in range(1, 11)],
                next_cursor="c1",
            ),
        ]
        link(client)

        response = client.get("/api/transactions")

        assert response.status_code == 200
        ids = [t["transaction_id"] for t in response.json()["latest_transactions"]]
        assert ids == [f"t{i}" for i in range(3, 11)]

    def test_assets_report(self, client, plaid):
        plaid.asset_report_create.return_value = {"asset_report_token": "assets-token"}
        plaid.asset_report_get.return_value = {"report": {"asset_report_id": "a-1"}}
        plaid.asset_report_pdf_get.return_value = b"pdf"
        link(client)

        response = client.get("/api/assets")

        assert response.status_code == 200
        assert response.json() == {"report": {"asset_report_id": "a-1"}, "pdf": "cGRm"}

    def test_assets_timeout(self, client, plaid):
        plaid.asset_report_create.return_value = {"asset_report_token": "assets-token"}
        plaid.asset_report_get.side_effect = PlaidAPIError(
            400, plaid_error_body("PRODUCT_NOT_READY")
        )
        link(client)

        response = client.get("/api/assets")

        assert response.status_code == 500
        assert response.json()["error"]["error_code"] == "REPORT_TIMEOUT"
        assert plaid.asset_report_get.await_count == 3

    def test_statements_not_found(self, client, plaid):
        plaid.statements_list.return_value = {"accounts": []}
        link(client)

        response = client.get("/api/statements")

        assert response.status_code == 404
        assert response.json()["error"]["error_code"] == "STATEMENT_NOT_FOUND"

    def test_cra_report_requires_user_token(self, client):
        response = client.get("/api/cra/get_base_report")

        assert response.status_code == 400

    def test_cra_base_report_after_user_token(self, client, plaid):
        plaid.user_create.return_value = {"user_token": "user-1", "user_id": "u"}
        plaid.cra_check_report_base_report_get.return_value = {"report": {"id": "r"}}
        plaid.cra_check_report_pdf_get.return_value = b"pdf"

        client.post("/api/create_user_token")
        response = client.get("/api/cra/get_base_report")

        assert response.status_code == 200
        plaid.cra_check_report_base_report_get.assert_awaited_once_with("user-1")

    def test_polling_metrics(self, client, plaid):
        plaid.asset_report_create.return_value = {"asset_report_token": "assets-token"}
        plaid.asset_report_get.return_value = {"report": {}}
        plaid.asset_report_pdf_get.return_value = b""
        link(client)
        client.get("/api/assets")

        body = client.get("/api/metrics/polling").json()

        assert body["aggregate"]["total_sessions"] == 1
        assert body["recent_sessions"][0]["operation"] == "asset_report"


class TestComprehensive:
    def test_requires_access_token(self, client):
        response = client.post("/api/comprehensive_financial_data", json={})

        assert response.status_code == 400
        assert response.json() == {"error": "access_token is required"}

    def test_uses_body_token(self, client, plaid):
        plaid.accounts_get.return_value = {"accounts": [{"account_id": "acc-1"}]}
        plaid.identity_get.return_value = {"accounts": [{"owners": [{"names": ["Ada"]}]}]}
        plaid.transactions_get.return_value = {
            "transactions": [{"transaction_id": "t1", "amount": 5.0, "name": "Cafe"}]
        }
        plaid.accounts_balance_get.return_value = {"accounts": [{"account_id": "acc-1"}]}
        plaid.liabilities_get.side_effect = PlaidAPIError(400, plaid_error_body("NO_LIABILITY_ACCOUNTS"))

        response = client.post(
            "/api/comprehensive_financial_data", json={"access_token": "access-body"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["liabilities"] is None
        assert body["summary"]["has_liabilities"] is False
        assert body["summary"]["total_accounts"] == 1
        assert body["summary"]["total_transactions"] == 1
        assert body["identity"] == {"names": ["Ada"]}
        assert [t["transaction_id"] for t in body["transactions"]] == ["t1"]
        assert body["balances"] == [{"account_id": "acc-1"}]
        plaid.accounts_get.assert_awaited_once_with("access-body")
