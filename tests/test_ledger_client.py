"""Tests for the ledger API client."""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from billdesk.cache import VENDOR_BILLS
from billdesk.clients.ledger import (
    AuthenticationError,
    LedgerAPIClient,
    LedgerAPIError,
    NotFoundError,
    RateLimitError,
)
from billdesk.models import PaymentMethod


@pytest.fixture
def client():
    """Create a LedgerAPIClient instance."""
    return LedgerAPIClient(
        base_url="http://localhost:54321",
        api_key="anon-key",
        username="test@example.com",
        password="testpassword",
    )


def _response(status_code=200, payload=None, headers=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else {}
    response.content = b"x" if payload is not None else b""
    response.text = ""
    response.headers = headers or {}
    response.raise_for_status = MagicMock()
    return response


class TestLedgerAPIClientInit:
    def test_init_with_explicit_params(self):
        client = LedgerAPIClient(
            base_url="http://custom:9000/",
            api_key="k",
            username="custom@example.com",
            password="custompass",
        )

        assert client.base_url == "http://custom:9000"
        assert client._username == "custom@example.com"
        assert client._password == "custompass"

    def test_init_from_settings(self):
        client = LedgerAPIClient()

        assert client._api_key == "anon-test-key"
        assert client._username == "test@example.com"

    def test_headers_carry_api_key_and_token(self, client):
        client._access_token = "tok"

        headers = client._get_headers()

        assert headers["apikey"] == "anon-key"
        assert headers["Authorization"] == "Bearer tok"
        assert headers["Prefer"] == "return=representation"


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_login_success(self, client, mock_login_response):
        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.post = AsyncMock(return_value=_response(200, mock_login_response))
            mock_get.return_value = mock_http

            result = await client.login()

            assert result["user"]["email"] == "test@example.com"
            assert client._access_token == "access-token-123"
            assert client._refresh_token == "refresh-token-123"
            assert mock_http.post.call_args.kwargs["params"] == {"grant_type": "password"}

    @pytest.mark.asyncio
    async def test_login_invalid_credentials(self, client):
        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.post = AsyncMock(return_value=_response(400))
            mock_get.return_value = mock_http

            with pytest.raises(AuthenticationError) as exc_info:
                await client.login()

            assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_refresh_without_token_raises(self, client):
        with pytest.raises(AuthenticationError):
            await client.refresh_tokens()

    @pytest.mark.asyncio
    async def test_401_refreshes_and_retries(self, client, mock_login_response):
        client._access_token = "old-token"
        client._refresh_token = "refresh-token"

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(
                side_effect=[_response(401, {}), _response(200, [{"is_connected": True}])]
            )
            mock_http.post = AsyncMock(return_value=_response(200, mock_login_response))
            mock_get.return_value = mock_http

            assert await client.is_quickbooks_connected() is True
            assert client._access_token == "access-token-123"
            assert mock_http.request.call_count == 2


class TestRequests:
    @pytest.mark.asyncio
    async def test_get_bill(self, client, mock_bill_row):
        client._access_token = "test-token"

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=_response(200, [mock_bill_row]))
            mock_get.return_value = mock_http

            bill = await client.get_bill(mock_bill_row["id"])

            assert bill.remaining_amount == Decimal("250.50")
            kwargs = mock_http.request.call_args.kwargs
            assert kwargs["url"] == "/rest/v1/vendor_bills"
            assert kwargs["params"]["id"] == f"eq.{mock_bill_row['id']}"

    @pytest.mark.asyncio
    async def test_get_bill_missing(self, client):
        client._access_token = "test-token"

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=_response(200, []))
            mock_get.return_value = mock_http

            with pytest.raises(NotFoundError):
                await client.get_bill("missing")

    @pytest.mark.asyncio
    async def test_list_bills_is_cached(self, client, mock_bill_row):
        client._access_token = "test-token"

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=_response(200, [mock_bill_row]))
            mock_get.return_value = mock_http

            first = await client.list_bills()
            second = await client.list_bills()
            client.cache.invalidate([VENDOR_BILLS])
            await client.list_bills()

            assert first == second
            assert mock_http.request.call_count == 2

    @pytest.mark.asyncio
    async def test_record_payment(self, client):
        client._access_token = "test-token"

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(
                return_value=_response(201, [{"id": "pay-1", "amount": "40.00"}])
            )
            mock_get.return_value = mock_http

            payment = await client.record_payment(
                "bill-1",
                Decimal("40.00"),
                date(2024, 3, 15),
                PaymentMethod.WIRE_TRANSFER,
                reference="W-1",
            )

            assert payment["id"] == "pay-1"
            kwargs = mock_http.request.call_args.kwargs
            assert kwargs["method"] == "POST"
            assert kwargs["url"] == "/rest/v1/vendor_bill_payments"
            assert kwargs["json"]["payment_method"] == "Wire Transfer"
            assert kwargs["json"]["amount"] == "40.00"
            assert kwargs["json"]["notes"] is None

    @pytest.mark.asyncio
    async def test_update_line_items_category(self, client):
        client._access_token = "test-token"

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=_response(204))
            mock_get.return_value = mock_http

            await client.update_line_items_category("bill-1", None)

            kwargs = mock_http.request.call_args.kwargs
            assert kwargs["method"] == "PATCH"
            assert kwargs["url"] == "/rest/v1/vendor_bill_line_items"
            assert kwargs["params"] == {"bill_id": "eq.bill-1"}
            assert kwargs["json"] == {"category_id": None}

    @pytest.mark.asyncio
    async def test_error_status_raises_with_message(self, client):
        client._access_token = "test-token"

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(
                return_value=_response(409, {"message": "remaining balance exceeded"})
            )
            mock_get.return_value = mock_http

            with pytest.raises(LedgerAPIError) as exc_info:
                await client.update_bill_fields("bill-1", {"memo": "x"})

            assert exc_info.value.status_code == 409
            assert str(exc_info.value) == "API error 409: remaining balance exceeded"

    @pytest.mark.asyncio
    async def test_rate_limit(self, client):
        client._access_token = "test-token"

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(
                return_value=_response(429, {}, headers={"Retry-After": "5"})
            )
            mock_get.return_value = mock_http

            with pytest.raises(RateLimitError) as exc_info:
                await client.get("/rest/v1/vendor_bills")

            assert exc_info.value.details == {"retry_after": 5}

    @pytest.mark.asyncio
    async def test_network_errors_retry_with_backoff(self, client):
        client._access_token = "test-token"
        client._max_retries = 2

        with (
            patch.object(client, "_get_client") as mock_get,
            patch("billdesk.clients.ledger.asyncio.sleep", new=AsyncMock()) as mock_sleep,
        ):
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(side_effect=httpx.ConnectError("refused"))
            mock_get.return_value = mock_http

            with pytest.raises(LedgerAPIError, match="Request failed"):
                await client.get("/rest/v1/vendor_bills")

            assert mock_http.request.call_count == 3
            assert [c.args[0] for c in mock_sleep.await_args_list] == [1, 2]


class TestQuickBooksSync:
    @pytest.mark.asyncio
    async def test_sync_bill_posts_bill_id(self, client):
        client._access_token = "test-token"

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=_response(200, {"success": True}))
            mock_get.return_value = mock_http

            outcome = await client.sync_bill("bill-1")

            assert outcome.success
            kwargs = mock_http.request.call_args.kwargs
            assert kwargs["url"] == "/functions/v1/quickbooks-update-bill"
            assert kwargs["json"] == {"billId": "bill-1"}

    @pytest.mark.asyncio
    async def test_sync_payment_error_becomes_outcome(self, client):
        client._access_token = "test-token"

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(
                return_value=_response(500, {"error": "Stale Object Error"})
            )
            mock_get.return_value = mock_http

            outcome = await client.sync_bill_payment("pay-1")

            assert not outcome.success
            assert outcome.error == "Stale Object Error"
            assert mock_http.request.call_args.kwargs["json"] == {"paymentId": "pay-1"}
