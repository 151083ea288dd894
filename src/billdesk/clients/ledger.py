"""Ledger API client with JWT authentication and automatic token refresh.

Talks to the hosted backend that owns vendor bills: PostgREST-style table
endpoints under ``/rest/v1`` and QuickBooks edge functions under
``/functions/v1``.
"""

import asyncio
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from typing import Any, Protocol, cast

import httpx
import structlog

from billdesk.cache import (
    QUICKBOOKS_BILL_MAPPINGS,
    QUICKBOOKS_SYNC_LOGS,
    VENDOR_BILLS,
    QueryCache,
)
from billdesk.config import get_settings
from billdesk.models import Bill, PaymentMethod, SyncOutcome

logger = structlog.get_logger(__name__)


class LedgerAPIError(Exception):
    """Base exception for ledger API errors."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class AuthenticationError(LedgerAPIError):
    """Authentication failed."""

    pass


class RateLimitError(LedgerAPIError):
    """Rate limit exceeded."""

    pass


class NotFoundError(LedgerAPIError):
    """Requested row does not exist."""

    pass


class Ledger(Protocol):
    """Operations the bulk orchestrators need from the ledger."""

    async def get_bill(self, bill_id: str) -> Bill: ...

    async def record_payment(
        self,
        bill_id: str,
        amount: Decimal,
        payment_date: date,
        method: PaymentMethod,
        reference: str | None = None,
        notes: str | None = None,
    ) -> dict[str, Any]: ...

    async def update_bill_fields(self, bill_id: str, fields: dict[str, Any]) -> None: ...

    async def update_line_items_category(
        self, bill_id: str, category_id: str | None
    ) -> None: ...

    async def sync_bill(self, bill_id: str) -> SyncOutcome: ...

    async def sync_bill_payment(self, payment_id: str) -> SyncOutcome: ...

    async def is_quickbooks_connected(self) -> bool: ...


class LedgerAPIClient:
    """Async client for the ledger backend with JWT authentication."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        username: str | None = None,
        password: str | None = None,
        access_token: str | None = None,
        refresh_token: str | None = None,
        cache: QueryCache | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.ledger_api_url).rstrip("/")
        self._api_key = api_key or settings.ledger_api_key.get_secret_value()
        self._username = username or settings.ledger_username
        self._password = password or settings.ledger_password.get_secret_value()
        self._timeout = settings.ledger_timeout
        self._max_retries = settings.ledger_max_retries

        self._access_token: str | None = access_token
        self._refresh_token: str | None = refresh_token
        self._token_expires_at: datetime | None = None
        if access_token:
            self._token_expires_at = datetime.now(UTC) + timedelta(minutes=55)

        self.cache = cache or QueryCache()
        self._client: httpx.AsyncClient | None = None
        self._lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "LedgerAPIClient":
        await self.login()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # === Authentication ===

    def _store_tokens(self, data: dict[str, Any]) -> None:
        self._access_token = data["access_token"]
        self._refresh_token = data.get("refresh_token", self._refresh_token)
        # Refresh five minutes before the backend's stated expiry
        expires_in = int(data.get("expires_in", 3600))
        self._token_expires_at = datetime.now(UTC) + timedelta(
            seconds=max(expires_in - 300, 60)
        )

    async def login(self) -> dict[str, Any]:
        """Authenticate with email and password and store JWT tokens."""
        client = await self._get_client()

        response = await client.post(
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": self._username, "password": self._password},
            headers={"apikey": self._api_key},
        )

        if response.status_code in (400, 401):
            raise AuthenticationError("Invalid credentials", status_code=response.status_code)
        response.raise_for_status()

        data_raw = response.json()
        if not isinstance(data_raw, dict):
            raise LedgerAPIError("Invalid login response format")
        data = cast(dict[str, Any], data_raw)
        self._store_tokens(data)

        logger.info("logged_in", user=data.get("user", {}).get("email", self._username))
        return data

    async def refresh_tokens(self) -> None:
        """Refresh the access token."""
        if not self._refresh_token:
            raise AuthenticationError("No refresh token available")

        client = await self._get_client()
        response = await client.post(
            "/auth/v1/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": self._refresh_token},
            headers={"apikey": self._api_key},
        )

        if response.status_code in (400, 401):
            # Refresh token expired, need full re-login
            await self.login()
            return

        response.raise_for_status()
        data_raw = response.json()
        if not isinstance(data_raw, dict):
            raise LedgerAPIError("Invalid refresh response format")
        self._store_tokens(cast(dict[str, Any], data_raw))
        logger.debug("tokens_refreshed")

    async def _ensure_authenticated(self) -> None:
        """Ensure we have a valid access token."""
        async with self._lock:
            if not self._access_token:
                await self.login()
            elif self._token_expires_at and datetime.now(UTC) >= self._token_expires_at:
                await self.refresh_tokens()

    def _get_headers(self) -> dict[str, str]:
        """Get request headers with auth token."""
        headers = {
            "Content-Type": "application/json",
            "apikey": self._api_key,
            "Prefer": "return=representation",
        }
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    # === Generic Request Methods ===

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        retry_count: int = 0,
    ) -> dict[str, Any] | list[dict[str, Any]]:
        """Make an authenticated API request with retry logic."""
        await self._ensure_authenticated()
        client = await self._get_client()

        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                json=json,
                headers=self._get_headers(),
            )

            if response.status_code == 401 and retry_count < 1:
                # Token expired during request, refresh and retry
                await self.refresh_tokens()
                return await self._request(method, path, params, json, retry_count + 1)

            if response.status_code == 429:
                retry_after = int(response.headers.get("Retry-After", "60"))
                raise RateLimitError(
                    f"Rate limited, retry after {retry_after}s",
                    status_code=429,
                    details={"retry_after": retry_after},
                )

            if response.status_code >= 400:
                try:
                    error_detail = response.json() if response.content else {}
                except Exception:
                    error_detail = {
                        "raw": response.text[:500]
                        if response.text
                        else "empty response"
                    }
                raise LedgerAPIError(
                    self._error_message(response.status_code, error_detail),
                    status_code=response.status_code,
                    details=error_detail,
                )

            return response.json() if response.content else {}

        except httpx.RequestError as e:
            if retry_count < self._max_retries:
                await asyncio.sleep(2**retry_count)  # Exponential backoff
                return await self._request(method, path, params, json, retry_count + 1)
            raise LedgerAPIError(f"Request failed: {e}") from e

    @staticmethod
    def _error_message(status_code: int, detail: Any) -> str:
        if isinstance(detail, dict):
            message = detail.get("message") or detail.get("error") or detail.get("msg")
            if message:
                return f"API error {status_code}: {message}"
        return f"API error: {status_code}"

    async def get(
        self, path: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | list[dict[str, Any]]:
        """Make GET request."""
        return await self._request("GET", path, params=params)

    async def post(
        self,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any] | list[dict[str, Any]]:
        """Make POST request."""
        return await self._request("POST", path, params=params, json=json)

    async def patch(
        self,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any] | list[dict[str, Any]]:
        """Make PATCH request."""
        return await self._request("PATCH", path, params=params, json=json)

    @staticmethod
    def _extract_items(result: Any) -> list[dict[str, Any]]:
        """Return list of rows from a list or single-row response."""
        if isinstance(result, list):
            return result
        if isinstance(result, dict) and result:
            return [result]
        return []

    # === Vendor Bill Endpoints ===

    async def get_bill(self, bill_id: str) -> Bill:
        """Fetch the current state of a bill (bypasses the cache)."""
        result = await self.get(
            "/rest/v1/vendor_bills",
            params={"id": f"eq.{bill_id}", "select": "*"},
        )
        rows = self._extract_items(result)
        if not rows:
            raise NotFoundError(f"Bill {bill_id} not found", status_code=404)
        return Bill.from_api(rows[0])

    async def list_bills(self, status: str | None = None) -> list[Bill]:
        """List bills, newest first, through the query cache."""

        async def fetch() -> list[Bill]:
            params: dict[str, Any] = {"select": "*", "order": "bill_date.desc"}
            if status:
                params["status"] = f"eq.{status}"
            result = await self.get("/rest/v1/vendor_bills", params=params)
            return [Bill.from_api(row) for row in self._extract_items(result)]

        return cast(list[Bill], await self.cache.get_or_fetch((VENDOR_BILLS, status), fetch))

    async def update_bill_fields(self, bill_id: str, fields: dict[str, Any]) -> None:
        """Write header columns of one bill."""
        await self.patch(
            "/rest/v1/vendor_bills",
            params={"id": f"eq.{bill_id}"},
            json=fields,
        )

    async def update_line_items_category(
        self, bill_id: str, category_id: str | None
    ) -> None:
        """Set (or clear) the expense category on every line item of a bill."""
        await self.patch(
            "/rest/v1/vendor_bill_line_items",
            params={"bill_id": f"eq.{bill_id}"},
            json={"category_id": category_id},
        )

    # === Payment Endpoints ===

    async def record_payment(
        self,
        bill_id: str,
        amount: Decimal,
        payment_date: date,
        method: PaymentMethod,
        reference: str | None = None,
        notes: str | None = None,
    ) -> dict[str, Any]:
        """Record one payment against a bill."""
        result = await self.post(
            "/rest/v1/vendor_bill_payments",
            json={
                "bill_id": bill_id,
                "amount": str(amount),
                "payment_date": payment_date.isoformat(),
                "payment_method": method.value,
                "reference_number": reference or None,
                "notes": notes or None,
            },
        )
        rows = self._extract_items(result)
        return rows[0] if rows else {}

    # === QuickBooks Endpoints ===

    async def is_quickbooks_connected(self) -> bool:
        """Whether a QuickBooks company is connected."""
        result = await self.get(
            "/rest/v1/quickbooks_config",
            params={"select": "is_connected", "limit": 1},
        )
        rows = self._extract_items(result)
        return bool(rows and rows[0].get("is_connected"))

    async def _invoke_sync(self, function: str, payload: dict[str, Any]) -> SyncOutcome:
        try:
            result = await self.post(f"/functions/v1/{function}", json=payload)
        except LedgerAPIError as e:
            details = e.details if isinstance(e.details, dict) else {}
            return SyncOutcome(success=False, error=details.get("error") or str(e))
        return SyncOutcome.from_api(result if isinstance(result, dict) else {})

    async def sync_bill(self, bill_id: str) -> SyncOutcome:
        """Push one bill to QuickBooks."""
        return await self._invoke_sync("quickbooks-update-bill", {"billId": bill_id})

    async def sync_bill_payment(self, payment_id: str) -> SyncOutcome:
        """Push one recorded bill payment to QuickBooks."""
        return await self._invoke_sync(
            "quickbooks-receive-bill-payment", {"paymentId": payment_id}
        )

    async def list_sync_logs(self, entity_id: str | None = None) -> list[dict[str, Any]]:
        """List QuickBooks sync log rows through the query cache."""

        async def fetch() -> list[dict[str, Any]]:
            params: dict[str, Any] = {"select": "*", "order": "created_at.desc"}
            if entity_id:
                params["entity_id"] = f"eq.{entity_id}"
            return self._extract_items(
                await self.get("/rest/v1/quickbooks_sync_log", params=params)
            )

        return cast(
            list[dict[str, Any]],
            await self.cache.get_or_fetch((QUICKBOOKS_SYNC_LOGS, entity_id), fetch),
        )

    async def get_bill_mapping(self, bill_id: str) -> dict[str, Any] | None:
        """QuickBooks mapping row of a bill, through the query cache."""

        async def fetch() -> dict[str, Any] | None:
            rows = self._extract_items(
                await self.get(
                    "/rest/v1/quickbooks_bill_mappings",
                    params={"bill_id": f"eq.{bill_id}", "select": "*"},
                )
            )
            return rows[0] if rows else None

        return cast(
            dict[str, Any] | None,
            await self.cache.get_or_fetch((QUICKBOOKS_BILL_MAPPINGS, bill_id), fetch),
        )
