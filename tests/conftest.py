"""Pytest configuration and fixtures."""

import os
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("LEDGER_API_KEY", "anon-test-key")
os.environ.setdefault("LEDGER_USERNAME", "test@example.com")
os.environ.setdefault("LEDGER_PASSWORD", "testpassword")
os.environ.setdefault("EDIT_YIELD_SECONDS", "0")

from billdesk.clients.ledger import LedgerAPIError, NotFoundError  # noqa: E402
from billdesk.models import Bill, BillStatus, PaymentMethod, SyncOutcome  # noqa: E402


@dataclass
class FakeLedger:
    """In-memory ledger that records every call in order."""

    bills: dict[str, Bill] = field(default_factory=dict)
    connected: bool = False
    fail_payment_for: set[str] = field(default_factory=set)
    fail_header_for: set[str] = field(default_factory=set)
    fail_category_for: set[str] = field(default_factory=set)
    fail_sync_for: set[str] = field(default_factory=set)
    fail_payment_sync: bool = False
    calls: list[tuple[Any, ...]] = field(default_factory=list)
    payments: list[dict[str, Any]] = field(default_factory=list)
    bill_fields: dict[str, dict[str, Any]] = field(default_factory=dict)
    line_item_categories: dict[str, str | None] = field(default_factory=dict)

    def add(self, *bills: Bill) -> None:
        for bill in bills:
            self.bills[bill.id] = bill

    def calls_named(self, name: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == name]

    async def get_bill(self, bill_id: str) -> Bill:
        self.calls.append(("get_bill", bill_id))
        if bill_id not in self.bills:
            raise NotFoundError(f"Bill {bill_id} not found", status_code=404)
        return self.bills[bill_id]

    async def record_payment(
        self,
        bill_id: str,
        amount: Decimal,
        payment_date: date,
        method: PaymentMethod,
        reference: str | None = None,
        notes: str | None = None,
    ) -> dict[str, Any]:
        self.calls.append(("record_payment", bill_id, amount))
        if bill_id in self.fail_payment_for:
            raise LedgerAPIError(
                "API error 409: payment exceeds remaining balance",
                status_code=409,
                details={"message": "payment exceeds remaining balance"},
            )
        bill = self.bills[bill_id]
        self.bills[bill_id] = replace(bill, remaining_amount=bill.remaining_amount - amount)
        payment = {
            "id": f"pay-{len(self.payments) + 1}",
            "bill_id": bill_id,
            "amount": str(amount),
            "payment_date": payment_date.isoformat(),
            "payment_method": method.value,
            "reference_number": reference,
            "notes": notes,
        }
        self.payments.append(payment)
        return payment

    async def update_bill_fields(self, bill_id: str, fields: dict[str, Any]) -> None:
        self.calls.append(("update_bill_fields", bill_id, fields))
        if bill_id in self.fail_header_for:
            raise LedgerAPIError("API error 500: update failed", status_code=500)
        self.bill_fields.setdefault(bill_id, {}).update(fields)

    async def update_line_items_category(self, bill_id: str, category_id: str | None) -> None:
        self.calls.append(("update_line_items_category", bill_id, category_id))
        if bill_id in self.fail_category_for:
            raise LedgerAPIError("API error 500: line items locked", status_code=500)
        self.line_item_categories[bill_id] = category_id

    async def sync_bill(self, bill_id: str) -> SyncOutcome:
        self.calls.append(("sync_bill", bill_id))
        if bill_id in self.fail_sync_for:
            return SyncOutcome(success=False, error="Stale Object Error: SyncToken mismatch")
        return SyncOutcome(success=True)

    async def sync_bill_payment(self, payment_id: str) -> SyncOutcome:
        self.calls.append(("sync_bill_payment", payment_id))
        if self.fail_payment_sync:
            return SyncOutcome(success=False, error="QuickBooks API error: 429 Too Many Requests")
        return SyncOutcome(success=True)

    async def is_quickbooks_connected(self) -> bool:
        self.calls.append(("is_quickbooks_connected",))
        return self.connected


def make_bill(
    index: int,
    remaining: str | Decimal,
    total: str | Decimal | None = None,
    status: BillStatus = BillStatus.OPEN,
) -> Bill:
    remaining = Decimal(str(remaining))
    return Bill(
        id=f"bill-{index}",
        number=f"BILL-{index:04d}",
        vendor_name=f"Vendor {index}",
        total=Decimal(str(total)) if total is not None else max(remaining, Decimal("1.00")),
        remaining_amount=remaining,
        status=status,
        vendor_id=f"vendor-{index}",
    )


@pytest.fixture
def bill_factory():
    """Factory building bills with ids bill-1, bill-2, ..."""
    return make_bill


@pytest.fixture
def ledger():
    """Empty fake ledger."""
    return FakeLedger()


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx AsyncClient."""
    client = AsyncMock()
    client.request = AsyncMock()
    client.post = AsyncMock()
    client.get = AsyncMock()
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def mock_login_response():
    """Mock successful password grant response."""
    return {
        "access_token": "access-token-123",
        "refresh_token": "refresh-token-123",
        "expires_in": 3600,
        "token_type": "bearer",
        "user": {
            "id": "11111111-1111-1111-1111-111111111111",
            "email": "test@example.com",
        },
    }


@pytest.fixture
def mock_bill_row():
    """Mock vendor_bills row."""
    return {
        "id": "66666666-6666-6666-6666-666666666666",
        "number": "BILL-0001",
        "vendor_id": "44444444-4444-4444-4444-444444444444",
        "vendor_name": "Acme Supply",
        "total": 1000.0,
        "remaining_amount": 250.5,
        "status": "partially_paid",
    }
