"""Tests for the per-item QuickBooks sync helper."""

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from billdesk.events import BatchKind, EventPublisher, EventType
from billdesk.sync import QuickBooksSync
from billdesk.sync_errors import SyncErrorType


@pytest.mark.asyncio
async def test_successful_sync_returns_none(ledger, bill_factory):
    sync = QuickBooksSync(ledger)

    assert await sync.sync_bill(bill_factory(1, "10.00")) is None
    assert ledger.calls == [("sync_bill", "bill-1")]


@pytest.mark.asyncio
async def test_failed_sync_is_classified_and_published(ledger, bill_factory):
    ledger.fail_sync_for.add("bill-1")
    publisher = EventPublisher()
    received = []
    publisher.add_event_hook(received.append)
    sync = QuickBooksSync(ledger, publisher)
    batch_id = uuid4()

    warning = await sync.sync_bill(bill_factory(1, "10.00"), batch_id, BatchKind.SYNC)

    assert warning.bill_id == "bill-1"
    assert "SyncToken" in warning.message
    assert warning.details.type is SyncErrorType.STALE_OBJECT
    assert warning.details.vendor_name == "Vendor 1"
    assert received[0].event_type is EventType.SYNC_FAILED
    assert received[0].batch_id == batch_id


@pytest.mark.asyncio
async def test_exception_from_ledger_becomes_warning(ledger):
    ledger.sync_bill_payment = AsyncMock(side_effect=RuntimeError("connection reset"))
    sync = QuickBooksSync(ledger)

    warning = await sync.sync_payment("pay-1", "bill-1", vendor_name="Acme")

    assert warning.message == "connection reset"
    assert warning.details.type is SyncErrorType.UNKNOWN


@pytest.mark.asyncio
async def test_connection_check_reports_setup_failure(ledger):
    ledger.is_quickbooks_connected = AsyncMock(side_effect=RuntimeError("timed out"))
    publisher = EventPublisher()
    received = []
    publisher.add_event_hook(received.append)
    sync = QuickBooksSync(ledger, publisher)
    batch_id = uuid4()

    with pytest.raises(RuntimeError, match="timed out"):
        await sync.is_connected(batch_id, BatchKind.EDIT)

    event = received[0]
    assert event.event_type is EventType.ERROR
    assert (event.batch_id, event.kind) == (batch_id, BatchKind.EDIT)
    assert event.data["details"] == {"error": "timed out"}


@pytest.mark.asyncio
async def test_connection_check_passes_answer_through(ledger):
    ledger.connected = True

    assert await QuickBooksSync(ledger).is_connected(uuid4(), BatchKind.SYNC) is True
