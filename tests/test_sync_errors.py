"""Tests for QuickBooks sync error classification."""

import pytest

from billdesk.sync_errors import (
    SuggestedAction,
    SyncErrorContext,
    SyncErrorType,
    parse_quickbooks_error,
)


@pytest.mark.parametrize(
    "message,expected",
    [
        ("Invalid Reference Id : Vendor was deleted", SyncErrorType.VENDOR_DELETED),
        ("Vendor not found for id 55", SyncErrorType.VENDOR_NOT_FOUND),
        ("Invalid Reference Id: customer deleted", SyncErrorType.CUSTOMER_DELETED),
        ("Customer not found", SyncErrorType.CUSTOMER_NOT_FOUND),
        ("401 Unauthorized", SyncErrorType.AUTH_ERROR),
        ("Token has expired", SyncErrorType.AUTH_ERROR),
        ("ThrottleExceeded: 429 Too Many Requests", SyncErrorType.RATE_LIMIT),
        ("Stale Object Error: You and someone else edited", SyncErrorType.STALE_OBJECT),
        ("Duplicate Document Number Error", SyncErrorType.DUPLICATE),
        ("Required param missing: TxnDate", SyncErrorType.VALIDATION),
        ("socket hang up", SyncErrorType.UNKNOWN),
    ],
)
def test_classifies_messages(message, expected):
    assert parse_quickbooks_error(message).type is expected


def test_vendor_name_in_description():
    parsed = parse_quickbooks_error(
        "Invalid Reference Id: Vendor deleted",
        SyncErrorContext(vendor_name="Acme Supply", vendor_id="v-1"),
    )

    assert '"Acme Supply"' in parsed.description
    assert parsed.vendor_id == "v-1"
    assert parsed.suggested_action is SuggestedAction.RESYNC_VENDOR
    assert parsed.label == "Vendor Issue"
    assert parsed.severity == "error"


def test_unknown_suggests_retry_and_keeps_message():
    parsed = parse_quickbooks_error("socket hang up")

    assert parsed.title == "QuickBooks Sync Failed"
    assert parsed.suggested_action is SuggestedAction.RETRY
    assert parsed.technical_details == "socket hang up"
    assert parsed.severity == "info"


def test_rate_limit_is_a_warning():
    parsed = parse_quickbooks_error("rate limit reached")

    assert parsed.suggested_action is SuggestedAction.WAIT
    assert parsed.severity == "warning"
