"""Classification of QuickBooks sync errors.

Sync failures come back as free-form messages from the edge functions. This
module maps them to a small set of error types with an operator-facing title,
description and the action most likely to fix them.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum


class SyncErrorType(str, Enum):
    VENDOR_DELETED = "vendor_deleted"
    VENDOR_NOT_FOUND = "vendor_not_found"
    CUSTOMER_DELETED = "customer_deleted"
    CUSTOMER_NOT_FOUND = "customer_not_found"
    AUTH_ERROR = "auth_error"
    RATE_LIMIT = "rate_limit"
    STALE_OBJECT = "stale_object"
    DUPLICATE = "duplicate"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class SuggestedAction(str, Enum):
    RESYNC_VENDOR = "resync_vendor"
    RESYNC_CUSTOMER = "resync_customer"
    RECONNECT = "reconnect"
    RETRY = "retry"
    WAIT = "wait"
    NONE = "none"


ERROR_TYPE_LABELS: dict[SyncErrorType, str] = {
    SyncErrorType.VENDOR_DELETED: "Vendor Issue",
    SyncErrorType.VENDOR_NOT_FOUND: "Vendor Issue",
    SyncErrorType.CUSTOMER_DELETED: "Customer Issue",
    SyncErrorType.CUSTOMER_NOT_FOUND: "Customer Issue",
    SyncErrorType.AUTH_ERROR: "Connection Issue",
    SyncErrorType.RATE_LIMIT: "Rate Limited",
    SyncErrorType.STALE_OBJECT: "Sync Conflict",
    SyncErrorType.DUPLICATE: "Duplicate",
    SyncErrorType.VALIDATION: "Validation Error",
    SyncErrorType.UNKNOWN: "Sync Error",
}


@dataclass(frozen=True)
class SyncErrorContext:
    """What the caller knows about the record that failed to sync."""

    vendor_name: str | None = None
    vendor_id: str | None = None
    customer_name: str | None = None
    customer_id: str | None = None
    bill_number: str | None = None


@dataclass(frozen=True)
class ParsedSyncError:
    type: SyncErrorType
    title: str
    description: str
    actionable: bool
    suggested_action: SuggestedAction
    technical_details: str
    vendor_name: str | None = None
    vendor_id: str | None = None
    customer_name: str | None = None
    customer_id: str | None = None

    @property
    def label(self) -> str:
        return ERROR_TYPE_LABELS[self.type]

    @property
    def severity(self) -> str:
        """Log severity for this error type."""
        if self.type in (
            SyncErrorType.AUTH_ERROR,
            SyncErrorType.VENDOR_DELETED,
            SyncErrorType.CUSTOMER_DELETED,
        ):
            return "error"
        if self.type in (
            SyncErrorType.RATE_LIMIT,
            SyncErrorType.STALE_OBJECT,
            SyncErrorType.VALIDATION,
        ):
            return "warning"
        return "info"


def _has(msg: str, *needles: str) -> bool:
    return any(needle in msg for needle in needles)


def _vendor_deleted(msg: str) -> bool:
    return _has(msg, "invalid reference id") and _has(msg, "vendor") and _has(msg, "deleted")


def _vendor_not_found(msg: str) -> bool:
    return _has(msg, "invalid reference id", "vendor not found") and _has(msg, "vendor")


def _customer_deleted(msg: str) -> bool:
    return _has(msg, "invalid reference id") and _has(msg, "customer") and _has(msg, "deleted")


def _customer_not_found(msg: str) -> bool:
    return _has(msg, "invalid reference id", "customer not found") and _has(msg, "customer")


def _auth_error(msg: str) -> bool:
    return (
        _has(msg, "401", "unauthorized", "authenticationfailed", "refresh token")
        or (_has(msg, "token") and _has(msg, "expired"))
    )


def _rate_limit(msg: str) -> bool:
    return _has(msg, "429", "ratelimitexceeded", "rate limit", "too many requests")


def _stale_object(msg: str) -> bool:
    return _has(msg, "stale object", "synctoken")


def _duplicate(msg: str) -> bool:
    return _has(msg, "duplicate", "already exists")


def _validation(msg: str) -> bool:
    return _has(msg, "validation", "required", "invalid")


def _name_or(value: str | None, template: str, fallback: str) -> str:
    return template.format(value) if value else fallback


# Checked in order; the first match wins.
_RULES: list[tuple[Callable[[str], bool], SyncErrorType, Callable[[SyncErrorContext], dict]]] = [
    (
        _vendor_deleted,
        SyncErrorType.VENDOR_DELETED,
        lambda ctx: {
            "title": "Vendor Deleted in QuickBooks",
            "description": _name_or(
                ctx.vendor_name,
                'The vendor "{}" has been deleted in QuickBooks. Re-sync the vendor '
                "to create it again, or restore it in QuickBooks.",
                "The vendor for this bill has been deleted in QuickBooks. Re-sync "
                "the vendor to create it again.",
            ),
            "actionable": True,
            "suggested_action": SuggestedAction.RESYNC_VENDOR,
        },
    ),
    (
        _vendor_not_found,
        SyncErrorType.VENDOR_NOT_FOUND,
        lambda ctx: {
            "title": "Vendor Not Found in QuickBooks",
            "description": _name_or(
                ctx.vendor_name,
                'The vendor "{}" could not be found in QuickBooks. Try re-syncing the vendor.',
                "The vendor for this bill could not be found in QuickBooks. Try "
                "re-syncing the vendor.",
            ),
            "actionable": True,
            "suggested_action": SuggestedAction.RESYNC_VENDOR,
        },
    ),
    (
        _customer_deleted,
        SyncErrorType.CUSTOMER_DELETED,
        lambda ctx: {
            "title": "Customer Deleted in QuickBooks",
            "description": _name_or(
                ctx.customer_name,
                'The customer "{}" has been deleted in QuickBooks. Re-sync the '
                "customer to create it again, or restore it in QuickBooks.",
                "The customer has been deleted in QuickBooks. Re-sync the customer "
                "to create it again.",
            ),
            "actionable": True,
            "suggested_action": SuggestedAction.RESYNC_CUSTOMER,
        },
    ),
    (
        _customer_not_found,
        SyncErrorType.CUSTOMER_NOT_FOUND,
        lambda ctx: {
            "title": "Customer Not Found in QuickBooks",
            "description": _name_or(
                ctx.customer_name,
                'The customer "{}" could not be found in QuickBooks. Try re-syncing '
                "the customer.",
                "The customer could not be found in QuickBooks. Try re-syncing the "
                "customer.",
            ),
            "actionable": True,
            "suggested_action": SuggestedAction.RESYNC_CUSTOMER,
        },
    ),
    (
        _auth_error,
        SyncErrorType.AUTH_ERROR,
        lambda ctx: {
            "title": "QuickBooks Connection Expired",
            "description": "The QuickBooks connection has expired. Please reconnect "
            "to QuickBooks in settings.",
            "actionable": True,
            "suggested_action": SuggestedAction.RECONNECT,
        },
    ),
    (
        _rate_limit,
        SyncErrorType.RATE_LIMIT,
        lambda ctx: {
            "title": "QuickBooks Rate Limit",
            "description": "QuickBooks is temporarily limiting requests. Please wait "
            "a few minutes and try again.",
            "actionable": True,
            "suggested_action": SuggestedAction.WAIT,
        },
    ),
    (
        _stale_object,
        SyncErrorType.STALE_OBJECT,
        lambda ctx: {
            "title": "Sync Conflict",
            "description": "The record was modified in QuickBooks while syncing. "
            "Please try again.",
            "actionable": True,
            "suggested_action": SuggestedAction.RETRY,
        },
    ),
    (
        _duplicate,
        SyncErrorType.DUPLICATE,
        lambda ctx: {
            "title": "Duplicate Record",
            "description": "A record with this information already exists in QuickBooks.",
            "actionable": False,
            "suggested_action": SuggestedAction.NONE,
        },
    ),
    (
        _validation,
        SyncErrorType.VALIDATION,
        lambda ctx: {
            "title": "Validation Error",
            "description": "QuickBooks rejected the data. Please check the bill "
            "details and try again.",
            "actionable": True,
            "suggested_action": SuggestedAction.RETRY,
        },
    ),
]


def parse_quickbooks_error(
    error_message: str, context: SyncErrorContext | None = None
) -> ParsedSyncError:
    """Classify a QuickBooks sync error message.

    Matching is case-insensitive. Messages that match no known pattern are
    reported as ``unknown`` with a retry suggestion.
    """
    ctx = context or SyncErrorContext()
    normalized = error_message.lower()

    for matches, error_type, details in _RULES:
        if matches(normalized):
            return ParsedSyncError(
                type=error_type,
                technical_details=error_message,
                vendor_name=ctx.vendor_name,
                vendor_id=ctx.vendor_id,
                customer_name=ctx.customer_name,
                customer_id=ctx.customer_id,
                **details(ctx),
            )

    return ParsedSyncError(
        type=SyncErrorType.UNKNOWN,
        title="QuickBooks Sync Failed",
        description="An unexpected error occurred while syncing to QuickBooks. "
        "Please try again.",
        actionable=True,
        suggested_action=SuggestedAction.RETRY,
        technical_details=error_message,
        vendor_name=ctx.vendor_name,
        vendor_id=ctx.vendor_id,
    )
