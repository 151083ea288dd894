"""Error taxonomy for bulk bill operations."""

from typing import Any


class BillOpsError(Exception):
    """Base exception for bulk bill operations."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.details = details


class ValidationError(BillOpsError):
    """Input rejected before anything is sent to the ledger."""

    def __init__(self, message: str, reason: str | None = None, details: Any = None):
        super().__init__(message, details=details)
        self.reason = reason


class ItemOperationError(BillOpsError):
    """A remote write failed for a single bill."""

    def __init__(self, bill_id: str, message: str, details: Any = None):
        super().__init__(message, details=details)
        self.bill_id = bill_id


class SyncWarning(BillOpsError):
    """QuickBooks sync failed after the primary write succeeded.

    Recorded on the batch result rather than failing the item, so the
    operator can retry the sync alone later.
    """

    def __init__(self, bill_id: str, message: str, details: Any = None):
        super().__init__(message, details=details)
        self.bill_id = bill_id

    @property
    def message(self) -> str:
        return str(self)


class BatchIntegrityError(BillOpsError):
    """The batch cannot start, e.g. it has no admissible instructions."""

    pass
