"""Best-effort QuickBooks sync shared by the bulk pipelines.

A sync runs only after the primary ledger write succeeded, so its failure
never fails the item. Failures are classified, logged and published as
``sync.failed`` events, and handed back as a SyncWarning for the result entry.
"""

from collections.abc import Awaitable
from uuid import UUID

import structlog

from billdesk.clients.ledger import Ledger
from billdesk.errors import SyncWarning
from billdesk.events import BatchKind, EventPublisher, error_event, sync_failed
from billdesk.models import Bill, SyncOutcome
from billdesk.sync_errors import SyncErrorContext, parse_quickbooks_error

logger = structlog.get_logger(__name__)


class QuickBooksSync:
    """Runs per-item QuickBooks syncs and turns failures into warnings."""

    def __init__(self, ledger: Ledger, publisher: EventPublisher | None = None):
        self._ledger = ledger
        self._publisher = publisher
        self._logger = logger.bind(component="quickbooks_sync")

    async def is_connected(self, batch_id: UUID, kind: BatchKind) -> bool:
        """Setup-time connection check for a batch.

        A failure here aborts the batch before anything is written; it is
        logged, published as an ``error`` event and re-raised.
        """
        try:
            return await self._ledger.is_quickbooks_connected()
        except Exception as e:
            self._logger.error(
                "batch_setup_failed", batch_id=str(batch_id), kind=kind.value, error=str(e)
            )
            if self._publisher:
                self._publisher.publish(
                    error_event(
                        "Could not check the QuickBooks connection; batch not started",
                        details={"error": str(e)},
                        batch_id=batch_id,
                        kind=kind,
                    )
                )
            raise

    async def sync_bill(
        self,
        bill: Bill,
        batch_id: UUID | None = None,
        kind: BatchKind = BatchKind.EDIT,
    ) -> SyncWarning | None:
        """Sync one bill; return the warning if it failed."""
        try:
            await self._attempt(self._ledger.sync_bill(bill.id), bill.id)
        except SyncWarning as warning:
            self._record(
                warning,
                SyncErrorContext(
                    vendor_name=bill.vendor_name or None,
                    vendor_id=bill.vendor_id,
                    bill_number=bill.number,
                ),
                batch_id,
                kind,
            )
            return warning
        return None

    async def sync_payment(
        self,
        payment_id: str,
        bill_id: str,
        vendor_name: str | None = None,
        batch_id: UUID | None = None,
    ) -> SyncWarning | None:
        """Sync one recorded payment; return the warning if it failed."""
        try:
            await self._attempt(self._ledger.sync_bill_payment(payment_id), bill_id)
        except SyncWarning as warning:
            self._record(
                warning,
                SyncErrorContext(vendor_name=vendor_name),
                batch_id,
                BatchKind.PAYMENT,
            )
            return warning
        return None

    @staticmethod
    async def _attempt(call: Awaitable[SyncOutcome], bill_id: str) -> None:
        try:
            outcome = await call
        except Exception as e:
            raise SyncWarning(bill_id, str(e) or "Sync failed") from e
        if not outcome.success:
            raise SyncWarning(bill_id, outcome.error or "Sync failed")

    def _record(
        self,
        warning: SyncWarning,
        context: SyncErrorContext,
        batch_id: UUID | None,
        kind: BatchKind,
    ) -> None:
        parsed = parse_quickbooks_error(warning.message, context)
        warning.details = parsed
        self._logger.warning(
            "quickbooks_sync_failed",
            bill_id=warning.bill_id,
            error=warning.message,
            error_type=parsed.type.value,
            suggested_action=parsed.suggested_action.value,
        )
        if self._publisher:
            self._publisher.publish(
                sync_failed(batch_id, kind, warning.bill_id, warning.message)
            )
