"""Bulk edit and bulk QuickBooks sync of selected vendor bills.

Each bill is handled start to finish before the next one begins: header
fields, then line-item category, then (when QuickBooks is connected) a sync.
That costs one round-trip per step per bill, but keeps "is this bill fully
updated" answerable per bill and makes progress exact ("bill 7 of 40").
"""

import asyncio
from collections.abc import Callable, Sequence
from uuid import UUID, uuid4

import structlog

from billdesk.cache import BILL_VIEWS, QueryCache
from billdesk.clients.ledger import Ledger, LedgerAPIError
from billdesk.config import get_settings
from billdesk.errors import ItemOperationError, ValidationError
from billdesk.events import (
    BatchEvent,
    BatchKind,
    EventPublisher,
    batch_completed,
    batch_progress,
    batch_started,
    cache_invalidated,
    item_completed,
)
from billdesk.models import (
    BatchResultEntry,
    Bill,
    BulkEditProgress,
    BulkEditResult,
    BulkEditUpdates,
    BulkSyncResult,
    EditPhase,
)
from billdesk.session import BillSelection
from billdesk.sync import QuickBooksSync

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[BulkEditProgress], None]


class BulkEditOrchestrator:
    """Applies sparse field updates to many bills, one bill at a time."""

    def __init__(
        self,
        ledger: Ledger,
        cache: QueryCache | None = None,
        publisher: EventPublisher | None = None,
        yield_seconds: float | None = None,
    ):
        self._ledger = ledger
        self._cache = cache
        self._publisher = publisher
        self._yield_seconds = (
            get_settings().edit_yield_seconds if yield_seconds is None else yield_seconds
        )
        self._sync = QuickBooksSync(ledger, publisher)
        self._logger = logger.bind(component="bulk_edit")

    async def apply(
        self,
        bills: Sequence[Bill],
        updates: BulkEditUpdates,
        on_progress: ProgressCallback | None = None,
        selection: BillSelection | None = None,
    ) -> BulkEditResult:
        """Apply ``updates`` to every bill and report per-bill progress.

        A bill fails when its header or line-item write fails; nothing already
        written for it is rolled back. A failed QuickBooks sync leaves the bill
        successful and is recorded as a sync warning. Cached bill views are
        invalidated and ``selection`` is cleared afterwards regardless of the
        outcome, since re-running the same edit is safe.

        Raises:
            ValidationError: If ``updates`` would not change anything.
        """
        if updates.is_empty:
            raise ValidationError("No fields selected for bulk edit")

        header_fields = updates.header_fields()
        batch_id = uuid4()
        should_sync = await self._sync.is_connected(batch_id, BatchKind.EDIT)

        total = len(bills)
        log = self._logger.bind(batch_id=str(batch_id))
        log.info(
            "bulk_edit_started",
            total=total,
            fields=sorted(header_fields),
            category=updates.has_category_update,
            sync=should_sync,
        )
        self._publish(batch_started(batch_id, BatchKind.EDIT, total))

        result = BulkEditResult(synced=should_sync)
        for index, bill in enumerate(bills, start=1):
            self._report(on_progress, batch_id, BulkEditProgress(index, total, EditPhase.UPDATING))

            try:
                await self._update(bill, header_fields, updates)
            except ItemOperationError as e:
                log.error("bill_update_failed", bill_id=bill.id, error=str(e))
                entry = BatchResultEntry(bill.id, bill.number, success=False, error=str(e))
                result.failed += 1
            else:
                warning = None
                if should_sync:
                    self._report(
                        on_progress, batch_id, BulkEditProgress(index, total, EditPhase.SYNCING)
                    )
                    warning = await self._sync.sync_bill(bill, batch_id, BatchKind.EDIT)
                entry = BatchResultEntry(
                    bill.id,
                    bill.number,
                    success=True,
                    sync_warning=warning.message if warning else None,
                )
                result.success += 1

            result.entries.append(entry)
            self._publish(item_completed(batch_id, BatchKind.EDIT, entry, index, total))

            # Let other tasks on the loop run between bills
            await asyncio.sleep(self._yield_seconds)

        log.info(
            "bulk_edit_completed",
            success=result.success,
            failed=result.failed,
            sync_warnings=len(result.sync_warnings),
        )
        self._publish(batch_completed(batch_id, BatchKind.EDIT, result.success, result.failed))
        self._finish(selection)
        return result

    async def sync_selected(
        self,
        bills: Sequence[Bill],
        selection: BillSelection | None = None,
    ) -> BulkSyncResult:
        """Sync every bill to QuickBooks, one at a time.

        Does nothing when QuickBooks is not connected. Otherwise the selection
        is cleared afterwards, whatever the outcome.
        """
        result = BulkSyncResult()
        batch_id = uuid4()
        if not await self._sync.is_connected(batch_id, BatchKind.SYNC):
            self._logger.warning("bulk_sync_skipped_not_connected", total=len(bills))
            return result

        total = len(bills)
        self._publish(batch_started(batch_id, BatchKind.SYNC, total))

        for index, bill in enumerate(bills, start=1):
            warning = await self._sync.sync_bill(bill, batch_id, BatchKind.SYNC)
            if warning:
                result.failed += 1
                result.errors[bill.id] = warning.message
            else:
                result.synced += 1
            entry = BatchResultEntry(
                bill.id,
                bill.number,
                success=warning is None,
                error=warning.message if warning else None,
            )
            self._publish(item_completed(batch_id, BatchKind.SYNC, entry, index, total))

        self._logger.info("bulk_sync_completed", synced=result.synced, failed=result.failed)
        self._publish(batch_completed(batch_id, BatchKind.SYNC, result.synced, result.failed))
        self._finish(selection)
        return result

    async def _update(
        self, bill: Bill, header_fields: dict, updates: BulkEditUpdates
    ) -> None:
        try:
            if header_fields:
                await self._ledger.update_bill_fields(bill.id, header_fields)
            if updates.has_category_update:
                await self._ledger.update_line_items_category(bill.id, updates.category_value)
        except LedgerAPIError as e:
            raise ItemOperationError(bill.id, str(e), details=e.details) from e
        except Exception as e:
            raise ItemOperationError(bill.id, str(e) or type(e).__name__) from e

    def _finish(self, selection: BillSelection | None) -> None:
        if self._cache is not None:
            self._cache.invalidate(BILL_VIEWS)
        self._publish(cache_invalidated(list(BILL_VIEWS)))
        if selection is not None:
            selection.clear()

    def _report(
        self,
        on_progress: ProgressCallback | None,
        batch_id: UUID,
        progress: BulkEditProgress,
    ) -> None:
        if on_progress:
            on_progress(progress)
        self._publish(batch_progress(batch_id, progress))

    def _publish(self, event: BatchEvent) -> None:
        if self._publisher:
            self._publisher.publish(event)
