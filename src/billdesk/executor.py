"""Bulk payment execution against the ledger."""

from collections.abc import Sequence
from uuid import UUID, uuid4

import structlog

from billdesk.clients.ledger import Ledger, LedgerAPIError
from billdesk.config import get_settings
from billdesk.errors import BatchIntegrityError, ItemOperationError, ValidationError
from billdesk.events import (
    BatchEvent,
    BatchKind,
    EventPublisher,
    batch_completed,
    batch_started,
    item_completed,
)
from billdesk.models import BatchResultEntry, PaymentInstruction
from billdesk.sync import QuickBooksSync
from billdesk.validation import ensure_admissible

logger = structlog.get_logger(__name__)


class BulkPaymentExecutor:
    """Records a batch of bill payments one at a time.

    Every instruction produces exactly one result entry, in input order. A
    rejected payment (for example because the bill's remaining balance
    dropped since the batch was built) fails only its own entry. When
    QuickBooks sync is enabled and connected, each recorded payment is pushed
    to QuickBooks; a failed push is kept as a sync warning on the successful
    entry.

    Calling ``execute`` twice records twice: each call returns its own
    independent results and nothing is retried automatically.
    """

    def __init__(
        self,
        ledger: Ledger,
        publisher: EventPublisher | None = None,
        revalidate: bool | None = None,
        sync_to_quickbooks: bool | None = None,
    ):
        settings = get_settings()
        self._ledger = ledger
        self._publisher = publisher
        self._revalidate = settings.payment_revalidate if revalidate is None else revalidate
        self._sync_enabled = (
            settings.payment_sync_to_quickbooks
            if sync_to_quickbooks is None
            else sync_to_quickbooks
        )
        self._sync = QuickBooksSync(ledger, publisher)
        self._logger = logger.bind(component="bulk_payment_executor")

    async def execute(self, instructions: Sequence[PaymentInstruction]) -> list[BatchResultEntry]:
        """Record every instruction and return one result entry per instruction.

        Raises:
            BatchIntegrityError: If there is nothing to pay. Raised before any
                ledger call.
        """
        if not instructions:
            raise BatchIntegrityError("No payment instructions to submit")

        batch_id = uuid4()
        log = self._logger.bind(batch_id=str(batch_id))
        # Setup-time check; a failure here aborts the whole batch
        should_sync = self._sync_enabled and await self._sync.is_connected(
            batch_id, BatchKind.PAYMENT
        )

        total = len(instructions)
        log.info("payment_batch_started", total=total, sync=should_sync)
        self._publish(batch_started(batch_id, BatchKind.PAYMENT, total))

        results: list[BatchResultEntry] = []
        for index, instruction in enumerate(instructions, start=1):
            entry = await self._pay(instruction, batch_id, should_sync)
            results.append(entry)
            self._publish(item_completed(batch_id, BatchKind.PAYMENT, entry, index, total))

        succeeded = sum(1 for entry in results if entry.success)
        log.info(
            "payment_batch_completed",
            success=succeeded,
            failed=total - succeeded,
        )
        self._publish(batch_completed(batch_id, BatchKind.PAYMENT, succeeded, total - succeeded))
        return results

    async def _pay(
        self, instruction: PaymentInstruction, batch_id: UUID, should_sync: bool
    ) -> BatchResultEntry:
        try:
            if self._revalidate:
                await self._check_remaining(instruction)
            payment = await self._record(instruction)
        except (ValidationError, ItemOperationError) as e:
            self._logger.warning(
                "bill_payment_failed",
                bill_id=instruction.bill_id,
                amount=str(instruction.amount),
                error=str(e),
            )
            return self._failed(instruction, str(e))
        except Exception as e:
            self._logger.exception("bill_payment_error", bill_id=instruction.bill_id)
            return self._failed(instruction, str(e) or type(e).__name__)

        payment_id = str(payment["id"]) if payment.get("id") else None
        warning = None
        if should_sync and payment_id:
            warning = await self._sync.sync_payment(
                payment_id,
                instruction.bill_id,
                vendor_name=instruction.vendor_name,
                batch_id=batch_id,
            )

        return BatchResultEntry(
            bill_id=instruction.bill_id,
            bill_number=instruction.bill_number,
            success=True,
            sync_warning=warning.message if warning else None,
            payment_id=payment_id,
        )

    async def _check_remaining(self, instruction: PaymentInstruction) -> None:
        """Re-read the bill and reject the amount if it is no longer payable."""
        try:
            bill = await self._ledger.get_bill(instruction.bill_id)
        except LedgerAPIError as e:
            raise ItemOperationError(
                instruction.bill_id, f"Could not load bill: {e}", details=e.details
            ) from e
        ensure_admissible(bill, instruction.amount)

    async def _record(self, instruction: PaymentInstruction) -> dict:
        try:
            return await self._ledger.record_payment(
                instruction.bill_id,
                instruction.amount,
                instruction.payment_date,
                instruction.method,
                reference=instruction.reference,
                notes=instruction.notes,
            )
        except LedgerAPIError as e:
            raise ItemOperationError(instruction.bill_id, str(e), details=e.details) from e

    @staticmethod
    def _failed(instruction: PaymentInstruction, error: str) -> BatchResultEntry:
        return BatchResultEntry(
            bill_id=instruction.bill_id,
            bill_number=instruction.bill_number,
            success=False,
            error=error,
        )

    def _publish(self, event: BatchEvent) -> None:
        if self._publisher:
            self._publisher.publish(event)
