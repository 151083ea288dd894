"""Operator session state for bulk bill operations.

The selection and the per-bill payment overlay belong to one session object
and are passed explicitly to the components that read them; they are never
kept at module level.
"""

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog

from billdesk.batch import BuiltBatch, PaymentBatchBuilder
from billdesk.config import get_settings
from billdesk.errors import BatchIntegrityError
from billdesk.models import (
    BatchResultEntry,
    Bill,
    BillPaymentConfig,
    CustomSettings,
    PaymentDefaults,
    PaymentMethod,
    UseDefaults,
)
from billdesk.reporting import BatchFlow, BatchSummary, summarize
from billdesk.validation import RejectionReason, validate

if TYPE_CHECKING:
    from billdesk.executor import BulkPaymentExecutor

logger = structlog.get_logger(__name__)


class BillSelection:
    """Ordered set of selected bill ids."""

    def __init__(self, bill_ids: Iterable[str] = ()):
        self._ids: dict[str, None] = dict.fromkeys(bill_ids)

    def __contains__(self, bill_id: object) -> bool:
        return bill_id in self._ids

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._ids))

    def __len__(self) -> int:
        return len(self._ids)

    def select(self, bill_id: str) -> None:
        self._ids.setdefault(bill_id, None)

    def deselect(self, bill_id: str) -> None:
        self._ids.pop(bill_id, None)

    def toggle(self, bill_id: str, checked: bool) -> None:
        if checked:
            self.select(bill_id)
        else:
            self.deselect(bill_id)

    def select_all(self, bills: Iterable[Bill]) -> None:
        self._ids = dict.fromkeys(bill.id for bill in bills)

    def clear(self) -> None:
        self._ids.clear()

    def resolve(self, bills: Iterable[Bill]) -> list[Bill]:
        """Selected bills, in the order of ``bills``."""
        return [bill for bill in bills if bill.id in self._ids]

    def selected_total(self, bills: Iterable[Bill]) -> Decimal:
        """Running total of the selected bills' totals."""
        return sum((bill.total for bill in self.resolve(bills)), Decimal("0.00"))


class PaymentStep(str, Enum):
    CONFIGURE = "configure"
    REVIEW = "review"
    RESULTS = "results"


class PaymentSession:
    """Bulk payment session: configure, review, submit, close.

    Global defaults are resolved when the batch is built, so changing a
    default updates every bill without custom settings up to submission.
    With ``pay_full_amount`` on, amount overrides are reset to the full
    remaining balance; typing an amount above a bill's balance turns it off.
    """

    def __init__(
        self,
        bills: Sequence[Bill],
        selection: BillSelection,
        defaults: PaymentDefaults | None = None,
        builder: PaymentBatchBuilder | None = None,
    ):
        self._bills = list(bills)
        self.selection = selection
        self.defaults = defaults or PaymentDefaults(
            payment_date=date.today(),
            method=PaymentMethod.parse(get_settings().default_payment_method),
        )
        self._builder = builder or PaymentBatchBuilder()
        self._configs: dict[str, BillPaymentConfig] = {}
        self.pay_full_amount = True
        self.step = PaymentStep.CONFIGURE
        self.summary: BatchSummary | None = None

    @property
    def selected_bills(self) -> list[Bill]:
        """Selected bills that still have a balance to pay."""
        return [bill for bill in self.selection.resolve(self._bills) if bill.is_payable]

    def config_for(self, bill_id: str) -> BillPaymentConfig:
        return self._configs.get(bill_id) or BillPaymentConfig()

    def _bill(self, bill_id: str) -> Bill:
        for bill in self._bills:
            if bill.id == bill_id:
                return bill
        raise KeyError(bill_id)

    # === Configuration ===

    def set_amount(self, bill_id: str, amount: str | Decimal | None) -> None:
        """Override the amount for one bill; ``None`` pays the full balance."""
        bill = self._bill(bill_id)
        self._configs[bill_id] = replace(self.config_for(bill_id), amount=amount)
        if amount is not None and self.pay_full_amount:
            if validate(bill, amount).reason is RejectionReason.EXCEEDS_REMAINING:
                self.pay_full_amount = False

    def set_pay_full_amount(self, enabled: bool) -> None:
        self.pay_full_amount = enabled
        if enabled:
            for bill_id, config in list(self._configs.items()):
                self._configs[bill_id] = replace(config, amount=None)

    def use_custom_settings(
        self,
        bill_id: str,
        payment_date: date | None = None,
        method: PaymentMethod | str | None = None,
        reference: str | None = None,
        notes: str | None = None,
    ) -> None:
        self._bill(bill_id)
        settings = CustomSettings(
            payment_date=payment_date,
            method=PaymentMethod.parse(method) if method else None,
            reference=reference,
            notes=notes,
        )
        self._configs[bill_id] = replace(self.config_for(bill_id), settings=settings)

    def use_defaults(self, bill_id: str) -> None:
        self._configs[bill_id] = replace(self.config_for(bill_id), settings=UseDefaults())

    def update_defaults(self, **changes: Any) -> None:
        """Change batch-global defaults (payment_date, method, reference, notes)."""
        if "method" in changes and changes["method"] is not None:
            changes["method"] = PaymentMethod.parse(changes["method"])
        self.defaults = replace(self.defaults, **changes)

    # === Steps ===

    def build(self) -> BuiltBatch:
        return self._builder.build(self.selected_bills, self.defaults, self._configs)

    def review(self) -> BuiltBatch:
        """Move to review. Refused when no bill is payable as configured."""
        batch = self.build()
        batch.require_instructions()
        self.step = PaymentStep.REVIEW
        return batch

    def back(self) -> None:
        if self.step is PaymentStep.REVIEW:
            self.step = PaymentStep.CONFIGURE

    async def submit(self, executor: "BulkPaymentExecutor") -> BatchSummary:
        """Build the batch from the current state and record it."""
        if self.step is not PaymentStep.REVIEW:
            raise BatchIntegrityError(
                "Payment batch must be reviewed before submitting",
                details={"step": self.step.value},
            )
        instructions = self.build().require_instructions()
        results: list[BatchResultEntry] = await executor.execute(instructions)
        self.summary = summarize(results, BatchFlow.PAYMENT)
        self.step = PaymentStep.RESULTS
        logger.info(
            "payment_session_submitted",
            outcome=self.summary.outcome.value,
            success=self.summary.success_count,
            failed=self.summary.failed_count,
        )
        return self.summary

    def close(self) -> bool:
        """End the session.

        Returns:
            True if the selection was cleared.
        """
        cleared = False
        if self.step is PaymentStep.RESULTS and self.summary and self.summary.clear_selection:
            self.selection.clear()
            cleared = True

        self.step = PaymentStep.CONFIGURE
        self.summary = None
        self._configs.clear()
        self.defaults = replace(self.defaults, reference=None, notes=None)
        return cleared
