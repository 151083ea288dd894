"""Payment batch construction.

Turns the bills an operator selected, the batch-global defaults and the
per-bill overlay into concrete payment instructions. Bills whose resolved
amount fails balance validation are left out of the batch and counted as
invalid; bills without a remaining balance are not selectable at all.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal

import structlog

from billdesk.errors import BatchIntegrityError
from billdesk.models import (
    Bill,
    BillPaymentConfig,
    CustomSettings,
    PaymentDefaults,
    PaymentInstruction,
)
from billdesk.validation import ValidationResult, validate

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ExcludedBill:
    """A selected bill dropped from the batch, with the reason."""

    bill: Bill
    validation: ValidationResult


@dataclass
class BuiltBatch:
    """Result of building a payment batch."""

    instructions: list[PaymentInstruction] = field(default_factory=list)
    excluded: list[ExcludedBill] = field(default_factory=list)
    total_remaining: Decimal = Decimal("0.00")

    @property
    def valid_count(self) -> int:
        return len(self.instructions)

    @property
    def invalid_count(self) -> int:
        return len(self.excluded)

    @property
    def total_payment(self) -> Decimal:
        return sum((i.amount for i in self.instructions), Decimal("0.00"))

    @property
    def can_proceed(self) -> bool:
        """Whether "proceed to review" is enabled."""
        return self.valid_count > 0

    def require_instructions(self) -> list[PaymentInstruction]:
        """Return the instructions, refusing to start an empty batch."""
        if not self.can_proceed:
            raise BatchIntegrityError(
                "No payable bills in batch",
                details={"invalid_count": self.invalid_count},
            )
        return self.instructions


class PaymentBatchBuilder:
    """Builds payment instructions from a selection and its overrides."""

    def build(
        self,
        selected_bills: Iterable[Bill],
        defaults: PaymentDefaults,
        configs: Mapping[str, BillPaymentConfig] | None = None,
    ) -> BuiltBatch:
        configs = configs or {}
        batch = BuiltBatch()

        for bill in selected_bills:
            if not bill.is_payable:
                continue
            batch.total_remaining += bill.remaining_amount

            config = configs.get(bill.id) or BillPaymentConfig()
            amount = bill.remaining_amount if config.amount is None else config.amount
            result = validate(bill, amount)
            if not result.admissible or result.amount is None:
                batch.excluded.append(ExcludedBill(bill=bill, validation=result))
                continue

            batch.instructions.append(
                self._instruction(bill, result.amount, defaults, config)
            )

        logger.debug(
            "payment_batch_built",
            valid=batch.valid_count,
            invalid=batch.invalid_count,
            total_payment=str(batch.total_payment),
        )
        return batch

    @staticmethod
    def _instruction(
        bill: Bill,
        amount: Decimal,
        defaults: PaymentDefaults,
        config: BillPaymentConfig,
    ) -> PaymentInstruction:
        settings = config.settings
        payment_date = defaults.payment_date
        method = defaults.method
        reference = defaults.reference
        notes = defaults.notes

        # Custom values win only where the operator actually filled them in
        if isinstance(settings, CustomSettings):
            payment_date = settings.payment_date or payment_date
            method = settings.method or method
            reference = settings.reference or reference
            notes = settings.notes or notes

        return PaymentInstruction(
            bill_id=bill.id,
            bill_number=bill.number,
            vendor_name=bill.vendor_name,
            remaining_amount=bill.remaining_amount,
            amount=amount,
            payment_date=payment_date,
            method=method,
            reference=reference or None,
            notes=notes or None,
        )
