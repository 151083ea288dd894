"""Balance validation for proposed bill payments."""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum

from billdesk.errors import ValidationError
from billdesk.models import CENT, Bill


class RejectionReason(str, Enum):
    """Why a proposed payment amount is not admissible."""

    INVALID_AMOUNT = "invalid_amount"
    NON_POSITIVE_AMOUNT = "non_positive_amount"
    EXCEEDS_REMAINING = "exceeds_remaining"
    SUB_CENT_AMOUNT = "sub_cent_amount"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one amount against one bill."""

    admissible: bool
    amount: Decimal | None = None
    reason: RejectionReason | None = None
    message: str | None = None


def parse_amount(value: str | Decimal | int | float | None) -> Decimal | None:
    """Parse an operator-entered amount exactly as typed.

    Returns None when the value is empty, not a number, or not finite. No
    rounding happens here.
    """
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


def _display(amount: Decimal) -> str:
    if amount == amount.quantize(CENT):
        return f"{amount:,.2f}"
    return f"{amount:,}"


def validate(bill: Bill, proposed_amount: str | Decimal | int | float | None) -> ValidationResult:
    """Decide whether ``proposed_amount`` may be paid against ``bill``.

    Admissible exactly when ``0 < amount <= bill.remaining_amount`` for the
    amount as entered, and the amount is a whole number of cents. Pure, so
    callers re-run it on every edit of the amount or the balance.
    """
    amount = parse_amount(proposed_amount)
    if amount is None:
        return ValidationResult(
            admissible=False,
            reason=RejectionReason.INVALID_AMOUNT,
            message=f"Payment amount for {bill.number} is not a number",
        )
    if amount <= 0:
        return ValidationResult(
            admissible=False,
            amount=amount,
            reason=RejectionReason.NON_POSITIVE_AMOUNT,
            message=f"Payment amount for {bill.number} must be greater than zero",
        )
    if amount > bill.remaining_amount:
        return ValidationResult(
            admissible=False,
            amount=amount,
            reason=RejectionReason.EXCEEDS_REMAINING,
            message=(
                f"Payment of ${_display(amount)} exceeds remaining balance of "
                f"${bill.remaining_amount:,.2f} on {bill.number}"
            ),
        )
    # The ledger stores cents; a fraction of a cent is never silently dropped
    if amount != amount.quantize(CENT):
        return ValidationResult(
            admissible=False,
            amount=amount,
            reason=RejectionReason.SUB_CENT_AMOUNT,
            message=f"Payment of ${_display(amount)} on {bill.number} has fractions of a cent",
        )
    return ValidationResult(admissible=True, amount=amount.quantize(CENT))


def ensure_admissible(bill: Bill, proposed_amount: str | Decimal | int | float | None) -> Decimal:
    """Return the amount in cents or raise ValidationError."""
    result = validate(bill, proposed_amount)
    if not result.admissible or result.amount is None:
        raise ValidationError(
            result.message or "Invalid payment amount",
            reason=result.reason.value if result.reason else None,
            details={"bill_id": bill.id, "amount": str(proposed_amount)},
        )
    return result.amount
