"""Domain types for vendor bills, payment batches and bulk edits."""

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any

CENT = Decimal("0.01")

# Sentinel marking a bulk-edit field the operator did not touch.
_OMITTED: Any = object()


def to_money(value: Any) -> Decimal:
    """Convert an API or user value to a cent-quantized Decimal.

    ``None`` and empty strings count as zero, matching how the backend
    reports a bill without payments.

    Raises:
        InvalidOperation: If the value is not a finite number.
    """
    if value is None or value == "":
        return Decimal("0.00")
    amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    if not amount.is_finite():
        raise InvalidOperation(f"Not a finite amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


class BillStatus(str, Enum):
    """Lifecycle status of a vendor bill."""

    DRAFT = "draft"
    OPEN = "open"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    VOID = "void"


class PaymentMethod(str, Enum):
    """Payment methods accepted by the ledger."""

    CHECK = "Check"
    CASH = "Cash"
    CREDIT_CARD = "Credit Card"
    ACH = "ACH"
    WIRE_TRANSFER = "Wire Transfer"
    OTHER = "Other"

    @classmethod
    def parse(cls, value: "str | PaymentMethod") -> "PaymentMethod":
        """Parse a method by value or by name, case-insensitively."""
        if isinstance(value, PaymentMethod):
            return value
        normalized = value.strip().lower()
        for method in cls:
            if normalized in (method.value.lower(), method.name.lower()):
                return method
        raise ValueError(f"Unknown payment method {value!r}")


@dataclass(frozen=True)
class Bill:
    """A payable vendor bill as held by the ledger."""

    id: str
    number: str
    vendor_name: str
    total: Decimal
    remaining_amount: Decimal
    status: BillStatus = BillStatus.OPEN
    vendor_id: str | None = None

    def __post_init__(self) -> None:
        if self.remaining_amount < 0 or self.remaining_amount > self.total:
            raise ValueError(
                f"Bill {self.number}: remaining {self.remaining_amount} "
                f"outside [0, {self.total}]"
            )

    @property
    def is_payable(self) -> bool:
        return self.remaining_amount > 0

    @classmethod
    def from_api(cls, row: dict[str, Any]) -> "Bill":
        """Build a bill from a ``vendor_bills`` row."""
        return cls(
            id=str(row["id"]),
            number=str(row.get("number") or ""),
            vendor_name=str(row.get("vendor_name") or ""),
            total=to_money(row.get("total")),
            remaining_amount=to_money(row.get("remaining_amount")),
            status=BillStatus(row.get("status") or BillStatus.OPEN.value),
            vendor_id=row.get("vendor_id"),
        )


@dataclass(frozen=True)
class PaymentDefaults:
    """Batch-global payment settings applied to every non-custom bill."""

    payment_date: date
    method: PaymentMethod = PaymentMethod.ACH
    reference: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class UseDefaults:
    """Per-bill settings variant: resolve everything from the batch defaults."""

    pass


@dataclass(frozen=True)
class CustomSettings:
    """Per-bill settings variant: use these values where they are non-empty."""

    payment_date: date | None = None
    method: PaymentMethod | None = None
    reference: str | None = None
    notes: str | None = None


BillSettings = UseDefaults | CustomSettings


@dataclass(frozen=True)
class BillPaymentConfig:
    """Session overlay for one selected bill.

    ``amount`` is the operator's raw amount override (text as typed, or a
    Decimal); ``None`` means "pay the full remaining balance".
    """

    amount: str | Decimal | None = None
    settings: BillSettings = field(default_factory=UseDefaults)

    @property
    def use_custom(self) -> bool:
        return isinstance(self.settings, CustomSettings)


@dataclass(frozen=True)
class PaymentInstruction:
    """One concrete payment to record against one bill."""

    bill_id: str
    bill_number: str
    vendor_name: str
    remaining_amount: Decimal
    amount: Decimal
    payment_date: date
    method: PaymentMethod
    reference: str | None = None
    notes: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Serialize as a ``vendor_bill_payments`` row."""
        return {
            "bill_id": self.bill_id,
            "amount": str(self.amount),
            "payment_date": self.payment_date.isoformat(),
            "payment_method": self.method.value,
            "reference_number": self.reference or None,
            "notes": self.notes or None,
        }


@dataclass(frozen=True)
class BatchResultEntry:
    """Outcome of one attempted operation in a batch."""

    bill_id: str
    bill_number: str
    success: bool
    error: str | None = None
    sync_warning: str | None = None
    payment_id: str | None = None


@dataclass(frozen=True)
class SyncOutcome:
    """Result of a single QuickBooks sync call."""

    success: bool
    error: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "SyncOutcome":
        # Edge functions answer either {"success": ...} or {"updated": ...}
        success = data.get("success", data.get("updated", False))
        error = (data.get("error") or data.get("message")) if not success else None
        return cls(success=bool(success), error=error)


class EditPhase(str, Enum):
    """Phase reported in bulk-edit progress."""

    UPDATING = "updating"
    SYNCING = "syncing"


@dataclass(frozen=True)
class BulkEditProgress:
    """Progress of a bulk edit: bill ``current`` of ``total``."""

    current: int
    total: int
    phase: EditPhase

    @property
    def percent(self) -> int:
        if self.total == 0:
            return 0
        return round(self.current / self.total * 100)


class BulkEditUpdates:
    """Sparse set of field updates for a bulk edit.

    Only keyword arguments that are passed are applied. Passing ``None`` (or
    an empty string) for a clearable field writes null; leaving it out keeps
    the stored value. ``class`` is a Python keyword, so it is accepted as
    ``bill_class``.

    Example:
        BulkEditUpdates(status="open", category_id=None)
    """

    HEADER_FIELDS = (
        "vendor_id",
        "vendor_name",
        "account",
        "class",
        "location",
        "memo",
        "notes",
        "status",
    )
    # Written only when a value is given; these columns cannot be cleared.
    REQUIRED_VALUE_FIELDS = ("vendor_id", "vendor_name", "status")
    LINE_ITEM_FIELD = "category_id"

    def __init__(
        self,
        *,
        vendor_id: Any = _OMITTED,
        vendor_name: Any = _OMITTED,
        category_id: Any = _OMITTED,
        account: Any = _OMITTED,
        bill_class: Any = _OMITTED,
        location: Any = _OMITTED,
        memo: Any = _OMITTED,
        notes: Any = _OMITTED,
        status: Any = _OMITTED,
    ):
        given = {
            "vendor_id": vendor_id,
            "vendor_name": vendor_name,
            "category_id": category_id,
            "account": account,
            "class": bill_class,
            "location": location,
            "memo": memo,
            "notes": notes,
            "status": status,
        }
        self._values: dict[str, Any] = {
            name: value for name, value in given.items() if value is not _OMITTED
        }
        if "status" in self._values and self._values["status"]:
            self._values["status"] = BillStatus(self._values["status"]).value

    @classmethod
    def from_mapping(cls, updates: dict[str, Any]) -> "BulkEditUpdates":
        """Build from a plain mapping; keys absent from it stay untouched."""
        known = set(cls.HEADER_FIELDS) | {cls.LINE_ITEM_FIELD}
        unknown = set(updates) - known
        if unknown:
            raise ValueError(f"Unknown bulk edit fields: {sorted(unknown)}")
        kwargs = {("bill_class" if k == "class" else k): v for k, v in updates.items()}
        return cls(**kwargs)

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"BulkEditUpdates({self._values!r})"

    @property
    def is_empty(self) -> bool:
        return not self.header_fields() and not self.has_category_update

    def header_fields(self) -> dict[str, Any]:
        """Bill-level columns to write, with cleared values as ``None``."""
        fields: dict[str, Any] = {}
        for name in self.HEADER_FIELDS:
            if name not in self._values:
                continue
            value = self._values[name]
            if name in self.REQUIRED_VALUE_FIELDS:
                if value:
                    fields[name] = value
            else:
                fields[name] = value or None
        return fields

    @property
    def has_category_update(self) -> bool:
        return self.LINE_ITEM_FIELD in self._values

    @property
    def category_value(self) -> str | None:
        return self._values.get(self.LINE_ITEM_FIELD) or None


@dataclass
class BulkEditResult:
    """Outcome of a bulk edit."""

    success: int = 0
    failed: int = 0
    entries: list[BatchResultEntry] = field(default_factory=list)
    synced: bool = False

    @property
    def sync_warnings(self) -> list[BatchResultEntry]:
        return [entry for entry in self.entries if entry.sync_warning]


@dataclass
class BulkSyncResult:
    """Outcome of a bulk QuickBooks sync."""

    synced: int = 0
    failed: int = 0
    errors: dict[str, str] = field(default_factory=dict)
