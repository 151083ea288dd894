"""Event type definitions for bulk operation progress.

These events are published to connected back-office clients so an operator
can watch a batch run ("bill 7 of 40") and see its outcome.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from billdesk.models import BatchResultEntry, BulkEditProgress


class EventType(str, Enum):
    """Types of events published during bulk operations."""

    BATCH_STARTED = "batch.started"
    BATCH_PROGRESS = "batch.progress"
    BATCH_ITEM_COMPLETED = "batch.item_completed"
    BATCH_COMPLETED = "batch.completed"

    SYNC_FAILED = "sync.failed"
    CACHE_INVALIDATED = "cache.invalidated"

    ERROR = "error"


class BatchKind(str, Enum):
    """Which bulk pipeline an event belongs to."""

    PAYMENT = "payment"
    EDIT = "edit"
    SYNC = "sync"


@dataclass
class BatchEvent:
    """Base event structure for all batch events."""

    event_type: EventType
    batch_id: UUID | None = None
    kind: BatchKind | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    event_id: UUID = field(default_factory=uuid4)
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary for JSON transmission."""
        return {
            "id": str(self.event_id),
            "type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "batch": {
                "id": str(self.batch_id) if self.batch_id else None,
                "kind": self.kind.value if self.kind else None,
            },
            "data": self.data,
        }


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================


def batch_started(batch_id: UUID, kind: BatchKind, total: int) -> BatchEvent:
    return BatchEvent(
        event_type=EventType.BATCH_STARTED,
        batch_id=batch_id,
        kind=kind,
        data={"total": total},
    )


def batch_progress(batch_id: UUID, progress: BulkEditProgress) -> BatchEvent:
    return BatchEvent(
        event_type=EventType.BATCH_PROGRESS,
        batch_id=batch_id,
        kind=BatchKind.EDIT,
        data={
            "current": progress.current,
            "total": progress.total,
            "phase": progress.phase.value,
            "percent": progress.percent,
        },
    )


def item_completed(
    batch_id: UUID, kind: BatchKind, entry: BatchResultEntry, index: int, total: int
) -> BatchEvent:
    return BatchEvent(
        event_type=EventType.BATCH_ITEM_COMPLETED,
        batch_id=batch_id,
        kind=kind,
        data={
            "current": index,
            "total": total,
            "bill_id": entry.bill_id,
            "bill_number": entry.bill_number,
            "success": entry.success,
            "error": entry.error,
            "sync_warning": entry.sync_warning,
        },
    )


def batch_completed(
    batch_id: UUID, kind: BatchKind, success: int, failed: int
) -> BatchEvent:
    return BatchEvent(
        event_type=EventType.BATCH_COMPLETED,
        batch_id=batch_id,
        kind=kind,
        data={"success": success, "failed": failed},
    )


def sync_failed(
    batch_id: UUID | None, kind: BatchKind, bill_id: str, error: str
) -> BatchEvent:
    return BatchEvent(
        event_type=EventType.SYNC_FAILED,
        batch_id=batch_id,
        kind=kind,
        data={"bill_id": bill_id, "error": error},
    )


def cache_invalidated(views: list[str]) -> BatchEvent:
    return BatchEvent(event_type=EventType.CACHE_INVALIDATED, data={"views": views})


def error_event(
    message: str,
    details: dict[str, Any] | None = None,
    batch_id: UUID | None = None,
    kind: BatchKind | None = None,
) -> BatchEvent:
    """A batch that could not start, or an error outside any batch."""
    return BatchEvent(
        event_type=EventType.ERROR,
        batch_id=batch_id,
        kind=kind,
        data={"message": message, "details": details or {}},
    )
