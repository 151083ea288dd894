"""Batch progress events and their WebSocket publisher."""

from billdesk.events.publisher import BatchState, EventPublisher, Subscriber
from billdesk.events.types import (
    BatchEvent,
    BatchKind,
    EventType,
    batch_completed,
    batch_progress,
    batch_started,
    cache_invalidated,
    error_event,
    item_completed,
    sync_failed,
)

__all__ = [
    "BatchEvent",
    "BatchKind",
    "BatchState",
    "EventPublisher",
    "EventType",
    "batch_completed",
    "batch_progress",
    "batch_started",
    "cache_invalidated",
    "error_event",
    "item_completed",
    "Subscriber",
    "sync_failed",
]
