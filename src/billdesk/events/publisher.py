"""Live batch feed over WebSocket.

Back-office clients connect to watch bulk operations run. On connect a
client receives the state of every batch still in flight. It may then send a
``subscribe`` message to narrow the feed to some batch kinds or batch ids;
the reply carries the current state of each requested batch, including the
final counts of one that already finished, so a late subscriber never has to
replay raw events.

Message from client::

    {"type": "subscribe", "kinds": ["payment"], "batch_ids": ["<uuid>"]}

Events are also passed synchronously to in-process hooks, whether or not the
server is running.
"""

import asyncio
import json
from collections import OrderedDict
from collections.abc import Callable, Coroutine, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import structlog
import websockets
from websockets.asyncio.server import Server, ServerConnection

from billdesk.config import get_settings
from billdesk.events.types import BatchEvent, BatchKind, EventType

logger = structlog.get_logger(__name__)

EventHook = Callable[[BatchEvent], None]


@dataclass
class BatchState:
    """Running counts of one batch, folded from its events."""

    batch_id: UUID
    kind: BatchKind | None
    total: int = 0
    processed: int = 0
    failed: int = 0
    sync_warnings: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    @property
    def finished(self) -> bool:
        return self.finished_at is not None

    def apply(self, event: BatchEvent) -> None:
        data = event.data
        if event.event_type is EventType.BATCH_ITEM_COMPLETED:
            self.processed = data["current"]
            if not data["success"]:
                self.failed += 1
            if data.get("sync_warning"):
                self.sync_warnings += 1
        elif event.event_type is EventType.BATCH_COMPLETED:
            # The completion counts are authoritative
            self.processed = data["success"] + data["failed"]
            self.failed = data["failed"]
            self.finished_at = event.timestamp

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_id": str(self.batch_id),
            "kind": self.kind.value if self.kind else None,
            "total": self.total,
            "processed": self.processed,
            "succeeded": self.processed - self.failed,
            "failed": self.failed,
            "sync_warnings": self.sync_warnings,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass(eq=False)
class Subscriber:
    """One connected client and its filters; empty filters mean everything."""

    websocket: ServerConnection
    kinds: set[BatchKind] = field(default_factory=set)
    batch_ids: set[UUID] = field(default_factory=set)

    def wants(self, event: BatchEvent) -> bool:
        # Events outside any batch (cache invalidation, setup errors) go to all
        if event.batch_id is None:
            return True
        if self.batch_ids and event.batch_id not in self.batch_ids:
            return False
        if self.kinds and event.kind not in self.kinds:
            return False
        return True


def _parse_all(values: Iterable[Any], parse: Callable[[Any], Any]) -> set[Any]:
    parsed = set()
    for value in values:
        try:
            parsed.add(parse(value))
        except (TypeError, ValueError, AttributeError):
            logger.debug("subscription_value_ignored", value=value)
    return parsed


class EventPublisher:
    """Tracks batch progress and fans events out to hooks and WebSocket clients.

    Usage:
        publisher = EventPublisher()
        await publisher.start()
        executor = BulkPaymentExecutor(ledger, publisher=publisher)
        ...
        await publisher.stop()
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        finished_history: int = 50,
    ):
        settings = get_settings()
        self._host = host or settings.ws_host
        self._port = port or settings.ws_port
        self._finished_history = finished_history

        self._server: Server | None = None
        self._subscribers: set[Subscriber] = set()
        self._batches: OrderedDict[UUID, BatchState] = OrderedDict()
        self._hooks: list[EventHook] = []
        self._pending: set[asyncio.Task[None]] = set()

        self._logger = logger.bind(component="event_publisher")

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def in_flight(self) -> list[BatchState]:
        """Batches that started and have not completed, oldest first."""
        return [state for state in self._batches.values() if not state.finished]

    def batch_state(self, batch_id: UUID) -> BatchState | None:
        return self._batches.get(batch_id)

    def add_event_hook(self, hook: EventHook) -> None:
        self._hooks.append(hook)

    def remove_event_hook(self, hook: EventHook) -> None:
        if hook in self._hooks:
            self._hooks.remove(hook)

    # === Publishing ===

    def publish(self, event: BatchEvent) -> None:
        """Record the event, run hooks, and queue delivery to subscribers."""
        self._track(event)

        for hook in list(self._hooks):
            try:
                hook(event)
            except Exception as e:
                self._logger.error(
                    "event_hook_error", event_type=event.event_type.value, error=str(e)
                )

        if self._server is not None and self._subscribers:
            self._spawn(self._broadcast(event))

    def _track(self, event: BatchEvent) -> None:
        if event.batch_id is None:
            return
        if event.event_type is EventType.BATCH_STARTED:
            self._batches[event.batch_id] = BatchState(
                batch_id=event.batch_id,
                kind=event.kind,
                total=event.data.get("total", 0),
                started_at=event.timestamp,
            )
            return

        state = self._batches.get(event.batch_id)
        if state is None:
            return
        state.apply(event)
        if state.finished:
            self._forget_old_batches()

    def _forget_old_batches(self) -> None:
        finished = [batch_id for batch_id, state in self._batches.items() if state.finished]
        for batch_id in finished[: max(0, len(finished) - self._finished_history)]:
            del self._batches[batch_id]

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        """Wait until every queued delivery has been attempted."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _broadcast(self, event: BatchEvent) -> None:
        message = json.dumps(event.to_dict())
        targets = [s for s in list(self._subscribers) if s.wants(event)]
        results = await asyncio.gather(
            *(s.websocket.send(message) for s in targets), return_exceptions=True
        )
        for subscriber, result in zip(targets, results):
            if isinstance(result, websockets.ConnectionClosed):
                self._subscribers.discard(subscriber)
            elif isinstance(result, Exception):
                self._logger.error("event_send_failed", error=str(result))

    # === Server ===

    async def start(self) -> None:
        """Start the WebSocket server."""
        if self._server is not None:
            self._logger.warning("publisher_already_running")
            return

        self._server = await websockets.serve(
            self._serve,
            self._host,
            self._port,
            ping_interval=30,
            ping_timeout=10,
        )
        self._logger.info("publisher_started", address=f"ws://{self._host}:{self._port}")

    async def stop(self) -> None:
        """Deliver queued events, then close every connection and the server."""
        if self._server is None:
            return

        await self.flush()
        server, self._server = self._server, None
        server.close()
        await server.wait_closed()
        self._subscribers.clear()
        self._logger.info("publisher_stopped")

    async def _serve(self, websocket: ServerConnection) -> None:
        subscriber = Subscriber(websocket=websocket)
        self._subscribers.add(subscriber)
        self._logger.info("subscriber_connected", remote=str(websocket.remote_address))

        try:
            await websocket.send(
                json.dumps(
                    {
                        "type": "batches",
                        "batches": [state.to_dict() for state in self.in_flight],
                    }
                )
            )
            async for message in websocket:
                await self._handle_message(subscriber, message)
        except websockets.ConnectionClosed:
            pass
        finally:
            self._subscribers.discard(subscriber)
            self._logger.info("subscriber_disconnected", remote=str(websocket.remote_address))

    async def _handle_message(self, subscriber: Subscriber, message: str | bytes) -> None:
        """Apply a ``subscribe`` message; its filters replace the previous ones."""
        try:
            data = json.loads(message)
        except ValueError:
            self._logger.warning("invalid_message")
            return

        if not isinstance(data, dict) or data.get("type") != "subscribe":
            self._logger.warning("unknown_message", message=str(message)[:100])
            return

        subscriber.kinds = _parse_all(data.get("kinds", []), BatchKind)
        subscriber.batch_ids = _parse_all(data.get("batch_ids", []), UUID)
        known = [self._batches[b] for b in subscriber.batch_ids if b in self._batches]

        await subscriber.websocket.send(
            json.dumps(
                {
                    "type": "subscribed",
                    "kinds": sorted(kind.value for kind in subscriber.kinds),
                    "batch_ids": sorted(str(b) for b in subscriber.batch_ids),
                    "batches": [state.to_dict() for state in known],
                }
            )
        )
