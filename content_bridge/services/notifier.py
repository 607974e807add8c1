"""Real-time progress notifications for observer connections."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from content_bridge.utils.helpers import isoformat, utcnow

LOGGER = logging.getLogger(__name__)

# Maximum number of undelivered events buffered per connection
_MAX_PENDING_EVENTS = 100


class ObserverConnection(Protocol):
    """Anything that can push a JSON message to a client (e.g. a WebSocket)."""

    async def send_json(self, data: Any) -> None:
        ...


def build_event(event_type: str, job_id: Optional[str] = None, **fields: Any) -> Dict[str, Any]:
    """Build an event message carrying its type, job id and ISO-8601 timestamp."""
    event: Dict[str, Any] = {"type": event_type}
    if job_id is not None:
        event["jobId"] = job_id
    event.update(fields)
    event["timestamp"] = isoformat(utcnow())
    return event


def connected_event() -> Dict[str, Any]:
    return build_event("connected")


def job_started_event(job_id: str, total_items: int) -> Dict[str, Any]:
    return build_event("job-started", job_id, totalItems=total_items)


def translation_progress_event(
    job_id: str,
    progress: int,
    processed_items: int,
    total_items: int,
    errors: List[Dict[str, Any]],
) -> Dict[str, Any]:
    return build_event(
        "translation-progress",
        job_id,
        progress=progress,
        processedItems=processed_items,
        totalItems=total_items,
        errors=errors,
    )


def item_completed_event(job_id: str, item_id: str, status: str, progress: int) -> Dict[str, Any]:
    return build_event("item-completed", job_id, itemId=item_id, status=status, progress=progress)


def job_completed_event(job_id: str, summary: Dict[str, Any]) -> Dict[str, Any]:
    return build_event("job-completed", job_id, summary=summary)


def error_occurred_event(
    job_id: str, item_id: str, message: str, code: Optional[str] = None
) -> Dict[str, Any]:
    return build_event(
        "error-occurred",
        job_id,
        itemId=item_id,
        error={"message": message, "code": code or "UNKNOWN_ERROR"},
    )


@dataclass
class Subscription:
    """A registered observer and its delivery state."""

    id: str
    connection: ObserverConnection
    job_id: Optional[str] = None
    open: bool = True
    queue: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(maxsize=_MAX_PENDING_EVENTS))
    _writer: Optional[asyncio.Task] = field(default=None, repr=False)

    def offer(self, event: Dict[str, Any]) -> bool:
        """Queue an event without waiting; drop it when the buffer is full."""
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            LOGGER.warning("Event queue full for connection %s; dropping %s", self.id, event.get("type"))
            return False
        return True


class ProgressNotifier:
    """Registry of observer connections, optionally tagged with one job id.

    Publishing never waits on a connection: events are queued per connection
    and written by a dedicated task. A connection whose write fails is
    removed from the registry.
    """

    def __init__(self) -> None:
        self._subscriptions: Dict[str, Subscription] = {}

    @property
    def connection_count(self) -> int:
        return len(self._subscriptions)

    def register(self, connection: ObserverConnection, connection_id: Optional[str] = None) -> str:
        """Add a connection and queue its ``connected`` event.

        Must be called from a running event loop.
        """
        connection_id = connection_id or str(uuid.uuid4())
        subscription = Subscription(id=connection_id, connection=connection)
        subscription._writer = asyncio.get_running_loop().create_task(self._pump(subscription))
        self._subscriptions[connection_id] = subscription
        subscription.offer(connected_event())
        LOGGER.info("Observer %s connected (%d total)", connection_id, len(self._subscriptions))
        return connection_id

    def subscribe(self, connection_id: str, job_id: str) -> bool:
        """Tag a connection so it only receives events for ``job_id``."""
        subscription = self._subscriptions.get(connection_id)
        if subscription is None:
            return False
        subscription.job_id = job_id
        LOGGER.debug("Observer %s subscribed to job %s", connection_id, job_id)
        return True

    def send(self, connection_id: str, event: Dict[str, Any]) -> bool:
        """Queue an event for a single connection."""
        subscription = self._subscriptions.get(connection_id)
        if subscription is None or not subscription.open:
            return False
        return subscription.offer(event)

    def unregister(self, connection_id: str) -> None:
        subscription = self._subscriptions.pop(connection_id, None)
        if subscription is None:
            return
        subscription.open = False
        if subscription._writer is not None and subscription._writer is not asyncio.current_task():
            subscription._writer.cancel()
        LOGGER.info("Observer %s disconnected (%d total)", connection_id, len(self._subscriptions))

    def publish(self, job_id: str, event: Dict[str, Any]) -> int:
        """Queue ``event`` for every open connection subscribed to ``job_id``.

        Returns:
            Number of connections the event was queued for.
        """
        delivered = 0
        for subscription in list(self._subscriptions.values()):
            if subscription.open and subscription.job_id == job_id:
                delivered += subscription.offer(event)
        LOGGER.debug("Event %s for job %s queued for %d observers", event.get("type"), job_id, delivered)
        return delivered

    def broadcast(self, event: Dict[str, Any]) -> int:
        """Queue ``event`` for every open connection regardless of subscription."""
        delivered = 0
        for subscription in list(self._subscriptions.values()):
            if subscription.open:
                delivered += subscription.offer(event)
        LOGGER.debug("Event %s broadcast to %d observers", event.get("type"), delivered)
        return delivered

    async def close(self) -> None:
        """Stop every writer task and clear the registry."""
        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        writers = []
        for subscription in subscriptions:
            subscription.open = False
            if subscription._writer is not None:
                subscription._writer.cancel()
                writers.append(subscription._writer)
        if writers:
            await asyncio.gather(*writers, return_exceptions=True)

    async def _pump(self, subscription: Subscription) -> None:
        """Write queued events to the connection until it fails or is removed."""
        while subscription.open:
            event = await subscription.queue.get()
            try:
                await subscription.connection.send_json(event)
            except Exception as exc:
                LOGGER.info("Dropping observer %s after failed write: %s", subscription.id, exc)
                self.unregister(subscription.id)
                return
