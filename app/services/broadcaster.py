"""Fan-out of quote search events to live SSE subscribers."""
from __future__ import annotations

import asyncio
from uuid import uuid4

from loguru import logger

from app.config import settings
from app.models.events import EventType, SSEEvent
from app.services import logger as log_service
from app.services.session_registry import SessionRegistry


class SubscriberClosed(ConnectionError):
    pass


class Subscriber:
    """One SSE connection's inbox of `(event type, JSON message)` pairs.

    Owned by the transport layer; sessions only hold weak references to it.
    """

    def __init__(self, job_id: str, *, maxsize: int | None = None):
        self.id = uuid4().hex[:8]
        self.job_id = job_id
        self._queue: asyncio.Queue[tuple[EventType, str]] = asyncio.Queue(
            maxsize=maxsize if maxsize is not None else settings.subscriber_queue_size
        )
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event_type: EventType, message: str) -> None:
        if self._closed:
            raise SubscriberClosed(f"Subscriber {self.id} is closed")
        self._queue.put_nowait((event_type, message))

    async def receive(self, timeout: float | None = None) -> tuple[EventType, str] | None:
        """Next delivery, or None when `timeout` elapses first."""
        try:
            return await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None

    def close(self) -> None:
        self._closed = True


class ProgressBroadcaster:
    """Deliver events to every subscriber attached to a job's session."""

    def __init__(self, registry: SessionRegistry):
        self.registry = registry

    def subscribe(self, job_id: str, subscriber: Subscriber) -> bool:
        session = self.registry.get(job_id)
        if session is None:
            return False
        session.subscribers.add(subscriber)
        log_service.log_subscriber(job_id, subscriber.id, "attached", len(session.subscribers))
        return True

    def unsubscribe(self, job_id: str, subscriber: Subscriber) -> None:
        subscriber.close()
        session = self.registry.get(job_id)
        if session is not None:
            session.subscribers.discard(subscriber)
            log_service.log_subscriber(job_id, subscriber.id, "detached", len(session.subscribers))

    def broadcast(self, job_id: str, event: SSEEvent) -> int:
        """Send `event` to the job's subscribers; returns how many received it."""
        session = self.registry.get(job_id)
        if session is None:
            return 0

        message = event.to_json()
        delivered = 0
        for subscriber in list(session.subscribers):
            try:
                subscriber.send(event.event, message)
                delivered += 1
            except Exception as exc:
                logger.warning(
                    f"Dropping subscriber {subscriber.id} for job {job_id}: "
                    f"{exc.__class__.__name__}: {exc}"
                )
                session.subscribers.discard(subscriber)
                subscriber.close()
        return delivered
