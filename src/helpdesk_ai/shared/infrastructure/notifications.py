"""
Notification Delivery
=====================

Outbound user notifications.

``NotificationDispatcher`` implements ``INotifier`` by putting events on an
``asyncio.Queue``; a background worker hands them to a delivery sink. The
caller of ``notify_user`` never waits for delivery.

``WebhookNotificationSink`` posts events to an HTTP webhook with a circuit
breaker and exponential backoff retry.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from helpdesk_ai.config import settings
from helpdesk_ai.core.ports import INotifier
from helpdesk_ai.shared.infrastructure.logging import get_logger
from helpdesk_ai.shared.infrastructure.resilience import CircuitBreaker

logger = get_logger(__name__)


@dataclass
class NotificationEvent:
    """A single user notification."""
    user_id: str
    event: str
    payload: dict[str, Any]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "event": self.event,
            "payload": self.payload,
            "created_at": self.created_at.isoformat(),
        }


class INotificationSink(ABC):
    """Where dispatched notifications end up."""

    @abstractmethod
    async def deliver(self, event: NotificationEvent) -> bool:
        """Deliver one event; return True on success."""

    async def close(self) -> None:
        """Release transport resources."""


class LoggingNotificationSink(INotificationSink):
    """Sink used when no webhook is configured: records the event in the log."""

    async def deliver(self, event: NotificationEvent) -> bool:
        logger.info(
            "Notification emitted",
            extra={"user_id": event.user_id, "event": event.event}
        )
        return True


class WebhookNotificationSink(INotificationSink):
    """
    HTTP webhook sink with circuit breaker and retry logic.

    Handles:
    - Circuit breaker to prevent cascade failures
    - Exponential backoff retry
    - Timeout handling
    """

    def __init__(
        self,
        webhook_url: str,
        timeout_seconds: Optional[float] = None,
        max_retries: int = 3,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self._webhook_url = webhook_url
        self._timeout = timeout_seconds or settings.notification_timeout_seconds
        self._max_retries = max_retries
        self._circuit_breaker = CircuitBreaker("notification-webhook", failure_threshold=5, recovery_timeout=60)
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def deliver(self, event: NotificationEvent) -> bool:
        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, dropping notification",
                extra={"user_id": event.user_id, "event": event.event}
            )
            return False

        body = event.to_dict()
        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._webhook_url, json=body)
                if response.is_success:
                    self._circuit_breaker.record_success()
                    return True
                logger.warning(
                    "Notification webhook returned non-2xx",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )
            except httpx.HTTPError as e:
                logger.error(
                    "Notification delivery failed",
                    extra={"error": str(e), "attempt": attempt + 1, "event": event.event}
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(2 ** attempt)

        self._circuit_breaker.record_failure()
        return False

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class NotificationDispatcher(INotifier):
    """
    Queue-backed notifier.

    ``notify_user`` enqueues and returns immediately; ``start`` launches the
    worker that drains the queue into the sink. A full queue drops the event
    with a warning rather than blocking the caller.
    """

    def __init__(self, sink: INotificationSink, max_queue_size: Optional[int] = None):
        self._sink = sink
        self._queue: asyncio.Queue[NotificationEvent] = asyncio.Queue(
            maxsize=max_queue_size or settings.notification_queue_size
        )
        self._worker: Optional[asyncio.Task] = None
        self.delivered = 0
        self.failed = 0

    async def notify_user(self, user_id: str, event: str, payload: dict[str, Any]) -> None:
        try:
            self._queue.put_nowait(NotificationEvent(user_id=user_id, event=event, payload=payload))
        except asyncio.QueueFull:
            logger.warning(
                "Notification queue full, dropping event",
                extra={"user_id": user_id, "event": event}
            )

    def start(self) -> None:
        """Start the delivery worker on the running loop."""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="notification-dispatcher")

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                if await self._sink.deliver(event):
                    self.delivered += 1
                else:
                    self.failed += 1
            except Exception:
                self.failed += 1
                logger.exception(
                    "Notification sink raised",
                    extra={"user_id": event.user_id, "event": event.event}
                )
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued event has been handed to the sink."""
        await self._queue.join()

    async def stop(self) -> None:
        """Drain pending events, cancel the worker and close the sink."""
        if self._worker is None:
            return
        await self.drain()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        await self._sink.close()

    @property
    def pending(self) -> int:
        return self._queue.qsize()
