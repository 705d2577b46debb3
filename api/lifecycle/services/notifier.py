from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

import httpx

from lifecycle.services.records import EntityType

logger = logging.getLogger(__name__)

# Entity type names as published in change events.
EVENT_ENTITY_TYPES = {
    EntityType.APPLICATION: "application",
    EntityType.JOB_POSTING: "jobPosting",
}


@dataclass(frozen=True, slots=True)
class LifecycleEvent:
    record_id: str
    entity_type: str
    previous_status: str
    new_status: str
    actor_id: str
    timestamp: datetime
    note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "entity_type": self.entity_type,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "actor_id": self.actor_id,
            "timestamp": self.timestamp.isoformat(),
            "note": self.note,
        }


class EventNotifier(Protocol):
    async def publish(self, event: LifecycleEvent) -> None: ...


class LoggingEventNotifier:
    """Default sink when no webhook is configured."""

    async def publish(self, event: LifecycleEvent) -> None:
        logger.info(
            "lifecycle event record_id=%s entity_type=%s %s -> %s actor_id=%s",
            event.record_id,
            event.entity_type,
            event.previous_status,
            event.new_status,
            event.actor_id,
        )


class InMemoryEventNotifier:
    def __init__(self) -> None:
        self.events: list[LifecycleEvent] = []

    async def publish(self, event: LifecycleEvent) -> None:
        self.events.append(event)


class WebhookEventNotifier:
    def __init__(self, url: str, *, timeout_seconds: float = 5.0, client: httpx.AsyncClient | None = None) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._client = client

    async def publish(self, event: LifecycleEvent) -> None:
        if self._client is not None:
            response = await self._client.post(self.url, json=event.to_dict())
            response.raise_for_status()
            return

        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.post(self.url, json=event.to_dict())
            response.raise_for_status()


class EventDispatcher:
    """Hands events to a notifier in background tasks.

    Dispatching never blocks the caller. Each event is retried with
    exponential backoff up to ``max_attempts``; a delivery that still fails
    is logged and dropped.
    """

    def __init__(
        self,
        notifier: EventNotifier,
        *,
        max_attempts: int = 3,
        retry_base_seconds: float = 0.5,
        retry_max_seconds: float = 10.0,
    ) -> None:
        self.notifier = notifier
        self.max_attempts = max(1, max_attempts)
        self.retry_base_seconds = max(0.0, retry_base_seconds)
        self.retry_max_seconds = max(0.0, retry_max_seconds)
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def dispatch(self, event: LifecycleEvent) -> None:
        task = asyncio.get_running_loop().create_task(self._deliver(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver(self, event: LifecycleEvent) -> None:
        for attempt in range(1, self.max_attempts + 1):
            try:
                await self.notifier.publish(event)
                return
            except Exception as exc:
                if attempt >= self.max_attempts:
                    logger.error(
                        "event delivery failed record_id=%s new_status=%s attempts=%s: %s",
                        event.record_id,
                        event.new_status,
                        attempt,
                        exc,
                    )
                    return
                delay = self._compute_retry_delay_seconds(attempt=attempt)
                logger.warning(
                    "event delivery attempt %s failed record_id=%s; retry in %.2fs: %s",
                    attempt,
                    event.record_id,
                    delay,
                    exc,
                )
                await asyncio.sleep(delay)

    def _compute_retry_delay_seconds(self, *, attempt: int) -> float:
        if self.retry_base_seconds <= 0:
            return 0.0
        multiplier = max(0, attempt - 1)
        delay = self.retry_base_seconds * (2**multiplier)
        return min(delay, self.retry_max_seconds)
