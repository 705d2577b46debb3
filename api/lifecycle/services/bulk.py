from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from functools import lru_cache

from opentelemetry import trace

from lifecycle.core.auth import ActorRole
from lifecycle.core.config import get_settings
from lifecycle.services.errors import ErrorKind, make_error
from lifecycle.services.lifecycle import LifecycleService, OperationResult, get_lifecycle_service
from lifecycle.services.records import Action

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(slots=True)
class BulkResult:
    results: dict[str, OperationResult] = field(default_factory=dict)

    @property
    def succeeded(self) -> list[str]:
        return [record_id for record_id, result in self.results.items() if result.ok]

    @property
    def failed(self) -> list[str]:
        return [record_id for record_id, result in self.results.items() if not result.ok]

    def counts_by_kind(self) -> dict[str, int]:
        counts: Counter[str] = Counter()
        for result in self.results.values():
            counts["ok" if result.ok or result.error is None else result.error.kind.value] += 1
        return dict(counts)

    def summary(self) -> str:
        total = len(self.results)
        text = f"{len(self.succeeded)} of {total} succeeded"
        failures = {kind: count for kind, count in self.counts_by_kind().items() if kind != "ok"}
        if failures:
            details = ", ".join(f"{count} {kind}" for kind, count in sorted(failures.items()))
            text = f"{text}, {details}"
        return text


class BulkCoordinator:
    """Applies one action to many records with a fixed pool of workers.

    Records are independent: each one goes through
    ``LifecycleService.transition`` on its own, and a failure is recorded in
    the result map instead of stopping the batch. Nothing is rolled back.
    """

    def __init__(self, service: LifecycleService, *, pool_size: int = 8) -> None:
        self.service = service
        self.pool_size = max(1, pool_size)

    async def bulk_transition(
        self,
        record_ids: Iterable[str],
        action: Action | str,
        actor_id: str,
        actor_role: ActorRole | str,
        reason: str | None = None,
        details: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> BulkResult:
        ordered_ids = list(dict.fromkeys(record_ids))
        outcomes: dict[str, OperationResult] = {}
        queue: asyncio.Queue[str] = asyncio.Queue()
        for record_id in ordered_ids:
            queue.put_nowait(record_id)

        async def worker() -> None:
            while True:
                try:
                    record_id = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                if cancel_event is not None and cancel_event.is_set():
                    outcomes[record_id] = OperationResult.failure(make_error(ErrorKind.CANCELLED))
                    continue
                try:
                    outcomes[record_id] = await self.service.transition(
                        record_id,
                        action,
                        actor_id,
                        actor_role,
                        reason=reason,
                        details=details,
                    )
                except Exception as exc:
                    logger.exception("bulk transition failed unexpectedly record_id=%s", record_id)
                    outcomes[record_id] = OperationResult.failure(
                        make_error(ErrorKind.STORE_UNAVAILABLE, type(exc).__name__)
                    )

        with tracer.start_as_current_span("lifecycle.bulk_transition") as span:
            span.set_attribute("lifecycle.bulk.size", len(ordered_ids))
            span.set_attribute("lifecycle.action", str(getattr(action, "value", action)))
            workers = min(self.pool_size, len(ordered_ids))
            await asyncio.gather(*(worker() for _ in range(workers)))

        result = BulkResult(results={record_id: outcomes[record_id] for record_id in ordered_ids})
        logger.info(
            "bulk transition action=%s actor_id=%s: %s",
            getattr(action, "value", action),
            actor_id,
            result.summary(),
        )
        return result


@lru_cache
def get_bulk_coordinator() -> BulkCoordinator:
    settings = get_settings()
    return BulkCoordinator(get_lifecycle_service(), pool_size=settings.bulk_worker_pool_size)
