from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

from opentelemetry import trace

from lifecycle.core.auth import Actor, ActorRole, parse_role
from lifecycle.core.config import get_settings
from lifecycle.services.errors import ErrorKind, TransitionError, make_error
from lifecycle.services.notifier import (
    EVENT_ENTITY_TYPES,
    EventDispatcher,
    LifecycleEvent,
    LoggingEventNotifier,
    WebhookEventNotifier,
)
from lifecycle.services.postgres_store import PostgresEntityStore
from lifecycle.services.records import (
    Action,
    ApplicationStatus,
    EntityType,
    HistoryEntry,
    LifecycleRecord,
    ModerationStatus,
    new_application,
    new_job_posting,
    utcnow,
)
from lifecycle.services.store import (
    EntityStore,
    InMemoryEntityStore,
    StoreConflictError,
    StoreError,
    StoreNotFoundError,
    StoreUnavailableError,
)
from lifecycle.services.transitions import Decision, allowed_actions, decide

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

MAX_NOTES_LENGTH = 5000
REVIEWED_MODERATION_STATUSES = {
    ModerationStatus.APPROVED.value,
    ModerationStatus.REJECTED.value,
    ModerationStatus.CHANGES_REQUESTED.value,
}


@dataclass(frozen=True, slots=True)
class OperationResult:
    ok: bool
    record: LifecycleRecord | None = None
    history: tuple[HistoryEntry, ...] = ()
    error: TransitionError | None = None
    attempts: int = 0

    @classmethod
    def success(cls, record: LifecycleRecord, *, attempts: int = 1) -> OperationResult:
        return cls(ok=True, record=record, history=record.history, attempts=attempts)

    @classmethod
    def failure(cls, error: TransitionError, *, attempts: int = 0) -> OperationResult:
        return cls(ok=False, error=error, attempts=attempts)


class LifecycleService:
    """Applies status transitions and notes edits to lifecycle records.

    The service holds no locks. Every write is a compare-and-swap against the
    version that was read; on a lost race the record is re-read and the
    action re-decided, at most ``cas_max_retries`` more times.
    """

    def __init__(
        self,
        store: EntityStore,
        dispatcher: EventDispatcher,
        *,
        cas_max_retries: int = 3,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.cas_max_retries = max(0, cas_max_retries)

    async def transition(
        self,
        record_id: str,
        action: Action | str,
        actor_id: str,
        actor_role: ActorRole | str,
        reason: str | None = None,
        details: str | None = None,
    ) -> OperationResult:
        actor_or_error = self._resolve_actor(actor_id, actor_role)
        if isinstance(actor_or_error, TransitionError):
            return OperationResult.failure(actor_or_error)
        actor = actor_or_error

        with tracer.start_as_current_span("lifecycle.transition") as span:
            span.set_attribute("lifecycle.record_id", record_id)
            span.set_attribute("lifecycle.action", str(getattr(action, "value", action)))
            attempts = 0
            while attempts <= self.cas_max_retries:
                attempts += 1
                try:
                    record = await self.store.get(record_id)
                except StoreError as exc:
                    return OperationResult.failure(self._store_error(exc), attempts=attempts)

                decision = decide(record, action, actor, reason=reason, details=details)
                if isinstance(decision, TransitionError):
                    logger.info(
                        "transition refused record_id=%s action=%s actor_id=%s kind=%s",
                        record_id,
                        getattr(action, "value", action),
                        actor.actor_id,
                        decision.kind.value,
                    )
                    return OperationResult.failure(decision, attempts=attempts)

                updated = record.with_entry(decision.entry)
                try:
                    committed = await self.store.compare_and_swap(record_id, record.version, updated)
                except StoreError as exc:
                    return OperationResult.failure(self._store_error(exc), attempts=attempts)

                if committed:
                    logger.info(
                        "transition committed record_id=%s %s version=%s",
                        record_id,
                        decision.summary,
                        updated.version,
                    )
                    self._emit(updated, decision)
                    span.set_attribute("lifecycle.attempts", attempts)
                    return OperationResult.success(updated, attempts=attempts)

                logger.info(
                    "transition lost version race record_id=%s expected_version=%s attempt=%s",
                    record_id,
                    record.version,
                    attempts,
                )

            span.set_attribute("lifecycle.attempts", attempts)
            logger.warning("transition conflict after %s attempts record_id=%s", attempts, record_id)
            return OperationResult.failure(make_error(ErrorKind.CONFLICT), attempts=attempts)

    async def update_notes(self, record_id: str, actor_id: str, notes: str) -> OperationResult:
        if not actor_id or not actor_id.strip():
            return OperationResult.failure(make_error(ErrorKind.FORBIDDEN, "actor id is required"))
        if len(notes) > MAX_NOTES_LENGTH:
            return OperationResult.failure(
                make_error(ErrorKind.VALIDATION, f"notes exceed {MAX_NOTES_LENGTH} characters")
            )

        with tracer.start_as_current_span("lifecycle.update_notes") as span:
            span.set_attribute("lifecycle.record_id", record_id)
            attempts = 0
            while attempts <= self.cas_max_retries:
                attempts += 1
                try:
                    record = await self.store.get(record_id)
                    updated = record.with_notes(notes, at=utcnow())
                    committed = await self.store.compare_and_swap(record_id, record.version, updated)
                except StoreError as exc:
                    return OperationResult.failure(self._store_error(exc), attempts=attempts)
                if committed:
                    logger.info("notes updated record_id=%s actor_id=%s version=%s", record_id, actor_id, updated.version)
                    return OperationResult.success(updated, attempts=attempts)

            logger.warning("notes update conflict after %s attempts record_id=%s", attempts, record_id)
            return OperationResult.failure(make_error(ErrorKind.CONFLICT), attempts=attempts)

    async def get_record(self, record_id: str) -> OperationResult:
        try:
            record = await self.store.get(record_id)
        except StoreError as exc:
            return OperationResult.failure(self._store_error(exc))
        return OperationResult.success(record, attempts=0)

    async def get_history(self, record_id: str) -> OperationResult:
        return await self.get_record(record_id)

    async def get_allowed_actions(self, record_id: str) -> tuple[OperationResult, list[Action]]:
        result = await self.get_record(record_id)
        if not result.ok or result.record is None:
            return result, []
        return result, allowed_actions(result.record)

    async def register_application(
        self,
        *,
        job_id: str,
        candidate_id: str,
        match_score: int,
        record_id: str | None = None,
    ) -> OperationResult:
        if not 0 <= match_score <= 100:
            return OperationResult.failure(make_error(ErrorKind.VALIDATION, "match_score must be between 0 and 100"))
        record = new_application(job_id=job_id, candidate_id=candidate_id, match_score=match_score, record_id=record_id)
        return await self._insert(record)

    async def register_job_posting(
        self,
        *,
        title: str,
        company: str,
        recruiter_id: str,
        location: str | None = None,
        flag_count: int = 0,
        flag_reasons: list[str] | None = None,
        record_id: str | None = None,
    ) -> OperationResult:
        if flag_count < 0:
            return OperationResult.failure(make_error(ErrorKind.VALIDATION, "flag_count must be non-negative"))
        record = new_job_posting(
            title=title,
            company=company,
            recruiter_id=recruiter_id,
            location=location,
            flag_count=flag_count,
            flag_reasons=flag_reasons or [],
            record_id=record_id,
        )
        return await self._insert(record)

    async def list_applications(
        self,
        *,
        job_id: str | None = None,
        status: ApplicationStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LifecycleRecord]:
        return await self.store.list_records(
            entity_type=EntityType.APPLICATION,
            statuses={status.value} if status else None,
            job_id=job_id,
            sort_by="match_score",
            limit=limit,
            offset=offset,
        )

    async def list_moderation_queue(self, *, limit: int = 50, offset: int = 0) -> list[LifecycleRecord]:
        return await self.store.list_records(
            entity_type=EntityType.JOB_POSTING,
            statuses={ModerationStatus.PENDING.value},
            sort_by="flag_count",
            limit=limit,
            offset=offset,
        )

    async def list_moderation_history(
        self,
        *,
        status: ModerationStatus | None = None,
        moderator_id: str | None = None,
        q: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LifecycleRecord]:
        if status is not None and status is ModerationStatus.PENDING:
            return []
        return await self.store.list_records(
            entity_type=EntityType.JOB_POSTING,
            statuses={status.value} if status else REVIEWED_MODERATION_STATUSES,
            reviewer_id=moderator_id,
            q=q,
            sort_by="updated_at",
            limit=limit,
            offset=offset,
        )

    async def flush_events(self) -> None:
        await self.dispatcher.flush()

    async def _insert(self, record: LifecycleRecord) -> OperationResult:
        try:
            stored = await self.store.insert(record)
        except StoreConflictError as exc:
            return OperationResult.failure(make_error(ErrorKind.VALIDATION, str(exc)))
        except StoreError as exc:
            return OperationResult.failure(self._store_error(exc))
        logger.info("record registered record_id=%s entity_type=%s", stored.id, stored.entity_type.value)
        return OperationResult.success(stored, attempts=1)

    def _emit(self, record: LifecycleRecord, decision: Decision) -> None:
        event = LifecycleEvent(
            record_id=record.id,
            entity_type=EVENT_ENTITY_TYPES[record.entity_type],
            previous_status=decision.previous_status,
            new_status=decision.next_status,
            actor_id=decision.entry.actor_id,
            timestamp=decision.entry.timestamp,
            note=decision.entry.note,
        )
        self.dispatcher.dispatch(event)

    @staticmethod
    def _resolve_actor(actor_id: str, actor_role: ActorRole | str) -> Actor | TransitionError:
        if not actor_id or not actor_id.strip():
            return make_error(ErrorKind.FORBIDDEN, "actor id is required")
        role = parse_role(actor_role)
        if role is None:
            return make_error(ErrorKind.FORBIDDEN, f"unknown role: {actor_role}")
        return Actor(actor_id=actor_id.strip(), role=role)

    @staticmethod
    def _store_error(exc: StoreError) -> TransitionError:
        if isinstance(exc, StoreNotFoundError):
            return make_error(ErrorKind.NOT_FOUND)
        if isinstance(exc, StoreUnavailableError):
            logger.error("store unavailable: %s", exc)
            return make_error(ErrorKind.STORE_UNAVAILABLE)
        logger.error("unexpected store error: %s", exc)
        return make_error(ErrorKind.STORE_UNAVAILABLE, str(exc))


@lru_cache
def get_store() -> EntityStore:
    settings = get_settings()
    if settings.store_backend == "postgres":
        return PostgresEntityStore(
            database_url=settings.database_url,
            min_pool_size=settings.database_pool_min_size,
            max_pool_size=settings.database_pool_max_size,
        )
    return InMemoryEntityStore()


@lru_cache
def get_event_dispatcher() -> EventDispatcher:
    settings = get_settings()
    if settings.notifier_webhook_url:
        notifier = WebhookEventNotifier(
            settings.notifier_webhook_url,
            timeout_seconds=settings.notifier_timeout_seconds,
        )
    else:
        notifier = LoggingEventNotifier()
    return EventDispatcher(
        notifier,
        max_attempts=settings.notifier_max_attempts,
        retry_base_seconds=settings.notifier_retry_base_seconds,
        retry_max_seconds=settings.notifier_retry_max_seconds,
    )


@lru_cache
def get_lifecycle_service() -> LifecycleService:
    settings = get_settings()
    return LifecycleService(
        get_store(),
        get_event_dispatcher(),
        cas_max_retries=settings.cas_max_retries,
    )
