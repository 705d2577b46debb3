from __future__ import annotations

import asyncio
import os
from collections.abc import Coroutine
from typing import Any, TypeVar

import asyncpg  # type: ignore[import-untyped]
import pytest

from lifecycle.services.bulk import BulkCoordinator
from lifecycle.services.errors import ErrorKind
from lifecycle.services.lifecycle import LifecycleService
from lifecycle.services.notifier import EventDispatcher, InMemoryEventNotifier
from lifecycle.services.postgres_store import PostgresEntityStore
from lifecycle.services.records import ApplicationStatus, EntityType, ModerationStatus

T = TypeVar("T")


@pytest.fixture(scope="session")
def database_url() -> str:
    url = os.getenv("LC_DATABASE_URL")
    if not url:
        pytest.skip("integration tests require LC_DATABASE_URL")
    return url


@pytest.fixture(autouse=True)
def reset_table(database_url: str) -> None:
    _run(_reset_lifecycle_table(database_url))


def _run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


async def _reset_lifecycle_table(database_url: str) -> None:
    store = PostgresEntityStore(database_url=database_url, min_pool_size=1, max_pool_size=1)
    try:
        await store.ensure_schema()
    finally:
        await store.close()

    conn = await asyncpg.connect(database_url)
    try:
        await conn.execute("truncate table lifecycle_records")
    finally:
        await conn.close()


def test_postgres_application_flow_with_history(database_url: str) -> None:
    async def scenario() -> None:
        store = PostgresEntityStore(database_url=database_url, min_pool_size=1, max_pool_size=4)
        notifier = InMemoryEventNotifier()
        service = LifecycleService(store, EventDispatcher(notifier, retry_base_seconds=0.0))
        try:
            created = await service.register_application(
                job_id="job-1", candidate_id="cand-1", match_score=85, record_id="app-1"
            )
            assert created.ok

            reviewed = await service.transition("app-1", "mark_reviewed", "rec-1", "recruiter")
            rejected = await service.transition(
                "app-1", "reject", "rec-1", "recruiter", reason="Position filled"
            )
            again = await service.transition("app-1", "accept", "rec-1", "recruiter")
            await service.flush_events()

            assert reviewed.ok and rejected.ok
            assert again.error is not None and again.error.kind is ErrorKind.INVALID_TRANSITION

            stored = await store.get("app-1")
            assert stored.status is ApplicationStatus.REJECTED
            assert stored.version == 3
            assert [entry.status for entry in stored.history] == ["pending", "reviewed", "rejected"]
            assert stored.history[-1].note == "Position filled"
            assert len(notifier.events) == 2
        finally:
            await store.close()

    _run(scenario())


def test_postgres_cas_allows_single_winner(database_url: str) -> None:
    async def scenario() -> None:
        store = PostgresEntityStore(database_url=database_url, min_pool_size=1, max_pool_size=8)
        service = LifecycleService(store, EventDispatcher(InMemoryEventNotifier(), retry_base_seconds=0.0))
        try:
            await service.register_job_posting(
                title="Senior Backend Engineer", company="TechCorp", recruiter_id="rec-1", record_id="post-1"
            )
            outcomes = await asyncio.gather(
                service.transition("post-1", "approve", "mod-1", "moderator"),
                service.transition("post-1", "reject", "mod-2", "moderator", reason="spam_scam"),
            )
            await service.flush_events()

            assert sum(1 for outcome in outcomes if outcome.ok) == 1
            loser = next(outcome for outcome in outcomes if not outcome.ok)
            assert loser.error is not None and loser.error.kind is ErrorKind.INVALID_TRANSITION

            stored = await store.get("post-1")
            assert stored.version == 2
            assert len(stored.history) == 2
        finally:
            await store.close()

    _run(scenario())


def test_postgres_bulk_and_listings(database_url: str) -> None:
    async def scenario() -> None:
        store = PostgresEntityStore(database_url=database_url, min_pool_size=1, max_pool_size=8)
        service = LifecycleService(store, EventDispatcher(InMemoryEventNotifier(), retry_base_seconds=0.0))
        coordinator = BulkCoordinator(service, pool_size=4)
        try:
            for index, flags in enumerate([0, 5, 2]):
                await service.register_job_posting(
                    title=f"Offer {index}",
                    company="Acme",
                    recruiter_id="rec-1",
                    flag_count=flags,
                    record_id=f"post-{index}",
                )

            queue = await service.list_moderation_queue()
            assert [record.id for record in queue] == ["post-1", "post-2", "post-0"]

            result = await coordinator.bulk_transition(["post-0", "post-1", "missing"], "approve", "mod-1", "moderator")
            await service.flush_events()
            assert result.summary() == "2 of 3 succeeded, 1 NotFound"

            reviewed = await service.list_moderation_history(moderator_id="mod-1")
            assert {record.id for record in reviewed} == {"post-0", "post-1"}
            assert all(record.status is ModerationStatus.APPROVED for record in reviewed)

            matches = await store.list_records(entity_type=EntityType.JOB_POSTING, q="offer 2")
            assert [record.id for record in matches] == ["post-2"]
        finally:
            await store.close()

    _run(scenario())
