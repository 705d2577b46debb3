from __future__ import annotations

import asyncio
import threading
from typing import Literal, Protocol

from lifecycle.services.records import Application, EntityType, JobPosting, LifecycleRecord

RecordSortBy = Literal["created_at", "updated_at", "match_score", "flag_count"]


class StoreError(Exception):
    """Base store error."""


class StoreUnavailableError(StoreError):
    """Raised when the backing store is unreachable or not configured."""


class StoreNotFoundError(StoreError):
    """Raised when the requested record does not exist."""


class StoreConflictError(StoreError):
    """Raised when inserting a record whose id already exists."""


class EntityStore(Protocol):
    """Persistence contract for lifecycle records.

    ``compare_and_swap`` is the only write primitive used for mutations: it
    stores ``new_record`` only if the stored version still equals
    ``expected_version`` and reports whether it did.
    """

    async def get(self, record_id: str) -> LifecycleRecord: ...

    async def compare_and_swap(self, record_id: str, expected_version: int, new_record: LifecycleRecord) -> bool: ...

    async def insert(self, record: LifecycleRecord) -> LifecycleRecord: ...

    async def list_records(
        self,
        *,
        entity_type: EntityType,
        statuses: set[str] | None = None,
        job_id: str | None = None,
        reviewer_id: str | None = None,
        q: str | None = None,
        sort_by: RecordSortBy = "created_at",
        limit: int = 50,
        offset: int = 0,
    ) -> list[LifecycleRecord]: ...

    async def close(self) -> None: ...


class InMemoryEntityStore:
    """Reference store keeping records in a dict.

    Each primitive runs under a lock, so the store stays consistent when
    shared between threads as well as tasks.
    """

    def __init__(self, *, latency_seconds: float = 0.0) -> None:
        self.latency_seconds = max(0.0, latency_seconds)
        self.cas_failures = 0
        self._records: dict[str, LifecycleRecord] = {}
        self._lock = threading.Lock()

    async def get(self, record_id: str) -> LifecycleRecord:
        await asyncio.sleep(self.latency_seconds)
        with self._lock:
            record = self._records.get(record_id)
        if record is None:
            raise StoreNotFoundError(f"record not found: {record_id}")
        return record

    async def compare_and_swap(self, record_id: str, expected_version: int, new_record: LifecycleRecord) -> bool:
        await asyncio.sleep(self.latency_seconds)
        with self._lock:
            current = self._records.get(record_id)
            if current is None:
                raise StoreNotFoundError(f"record not found: {record_id}")
            if current.version != expected_version:
                self.cas_failures += 1
                return False
            self._records[record_id] = new_record
            return True

    async def insert(self, record: LifecycleRecord) -> LifecycleRecord:
        with self._lock:
            if record.id in self._records:
                raise StoreConflictError(f"record already exists: {record.id}")
            self._records[record.id] = record
        return record

    async def list_records(
        self,
        *,
        entity_type: EntityType,
        statuses: set[str] | None = None,
        job_id: str | None = None,
        reviewer_id: str | None = None,
        q: str | None = None,
        sort_by: RecordSortBy = "created_at",
        limit: int = 50,
        offset: int = 0,
    ) -> list[LifecycleRecord]:
        with self._lock:
            rows = [record for record in self._records.values() if record.entity_type is entity_type]

        if statuses:
            rows = [record for record in rows if record.status.value in statuses]
        if job_id:
            rows = [record for record in rows if isinstance(record, Application) and record.job_id == job_id]
        if reviewer_id:
            rows = [record for record in rows if record.history[-1].actor_id == reviewer_id]
        if q:
            needle = q.lower()
            rows = [
                record
                for record in rows
                if isinstance(record, JobPosting)
                and (needle in record.title.lower() or needle in record.company.lower())
            ]

        rows.sort(key=_sort_key(sort_by))
        return rows[offset : offset + limit]

    async def close(self) -> None:
        return None


def _sort_key(sort_by: RecordSortBy):
    if sort_by == "match_score":
        return lambda record: (-getattr(record, "match_score", 0), record.created_at)
    if sort_by == "flag_count":
        return lambda record: (-getattr(record, "flag_count", 0), getattr(record, "submitted_at", record.created_at))
    if sort_by == "updated_at":
        return lambda record: -record.updated_at.timestamp()
    return lambda record: record.created_at
