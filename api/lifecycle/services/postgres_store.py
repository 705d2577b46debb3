from __future__ import annotations

import json
from typing import Any

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from lifecycle.services.records import EntityType, LifecycleRecord, record_from_dict, record_to_dict
from lifecycle.services.store import (
    RecordSortBy,
    StoreConflictError,
    StoreNotFoundError,
    StoreUnavailableError,
)

SCHEMA_SQL = """
create table if not exists lifecycle_records (
  id text primary key,
  entity_type text not null check (entity_type in ('application', 'job_posting')),
  status text not null,
  version integer not null check (version >= 1),
  job_id text,
  candidate_id text,
  match_score integer check (match_score between 0 and 100),
  title text,
  company text,
  recruiter_id text,
  location text,
  flag_count integer not null default 0 check (flag_count >= 0),
  flag_reasons text[] not null default '{}',
  notes text not null default '',
  history jsonb not null,
  submitted_at timestamptz,
  created_at timestamptz not null default now(),
  updated_at timestamptz not null default now()
);

create index if not exists lifecycle_records_type_status_idx
  on lifecycle_records (entity_type, status);

create index if not exists lifecycle_records_job_id_idx
  on lifecycle_records (job_id)
  where entity_type = 'application';
"""

_SELECT_COLUMNS = """
  id,
  entity_type,
  status,
  version,
  job_id,
  candidate_id,
  match_score,
  title,
  company,
  recruiter_id,
  location,
  flag_count,
  flag_reasons,
  notes,
  history,
  submitted_at,
  created_at,
  updated_at
"""

_STORE_IO_ERRORS = (OSError, asyncpg.PostgresError, asyncpg.InterfaceError)


class PostgresEntityStore:
    """Entity store backed by a single ``lifecycle_records`` table.

    History lives in a jsonb column of the same row, so a CAS update commits
    status, version and the new history entry atomically.
    """

    def __init__(self, database_url: str | None, min_pool_size: int, max_pool_size: int) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def ensure_schema(self) -> None:
        pool = await self._get_pool()
        try:
            await pool.execute(SCHEMA_SQL)
        except _STORE_IO_ERRORS as exc:
            raise StoreUnavailableError("could not create lifecycle schema") from exc

    async def get(self, record_id: str) -> LifecycleRecord:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                select {_SELECT_COLUMNS}
                from lifecycle_records
                where id = $1
                """,
                record_id,
            )
        except _STORE_IO_ERRORS as exc:
            raise StoreUnavailableError("database unavailable") from exc
        if not row:
            raise StoreNotFoundError(f"record not found: {record_id}")
        return record_from_dict(self._row_to_dict(row))

    async def compare_and_swap(self, record_id: str, expected_version: int, new_record: LifecycleRecord) -> bool:
        payload = record_to_dict(new_record)
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                result = await conn.execute(
                    """
                    update lifecycle_records
                    set
                      status = $3,
                      version = $4,
                      notes = $5,
                      history = $6::jsonb,
                      updated_at = $7
                    where id = $1
                      and version = $2
                    """,
                    record_id,
                    expected_version,
                    payload["status"],
                    new_record.version,
                    new_record.notes,
                    json.dumps(payload["history"]),
                    new_record.updated_at,
                )
                if _affected_rows(result) == 1:
                    return True
                exists = await conn.fetchval("select 1 from lifecycle_records where id = $1", record_id)
        except _STORE_IO_ERRORS as exc:
            raise StoreUnavailableError("database unavailable") from exc

        if not exists:
            raise StoreNotFoundError(f"record not found: {record_id}")
        return False

    async def insert(self, record: LifecycleRecord) -> LifecycleRecord:
        payload = record_to_dict(record)
        pool = await self._get_pool()
        try:
            await pool.execute(
                """
                insert into lifecycle_records (
                  id,
                  entity_type,
                  status,
                  version,
                  job_id,
                  candidate_id,
                  match_score,
                  title,
                  company,
                  recruiter_id,
                  location,
                  flag_count,
                  flag_reasons,
                  notes,
                  history,
                  submitted_at,
                  created_at,
                  updated_at
                )
                values ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15::jsonb, $16, $17, $18)
                """,
                record.id,
                payload["entity_type"],
                payload["status"],
                record.version,
                payload.get("job_id"),
                payload.get("candidate_id"),
                payload.get("match_score"),
                payload.get("title"),
                payload.get("company"),
                payload.get("recruiter_id"),
                payload.get("location"),
                payload.get("flag_count", 0),
                payload.get("flag_reasons", []),
                record.notes,
                json.dumps(payload["history"]),
                getattr(record, "submitted_at", None),
                record.created_at,
                record.updated_at,
            )
        except pg_exc.UniqueViolationError as exc:
            raise StoreConflictError(f"record already exists: {record.id}") from exc
        except _STORE_IO_ERRORS as exc:
            raise StoreUnavailableError("database unavailable") from exc
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
        pool = await self._get_pool()
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        conditions = [f"entity_type = {bind(entity_type.value)}"]
        if statuses:
            conditions.append(f"status = any({bind(sorted(statuses))}::text[])")
        if job_id:
            conditions.append(f"job_id = {bind(job_id)}")
        if reviewer_id:
            conditions.append(f"history -> -1 ->> 'actor_id' = {bind(reviewer_id)}")
        if q:
            token = bind(f"%{q}%")
            conditions.append(f"(title ilike {token} or company ilike {token})")

        where_sql = " and ".join(conditions)
        order_by_sql = self._resolve_sort_expr(sort_by)
        limit_token = bind(limit)
        offset_token = bind(offset)

        try:
            rows = await pool.fetch(
                f"""
                select {_SELECT_COLUMNS}
                from lifecycle_records
                where {where_sql}
                order by {order_by_sql}
                limit {limit_token}
                offset {offset_token}
                """,
                *params,
            )
        except _STORE_IO_ERRORS as exc:
            raise StoreUnavailableError("database unavailable") from exc
        return [record_from_dict(self._row_to_dict(row)) for row in rows]

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise StoreUnavailableError("LC_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise StoreUnavailableError("database unavailable") from exc

    @staticmethod
    def _resolve_sort_expr(sort_by: str) -> str:
        sort_map = {
            "created_at": "created_at asc, id asc",
            "updated_at": "updated_at desc, id asc",
            "match_score": "match_score desc nulls last, created_at asc, id asc",
            "flag_count": "flag_count desc, submitted_at asc, id asc",
        }
        return sort_map.get(sort_by, "created_at asc, id asc")

    @staticmethod
    def _row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        history = row["history"]
        if isinstance(history, str):
            try:
                history = json.loads(history)
            except json.JSONDecodeError:
                history = []
        if not isinstance(history, list):
            history = []
        return {
            "id": row["id"],
            "entity_type": row["entity_type"],
            "status": row["status"],
            "version": row["version"],
            "job_id": row["job_id"],
            "candidate_id": row["candidate_id"],
            "match_score": row["match_score"],
            "title": row["title"],
            "company": row["company"],
            "recruiter_id": row["recruiter_id"],
            "location": row["location"],
            "flag_count": row["flag_count"],
            "flag_reasons": list(row["flag_reasons"] or []),
            "notes": row["notes"],
            "history": [item for item in history if isinstance(item, dict)],
            "submitted_at": row["submitted_at"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }


def _affected_rows(command_tag: str) -> int:
    # asyncpg returns tags such as "UPDATE 1".
    try:
        return int(command_tag.rsplit(" ", maxsplit=1)[-1])
    except (ValueError, AttributeError):
        return 0
