from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar
from uuid import uuid4


class EntityType(str, Enum):
    APPLICATION = "application"
    JOB_POSTING = "job_posting"


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class ModerationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CHANGES_REQUESTED = "changes_requested"


class Action(str, Enum):
    MARK_REVIEWED = "mark_reviewed"
    ACCEPT = "accept"
    REJECT = "reject"
    WITHDRAW = "withdraw"
    APPROVE = "approve"
    REQUEST_CHANGES = "request_changes"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    status: str
    timestamp: datetime
    actor_id: str
    note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": str(self.status.value if isinstance(self.status, Enum) else self.status),
            "timestamp": self.timestamp.isoformat(),
            "actor_id": self.actor_id,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEntry:
        timestamp = data["timestamp"]
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            status=str(data["status"]),
            timestamp=timestamp,
            actor_id=str(data["actor_id"]),
            note=data.get("note"),
        )


@dataclass(frozen=True, slots=True)
class Application:
    """A candidate's application to a job posting.

    ``status_history`` is append-only and always ends with an entry for the
    current ``status``. ``match_score`` is computed elsewhere and fixed at
    creation.
    """

    entity_type: ClassVar[EntityType] = EntityType.APPLICATION

    id: str
    job_id: str
    candidate_id: str
    status: ApplicationStatus
    match_score: int
    status_history: tuple[HistoryEntry, ...]
    recruiter_notes: str = ""
    version: int = 1
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def history(self) -> tuple[HistoryEntry, ...]:
        return self.status_history

    @property
    def notes(self) -> str:
        return self.recruiter_notes

    def with_entry(self, entry: HistoryEntry) -> Application:
        return replace(
            self,
            status=ApplicationStatus(entry.status),
            status_history=(*self.status_history, entry),
            version=self.version + 1,
            updated_at=entry.timestamp,
        )

    def with_notes(self, notes: str, *, at: datetime) -> Application:
        return replace(self, recruiter_notes=notes, version=self.version + 1, updated_at=at)


@dataclass(frozen=True, slots=True)
class JobPosting:
    """Moderation view of a submitted job posting."""

    entity_type: ClassVar[EntityType] = EntityType.JOB_POSTING

    id: str
    title: str
    company: str
    recruiter_id: str
    moderation_status: ModerationStatus
    review_history: tuple[HistoryEntry, ...]
    location: str | None = None
    flag_count: int = 0
    flag_reasons: tuple[str, ...] = ()
    moderator_notes: str = ""
    version: int = 1
    submitted_at: datetime = field(default_factory=utcnow)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def status(self) -> ModerationStatus:
        return self.moderation_status

    @property
    def history(self) -> tuple[HistoryEntry, ...]:
        return self.review_history

    @property
    def notes(self) -> str:
        return self.moderator_notes

    def with_entry(self, entry: HistoryEntry) -> JobPosting:
        return replace(
            self,
            moderation_status=ModerationStatus(entry.status),
            review_history=(*self.review_history, entry),
            version=self.version + 1,
            updated_at=entry.timestamp,
        )

    def with_notes(self, notes: str, *, at: datetime) -> JobPosting:
        return replace(self, moderator_notes=notes, version=self.version + 1, updated_at=at)


LifecycleRecord = Application | JobPosting


def new_application(
    *,
    job_id: str,
    candidate_id: str,
    match_score: int,
    record_id: str | None = None,
    now: datetime | None = None,
) -> Application:
    created_at = now or utcnow()
    return Application(
        id=record_id or str(uuid4()),
        job_id=job_id,
        candidate_id=candidate_id,
        status=ApplicationStatus.PENDING,
        match_score=match_score,
        status_history=(
            HistoryEntry(status=ApplicationStatus.PENDING.value, timestamp=created_at, actor_id=candidate_id),
        ),
        created_at=created_at,
        updated_at=created_at,
    )


def new_job_posting(
    *,
    title: str,
    company: str,
    recruiter_id: str,
    location: str | None = None,
    flag_count: int = 0,
    flag_reasons: tuple[str, ...] | list[str] = (),
    record_id: str | None = None,
    now: datetime | None = None,
) -> JobPosting:
    created_at = now or utcnow()
    return JobPosting(
        id=record_id or str(uuid4()),
        title=title,
        company=company,
        recruiter_id=recruiter_id,
        moderation_status=ModerationStatus.PENDING,
        review_history=(
            HistoryEntry(status=ModerationStatus.PENDING.value, timestamp=created_at, actor_id=recruiter_id),
        ),
        location=location,
        flag_count=flag_count,
        flag_reasons=tuple(flag_reasons),
        submitted_at=created_at,
        created_at=created_at,
        updated_at=created_at,
    )


def record_to_dict(record: LifecycleRecord) -> dict[str, Any]:
    base: dict[str, Any] = {
        "id": record.id,
        "entity_type": record.entity_type.value,
        "status": record.status.value,
        "version": record.version,
        "history": [entry.to_dict() for entry in record.history],
        "notes": record.notes,
        "created_at": record.created_at.isoformat(),
        "updated_at": record.updated_at.isoformat(),
    }
    if isinstance(record, Application):
        base.update(
            {
                "job_id": record.job_id,
                "candidate_id": record.candidate_id,
                "match_score": record.match_score,
            }
        )
    else:
        base.update(
            {
                "title": record.title,
                "company": record.company,
                "recruiter_id": record.recruiter_id,
                "location": record.location,
                "flag_count": record.flag_count,
                "flag_reasons": list(record.flag_reasons),
                "submitted_at": record.submitted_at.isoformat(),
            }
        )
    return base


def record_from_dict(data: dict[str, Any]) -> LifecycleRecord:
    history = tuple(HistoryEntry.from_dict(item) for item in data.get("history") or [])
    created_at = _coerce_datetime(data["created_at"])
    updated_at = _coerce_datetime(data["updated_at"])
    if data["entity_type"] == EntityType.APPLICATION.value:
        return Application(
            id=str(data["id"]),
            job_id=str(data["job_id"]),
            candidate_id=str(data["candidate_id"]),
            status=ApplicationStatus(data["status"]),
            match_score=int(data["match_score"]),
            status_history=history,
            recruiter_notes=data.get("notes") or "",
            version=int(data["version"]),
            created_at=created_at,
            updated_at=updated_at,
        )
    return JobPosting(
        id=str(data["id"]),
        title=str(data["title"]),
        company=str(data["company"]),
        recruiter_id=str(data["recruiter_id"]),
        moderation_status=ModerationStatus(data["status"]),
        review_history=history,
        location=data.get("location"),
        flag_count=int(data.get("flag_count") or 0),
        flag_reasons=tuple(data.get("flag_reasons") or ()),
        moderator_notes=data.get("notes") or "",
        version=int(data["version"]),
        submitted_at=_coerce_datetime(data.get("submitted_at") or data["created_at"]),
        created_at=created_at,
        updated_at=updated_at,
    )


def _coerce_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))
