from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from lifecycle.services.records import LifecycleRecord, record_to_dict

EntityTypeName = Literal["application", "job_posting"]
ApplicationStatusName = Literal["pending", "reviewed", "accepted", "rejected", "withdrawn"]
ModerationStatusName = Literal["pending", "approved", "rejected", "changes_requested"]


class HistoryEntryOut(BaseModel):
    status: str
    timestamp: datetime
    actor_id: str
    note: str | None = None


class RecordOut(BaseModel):
    id: str
    entity_type: EntityTypeName
    status: str
    version: int
    history: list[HistoryEntryOut] = Field(default_factory=list)
    notes: str = ""
    created_at: datetime
    updated_at: datetime
    job_id: str | None = None
    candidate_id: str | None = None
    match_score: int | None = None
    title: str | None = None
    company: str | None = None
    recruiter_id: str | None = None
    location: str | None = None
    flag_count: int | None = None
    flag_reasons: list[str] = Field(default_factory=list)
    submitted_at: datetime | None = None

    @classmethod
    def from_record(cls, record: LifecycleRecord) -> "RecordOut":
        return cls(**record_to_dict(record))


class AllowedActionsOut(BaseModel):
    record_id: str
    status: str
    actions: list[str] = Field(default_factory=list)


class ApplicationCreateRequest(BaseModel):
    job_id: str = Field(min_length=1)
    candidate_id: str = Field(min_length=1)
    match_score: int = Field(ge=0, le=100)
    id: str | None = None


class JobPostingCreateRequest(BaseModel):
    title: str = Field(min_length=1)
    company: str = Field(min_length=1)
    recruiter_id: str = Field(min_length=1)
    location: str | None = None
    flag_count: int = Field(default=0, ge=0)
    flag_reasons: list[str] = Field(default_factory=list)
    id: str | None = None
