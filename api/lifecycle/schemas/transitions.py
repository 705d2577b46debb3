from typing import Literal

from pydantic import BaseModel, Field

from lifecycle.schemas.records import RecordOut

# Action and role stay plain strings so unknown values reach the transition
# engine and come back as typed errors instead of request validation errors.


class TransitionRequest(BaseModel):
    record_id: str = Field(min_length=1)
    action: str
    actor_id: str
    actor_role: str
    reason: str | None = None
    details: str | None = None


class TransitionOkOut(BaseModel):
    status: Literal["ok"] = "ok"
    new_state: RecordOut


class ErrorOut(BaseModel):
    status: Literal["error"] = "error"
    kind: str
    message: str


class BulkTransitionRequest(BaseModel):
    record_ids: list[str] = Field(min_length=1, max_length=500)
    action: str
    actor_id: str
    actor_role: str
    reason: str | None = None
    details: str | None = None


class BulkOutcomeOut(BaseModel):
    status: Literal["ok", "error"]
    kind: str | None = None
    message: str | None = None
    new_status: str | None = None
    version: int | None = None


class BulkTransitionOut(BaseModel):
    results: dict[str, BulkOutcomeOut] = Field(default_factory=dict)
    summary: str
    succeeded: int
    failed: int


class NotesRequest(BaseModel):
    record_id: str = Field(min_length=1)
    actor_id: str
    notes: str


class NotesOkOut(BaseModel):
    status: Literal["ok"] = "ok"
    version: int
