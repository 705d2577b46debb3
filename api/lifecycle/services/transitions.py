"""
Transition engine for applications and job-posting moderation.

Every legality rule lives in the two tables below. ``decide`` is pure: it
reads a record and returns either the decision (next status plus the history
entry to append) or a typed error. It never touches a store.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from lifecycle.core.auth import Actor, ActorRole
from lifecycle.services.errors import ErrorKind, TransitionError, make_error
from lifecycle.services.records import (
    Action,
    Application,
    ApplicationStatus,
    EntityType,
    HistoryEntry,
    JobPosting,
    LifecycleRecord,
    ModerationStatus,
    utcnow,
)

APPLICATION_TRANSITIONS: dict[ApplicationStatus, dict[Action, ApplicationStatus]] = {
    ApplicationStatus.PENDING: {
        Action.MARK_REVIEWED: ApplicationStatus.REVIEWED,
        Action.ACCEPT: ApplicationStatus.ACCEPTED,
        Action.REJECT: ApplicationStatus.REJECTED,
        Action.WITHDRAW: ApplicationStatus.WITHDRAWN,
    },
    ApplicationStatus.REVIEWED: {
        Action.ACCEPT: ApplicationStatus.ACCEPTED,
        Action.REJECT: ApplicationStatus.REJECTED,
        Action.WITHDRAW: ApplicationStatus.WITHDRAWN,
    },
    ApplicationStatus.ACCEPTED: {},
    ApplicationStatus.REJECTED: {},
    ApplicationStatus.WITHDRAWN: {},
}

# Resubmission after changes_requested creates a new pending posting.
MODERATION_TRANSITIONS: dict[ModerationStatus, dict[Action, ModerationStatus]] = {
    ModerationStatus.PENDING: {
        Action.APPROVE: ModerationStatus.APPROVED,
        Action.REJECT: ModerationStatus.REJECTED,
        Action.REQUEST_CHANGES: ModerationStatus.CHANGES_REQUESTED,
    },
    ModerationStatus.APPROVED: {},
    ModerationStatus.REJECTED: {},
    ModerationStatus.CHANGES_REQUESTED: {},
}

APPLICATION_ACTIONS = frozenset({Action.MARK_REVIEWED, Action.ACCEPT, Action.REJECT, Action.WITHDRAW})
MODERATION_ACTIONS = frozenset({Action.APPROVE, Action.REJECT, Action.REQUEST_CHANGES})

RECRUITER_ROLES = frozenset({ActorRole.RECRUITER, ActorRole.ADMIN})
MODERATOR_ROLES = frozenset({ActorRole.MODERATOR, ActorRole.ADMIN})

REJECTION_REASONS: dict[str, str] = {
    "inappropriate_content": "Inappropriate content",
    "spam_scam": "Spam or scam",
    "invalid_requirements": "Invalid requirements",
    "unverified_company": "Unverified company",
    "duplicate": "Duplicate posting",
    "incomplete": "Incomplete information",
    "other": "Other",
}

DEFAULT_CHANGES_REQUESTED_NOTE = "Changes requested"


@dataclass(frozen=True, slots=True)
class Decision:
    previous_status: str
    next_status: str
    entry: HistoryEntry
    summary: str


def decide(
    record: LifecycleRecord,
    action: Action | str,
    actor: Actor,
    *,
    reason: str | None = None,
    details: str | None = None,
    now: datetime | None = None,
) -> Decision | TransitionError:
    resolved_action = _coerce_action(action)
    known_actions = _actions_for(record.entity_type)
    if resolved_action is None or resolved_action not in known_actions:
        return make_error(
            ErrorKind.INVALID_TRANSITION,
            f"unknown action for {record.entity_type.value}: {action}",
        )

    normalized_reason = _normalize_text(reason)
    if resolved_action is Action.REJECT and not normalized_reason:
        return make_error(ErrorKind.REASON_REQUIRED)

    table = _table_for(record)
    next_status = table.get(record.status, {}).get(resolved_action)
    if next_status is None:
        return make_error(
            ErrorKind.INVALID_TRANSITION,
            f"{resolved_action.value} is not allowed from {record.status.value}",
        )

    forbidden = _check_role(record, resolved_action, actor)
    if forbidden is not None:
        return forbidden

    entry = HistoryEntry(
        status=next_status.value,
        timestamp=now or utcnow(),
        actor_id=actor.actor_id,
        note=_build_note(resolved_action, normalized_reason, _normalize_text(details)),
    )
    return Decision(
        previous_status=record.status.value,
        next_status=next_status.value,
        entry=entry,
        summary=_summarize(record, resolved_action, next_status.value, actor),
    )


def allowed_actions(record: LifecycleRecord) -> list[Action]:
    return list(_table_for(record).get(record.status, {}))


def is_terminal(record: LifecycleRecord) -> bool:
    return not _table_for(record).get(record.status)


def _table_for(record: LifecycleRecord) -> dict:
    if isinstance(record, Application):
        return APPLICATION_TRANSITIONS
    return MODERATION_TRANSITIONS


def _actions_for(entity_type: EntityType) -> frozenset[Action]:
    if entity_type is EntityType.APPLICATION:
        return APPLICATION_ACTIONS
    return MODERATION_ACTIONS


def _check_role(record: LifecycleRecord, action: Action, actor: Actor) -> TransitionError | None:
    if isinstance(record, Application):
        if action is Action.WITHDRAW:
            if actor.role is not ActorRole.CANDIDATE or actor.actor_id != record.candidate_id:
                return make_error(ErrorKind.FORBIDDEN, "only the applicant can withdraw an application")
            return None
        if not actor.has_any_role(RECRUITER_ROLES):
            return make_error(ErrorKind.FORBIDDEN, f"{action.value} requires a recruiter")
        return None

    if not actor.has_any_role(MODERATOR_ROLES):
        return make_error(ErrorKind.FORBIDDEN, f"{action.value} requires a moderator")
    return None


def _build_note(action: Action, reason: str | None, details: str | None) -> str | None:
    label = REJECTION_REASONS.get(reason, reason) if reason else None
    if action is Action.REQUEST_CHANGES and not label:
        label = DEFAULT_CHANGES_REQUESTED_NOTE
    if label and details:
        return f"{label} - {details}"
    return label or details


def _summarize(record: LifecycleRecord, action: Action, next_status: str, actor: Actor) -> str:
    summary = f"{record.status.value} -> {next_status} by {actor.role.value} {actor.actor_id}"
    if isinstance(record, JobPosting) and record.flag_count:
        summary = f"{summary} ({record.flag_count} flags)"
    return summary


def _coerce_action(value: Action | str) -> Action | None:
    if isinstance(value, Action):
        return value
    try:
        return Action(value)
    except ValueError:
        return None


def _normalize_text(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None
