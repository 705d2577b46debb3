from __future__ import annotations

from dataclasses import replace

import pytest

from lifecycle.core.auth import Actor, ActorRole
from lifecycle.services.errors import ErrorKind, TransitionError
from lifecycle.services.records import (
    Action,
    ApplicationStatus,
    ModerationStatus,
    new_application,
    new_job_posting,
)
from lifecycle.services.transitions import (
    APPLICATION_TRANSITIONS,
    MODERATION_TRANSITIONS,
    Decision,
    allowed_actions,
    decide,
    is_terminal,
)

CANDIDATE = Actor(actor_id="cand-1", role=ActorRole.CANDIDATE)
RECRUITER = Actor(actor_id="rec-1", role=ActorRole.RECRUITER)
MODERATOR = Actor(actor_id="mod-1", role=ActorRole.MODERATOR)
ADMIN = Actor(actor_id="admin-1", role=ActorRole.ADMIN)


def _application(status: ApplicationStatus = ApplicationStatus.PENDING):
    record = new_application(job_id="job-1", candidate_id="cand-1", match_score=80)
    if status is not ApplicationStatus.PENDING:
        record = replace(record, status=status)
    return record


def _posting(status: ModerationStatus = ModerationStatus.PENDING, flag_count: int = 0):
    record = new_job_posting(title="Data Analyst", company="DataCorp", recruiter_id="rec-1", flag_count=flag_count)
    if status is not ModerationStatus.PENDING:
        record = replace(record, moderation_status=status)
    return record


def _actor_for(action: Action) -> Actor:
    if action is Action.WITHDRAW:
        return CANDIDATE
    if action in {Action.APPROVE, Action.REQUEST_CHANGES}:
        return MODERATOR
    return ADMIN


@pytest.mark.parametrize("status", list(ApplicationStatus))
@pytest.mark.parametrize("action", list(Action))
def test_application_table_is_closed(status: ApplicationStatus, action: Action) -> None:
    record = _application(status)
    decision = decide(record, action, _actor_for(action), reason="not a fit")

    expected = APPLICATION_TRANSITIONS[status].get(action)
    if expected is None:
        assert isinstance(decision, TransitionError)
        assert decision.kind is ErrorKind.INVALID_TRANSITION
    else:
        assert isinstance(decision, Decision)
        assert decision.next_status == expected.value


@pytest.mark.parametrize("status", list(ModerationStatus))
@pytest.mark.parametrize("action", list(Action))
def test_moderation_table_is_closed(status: ModerationStatus, action: Action) -> None:
    record = _posting(status)
    decision = decide(record, action, _actor_for(action), reason="spam")

    expected = MODERATION_TRANSITIONS[status].get(action)
    if expected is None:
        assert isinstance(decision, TransitionError)
        assert decision.kind is ErrorKind.INVALID_TRANSITION
    else:
        assert isinstance(decision, Decision)
        assert decision.next_status == expected.value


def test_unknown_action_is_invalid_transition() -> None:
    decision = decide(_application(), "promote", RECRUITER)
    assert isinstance(decision, TransitionError)
    assert decision.kind is ErrorKind.INVALID_TRANSITION


def test_decide_does_not_mutate_record() -> None:
    record = _application()
    decide(record, Action.MARK_REVIEWED, RECRUITER)
    assert record.status is ApplicationStatus.PENDING
    assert record.version == 1
    assert len(record.status_history) == 1


def test_mark_reviewed_builds_history_entry_for_actor() -> None:
    decision = decide(_application(), Action.MARK_REVIEWED, RECRUITER)
    assert isinstance(decision, Decision)
    assert decision.previous_status == "pending"
    assert decision.entry.status == "reviewed"
    assert decision.entry.actor_id == "rec-1"
    assert decision.entry.note is None


@pytest.mark.parametrize("reason", [None, "", "   "])
def test_reject_without_reason_requires_reason(reason: str | None) -> None:
    for record, actor in ((_application(), RECRUITER), (_posting(), MODERATOR)):
        decision = decide(record, Action.REJECT, actor, reason=reason)
        assert isinstance(decision, TransitionError)
        assert decision.kind is ErrorKind.REASON_REQUIRED


def test_reject_without_reason_on_terminal_record_still_requires_reason() -> None:
    decision = decide(_posting(ModerationStatus.APPROVED), Action.REJECT, MODERATOR)
    assert isinstance(decision, TransitionError)
    assert decision.kind is ErrorKind.REASON_REQUIRED


def test_withdraw_only_by_owning_candidate() -> None:
    other_candidate = Actor(actor_id="cand-2", role=ActorRole.CANDIDATE)

    assert isinstance(decide(_application(), Action.WITHDRAW, CANDIDATE), Decision)
    for actor in (other_candidate, RECRUITER, ADMIN):
        decision = decide(_application(), Action.WITHDRAW, actor)
        assert isinstance(decision, TransitionError)
        assert decision.kind is ErrorKind.FORBIDDEN


def test_withdraw_from_accepted_is_invalid_transition() -> None:
    decision = decide(_application(ApplicationStatus.ACCEPTED), Action.WITHDRAW, CANDIDATE)
    assert isinstance(decision, TransitionError)
    assert decision.kind is ErrorKind.INVALID_TRANSITION


def test_recruiter_actions_reject_candidates_and_moderators() -> None:
    for actor in (CANDIDATE, MODERATOR):
        decision = decide(_application(), Action.ACCEPT, actor)
        assert isinstance(decision, TransitionError)
        assert decision.kind is ErrorKind.FORBIDDEN


def test_moderation_actions_require_moderator_or_admin() -> None:
    for actor in (CANDIDATE, RECRUITER):
        decision = decide(_posting(), Action.APPROVE, actor)
        assert isinstance(decision, TransitionError)
        assert decision.kind is ErrorKind.FORBIDDEN

    assert isinstance(decide(_posting(), Action.APPROVE, MODERATOR), Decision)
    assert isinstance(decide(_posting(), Action.APPROVE, ADMIN), Decision)


def test_reject_note_uses_reason_label_and_details() -> None:
    decision = decide(_posting(), Action.REJECT, MODERATOR, reason="spam_scam", details="MLM pattern detected")
    assert isinstance(decision, Decision)
    assert decision.entry.note == "Spam or scam - MLM pattern detected"


def test_free_text_reason_is_kept_verbatim() -> None:
    decision = decide(_posting(), Action.REJECT, MODERATOR, reason="spam")
    assert isinstance(decision, Decision)
    assert decision.entry.note == "spam"


def test_request_changes_defaults_note() -> None:
    decision = decide(_posting(), Action.REQUEST_CHANGES, MODERATOR)
    assert isinstance(decision, Decision)
    assert decision.next_status == "changes_requested"
    assert decision.entry.note == "Changes requested"


def test_summary_mentions_flags() -> None:
    decision = decide(_posting(flag_count=12), Action.APPROVE, MODERATOR)
    assert isinstance(decision, Decision)
    assert "12 flags" in decision.summary


def test_allowed_actions_and_terminal_states() -> None:
    assert set(allowed_actions(_application())) == {
        Action.MARK_REVIEWED,
        Action.ACCEPT,
        Action.REJECT,
        Action.WITHDRAW,
    }
    assert set(allowed_actions(_application(ApplicationStatus.REVIEWED))) == {
        Action.ACCEPT,
        Action.REJECT,
        Action.WITHDRAW,
    }
    for status in (ApplicationStatus.ACCEPTED, ApplicationStatus.REJECTED, ApplicationStatus.WITHDRAWN):
        assert is_terminal(_application(status))
    for status in (ModerationStatus.APPROVED, ModerationStatus.REJECTED, ModerationStatus.CHANGES_REQUESTED):
        assert is_terminal(_posting(status))
    assert not is_terminal(_posting())
