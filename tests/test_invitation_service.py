from datetime import timedelta

import freezegun
import pytest

from conftest import NOW

import services.invitation_service as invitation_module
from services.errors import (
    EditorNotFoundError,
    InvalidInvitationRequestError,
    InvalidTransitionError,
    InvitationExpiredError,
    InvitationNotFoundError,
    ManuscriptNotFoundError,
    NoSuitableReviewersError,
    ReviewerFetchError,
)
from services.invitation_service import (
    CONFLICT_WARNING,
    SEND_INVITATION_JOB,
    SEND_REMINDER_JOB,
    InvitationService,
    is_expired,
    stagger_offset,
)
from services.memory_store import InMemoryJobScheduler, RecordingNotificationGateway
from services.models import (
    AffiliationRecord,
    Invitation,
    InvitationOutcome,
    InvitationRequest,
    InvitationStatus,
    Priority,
    ReviewerCandidate,
)


@pytest.fixture(autouse=True)
def frozen():
    with freezegun.freeze_time(NOW) as frozen_time:
        yield frozen_time


@pytest.fixture
def request_for(manuscript, editor, review_deadline):
    def build(reviewer_ids, **kwargs):
        return InvitationRequest(
            manuscript_id=manuscript.id,
            reviewer_ids=reviewer_ids,
            invited_by=editor.id,
            review_deadline=review_deadline,
            **kwargs,
        )
    return build


@pytest.fixture
def sent_token(invitation_service, request_for):
    result = invitation_service.send_invitations(request_for(["r-ml-1"], send_reminders=False))
    return result.results[0].token


def _service_with(base, **overrides):
    parts = dict(
        invitations=base.invitations,
        manuscripts=base.manuscripts,
        reviewers=base.reviewers,
        profiles=base.profiles,
        detector=base.detector,
        gateway=base.gateway,
        scheduler=base.scheduler,
        matching=base.matching,
        dispatch_workers=2,
    )
    parts.update(overrides)
    return InvitationService(**parts)


class _BrokenReviewers:
    def get_reviewers(self, reviewer_ids):
        raise ConnectionError("directory offline")

    def get_candidates(self, candidate_filter, manuscript=None):
        raise ConnectionError("directory offline")


class _ConcurrentReminderGateway(RecordingNotificationGateway):
    """Records another reminder for the same invitation while this one is in flight."""

    def __init__(self, invitations):
        super().__init__()
        self.invitations = invitations

    def send(self, reviewer_id, payload):
        if payload.get("type") == "reviewer_reminder":
            current = self.invitations.get_by_token(payload["token"])
            self.invitations.transition(
                payload["token"], InvitationStatus.PENDING, reminder_count=current.reminder_count + 1
            )
        return super().send(reviewer_id, payload)


# ── Pure helpers ────────────────────────────────────────────────────────────

def test_stagger_offset():
    assert stagger_offset(3, False, 2) == timedelta(0)
    assert stagger_offset(0, True, 2) == timedelta(0)
    assert stagger_offset(3, True, 2) == timedelta(hours=6)
    assert stagger_offset(2, True, 0.5) == timedelta(hours=1)


def test_is_expired():
    invitation = Invitation(
        id="i-1", manuscript_id="ms-1", reviewer_id="r-1", invited_by="ed-1", token="t",
        review_deadline=NOW + timedelta(days=10), response_deadline=NOW - timedelta(minutes=1),
    )
    assert is_expired(invitation, NOW)
    assert not is_expired(invitation, NOW - timedelta(hours=1))

    invitation.status = InvitationStatus.ACCEPTED
    assert not is_expired(invitation, NOW)


# ── send_invitations ────────────────────────────────────────────────────────

def test_sends_to_every_eligible_reviewer(invitation_service, request_for, gateway, invitations):
    result = invitation_service.send_invitations(request_for(["r-ml-1", "r-ml-2", "r-bot"]))

    assert [r.reviewer_id for r in result.results] == ["r-ml-1", "r-ml-2", "r-bot"]
    assert all(r.outcome is InvitationOutcome.SENT for r in result.results)
    assert result.success_count == 3
    assert result.failure_count == 0
    assert result.total_invited == 3
    assert {rid for rid, _ in gateway.sent} == {"r-ml-1", "r-ml-2", "r-bot"}
    assert len(invitations) == 3


def test_tokens_are_unique(invitation_service, request_for):
    result = invitation_service.send_invitations(request_for(["r-ml-1", "r-ml-2", "r-bot"]))
    tokens = [r.token for r in result.results]
    assert len(set(tokens)) == 3
    assert all(len(t) >= 32 for t in tokens)


def test_conflicted_reviewers_are_never_invited(invitation_service, request_for, gateway, invitations):
    result = invitation_service.send_invitations(request_for(["r-ml-1", "r-conflict", "r-ml-2"]))

    conflicted = result.results[1]
    assert conflicted.reviewer_id == "r-conflict"
    assert conflicted.outcome is InvitationOutcome.FAILED
    assert conflicted.error.startswith("Conflict of interest")
    assert "advisor_advisee" in conflicted.error

    assert len(gateway.sent) == 2
    assert "r-conflict" not in {rid for rid, _ in gateway.sent}
    assert result.conflicts_detected == 1
    assert result.success_count == 2
    assert result.failure_count == 1
    assert len(invitations) == 2


def test_author_is_never_invited_to_review_own_manuscript(
    invitation_service, request_for, candidate_repo, gateway, invitations
):
    candidate_repo.add(ReviewerCandidate(id="a-1", name="First Author", expertise=["Machine Learning"]))

    result = invitation_service.send_invitations(request_for(["a-1", "r-ml-1"]))

    author = result.results[0]
    assert author.outcome is InvitationOutcome.FAILED
    assert author.error.startswith("Conflict of interest")
    assert result.conflicts_detected == 1
    assert [rid for rid, _ in gateway.sent] == ["r-ml-1"]
    assert len(invitations) == 1


def test_failed_coi_check_blocks_invitation(invitation_service, request_for, conflict_repo, gateway):
    conflict_repo.fail_for("r-ml-2")
    result = invitation_service.send_invitations(request_for(["r-ml-2"]))

    [only] = result.results
    assert only.outcome is InvitationOutcome.FAILED
    assert "check failed" in only.error
    assert gateway.sent == []


def test_minor_conflict_is_invited_with_warning(invitation_service, request_for, conflict_repo, gateway):
    conflict_repo.add_affiliation(AffiliationRecord("r-bot", "Royal Botanic Gardens, Kew"))
    conflict_repo.add_affiliation(AffiliationRecord("a-2", "Royal Botanic Gardens, Kew"))

    result = invitation_service.send_invitations(request_for(["r-bot", "r-ml-1"]))

    assert result.success_count == 2
    assert result.conflicts_detected == 1
    payloads = dict(gateway.sent)
    assert payloads["r-bot"]["variables"]["conflict_warning"] == CONFLICT_WARNING
    assert payloads["r-ml-1"]["variables"]["conflict_warning"] == ""


def test_unknown_reviewer_is_skipped(invitation_service, request_for, gateway):
    result = invitation_service.send_invitations(request_for(["r-ghost", "r-ml-1"]))

    ghost = result.results[0]
    assert ghost.outcome is InvitationOutcome.SKIPPED
    assert not ghost.success
    assert result.total_invited == 1
    assert len(gateway.sent) == 1


def test_duplicate_reviewer_ids_are_invited_once(invitation_service, request_for, gateway):
    result = invitation_service.send_invitations(request_for(["r-ml-1", "r-ml-1"]))
    assert len(result.results) == 1
    assert len(gateway.sent) == 1
    assert result.metadata["total_reviewers_requested"] == 2


def test_payload_carries_template_variables(invitation_service, request_for, gateway, manuscript, review_deadline):
    result = invitation_service.send_invitations(request_for(
        ["r-ml-1"], custom_message="We would value your view.", priority=Priority.URGENT
    ))
    [(reviewer_id, payload)] = gateway.sent

    assert reviewer_id == "r-ml-1"
    assert payload["type"] == "reviewer_invitation"
    assert payload["template_id"] == "standard-001"
    assert payload["priority"] == "urgent"
    assert payload["token"] == result.results[0].token

    variables = payload["variables"]
    assert variables["reviewer_name"] == "Alice Nguyen"
    assert variables["manuscript_title"] == manuscript.title
    assert variables["editor_name"] == "Erin Park"
    assert variables["editor_title"] == "Editor"
    assert variables["custom_message"] == "We would value your view."
    assert variables["due_date"] == review_deadline.strftime("%A, %B %d, %Y")
    assert variables["accept_link"].endswith(f"/review/respond/{payload['token']}?action=accept")


def test_custom_template_is_used(invitation_service, request_for, gateway):
    result = invitation_service.send_invitations(request_for(["r-ml-1"], template_id="urgent-002"))
    assert gateway.sent[0][1]["template_id"] == "urgent-002"
    assert result.metadata["template_used"] == "urgent-002"


def test_response_deadline_defaults_to_seven_days(invitation_service, request_for, invitations):
    result = invitation_service.send_invitations(request_for(["r-ml-1"]))
    invitation = invitations.get_by_token(result.results[0].token)
    assert invitation.response_deadline == NOW + timedelta(days=7)
    assert invitation.status is InvitationStatus.PENDING
    assert invitation.reminder_count == 0


def test_response_deadline_never_after_review_deadline(invitation_service, manuscript, editor, invitations):
    request = InvitationRequest(
        manuscript_id=manuscript.id,
        reviewer_ids=["r-ml-1"],
        invited_by=editor.id,
        review_deadline=NOW + timedelta(days=3),
    )
    result = invitation_service.send_invitations(request)
    invitation = invitations.get_by_token(result.results[0].token)
    assert invitation.response_deadline == NOW + timedelta(days=3)


def test_response_deadline_after_review_deadline_is_rejected(invitation_service, request_for, review_deadline):
    request = request_for(["r-ml-1"], response_deadline=review_deadline + timedelta(days=1))
    with pytest.raises(InvalidInvitationRequestError):
        invitation_service.send_invitations(request)


def test_unknown_manuscript_aborts(invitation_service, request_for, gateway):
    request = request_for(["r-ml-1"])
    request.manuscript_id = "ms-missing"
    with pytest.raises(ManuscriptNotFoundError, match="ms-missing"):
        invitation_service.send_invitations(request)
    assert gateway.sent == []


def test_unknown_editor_aborts(invitation_service, request_for, gateway):
    request = request_for(["r-ml-1"])
    request.invited_by = "ed-missing"
    with pytest.raises(EditorNotFoundError):
        invitation_service.send_invitations(request)
    assert gateway.sent == []


def test_reviewer_directory_failure_aborts(invitation_service, request_for):
    service = _service_with(invitation_service, reviewers=_BrokenReviewers())
    with pytest.raises(ReviewerFetchError):
        service.send_invitations(request_for(["r-ml-1"]))


# ── Staggering ──────────────────────────────────────────────────────────────

def test_staggered_invitations_are_scheduled(invitation_service, request_for, gateway, scheduler, invitations):
    result = invitation_service.send_invitations(request_for(["r-ml-1", "r-ml-2", "r-bot"], staggered=True))

    first, second, third = result.results
    assert first.outcome is InvitationOutcome.SENT
    assert second.outcome is InvitationOutcome.SCHEDULED
    assert third.outcome is InvitationOutcome.SCHEDULED
    assert second.scheduled_for == NOW + timedelta(hours=2)
    assert third.scheduled_for == NOW + timedelta(hours=4)

    assert [rid for rid, _ in gateway.sent] == ["r-ml-1"]
    jobs = scheduler.jobs_of_type(SEND_INVITATION_JOB)
    assert sorted(j["run_at"] for j in jobs) == [NOW + timedelta(hours=2), NOW + timedelta(hours=4)]
    assert invitations.get_by_token(second.token).scheduled_for == NOW + timedelta(hours=2)


def test_stagger_interval_can_be_overridden(invitation_service, request_for):
    result = invitation_service.send_invitations(
        request_for(["r-ml-1", "r-ml-2"], staggered=True, stagger_interval_hours=0.5)
    )
    assert result.results[1].scheduled_for == NOW + timedelta(minutes=30)


def test_stagger_position_counts_every_requested_reviewer(invitation_service, request_for):
    result = invitation_service.send_invitations(request_for(["r-ml-1", "r-conflict", "r-ml-2"], staggered=True))
    assert result.results[2].scheduled_for == NOW + timedelta(hours=4)


def test_scheduled_invitation_is_dispatched_later(invitation_service, request_for, gateway, scheduler, frozen):
    result = invitation_service.send_invitations(request_for(["r-ml-1", "r-ml-2"], staggered=True))
    [job] = scheduler.jobs_of_type(SEND_INVITATION_JOB)

    frozen.move_to(job["run_at"])
    payload = job["payload"]
    dispatched = invitation_service.dispatch_scheduled_invitation(
        payload["token"],
        template_id=payload["template_id"],
        priority=Priority(payload["priority"]),
        has_conflict_warning=payload["has_conflict_warning"],
        reminder_schedule=payload["reminder_schedule"],
    )

    assert dispatched.success
    assert dispatched.outcome is InvitationOutcome.SENT
    assert dispatched.token == result.results[1].token
    assert [rid for rid, _ in gateway.sent] == ["r-ml-1", "r-ml-2"]
    reminders = [j for j in scheduler.jobs_of_type(SEND_REMINDER_JOB) if j["payload"]["token"] == dispatched.token]
    assert len(reminders) == 3


def test_scheduled_invitation_skipped_after_cancel(invitation_service, request_for, gateway, scheduler):
    result = invitation_service.send_invitations(request_for(["r-ml-1", "r-ml-2"], staggered=True))
    token = result.results[1].token
    invitation_service.cancel_invitation(token, "Enough reviewers already")

    dispatched = invitation_service.dispatch_scheduled_invitation(token)

    assert dispatched.outcome is InvitationOutcome.SKIPPED
    assert len(gateway.sent) == 1


def test_scheduled_dispatch_failure_removes_invitation(invitation_service, request_for, gateway, invitations):
    result = invitation_service.send_invitations(request_for(["r-ml-1", "r-ml-2"], staggered=True))
    token = result.results[1].token
    gateway.failing.add("r-ml-2")

    dispatched = invitation_service.dispatch_scheduled_invitation(token)

    assert dispatched.outcome is InvitationOutcome.FAILED
    assert invitations.get_by_token(token) is None


def test_failed_scheduled_dispatch_leaves_no_reminders(invitation_service, request_for, gateway, scheduler):
    result = invitation_service.send_invitations(request_for(["r-ml-1", "r-ml-2"], staggered=True))
    token = result.results[1].token
    [job] = scheduler.jobs_of_type(SEND_INVITATION_JOB)
    gateway.failing.add("r-ml-2")

    invitation_service.dispatch_scheduled_invitation(token, reminder_schedule=job["payload"]["reminder_schedule"])

    assert all(j["payload"]["token"] != token for j in scheduler.jobs_of_type(SEND_REMINDER_JOB))
    assert not invitation_service.send_reminder(token, "first_reminder", 7)


# ── Dispatch failures ───────────────────────────────────────────────────────

def test_dispatch_failure_removes_only_that_invitation(invitation_service, request_for, gateway, invitations):
    gateway.failing.add("r-ml-2")
    gateway.raising.add("r-bot")

    result = invitation_service.send_invitations(request_for(["r-ml-1", "r-ml-2", "r-bot"]))

    ok, rejected, crashed = result.results
    assert ok.success
    assert rejected.outcome is InvitationOutcome.FAILED
    assert "rejected" in rejected.error
    assert crashed.outcome is InvitationOutcome.FAILED
    assert "unreachable" in crashed.error
    assert len(invitations) == 1
    assert invitations.get_by_token(ok.token) is not None


def test_scheduler_failure_fails_staggered_invitation(invitation_service, request_for, invitations):
    service = _service_with(invitation_service, scheduler=InMemoryJobScheduler({SEND_INVITATION_JOB}))
    result = service.send_invitations(request_for(["r-ml-1", "r-ml-2"], staggered=True))

    assert result.results[0].success
    assert result.results[1].outcome is InvitationOutcome.FAILED
    assert len(invitations) == 1


def test_token_collision_is_retried(invitation_service, request_for, invitations, monkeypatch):
    tokens = iter(["taken-token", "taken-token", "fresh-token"])
    monkeypatch.setattr(invitation_module, "generate_token", lambda: next(tokens))
    invitations.insert(Invitation(
        id="i-old", manuscript_id="ms-other", reviewer_id="r-x", invited_by="ed-1", token="taken-token",
        review_deadline=NOW + timedelta(days=30), response_deadline=NOW + timedelta(days=7),
    ))

    result = invitation_service.send_invitations(request_for(["r-ml-1"]))

    assert result.results[0].success
    assert result.results[0].token == "fresh-token"


def test_token_collision_gives_up_after_three_attempts(invitation_service, request_for, invitations, monkeypatch):
    monkeypatch.setattr(invitation_module, "generate_token", lambda: "taken-token")
    invitations.insert(Invitation(
        id="i-old", manuscript_id="ms-other", reviewer_id="r-x", invited_by="ed-1", token="taken-token",
        review_deadline=NOW + timedelta(days=30), response_deadline=NOW + timedelta(days=7),
    ))

    result = invitation_service.send_invitations(request_for(["r-ml-1"]))

    assert result.results[0].outcome is InvitationOutcome.FAILED
    assert "invitation record" in result.results[0].error


# ── Reminders ───────────────────────────────────────────────────────────────

def test_reminders_are_scheduled_before_review_deadline(invitation_service, request_for, scheduler, review_deadline):
    invitation_service.send_invitations(request_for(["r-ml-1"]))

    jobs = scheduler.jobs_of_type(SEND_REMINDER_JOB)
    assert [j["payload"]["reminder_type"] for j in jobs] == ["first_reminder", "second_reminder", "final_reminder"]
    assert [j["run_at"] for j in jobs] == [review_deadline - timedelta(days=d) for d in (7, 3, 1)]


def test_reminders_in_the_past_are_skipped(invitation_service, manuscript, editor, scheduler):
    request = InvitationRequest(
        manuscript_id=manuscript.id,
        reviewer_ids=["r-ml-1"],
        invited_by=editor.id,
        review_deadline=NOW + timedelta(days=2),
    )
    invitation_service.send_invitations(request)

    [job] = scheduler.jobs_of_type(SEND_REMINDER_JOB)
    assert job["payload"]["reminder_type"] == "final_reminder"
    assert job["run_at"] == NOW + timedelta(days=1)


def test_reminders_can_be_disabled(invitation_service, request_for, scheduler):
    invitation_service.send_invitations(request_for(["r-ml-1"], send_reminders=False))
    assert scheduler.jobs_of_type(SEND_REMINDER_JOB) == []


def test_custom_reminder_schedule(invitation_service, request_for, scheduler, review_deadline):
    invitation_service.send_invitations(request_for(["r-ml-1"], reminder_schedule=[10]))
    [job] = scheduler.jobs_of_type(SEND_REMINDER_JOB)
    assert job["run_at"] == review_deadline - timedelta(days=10)


def test_scheduled_invitations_get_reminders_once_sent(invitation_service, request_for, scheduler):
    result = invitation_service.send_invitations(request_for(["r-ml-1", "r-ml-2"], staggered=True))
    assert len(scheduler.jobs_of_type(SEND_REMINDER_JOB)) == 3

    [job] = scheduler.jobs_of_type(SEND_INVITATION_JOB)
    assert job["payload"]["reminder_schedule"] == [7, 3, 1]
    invitation_service.dispatch_scheduled_invitation(
        result.results[1].token, reminder_schedule=job["payload"]["reminder_schedule"]
    )
    assert len(scheduler.jobs_of_type(SEND_REMINDER_JOB)) == 6


def test_scheduled_invitation_without_reminders(invitation_service, request_for, scheduler):
    invitation_service.send_invitations(request_for(["r-ml-1", "r-ml-2"], staggered=True, send_reminders=False))
    [job] = scheduler.jobs_of_type(SEND_INVITATION_JOB)
    assert job["payload"]["reminder_schedule"] == []


def test_reminder_queue_failure_does_not_fail_invitation(invitation_service, request_for):
    service = _service_with(invitation_service, scheduler=InMemoryJobScheduler({SEND_REMINDER_JOB}))
    result = service.send_invitations(request_for(["r-ml-1"]))
    assert result.results[0].success


def test_send_reminder_updates_invitation(invitation_service, sent_token, gateway, invitations):
    assert invitation_service.send_reminder(sent_token, "first_reminder", 7)

    invitation = invitations.get_by_token(sent_token)
    assert invitation.reminder_count == 1
    assert invitation.last_reminder_at == NOW
    reviewer_id, payload = gateway.sent[-1]
    assert reviewer_id == "r-ml-1"
    assert payload["type"] == "reviewer_reminder"
    assert payload["reminder_type"] == "first_reminder"


def test_send_reminder_skips_answered_invitation(invitation_service, sent_token, gateway):
    invitation_service.respond_to_invitation(sent_token, "accept")
    sent_before = len(gateway.sent)

    assert not invitation_service.send_reminder(sent_token, "second_reminder", 3)
    assert len(gateway.sent) == sent_before


def test_send_reminder_failed_dispatch(invitation_service, sent_token, gateway, invitations):
    gateway.failing.add("r-ml-1")
    assert not invitation_service.send_reminder(sent_token, "first_reminder", 7)
    assert invitations.get_by_token(sent_token).reminder_count == 0


def test_send_reminder_unknown_token(invitation_service, gateway):
    assert not invitation_service.send_reminder("no-such-token", "first_reminder", 7)
    assert gateway.sent == []


def test_concurrent_reminders_are_both_counted(invitation_service, sent_token, invitations):
    service = _service_with(invitation_service, gateway=_ConcurrentReminderGateway(invitations))

    assert service.send_reminder(sent_token, "first_reminder", 7)

    assert invitations.get_by_token(sent_token).reminder_count == 2


def test_transition_checks_reminder_count(sent_token, invitations):
    assert invitations.transition(
        sent_token, InvitationStatus.PENDING, expected_reminder_count=1, reminder_count=2
    ) is None
    updated = invitations.transition(
        sent_token, InvitationStatus.PENDING, expected_reminder_count=0, reminder_count=1
    )
    assert updated.reminder_count == 1


# ── Cancel / respond / expire ───────────────────────────────────────────────

def test_cancel_invitation(invitation_service, sent_token, invitations):
    invitation_service.cancel_invitation(sent_token, "Manuscript withdrawn")

    invitation = invitations.get_by_token(sent_token)
    assert invitation.status is InvitationStatus.CANCELLED
    assert invitation.decline_reason == "Manuscript withdrawn"
    assert invitation.responded_at == NOW


def test_second_cancel_is_rejected(invitation_service, sent_token):
    invitation_service.cancel_invitation(sent_token, "Manuscript withdrawn")
    with pytest.raises(InvalidTransitionError, match="already cancelled"):
        invitation_service.cancel_invitation(sent_token, "Again")


def test_cancel_unknown_token(invitation_service):
    with pytest.raises(InvitationNotFoundError):
        invitation_service.cancel_invitation("no-such-token", "whatever")


def test_cancel_after_accept_is_rejected(invitation_service, sent_token, invitations):
    invitation_service.respond_to_invitation(sent_token, "accept")
    with pytest.raises(InvalidTransitionError):
        invitation_service.cancel_invitation(sent_token, "Changed our mind")
    assert invitations.get_by_token(sent_token).status is InvitationStatus.ACCEPTED


def test_accept_invitation(invitation_service, sent_token, frozen):
    frozen.tick(timedelta(hours=5))
    invitation = invitation_service.respond_to_invitation(sent_token, "accept")
    assert invitation.status is InvitationStatus.ACCEPTED
    assert invitation.responded_at == NOW + timedelta(hours=5)
    assert invitation.decline_reason is None


def test_decline_requires_reason(invitation_service, sent_token):
    with pytest.raises(InvalidInvitationRequestError):
        invitation_service.respond_to_invitation(sent_token, "decline")

    invitation = invitation_service.respond_to_invitation(sent_token, "decline", "On sabbatical")
    assert invitation.status is InvitationStatus.DECLINED
    assert invitation.decline_reason == "On sabbatical"


def test_unknown_decision_is_rejected(invitation_service, sent_token):
    with pytest.raises(InvalidInvitationRequestError):
        invitation_service.respond_to_invitation(sent_token, "maybe")


def test_second_response_is_rejected(invitation_service, sent_token):
    invitation_service.respond_to_invitation(sent_token, "accept")
    with pytest.raises(InvalidTransitionError):
        invitation_service.respond_to_invitation(sent_token, "decline", "Too busy after all")


def test_late_response_expires_invitation(invitation_service, sent_token, invitations, frozen):
    frozen.move_to(NOW + timedelta(days=8))

    with pytest.raises(InvitationExpiredError):
        invitation_service.respond_to_invitation(sent_token, "accept")
    assert invitations.get_by_token(sent_token).status is InvitationStatus.EXPIRED


def test_expire_invitation(invitation_service, sent_token, invitations):
    assert not invitation_service.expire_invitation(sent_token, now=NOW + timedelta(days=1))
    assert invitation_service.expire_invitation(sent_token, now=NOW + timedelta(days=8))
    assert invitations.get_by_token(sent_token).status is InvitationStatus.EXPIRED
    assert not invitation_service.expire_invitation(sent_token, now=NOW + timedelta(days=9))


# ── find_and_invite_reviewers ───────────────────────────────────────────────

def test_find_and_invite_reviewers(invitation_service, manuscript, editor, review_deadline, gateway):
    result = invitation_service.find_and_invite_reviewers(
        manuscript_id=manuscript.id,
        invited_by=editor.id,
        review_deadline=review_deadline,
    )

    # Only the deep-learning specialist clears the relevance bar
    assert [r.reviewer_id for r in result.results] == ["r-ml-1"]
    assert result.success_count == 1
    assert result.metadata["staggered"] is True
    assert [rid for rid, _ in gateway.sent] == ["r-ml-1"]


def test_find_and_invite_respects_exclusions(invitation_service, manuscript, editor, review_deadline):
    with pytest.raises(NoSuitableReviewersError):
        invitation_service.find_and_invite_reviewers(
            manuscript_id=manuscript.id,
            invited_by=editor.id,
            review_deadline=review_deadline,
            exclude_reviewer_ids=["r-ml-1"],
        )


def test_find_and_invite_with_impossible_threshold(invitation_service, manuscript, editor, review_deadline):
    with pytest.raises(NoSuitableReviewersError):
        invitation_service.find_and_invite_reviewers(
            manuscript_id=manuscript.id,
            invited_by=editor.id,
            review_deadline=review_deadline,
            min_expertise_score=99,
        )


def test_find_and_invite_unknown_manuscript(invitation_service, editor, review_deadline):
    with pytest.raises(ManuscriptNotFoundError):
        invitation_service.find_and_invite_reviewers("ms-missing", editor.id, review_deadline)


def test_find_and_invite_needs_matching_service(invitation_service, manuscript, editor, review_deadline):
    service = _service_with(invitation_service, matching=None)
    with pytest.raises(InvalidInvitationRequestError):
        service.find_and_invite_reviewers(manuscript.id, editor.id, review_deadline)


# ── Stats ───────────────────────────────────────────────────────────────────

def test_invitation_stats(invitation_service, request_for, manuscript, frozen):
    result = invitation_service.send_invitations(
        request_for(["r-ml-1", "r-ml-2", "r-bot"], send_reminders=False)
    )
    frozen.tick(timedelta(hours=3))
    invitation_service.respond_to_invitation(result.results[0].token, "accept")
    invitation_service.respond_to_invitation(result.results[1].token, "decline", "Conflicting deadline")

    stats = invitation_service.get_invitation_stats(manuscript.id)

    assert stats.total == 3
    assert stats.accepted == 1
    assert stats.declined == 1
    assert stats.pending == 1
    assert stats.response_rate == pytest.approx(2 / 3)
    assert stats.avg_response_time_hours == pytest.approx(3.0)


def test_invitation_stats_for_untouched_manuscript(invitation_service):
    stats = invitation_service.get_invitation_stats("ms-nothing")
    assert stats.total == 0
    assert stats.response_rate == 0.0


def test_gateway_is_shared_between_workers(invitation_service, request_for):
    gateway = RecordingNotificationGateway()
    service = _service_with(invitation_service, gateway=gateway, dispatch_workers=1)
    result = service.send_invitations(request_for(["r-ml-1", "r-ml-2", "r-bot"]))
    assert result.success_count == 3
    assert len(gateway.sent) == 3
