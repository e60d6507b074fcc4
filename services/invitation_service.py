"""
Reviewer invitation campaigns.

Turns a selected reviewer list into invitations: COI screening, token
creation, immediate or staggered dispatch, reminder scheduling and the
response state machine:

    pending -> accepted | declined | expired | cancelled   (all terminal)

Deferred work (staggered sends, reminders, expiry sweeps) is handed to an
external JobScheduler with a timestamp; nothing here sleeps or runs timers.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta

import config
from services.coi_service import ConflictDetector
from services.errors import (
    DuplicateTokenError,
    EditorNotFoundError,
    InvalidInvitationRequestError,
    InvalidTransitionError,
    InvitationExpiredError,
    InvitationNotFoundError,
    ManuscriptNotFoundError,
    NoSuitableReviewersError,
    ReviewerFetchError,
)
from services.matching_service import ReviewerMatchingService
from services.models import (
    BulkInvitationResult,
    EditorProfile,
    EligibilityResult,
    Invitation,
    InvitationOutcome,
    InvitationRequest,
    InvitationResult,
    InvitationStats,
    InvitationStatus,
    ManuscriptContext,
    MatchingCriteria,
    Priority,
    ReviewerCandidate,
    utc_now,
)
from services.repositories import (
    CandidateRepository,
    InvitationRepository,
    JobScheduler,
    ManuscriptRepository,
    NotificationGateway,
    ProfileRepository,
)
from services.stats_service import aggregate_invitation_stats

logger = logging.getLogger(__name__)

REMINDER_TYPES = ["first_reminder", "second_reminder", "final_reminder"]
SEND_INVITATION_JOB = "send_invitation"
SEND_REMINDER_JOB = "send_reminder"
TOKEN_ATTEMPTS = 3
REMINDER_UPDATE_ATTEMPTS = 3

CONFLICT_WARNING = (
    "Please note: Our system detected potential minor conflicts that should be "
    "considered during your review."
)


def generate_token() -> str:
    return secrets.token_urlsafe(32)


def is_expired(invitation: Invitation, now: datetime | None = None) -> bool:
    """True when a pending invitation has passed its response deadline."""
    now = now or utc_now()
    return invitation.status is InvitationStatus.PENDING and invitation.response_deadline < now


def stagger_offset(index: int, staggered: bool, interval_hours: float) -> timedelta:
    if not staggered:
        return timedelta(0)
    return timedelta(hours=index * interval_hours)


@dataclass
class _Dispatch:
    """Everything one worker needs to create and send a single invitation."""
    index: int
    reviewer: ReviewerCandidate
    eligibility: EligibilityResult | None
    send_time: datetime


class InvitationService:
    def __init__(
        self,
        invitations: InvitationRepository,
        manuscripts: ManuscriptRepository,
        reviewers: CandidateRepository,
        profiles: ProfileRepository,
        detector: ConflictDetector,
        gateway: NotificationGateway,
        scheduler: JobScheduler,
        matching: ReviewerMatchingService | None = None,
        dispatch_workers: int = config.DISPATCH_WORKERS,
    ):
        self.invitations = invitations
        self.manuscripts = manuscripts
        self.reviewers = reviewers
        self.profiles = profiles
        self.detector = detector
        self.gateway = gateway
        self.scheduler = scheduler
        self.matching = matching
        self.dispatch_workers = max(1, dispatch_workers)

    # ── Bulk sending ────────────────────────────────────────────────────────

    def send_invitations(self, request: InvitationRequest) -> BulkInvitationResult:
        """
        Invite every requested reviewer; one result per reviewer, in request order.

        Raises (whole request aborted):
            ManuscriptNotFoundError, ReviewerFetchError, EditorNotFoundError,
            InvalidInvitationRequestError
        """
        now = utc_now()
        manuscript = self._get_manuscript(request.manuscript_id)

        reviewer_ids = list(dict.fromkeys(request.reviewer_ids))
        try:
            found = {r.id: r for r in self.reviewers.get_reviewers(reviewer_ids)}
        except Exception as e:
            logger.error("Failed to fetch reviewer details for %s: %s", request.manuscript_id, e)
            raise ReviewerFetchError("Failed to fetch reviewer details") from e

        editor = self.profiles.get_profile(request.invited_by)
        if editor is None:
            raise EditorNotFoundError(request.invited_by)

        response_deadline = self._resolve_response_deadline(request, now)
        template_id = request.template_id or config.DEFAULT_TEMPLATE_ID
        interval = (
            request.stagger_interval_hours
            if request.stagger_interval_hours is not None
            else config.DEFAULT_STAGGER_INTERVAL_HOURS
        )

        coi = self.detector.check_multiple_reviewers(list(found), manuscript)

        results: list[InvitationResult | None] = [None] * len(reviewer_ids)
        work: list[_Dispatch] = []
        conflicts_detected = 0

        for i, reviewer_id in enumerate(reviewer_ids):
            reviewer = found.get(reviewer_id)
            if reviewer is None:
                results[i] = InvitationResult(
                    success=False,
                    reviewer_id=reviewer_id,
                    outcome=InvitationOutcome.SKIPPED,
                    error="Reviewer not found",
                )
                continue

            eligibility = coi.get(reviewer_id)
            if eligibility is not None and not eligibility.is_eligible:
                conflicts_detected += 1
                results[i] = InvitationResult(
                    success=False,
                    reviewer_id=reviewer_id,
                    outcome=InvitationOutcome.FAILED,
                    error=_conflict_message(eligibility),
                )
                continue

            if eligibility is not None and eligibility.conflicts:
                conflicts_detected += 1

            send_time = now + stagger_offset(i, request.staggered, interval)
            work.append(_Dispatch(index=i, reviewer=reviewer, eligibility=eligibility, send_time=send_time))

        if work:
            with ThreadPoolExecutor(max_workers=min(self.dispatch_workers, len(work))) as pool:
                outcomes = pool.map(
                    lambda d: self._send_single_invitation(
                        d, request, manuscript, editor, response_deadline, template_id, now
                    ),
                    work,
                )
                for d, result in zip(work, outcomes):
                    results[d.index] = result

        final = [r for r in results if r is not None]
        success_count = sum(1 for r in final if r.success)
        logger.info(
            "Invitations for %s: %d requested, %d succeeded, %d conflicts",
            request.manuscript_id, len(reviewer_ids), success_count, conflicts_detected,
        )

        return BulkInvitationResult(
            results=final,
            total_invited=len(found),
            success_count=success_count,
            failure_count=len(final) - success_count,
            metadata={
                "manuscript_id": request.manuscript_id,
                "invited_by": request.invited_by,
                "template_used": template_id,
                "total_reviewers_requested": len(request.reviewer_ids),
                "conflicts_detected": conflicts_detected,
                "staggered": request.staggered,
            },
        )

    def _send_single_invitation(
        self,
        dispatch: _Dispatch,
        request: InvitationRequest,
        manuscript: ManuscriptContext,
        editor: EditorProfile,
        response_deadline: datetime,
        template_id: str,
        now: datetime,
    ) -> InvitationResult:
        reviewer = dispatch.reviewer
        try:
            invitation = self._create_invitation(
                manuscript_id=manuscript.id,
                reviewer_id=reviewer.id,
                invited_by=request.invited_by,
                review_deadline=request.review_deadline,
                response_deadline=response_deadline,
                custom_message=request.custom_message,
                now=now,
            )
        except Exception as e:
            logger.error("Could not create invitation for %s: %s", reviewer.id, e)
            return InvitationResult(
                success=False,
                reviewer_id=reviewer.id,
                outcome=InvitationOutcome.FAILED,
                error=f"Failed to create invitation record: {e}",
            )

        has_warning = bool(dispatch.eligibility and dispatch.eligibility.conflicts)
        reminder_schedule = (
            request.reminder_schedule if request.reminder_schedule is not None else config.DEFAULT_REMINDER_SCHEDULE
        )
        if not request.send_reminders:
            reminder_schedule = []

        try:
            if dispatch.send_time <= now:
                payload = self._invitation_payload(
                    invitation, manuscript, reviewer, editor, template_id, request.priority, has_warning
                )
                sent = self.gateway.send(reviewer.id, payload)
                if not sent.success:
                    raise RuntimeError(sent.error or "Notification dispatch failed")
                outcome, scheduled_for = InvitationOutcome.SENT, None
            else:
                self.scheduler.enqueue(
                    SEND_INVITATION_JOB,
                    dispatch.send_time,
                    {
                        "token": invitation.token,
                        "invitation_id": invitation.id,
                        "template_id": template_id,
                        "priority": Priority(request.priority).value,
                        "has_conflict_warning": has_warning,
                        "reminder_schedule": list(reminder_schedule),
                    },
                )
                self.invitations.transition(
                    invitation.token, InvitationStatus.PENDING, scheduled_for=dispatch.send_time
                )
                outcome, scheduled_for = InvitationOutcome.SCHEDULED, dispatch.send_time
        except Exception as e:
            # Only this reviewer's record is rolled back
            logger.error("Error sending invitation to %s: %s", reviewer.id, e)
            self.invitations.delete(invitation.id)
            return InvitationResult(
                success=False,
                reviewer_id=reviewer.id,
                outcome=InvitationOutcome.FAILED,
                error=str(e),
            )

        # Scheduled invitations get their reminders once actually sent
        if outcome is InvitationOutcome.SENT and reminder_schedule:
            self.schedule_reminders(invitation, reminder_schedule, now)

        return InvitationResult(
            success=True,
            reviewer_id=reviewer.id,
            outcome=outcome,
            invitation_id=invitation.id,
            token=invitation.token,
            scheduled_for=scheduled_for,
        )

    def _create_invitation(self, now: datetime, **fields) -> Invitation:
        for attempt in range(TOKEN_ATTEMPTS):
            invitation = Invitation(
                id=str(uuid.uuid4()),
                token=generate_token(),
                status=InvitationStatus.PENDING,
                reminder_count=0,
                created_at=now,
                **fields,
            )
            try:
                return self.invitations.insert(invitation)
            except DuplicateTokenError:
                logger.warning("Invitation token collision (attempt %d), regenerating", attempt + 1)
        raise DuplicateTokenError("Could not generate a unique invitation token")

    def schedule_reminders(
        self,
        invitation: Invitation,
        reminder_schedule: list[int],
        now: datetime | None = None,
    ) -> list[str]:
        """Queue reminders N days before the review deadline; past dates are skipped."""
        now = now or utc_now()
        job_ids = []
        for reminder_type, days_before in zip(REMINDER_TYPES, reminder_schedule):
            reminder_date = invitation.review_deadline - timedelta(days=days_before)
            if reminder_date <= now:
                continue
            try:
                job_ids.append(self.scheduler.enqueue(
                    SEND_REMINDER_JOB,
                    reminder_date,
                    {"token": invitation.token, "reminder_type": reminder_type, "days_before": days_before},
                ))
            except Exception as e:
                logger.error("Failed to schedule %s for invitation %s: %s", reminder_type, invitation.id, e)
        return job_ids

    # ── Scheduler callbacks ─────────────────────────────────────────────────

    def dispatch_scheduled_invitation(
        self,
        token: str,
        template_id: str | None = None,
        priority: Priority = Priority.NORMAL,
        has_conflict_warning: bool = False,
        reminder_schedule: list[int] | None = None,
    ) -> InvitationResult:
        """Send a staggered invitation when its scheduled time arrives.

        The keyword arguments mirror the job payload queued by `send_invitations`.
        Reminders are queued only after the send succeeds.
        """
        invitation = self._get_invitation(token)
        if invitation.status is not InvitationStatus.PENDING:
            return InvitationResult(
                success=False,
                reviewer_id=invitation.reviewer_id,
                outcome=InvitationOutcome.SKIPPED,
                invitation_id=invitation.id,
                token=token,
                error=f"Invitation already {invitation.status.value}",
            )

        manuscript = self._get_manuscript(invitation.manuscript_id)
        editor = self.profiles.get_profile(invitation.invited_by)
        if editor is None:
            raise EditorNotFoundError(invitation.invited_by)
        reviewers = self.reviewers.get_reviewers([invitation.reviewer_id])
        if not reviewers:
            raise ReviewerFetchError(f"Reviewer {invitation.reviewer_id} not found")

        payload = self._invitation_payload(
            invitation,
            manuscript,
            reviewers[0],
            editor,
            template_id or config.DEFAULT_TEMPLATE_ID,
            priority,
            has_conflict_warning,
        )
        try:
            sent = self.gateway.send(invitation.reviewer_id, payload)
            if not sent.success:
                raise RuntimeError(sent.error or "Notification dispatch failed")
        except Exception as e:
            logger.error("Scheduled invitation %s failed: %s", invitation.id, e)
            self.invitations.delete(invitation.id)
            return InvitationResult(
                success=False,
                reviewer_id=invitation.reviewer_id,
                outcome=InvitationOutcome.FAILED,
                error=str(e),
            )

        if reminder_schedule:
            self.schedule_reminders(invitation, reminder_schedule)

        return InvitationResult(
            success=True,
            reviewer_id=invitation.reviewer_id,
            outcome=InvitationOutcome.SENT,
            invitation_id=invitation.id,
            token=token,
        )

    def send_reminder(self, token: str, reminder_type: str, days_before: int | None = None) -> bool:
        """Send one reminder for a still-pending invitation. Returns False if skipped."""
        invitation = self.invitations.get_by_token(token)
        if invitation is None:
            logger.info("Skipping %s for unknown invitation token", reminder_type)
            return False
        if invitation.status is not InvitationStatus.PENDING:
            logger.info("Skipping %s for %s invitation %s", reminder_type, invitation.status.value, invitation.id)
            return False

        payload = {
            "type": "reviewer_reminder",
            "reminder_type": reminder_type,
            "days_before": days_before,
            "manuscript_id": invitation.manuscript_id,
            "token": token,
            "view_link": _response_url(token),
            "due_date": invitation.review_deadline.isoformat(),
        }
        sent = self.gateway.send(invitation.reviewer_id, payload)
        if not sent.success:
            logger.warning("Reminder %s for invitation %s failed: %s", reminder_type, invitation.id, sent.error)
            return False

        sent_at = utc_now()
        for _ in range(REMINDER_UPDATE_ATTEMPTS):
            current = self.invitations.get_by_token(token)
            if current is None or current.status is not InvitationStatus.PENDING:
                return False
            updated = self.invitations.transition(
                token,
                InvitationStatus.PENDING,
                expected_reminder_count=current.reminder_count,
                reminder_count=current.reminder_count + 1,
                last_reminder_at=sent_at,
            )
            if updated is not None:
                return True
        logger.warning("Could not record %s for invitation %s", reminder_type, invitation.id)
        return False

    def expire_invitation(self, token: str, now: datetime | None = None) -> bool:
        """Mark a pending invitation expired if its response deadline has passed."""
        now = now or utc_now()
        invitation = self._get_invitation(token)
        if not is_expired(invitation, now):
            return False
        return self.invitations.transition(token, InvitationStatus.PENDING, status=InvitationStatus.EXPIRED) is not None

    # ── Responses ───────────────────────────────────────────────────────────

    def cancel_invitation(self, token: str, reason: str) -> None:
        """Cancel a pending invitation. Cancelling a terminal invitation is an error."""
        self._transition_from_pending(
            token,
            InvitationStatus.CANCELLED,
            decline_reason=reason,
            responded_at=utc_now(),
        )
        logger.info("Invitation %s cancelled: %s", token[:8], reason)

    def respond_to_invitation(self, token: str, decision: str, reason: str | None = None) -> Invitation:
        """Record a reviewer's accept / decline decision."""
        if decision not in ("accept", "decline"):
            raise InvalidInvitationRequestError('Invalid decision. Must be "accept" or "decline"')
        if decision == "decline" and not reason:
            raise InvalidInvitationRequestError("Decline reason is required when declining")

        now = utc_now()
        invitation = self._get_invitation(token)
        if invitation.status is not InvitationStatus.PENDING:
            raise InvalidTransitionError(token, invitation.status.value, decision)

        if is_expired(invitation, now):
            self.invitations.transition(token, InvitationStatus.PENDING, status=InvitationStatus.EXPIRED)
            raise InvitationExpiredError(token)

        target = InvitationStatus.ACCEPTED if decision == "accept" else InvitationStatus.DECLINED
        return self._transition_from_pending(
            token,
            target,
            responded_at=now,
            decline_reason=reason if target is InvitationStatus.DECLINED else None,
        )

    def _transition_from_pending(self, token: str, target: InvitationStatus, **changes) -> Invitation:
        invitation = self._get_invitation(token)
        if invitation.status is InvitationStatus.PENDING:
            updated = self.invitations.transition(token, InvitationStatus.PENDING, status=target, **changes)
            if updated is not None:
                return updated
            # Lost a race with another writer
            invitation = self._get_invitation(token)
        raise InvalidTransitionError(token, invitation.status.value, target.value)

    # ── Composite & read operations ─────────────────────────────────────────

    def find_and_invite_reviewers(
        self,
        manuscript_id: str,
        invited_by: str,
        review_deadline: datetime,
        response_deadline: datetime | None = None,
        custom_message: str | None = None,
        max_reviewers: int = 3,
        min_expertise_score: float = 60,
        exclude_reviewer_ids: list[str] | None = None,
        template_id: str | None = None,
        priority: Priority = Priority.NORMAL,
    ) -> BulkInvitationResult:
        """Match reviewers for a manuscript and invite the best eligible ones."""
        if self.matching is None:
            raise InvalidInvitationRequestError("Automatic invitation needs a matching service")

        manuscript = self._get_manuscript(manuscript_id)
        criteria = MatchingCriteria.from_manuscript(
            manuscript,
            exclude_reviewer_ids=list(exclude_reviewer_ids or []),
            min_publications=config.AUTO_MIN_PUBLICATIONS,
            max_current_load=config.AUTO_MAX_CURRENT_LOAD,
        )
        # Twice as many as needed, to absorb conflicts and declines
        matching = self.matching.find_reviewers(criteria, max_reviewers * 2, manuscript)

        suitable = [
            m for m in matching.matches
            if m.relevance_score >= min_expertise_score
            and m.availability_score >= config.AUTO_MIN_AVAILABILITY
            and m.is_eligible
        ][:max_reviewers]

        if not suitable:
            raise NoSuitableReviewersError("No suitable reviewers found with the specified criteria")

        return self.send_invitations(InvitationRequest(
            manuscript_id=manuscript_id,
            reviewer_ids=[m.candidate.id for m in suitable],
            invited_by=invited_by,
            review_deadline=review_deadline,
            response_deadline=response_deadline,
            custom_message=custom_message,
            template_id=template_id,
            priority=priority,
            staggered=True,
            stagger_interval_hours=config.AUTO_STAGGER_INTERVAL_HOURS,
            send_reminders=True,
        ))

    def get_invitation_stats(self, manuscript_id: str) -> InvitationStats:
        return aggregate_invitation_stats(self.invitations.list_by_manuscript(manuscript_id))

    # ── Helpers ─────────────────────────────────────────────────────────────

    def _get_manuscript(self, manuscript_id: str) -> ManuscriptContext:
        manuscript = self.manuscripts.get_manuscript(manuscript_id)
        if manuscript is None:
            raise ManuscriptNotFoundError(manuscript_id)
        return manuscript

    def _get_invitation(self, token: str) -> Invitation:
        invitation = self.invitations.get_by_token(token)
        if invitation is None:
            raise InvitationNotFoundError(token)
        return invitation

    @staticmethod
    def _resolve_response_deadline(request: InvitationRequest, now: datetime) -> datetime:
        if request.response_deadline is not None:
            if request.response_deadline > request.review_deadline:
                raise InvalidInvitationRequestError("Response deadline must not be after the review deadline")
            return request.response_deadline
        return min(now + timedelta(days=config.DEFAULT_RESPONSE_DAYS), request.review_deadline)

    @staticmethod
    def _invitation_payload(
        invitation: Invitation,
        manuscript: ManuscriptContext,
        reviewer: ReviewerCandidate,
        editor: EditorProfile,
        template_id: str,
        priority: Priority,
        has_conflict_warning: bool,
    ) -> dict:
        """Template variables for the notification provider; it renders the message."""
        response_url = _response_url(invitation.token)
        abstract = manuscript.abstract or ""
        return {
            "type": "reviewer_invitation",
            "template_id": template_id,
            "priority": Priority(priority).value,
            "token": invitation.token,
            "variables": {
                "reviewer_name": reviewer.name,
                "manuscript_title": manuscript.title,
                "journal_name": config.JOURNAL_NAME,
                "field_of_study": manuscript.field_of_study,
                "subfield": manuscript.subfield or "",
                "abstract_preview": abstract[:200] + ("..." if len(abstract) > 200 else ""),
                "submission_number": manuscript.id[:8].upper(),
                "due_date": invitation.review_deadline.strftime("%A, %B %d, %Y"),
                "response_deadline": invitation.response_deadline.strftime("%A, %B %d, %Y"),
                "reviewer_expertise": ", ".join(reviewer.expertise[:3]),
                "review_type": "double-blind peer review",
                "accept_link": f"{response_url}?action=accept",
                "decline_link": f"{response_url}?action=decline",
                "view_link": response_url,
                "editor_name": editor.full_name,
                "editor_title": editor.role.capitalize(),
                "custom_message": invitation.custom_message or "",
                "conflict_warning": CONFLICT_WARNING if has_conflict_warning else "",
            },
        }


def _response_url(token: str) -> str:
    return f"{config.INVITATION_BASE_URL.rstrip('/')}/review/respond/{token}"


def _conflict_message(eligibility: EligibilityResult) -> str:
    if eligibility.check_failed:
        return f"Conflict of interest: check failed ({eligibility.error or 'unknown error'})"
    types = ", ".join(dict.fromkeys(c.type.value for c in eligibility.conflicts if c.is_blocking))
    return f"Conflict of interest: {types or 'blocking conflict'}"
