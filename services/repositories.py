"""
Interfaces for the collaborators the matching and invitation services consume.

Concrete adapters: `memory_store` (everything), `directory_service` (Qdrant
reviewer directory) and `notification_service` (HTTP notification provider).
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from services.models import (
    AffiliationRecord,
    AssignmentRecord,
    CandidateFilter,
    CollaborationRecord,
    ConflictDeclaration,
    DispatchResult,
    EditorProfile,
    Invitation,
    InvitationStatus,
    ManuscriptContext,
    ReviewerCandidate,
)


class CandidateRepository(Protocol):
    def get_candidates(
        self,
        candidate_filter: CandidateFilter,
        manuscript: ManuscriptContext | None = None,
    ) -> list[ReviewerCandidate]: ...

    def get_reviewers(self, reviewer_ids: list[str]) -> list[ReviewerCandidate]: ...


class AssignmentHistoryRepository(Protocol):
    def get_assignment_history(self, reviewer_ids: list[str], since: datetime) -> list[AssignmentRecord]: ...


class ConflictRepository(Protocol):
    """Conflict evidence: affiliation history, collaboration network, declarations."""

    def get_affiliations(self, profile_ids: list[str]) -> list[AffiliationRecord]: ...

    def get_collaborations(self, reviewer_id: str, person_ids: list[str]) -> list[CollaborationRecord]: ...

    def get_declarations(self, reviewer_id: str, person_ids: list[str]) -> list[ConflictDeclaration]: ...

    def add_declaration(self, declaration: ConflictDeclaration) -> None: ...


class ManuscriptRepository(Protocol):
    def get_manuscript(self, manuscript_id: str) -> ManuscriptContext | None: ...


class ProfileRepository(Protocol):
    def get_profile(self, profile_id: str) -> EditorProfile | None: ...


class InvitationRepository(Protocol):
    def insert(self, invitation: Invitation) -> Invitation:
        """Persist a new invitation; raises DuplicateTokenError on a token clash."""
        ...

    def delete(self, invitation_id: str) -> None: ...

    def get_by_token(self, token: str) -> Invitation | None: ...

    def list_by_manuscript(self, manuscript_id: str) -> list[Invitation]: ...

    def transition(
        self,
        token: str,
        expected_status: InvitationStatus,
        expected_reminder_count: int | None = None,
        **changes,
    ) -> Invitation | None:
        """Apply `changes` only if the invitation is still in `expected_status`
        and, when given, still has `expected_reminder_count` reminders recorded.

        Returns the updated invitation, or None when either check fails.
        """
        ...


class NotificationGateway(Protocol):
    def send(self, reviewer_id: str, payload: dict) -> DispatchResult: ...


class JobScheduler(Protocol):
    """Durable delayed-job queue; the services never sleep in-process."""

    def enqueue(self, job_type: str, run_at: datetime, payload: dict) -> str: ...
