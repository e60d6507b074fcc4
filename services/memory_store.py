"""
In-memory implementations of every collaborator interface.

Used by the test suite and for local runs without a database. Each store
guards its state with a lock so the thread pools in the services can share it.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from datetime import datetime

from services.errors import ConflictLookupError, DuplicateTokenError
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


class InMemoryCandidateRepository:
    def __init__(self, candidates: list[ReviewerCandidate] | None = None):
        self._candidates = {c.id: c for c in (candidates or [])}

    def add(self, candidate: ReviewerCandidate) -> None:
        self._candidates[candidate.id] = candidate

    def get_candidates(
        self,
        candidate_filter: CandidateFilter,
        manuscript: ManuscriptContext | None = None,
    ) -> list[ReviewerCandidate]:
        results = []
        for c in self._candidates.values():
            if c.role != candidate_filter.role or c.id in candidate_filter.exclude_ids:
                continue
            if candidate_filter.min_h_index and c.h_index < candidate_filter.min_h_index:
                continue
            if candidate_filter.min_publications and c.publication_count < candidate_filter.min_publications:
                continue
            results.append(replace(c))
            if len(results) >= candidate_filter.limit:
                break
        return results

    def get_reviewers(self, reviewer_ids: list[str]) -> list[ReviewerCandidate]:
        return [
            replace(self._candidates[rid])
            for rid in reviewer_ids
            if rid in self._candidates and self._candidates[rid].role == "reviewer"
        ]


class InMemoryAssignmentHistory:
    def __init__(self, records: list[AssignmentRecord] | None = None):
        self._records = list(records or [])

    def add(self, record: AssignmentRecord) -> None:
        self._records.append(record)

    def get_assignment_history(self, reviewer_ids: list[str], since: datetime) -> list[AssignmentRecord]:
        wanted = set(reviewer_ids)
        return [r for r in self._records if r.reviewer_id in wanted and r.invited_at >= since]


class InMemoryConflictRepository:
    def __init__(
        self,
        affiliations: list[AffiliationRecord] | None = None,
        collaborations: list[CollaborationRecord] | None = None,
        declarations: list[ConflictDeclaration] | None = None,
    ):
        self._affiliations = list(affiliations or [])
        self._collaborations = list(collaborations or [])
        self._declarations = list(declarations or [])
        self._failing: set[str] = set()
        self._lock = threading.Lock()

    def add_affiliation(self, affiliation: AffiliationRecord) -> None:
        with self._lock:
            self._affiliations.append(affiliation)

    def add_collaboration(self, collaboration: CollaborationRecord) -> None:
        with self._lock:
            self._collaborations.append(collaboration)

    def fail_for(self, reviewer_id: str) -> None:
        """Make every lookup for `reviewer_id` raise ConflictLookupError."""
        self._failing.add(reviewer_id)

    def _check(self, reviewer_id: str) -> None:
        if reviewer_id in self._failing:
            raise ConflictLookupError(f"Conflict evidence unavailable for reviewer {reviewer_id}")

    def get_affiliations(self, profile_ids: list[str]) -> list[AffiliationRecord]:
        for pid in profile_ids:
            self._check(pid)
        wanted = set(profile_ids)
        return [a for a in self._affiliations if a.profile_id in wanted]

    def get_collaborations(self, reviewer_id: str, person_ids: list[str]) -> list[CollaborationRecord]:
        self._check(reviewer_id)
        wanted = set(person_ids)
        return [
            c for c in self._collaborations
            if c.reviewer_id == reviewer_id and c.person_id in wanted
        ]

    def get_declarations(self, reviewer_id: str, person_ids: list[str]) -> list[ConflictDeclaration]:
        self._check(reviewer_id)
        wanted = set(person_ids)
        with self._lock:
            return [
                d for d in self._declarations
                if d.reviewer_id == reviewer_id and d.counterpart_id in wanted
            ]

    def add_declaration(self, declaration: ConflictDeclaration) -> None:
        with self._lock:
            self._declarations.append(declaration)


class InMemoryManuscriptRepository:
    def __init__(self, manuscripts: list[ManuscriptContext] | None = None):
        self._manuscripts = {m.id: m for m in (manuscripts or [])}

    def add(self, manuscript: ManuscriptContext) -> None:
        self._manuscripts[manuscript.id] = manuscript

    def get_manuscript(self, manuscript_id: str) -> ManuscriptContext | None:
        return self._manuscripts.get(manuscript_id)


class InMemoryProfileRepository:
    def __init__(self, profiles: list[EditorProfile] | None = None):
        self._profiles = {p.id: p for p in (profiles or [])}

    def get_profile(self, profile_id: str) -> EditorProfile | None:
        return self._profiles.get(profile_id)


class InMemoryInvitationRepository:
    """Invitation store with a uniqueness constraint on token."""

    def __init__(self):
        self._by_id: dict[str, Invitation] = {}
        self._token_index: dict[str, str] = {}
        self._lock = threading.Lock()

    def insert(self, invitation: Invitation) -> Invitation:
        with self._lock:
            if invitation.token in self._token_index:
                raise DuplicateTokenError(f"Invitation token already in use: {invitation.token}")
            stored = replace(invitation)
            self._by_id[stored.id] = stored
            self._token_index[stored.token] = stored.id
            return replace(stored)

    def delete(self, invitation_id: str) -> None:
        with self._lock:
            invitation = self._by_id.pop(invitation_id, None)
            if invitation is not None:
                self._token_index.pop(invitation.token, None)

    def get_by_token(self, token: str) -> Invitation | None:
        with self._lock:
            invitation_id = self._token_index.get(token)
            if invitation_id is None:
                return None
            return replace(self._by_id[invitation_id])

    def list_by_manuscript(self, manuscript_id: str) -> list[Invitation]:
        with self._lock:
            return [replace(i) for i in self._by_id.values() if i.manuscript_id == manuscript_id]

    def transition(
        self,
        token: str,
        expected_status: InvitationStatus,
        expected_reminder_count: int | None = None,
        **changes,
    ) -> Invitation | None:
        with self._lock:
            invitation_id = self._token_index.get(token)
            if invitation_id is None:
                return None
            current = self._by_id[invitation_id]
            if current.status is not expected_status:
                return None
            if expected_reminder_count is not None and current.reminder_count != expected_reminder_count:
                return None
            updated = replace(current, **changes)
            self._by_id[invitation_id] = updated
            return replace(updated)

    def __len__(self) -> int:
        return len(self._by_id)


class RecordingNotificationGateway:
    """Collects every payload; reviewers listed in `failing` get a failed dispatch."""

    def __init__(self, failing: set[str] | None = None, raising: set[str] | None = None):
        self.failing = set(failing or ())
        self.raising = set(raising or ())
        self.sent: list[tuple[str, dict]] = []
        self._lock = threading.Lock()

    def send(self, reviewer_id: str, payload: dict) -> DispatchResult:
        if reviewer_id in self.raising:
            raise RuntimeError(f"Notification provider unreachable for {reviewer_id}")
        if reviewer_id in self.failing:
            return DispatchResult(success=False, error="Notification provider rejected the message")
        with self._lock:
            self.sent.append((reviewer_id, payload))
        return DispatchResult(success=True, message_id=str(uuid.uuid4()))


class InMemoryJobScheduler:
    def __init__(self, failing_job_types: set[str] | None = None):
        self.jobs: list[dict] = []
        self.failing_job_types = set(failing_job_types or ())
        self._lock = threading.Lock()

    def enqueue(self, job_type: str, run_at: datetime, payload: dict) -> str:
        if job_type in self.failing_job_types:
            raise RuntimeError(f"Job queue rejected {job_type}")
        job_id = str(uuid.uuid4())
        with self._lock:
            self.jobs.append({"id": job_id, "type": job_type, "run_at": run_at, "payload": dict(payload)})
        return job_id

    def jobs_of_type(self, job_type: str) -> list[dict]:
        return [j for j in self.jobs if j["type"] == job_type]
