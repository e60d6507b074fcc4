"""
Data model for reviewer matching and invitation campaigns.

Matching inputs and outputs are plain dataclasses that live for one request;
`Invitation` is the only persisted entity and changes state only through
`InvitationService`.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(raw: Any) -> datetime | None:
    """Parse an ISO-8601 string (or pass through a datetime) as an aware UTC datetime."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        dt = raw
    else:
        dt = datetime.fromisoformat(str(raw).strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ── Manuscripts & reviewers ─────────────────────────────────────────────────

@dataclass(frozen=True)
class ManuscriptContext:
    id: str
    field_of_study: str
    subfield: str | None = None
    keywords: tuple[str, ...] = ()
    author_ids: tuple[str, ...] = ()
    reference_strings: tuple[str, ...] = ()
    title: str = ""
    abstract: str = ""


@dataclass
class ReviewerCandidate:
    id: str
    name: str
    expertise: list[str] = field(default_factory=list)
    h_index: int = 0
    publication_count: int = 0
    affiliation: str | None = None
    current_load: int = 0
    response_rate: float = 1.0
    availability_score: float = 100.0
    recent_reviews: int = 0
    avg_review_time_days: float | None = None
    last_active_date: datetime | None = None
    email: str = ""
    orcid: str = ""
    role: str = "reviewer"


class AssignmentStatus(str, enum.Enum):
    INVITED = "invited"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    COMPLETED = "completed"


@dataclass(frozen=True)
class AssignmentRecord:
    reviewer_id: str
    status: AssignmentStatus
    invited_at: datetime
    completed_at: datetime | None = None


@dataclass(frozen=True)
class EditorProfile:
    id: str
    full_name: str
    role: str = "editor"
    email: str = ""


@dataclass(frozen=True)
class CandidateFilter:
    role: str = "reviewer"
    exclude_ids: frozenset[str] = frozenset()
    min_h_index: int | None = None
    min_publications: int | None = None
    limit: int = 150


@dataclass
class MatchingCriteria:
    manuscript_id: str
    field_of_study: str
    subfield: str | None = None
    keywords: list[str] = field(default_factory=list)
    author_ids: list[str] = field(default_factory=list)
    references: list[str] = field(default_factory=list)
    exclude_reviewer_ids: list[str] = field(default_factory=list)
    min_h_index: int | None = None
    min_publications: int | None = None
    max_current_load: int | None = None
    institution_diversity: bool = False

    @classmethod
    def from_manuscript(cls, manuscript: ManuscriptContext, **overrides) -> MatchingCriteria:
        return cls(
            manuscript_id=manuscript.id,
            field_of_study=manuscript.field_of_study,
            subfield=manuscript.subfield,
            keywords=list(manuscript.keywords),
            author_ids=list(manuscript.author_ids),
            references=list(manuscript.reference_strings),
            **overrides,
        )


# ── Conflicts of interest ───────────────────────────────────────────────────

class ConflictType(str, enum.Enum):
    INSTITUTIONAL_CURRENT = "institutional_current"
    INSTITUTIONAL_RECENT = "institutional_recent"
    COAUTHORSHIP_RECENT = "coauthorship_recent"
    COAUTHORSHIP_FREQUENT = "coauthorship_frequent"
    ADVISOR_ADVISEE = "advisor_advisee"
    FAMILY_PERSONAL = "family_personal"
    FINANCIAL_COMPETING = "financial_competing"
    FINANCIAL_COLLABORATION = "financial_collaboration"
    EDITORIAL_RELATIONSHIP = "editorial_relationship"
    CUSTOM = "custom"


class ConflictSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    BLOCKING = "blocking"


@dataclass(frozen=True)
class AffiliationRecord:
    profile_id: str
    institution: str
    start_date: datetime | None = None
    end_date: datetime | None = None


@dataclass(frozen=True)
class CollaborationRecord:
    """An edge of the collaboration network between a reviewer and another person."""
    reviewer_id: str
    person_id: str
    relationship_type: str
    collaboration_count: int = 1
    last_collaboration_date: datetime | None = None


@dataclass(frozen=True)
class ConflictDeclaration:
    reviewer_id: str
    counterpart_id: str
    conflict_type: ConflictType
    severity: ConflictSeverity
    description: str = ""
    reported_by: str | None = None


@dataclass(frozen=True)
class ConflictRecord:
    reviewer_id: str
    counterpart_id: str
    type: ConflictType
    severity: ConflictSeverity
    description: str = ""
    evidence: dict = field(default_factory=dict)

    @property
    def is_blocking(self) -> bool:
        return self.severity is ConflictSeverity.BLOCKING


@dataclass
class EligibilityResult:
    reviewer_id: str
    is_eligible: bool
    conflicts: list[ConflictRecord] = field(default_factory=list)
    risk_score: int = 0
    check_failed: bool = False
    error: str | None = None


# ── Matching output ─────────────────────────────────────────────────────────

@dataclass
class MatchResult:
    candidate: ReviewerCandidate
    relevance_score: float
    availability_score: float
    quality_score: float
    diversity_score: float
    overall_score: float
    expertise_score: float = 0.0
    citation_score: float = 0.0
    base_score: float = 0.0
    match_reasons: list[str] = field(default_factory=list)
    eligibility: EligibilityResult | None = None

    @property
    def is_eligible(self) -> bool:
        return self.eligibility is None or self.eligibility.is_eligible


@dataclass
class MatchingResult:
    matches: list[MatchResult]
    total_candidates: int
    metadata: dict = field(default_factory=dict)


# ── Invitations ─────────────────────────────────────────────────────────────

class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not InvitationStatus.PENDING


class InvitationOutcome(str, enum.Enum):
    SENT = "sent"
    SCHEDULED = "scheduled"
    FAILED = "failed"
    SKIPPED = "skipped"


class Priority(str, enum.Enum):
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


@dataclass
class Invitation:
    id: str
    manuscript_id: str
    reviewer_id: str
    invited_by: str
    token: str
    review_deadline: datetime
    response_deadline: datetime
    status: InvitationStatus = InvitationStatus.PENDING
    reminder_count: int = 0
    created_at: datetime = field(default_factory=utc_now)
    responded_at: datetime | None = None
    custom_message: str | None = None
    decline_reason: str | None = None
    scheduled_for: datetime | None = None
    last_reminder_at: datetime | None = None


@dataclass
class InvitationRequest:
    manuscript_id: str
    reviewer_ids: list[str]
    invited_by: str
    review_deadline: datetime
    response_deadline: datetime | None = None
    custom_message: str | None = None
    template_id: str | None = None
    staggered: bool = False
    stagger_interval_hours: float | None = None
    priority: Priority = Priority.NORMAL
    send_reminders: bool = True
    reminder_schedule: list[int] | None = None


@dataclass
class InvitationResult:
    success: bool
    reviewer_id: str
    outcome: InvitationOutcome
    invitation_id: str = ""
    token: str = ""
    error: str | None = None
    scheduled_for: datetime | None = None


@dataclass
class BulkInvitationResult:
    results: list[InvitationResult]
    total_invited: int
    success_count: int
    failure_count: int
    metadata: dict = field(default_factory=dict)

    @property
    def conflicts_detected(self) -> int:
        return self.metadata.get("conflicts_detected", 0)


@dataclass(frozen=True)
class DispatchResult:
    success: bool
    error: str | None = None
    message_id: str | None = None


@dataclass
class InvitationStats:
    total: int = 0
    pending: int = 0
    accepted: int = 0
    declined: int = 0
    expired: int = 0
    cancelled: int = 0
    response_rate: float = 0.0
    avg_response_time_hours: float = 0.0
