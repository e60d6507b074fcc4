from __future__ import annotations

from datetime import datetime, timedelta, timezone

import freezegun
import pytest

from services.candidate_service import CandidatePoolProvider
from services.coi_service import ConflictDetector
from services.invitation_service import InvitationService
from services.matching_service import ReviewerMatchingService
from services.memory_store import (
    InMemoryAssignmentHistory,
    InMemoryCandidateRepository,
    InMemoryConflictRepository,
    InMemoryInvitationRepository,
    InMemoryJobScheduler,
    InMemoryManuscriptRepository,
    InMemoryProfileRepository,
    RecordingNotificationGateway,
)
from services.models import (
    CollaborationRecord,
    EditorProfile,
    ManuscriptContext,
    MatchingCriteria,
    ReviewerCandidate,
)
from services.workload_service import WorkloadEnricher

# freezegun scans sys.modules; transformers' lazy modules fail on attribute access.
freezegun.configure(extend_ignore_list=["transformers"])

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def manuscript():
    return ManuscriptContext(
        id="ms-2026-0142",
        field_of_study="Machine Learning",
        subfield="Deep Learning",
        keywords=("neural networks", "optimization"),
        author_ids=("a-1", "a-2"),
        reference_strings=(
            "Nguyen, A. (2021). Sparse attention for long documents. JMLR 22.",
            "Hinton, G. (2012). Improving neural networks by preventing co-adaptation.",
        ),
        title="Curvature-aware optimizers for deep networks",
        abstract="We study second-order optimization for large neural networks.",
    )


@pytest.fixture
def candidates():
    return [
        ReviewerCandidate(
            id="r-ml-1",
            name="Alice Nguyen",
            expertise=["Machine Learning", "Deep Learning", "Neural Networks"],
            h_index=25,
            publication_count=60,
            affiliation="MIT",
        ),
        ReviewerCandidate(
            id="r-ml-2",
            name="Bruno Keller",
            expertise=["Machine Learning", "Computer Vision"],
            h_index=12,
            publication_count=30,
            affiliation="ETH Zurich",
        ),
        ReviewerCandidate(
            id="r-bot",
            name="Clara Ortiz",
            expertise=["Botany", "Plant Ecology"],
            h_index=18,
            publication_count=40,
            affiliation="Royal Botanic Gardens, Kew",
        ),
        ReviewerCandidate(
            id="r-conflict",
            name="Dmitri Volkov",
            expertise=["Machine Learning"],
            h_index=15,
            publication_count=25,
            affiliation="Stanford University",
        ),
    ]


@pytest.fixture
def candidate_repo(candidates):
    return InMemoryCandidateRepository(candidates)


@pytest.fixture
def history():
    return InMemoryAssignmentHistory()


@pytest.fixture
def conflict_repo():
    # Dmitri supervised the first author: a blocking conflict
    return InMemoryConflictRepository(
        collaborations=[
            CollaborationRecord(reviewer_id="r-conflict", person_id="a-1", relationship_type="advisor"),
        ],
    )


@pytest.fixture
def detector(conflict_repo):
    return ConflictDetector(conflict_repo, max_workers=4, timeout_seconds=5)


@pytest.fixture
def matching_service(candidate_repo, history, detector):
    return ReviewerMatchingService(
        pool_provider=CandidatePoolProvider(candidate_repo),
        enricher=WorkloadEnricher(history),
        detector=detector,
    )


@pytest.fixture
def criteria(manuscript):
    return MatchingCriteria.from_manuscript(manuscript)


@pytest.fixture
def editor():
    return EditorProfile(id="ed-1", full_name="Erin Park", role="editor", email="erin@example.org")


@pytest.fixture
def manuscripts(manuscript):
    return InMemoryManuscriptRepository([manuscript])


@pytest.fixture
def profiles(editor):
    return InMemoryProfileRepository([editor])


@pytest.fixture
def invitations():
    return InMemoryInvitationRepository()


@pytest.fixture
def gateway():
    return RecordingNotificationGateway()


@pytest.fixture
def scheduler():
    return InMemoryJobScheduler()


@pytest.fixture
def invitation_service(
    invitations, manuscripts, candidate_repo, profiles, detector, gateway, scheduler, matching_service
):
    return InvitationService(
        invitations=invitations,
        manuscripts=manuscripts,
        reviewers=candidate_repo,
        profiles=profiles,
        detector=detector,
        gateway=gateway,
        scheduler=scheduler,
        matching=matching_service,
        dispatch_workers=3,
    )


@pytest.fixture
def review_deadline():
    return NOW + timedelta(days=30)
