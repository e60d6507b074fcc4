"""
Candidate pool provider.

Pulls a coarse, oversized pool of reviewers from the directory. Everything
finer (workload, relevance, conflicts) happens downstream.
"""

from __future__ import annotations

import logging

import config
from services.errors import ReviewerFetchError
from services.models import CandidateFilter, ManuscriptContext, MatchingCriteria, ReviewerCandidate
from services.repositories import CandidateRepository

logger = logging.getLogger(__name__)


def build_candidate_filter(criteria: MatchingCriteria, pool_size: int) -> CandidateFilter:
    """Translate matching criteria into a directory query."""
    exclude = set(criteria.exclude_reviewer_ids) | set(criteria.author_ids)
    return CandidateFilter(
        role="reviewer",
        exclude_ids=frozenset(exclude),
        min_h_index=criteria.min_h_index,
        min_publications=criteria.min_publications,
        limit=pool_size,
    )


def pool_size_for(limit: int) -> int:
    return max(limit, 1) * config.POOL_OVERSIZE_FACTOR


class CandidatePoolProvider:
    def __init__(self, candidates: CandidateRepository):
        self.candidates = candidates

    def get_candidate_pool(
        self,
        criteria: MatchingCriteria,
        pool_size: int,
        manuscript: ManuscriptContext | None = None,
    ) -> list[ReviewerCandidate]:
        """
        Fetch raw candidates for a manuscript.

        Authors of the manuscript and explicitly excluded reviewers are removed
        again after the directory call, so a directory that ignores the
        exclusion list can never leak an author into the pool.

        Raises:
            ReviewerFetchError: the directory lookup failed.
        """
        candidate_filter = build_candidate_filter(criteria, pool_size)
        try:
            raw = self.candidates.get_candidates(candidate_filter, manuscript)
        except Exception as e:
            logger.error("Error fetching reviewer candidates for %s: %s", criteria.manuscript_id, e)
            raise ReviewerFetchError(f"Failed to fetch reviewer candidates: {e}") from e

        pool = []
        seen = set()
        for candidate in raw:
            if candidate.id in candidate_filter.exclude_ids or candidate.id in seen:
                continue
            seen.add(candidate.id)
            pool.append(candidate)

        if len(pool) < len(raw):
            logger.debug("Dropped %d excluded/duplicate candidates from directory result", len(raw) - len(pool))

        return pool[:pool_size]
