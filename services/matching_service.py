"""
Reviewer matching orchestrator.

Coordinates the full reviewer-finding pipeline:
1. Candidate pool from the reviewer directory (oversized 3x)
2. Workload enrichment + availability filtering
3. Relevance scoring (expertise, citations, quality, diversity)
4. COI checks (concurrent, fail-safe)
5. Ranking with conflict penalties
"""

from __future__ import annotations

import logging

import config
from services.candidate_service import CandidatePoolProvider, pool_size_for
from services.coi_service import ConflictDetector, summarize_conflicts
from services.models import (
    EligibilityResult,
    ManuscriptContext,
    MatchingCriteria,
    MatchingResult,
    MatchResult,
    ReviewerCandidate,
)
from services.relevance_service import RelevanceScores, score_candidate
from services.workload_service import WorkloadEnricher, filter_by_availability

logger = logging.getLogger(__name__)

MATCHING_STRATEGY = "hybrid_semantic_citation"


def combine_scores(relevance: float, availability: float, quality: float, diversity: float) -> float:
    w = config.OVERALL_WEIGHTS
    overall = (
        relevance * w["relevance"]
        + availability * w["availability"]
        + quality * w["quality"]
        + diversity * w["diversity"]
    )
    return max(0.0, min(overall, 100.0))


def apply_conflict_penalty(overall: float, eligibility: EligibilityResult | None) -> float:
    if eligibility is None:
        return overall
    if not eligibility.is_eligible:
        return overall * config.BLOCKED_MULTIPLIER
    if eligibility.conflicts:
        return overall * config.WARNING_MULTIPLIER
    return overall


def generate_match_reasons(
    candidate: ReviewerCandidate,
    criteria: MatchingCriteria,
    scores: RelevanceScores,
    availability: float,
) -> list[str]:
    """Human-readable reasons, derived only from fixed thresholds."""
    reasons = []

    if scores.expertise >= 60:
        reasons.append(f"Strong expertise match in {criteria.field_of_study}")
    if scores.citation > 0:
        reasons.append("Cited in manuscript references")
    if candidate.h_index >= 20:
        reasons.append(f"High h-index ({candidate.h_index})")
    if availability >= 80:
        reasons.append("High availability")
    if candidate.recent_reviews >= 3:
        reasons.append("Active reviewer")
    if candidate.avg_review_time_days and candidate.avg_review_time_days <= 30:
        reasons.append("Fast review turnaround")
    if candidate.response_rate >= 0.8:
        reasons.append("Reliable response rate")

    return reasons


def build_match(
    candidate: ReviewerCandidate,
    criteria: MatchingCriteria,
    eligibility: EligibilityResult | None = None,
    selected_affiliations: set[str] | None = None,
) -> MatchResult:
    scores = score_candidate(candidate, criteria, selected_affiliations)
    availability = max(0.0, min(float(candidate.availability_score), 100.0))
    base = combine_scores(scores.relevance, availability, scores.quality, scores.diversity)

    return MatchResult(
        candidate=candidate,
        relevance_score=scores.relevance,
        availability_score=availability,
        quality_score=scores.quality,
        diversity_score=scores.diversity,
        expertise_score=scores.expertise,
        citation_score=scores.citation,
        base_score=base,
        overall_score=apply_conflict_penalty(base, eligibility),
        match_reasons=generate_match_reasons(candidate, criteria, scores, availability),
        eligibility=eligibility,
    )


def rank_matches(matches: list[MatchResult], limit: int) -> list[MatchResult]:
    """Sort by adjusted overall score; candidate id breaks ties so runs are repeatable."""
    ordered = sorted(matches, key=lambda m: (-m.overall_score, m.candidate.id))
    return ordered[:max(limit, 0)]


def rank_with_institution_diversity(
    candidates: list[ReviewerCandidate],
    criteria: MatchingCriteria,
    eligibility: dict[str, EligibilityResult],
    limit: int,
) -> list[MatchResult]:
    """
    Greedy ranking that rescores the remaining candidates after every pick,
    so only the first reviewer from each institution earns the affiliation bonus.
    """
    selected: list[MatchResult] = []
    affiliations: set[str] = set()
    remaining = list(candidates)

    while remaining and len(selected) < limit:
        scored = [build_match(c, criteria, eligibility.get(c.id), affiliations) for c in remaining]
        best = rank_matches(scored, 1)[0]
        selected.append(best)
        remaining = [c for c in remaining if c.id != best.candidate.id]
        if best.candidate.affiliation:
            affiliations.add(best.candidate.affiliation)

    return rank_matches(selected, limit)


class ReviewerMatchingService:
    def __init__(
        self,
        pool_provider: CandidatePoolProvider,
        enricher: WorkloadEnricher,
        detector: ConflictDetector,
    ):
        self.pool_provider = pool_provider
        self.enricher = enricher
        self.detector = detector

    def find_reviewers(
        self,
        criteria: MatchingCriteria,
        limit: int = 50,
        manuscript: ManuscriptContext | None = None,
    ) -> MatchingResult:
        """
        Find the best reviewer matches for a manuscript.

        Args:
            criteria: Field, keywords, authors, references and pool filters
            limit: Number of matches to return
            manuscript: Full manuscript context, if the caller has it; passed
                to the directory for semantic ordering and used for COI checks

        Raises:
            ReviewerFetchError: the directory could not be queried
        """
        manuscript = manuscript or ManuscriptContext(
            id=criteria.manuscript_id,
            field_of_study=criteria.field_of_study,
            subfield=criteria.subfield,
            keywords=tuple(criteria.keywords),
            author_ids=tuple(criteria.author_ids),
            reference_strings=tuple(criteria.references),
        )

        pool = self.pool_provider.get_candidate_pool(criteria, pool_size_for(limit), manuscript)
        logger.info("Matching %s: %d candidates in pool", criteria.manuscript_id, len(pool))

        enriched = self.enricher.enrich(pool)
        available = filter_by_availability(enriched, criteria.max_current_load)

        eligibility = self.detector.check_multiple_reviewers([c.id for c in available], manuscript)

        if criteria.institution_diversity:
            ranked = rank_with_institution_diversity(available, criteria, eligibility, limit)
        else:
            matches = [build_match(c, criteria, eligibility.get(c.id)) for c in available]
            ranked = rank_matches(matches, limit)

        coi_filtered = sum(1 for e in eligibility.values() if not e.is_eligible)
        logger.info(
            "Matching %s: %d available, %d ineligible, returning %d",
            criteria.manuscript_id, len(available), coi_filtered, len(ranked),
        )

        return MatchingResult(
            matches=ranked,
            total_candidates=len(pool),
            metadata={
                "field": criteria.field_of_study,
                "subfield": criteria.subfield,
                "exclusions": {
                    "coi_filtered": coi_filtered,
                    "availability_filtered": len(pool) - len(available),
                    "quality_filtered": 0,
                },
                "conflicts": summarize_conflicts(list(eligibility.values())),
                "matching_strategy": MATCHING_STRATEGY,
            },
        )
