"""
Workload enrichment.

Derives load, availability and track-record statistics from the trailing
twelve months of review assignments, then drops candidates who are
overloaded, unavailable or inactive.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

import numpy as np

import config
from services.models import AssignmentRecord, AssignmentStatus, ReviewerCandidate, utc_now
from services.repositories import AssignmentHistoryRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkloadStats:
    recent_reviews: int
    avg_review_time_days: float | None
    response_rate: float
    current_load: int
    availability_score: float
    last_active_date: datetime | None


def compute_workload_stats(records: list[AssignmentRecord]) -> WorkloadStats:
    """Compute the statistics for one reviewer from their assignment records."""
    counts = {status: 0 for status in AssignmentStatus}
    for r in records:
        counts[r.status] += 1

    total = len(records)
    responses = counts[AssignmentStatus.ACCEPTED] + counts[AssignmentStatus.DECLINED] + counts[AssignmentStatus.COMPLETED]
    response_rate = round(responses / total, 2) if total > 0 else 1.0

    review_days = [
        (r.completed_at - r.invited_at) // timedelta(days=1)
        for r in records
        if r.status is AssignmentStatus.COMPLETED and r.completed_at is not None
    ]
    avg_review_time = float(round(np.mean(review_days))) if review_days else None

    current_load = counts[AssignmentStatus.INVITED] + counts[AssignmentStatus.ACCEPTED]
    availability = max(
        0,
        100 - current_load * config.LOAD_PENALTY - counts[AssignmentStatus.DECLINED] * config.DECLINE_PENALTY,
    )

    last_active = max((r.invited_at for r in records), default=None)

    return WorkloadStats(
        recent_reviews=counts[AssignmentStatus.COMPLETED],
        avg_review_time_days=avg_review_time,
        response_rate=response_rate,
        current_load=current_load,
        availability_score=float(availability),
        last_active_date=last_active,
    )


class WorkloadEnricher:
    def __init__(self, history: AssignmentHistoryRepository):
        self.history = history

    def enrich(self, candidates: list[ReviewerCandidate], now: datetime | None = None) -> list[ReviewerCandidate]:
        """Return copies of `candidates` carrying freshly computed workload stats.

        A failed history lookup is not fatal: the directory's own values are kept.
        """
        if not candidates:
            return []
        now = now or utc_now()
        since = now - timedelta(days=config.HISTORY_WINDOW_DAYS)

        try:
            records = self.history.get_assignment_history([c.id for c in candidates], since)
        except Exception as e:
            logger.warning("Assignment history unavailable, using directory statistics: %s", e)
            return [replace(c) for c in candidates]

        by_reviewer: dict[str, list[AssignmentRecord]] = {}
        for r in records:
            by_reviewer.setdefault(r.reviewer_id, []).append(r)

        enriched = []
        for c in candidates:
            stats = compute_workload_stats(by_reviewer.get(c.id, []))
            enriched.append(replace(
                c,
                recent_reviews=stats.recent_reviews,
                avg_review_time_days=stats.avg_review_time_days,
                response_rate=stats.response_rate,
                current_load=stats.current_load,
                availability_score=stats.availability_score,
                last_active_date=stats.last_active_date or c.last_active_date,
            ))
        return enriched


def is_available(
    candidate: ReviewerCandidate,
    max_current_load: int | None = None,
    now: datetime | None = None,
) -> bool:
    if max_current_load is not None and candidate.current_load > max_current_load:
        return False

    if candidate.availability_score < config.MIN_AVAILABILITY_SCORE:
        return False

    # No recorded activity at all means a new reviewer, not an inactive one
    if candidate.last_active_date is not None:
        cutoff = (now or utc_now()) - timedelta(days=config.INACTIVITY_LIMIT_DAYS)
        if candidate.last_active_date < cutoff:
            return False

    return True


def filter_by_availability(
    candidates: list[ReviewerCandidate],
    max_current_load: int | None = None,
    now: datetime | None = None,
) -> list[ReviewerCandidate]:
    return [c for c in candidates if is_available(c, max_current_load, now)]
