"""
Conflict of Interest (COI) detection service.

Checks a reviewer against the manuscript's authors for:
1. Shared institutions (current or recent)
2. Collaboration network ties (co-authorship, advisor/advisee, family,
   financial, editorial)
3. Manual COI declarations

Every finding carries a severity; a blocking finding makes the reviewer
ineligible. A failed lookup is treated as maximum risk, never as "no conflict".
"""

from __future__ import annotations

import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from datetime import datetime, timedelta

import config
from services.models import (
    AffiliationRecord,
    CollaborationRecord,
    ConflictDeclaration,
    ConflictRecord,
    ConflictSeverity,
    ConflictType,
    EligibilityResult,
    ManuscriptContext,
    utc_now,
)
from services.repositories import ConflictRepository

logger = logging.getLogger(__name__)

RECENT_YEARS = 3
FREQUENT_COLLABORATION_COUNT = 3

SEVERITY_WEIGHTS: dict[ConflictSeverity, int] = {
    ConflictSeverity.BLOCKING: 100,
    ConflictSeverity.HIGH: 60,
    ConflictSeverity.MEDIUM: 30,
    ConflictSeverity.LOW: 10,
}

TYPE_WEIGHTS: dict[ConflictType, float] = {
    ConflictType.ADVISOR_ADVISEE: 1.5,
    ConflictType.FAMILY_PERSONAL: 1.4,
    ConflictType.COAUTHORSHIP_RECENT: 1.3,
    ConflictType.FINANCIAL_COMPETING: 1.2,
    ConflictType.INSTITUTIONAL_CURRENT: 1.1,
    ConflictType.COAUTHORSHIP_FREQUENT: 1.0,
    ConflictType.CUSTOM: 1.0,
    ConflictType.INSTITUTIONAL_RECENT: 0.8,
    ConflictType.EDITORIAL_RELATIONSHIP: 0.7,
    ConflictType.FINANCIAL_COLLABORATION: 0.6,
}

_missing = (set(ConflictType) - set(TYPE_WEIGHTS)) | (set(ConflictSeverity) - set(SEVERITY_WEIGHTS))
if _missing:
    raise RuntimeError(f"Risk weights missing for: {sorted(m.value for m in _missing)}")

# Collaboration-network relationship -> (conflict type, severity)
_RELATIONSHIP_RULES: dict[str, tuple[ConflictType, ConflictSeverity]] = {
    "advisor": (ConflictType.ADVISOR_ADVISEE, ConflictSeverity.BLOCKING),
    "advisee": (ConflictType.ADVISOR_ADVISEE, ConflictSeverity.BLOCKING),
    "family": (ConflictType.FAMILY_PERSONAL, ConflictSeverity.BLOCKING),
    "personal": (ConflictType.FAMILY_PERSONAL, ConflictSeverity.HIGH),
    "financial_competing": (ConflictType.FINANCIAL_COMPETING, ConflictSeverity.HIGH),
    "financial_collaboration": (ConflictType.FINANCIAL_COLLABORATION, ConflictSeverity.MEDIUM),
    "editorial": (ConflictType.EDITORIAL_RELATIONSHIP, ConflictSeverity.LOW),
}


def _same_institution(a: str, b: str) -> bool:
    a, b = a.lower().strip(), b.lower().strip()
    return bool(a and b) and (a in b or b in a)


def _is_current(aff: AffiliationRecord, now: datetime) -> bool:
    return aff.end_date is None or aff.end_date >= now


def detect_institutional_conflicts(
    reviewer_id: str,
    reviewer_affiliations: list[AffiliationRecord],
    author_affiliations: list[AffiliationRecord],
    now: datetime,
) -> list[ConflictRecord]:
    """One finding per author sharing an institution with the reviewer, strongest first."""
    recent_cutoff = now - timedelta(days=365 * RECENT_YEARS)
    by_author: dict[str, ConflictRecord] = {}

    for author_aff in author_affiliations:
        for rev_aff in reviewer_affiliations:
            if not _same_institution(author_aff.institution, rev_aff.institution):
                continue

            if _is_current(author_aff, now) and _is_current(rev_aff, now):
                conflict_type, severity = ConflictType.INSTITUTIONAL_CURRENT, ConflictSeverity.HIGH
            else:
                ended = min(d for d in (author_aff.end_date, rev_aff.end_date) if d is not None)
                if ended < recent_cutoff:
                    continue
                conflict_type, severity = ConflictType.INSTITUTIONAL_RECENT, ConflictSeverity.MEDIUM

            existing = by_author.get(author_aff.profile_id)
            if existing and SEVERITY_WEIGHTS[existing.severity] >= SEVERITY_WEIGHTS[severity]:
                continue
            by_author[author_aff.profile_id] = ConflictRecord(
                reviewer_id=reviewer_id,
                counterpart_id=author_aff.profile_id,
                type=conflict_type,
                severity=severity,
                description=f"Same institution: {rev_aff.institution}",
                evidence={"institution": rev_aff.institution},
            )

    return list(by_author.values())


def detect_collaboration_conflicts(
    reviewer_id: str,
    collaborations: list[CollaborationRecord],
    now: datetime,
) -> list[ConflictRecord]:
    recent_cutoff = now - timedelta(days=365 * RECENT_YEARS)
    flags = []

    for collab in collaborations:
        evidence = {
            "relationship_type": collab.relationship_type,
            "collaboration_count": collab.collaboration_count,
            "last_collaboration_date": (
                collab.last_collaboration_date.isoformat() if collab.last_collaboration_date else None
            ),
        }
        relationship = collab.relationship_type.lower()

        if relationship == "coauthor":
            if collab.last_collaboration_date and collab.last_collaboration_date >= recent_cutoff:
                flags.append(ConflictRecord(
                    reviewer_id=reviewer_id,
                    counterpart_id=collab.person_id,
                    type=ConflictType.COAUTHORSHIP_RECENT,
                    severity=ConflictSeverity.HIGH,
                    description=f"Co-authored with paper author (ID: {collab.person_id}) in the last {RECENT_YEARS} years",
                    evidence=evidence,
                ))
            if collab.collaboration_count >= FREQUENT_COLLABORATION_COUNT:
                flags.append(ConflictRecord(
                    reviewer_id=reviewer_id,
                    counterpart_id=collab.person_id,
                    type=ConflictType.COAUTHORSHIP_FREQUENT,
                    severity=ConflictSeverity.MEDIUM,
                    description=f"{collab.collaboration_count} joint publications with paper author (ID: {collab.person_id})",
                    evidence=evidence,
                ))
            continue

        rule = _RELATIONSHIP_RULES.get(relationship)
        if rule is None:
            logger.debug("Ignoring unknown relationship type %r for reviewer %s", relationship, reviewer_id)
            continue
        conflict_type, severity = rule
        flags.append(ConflictRecord(
            reviewer_id=reviewer_id,
            counterpart_id=collab.person_id,
            type=conflict_type,
            severity=severity,
            description=f"{relationship.replace('_', ' ').capitalize()} relationship with paper author (ID: {collab.person_id})",
            evidence=evidence,
        ))

    return flags


def declared_conflicts(declarations: list[ConflictDeclaration]) -> list[ConflictRecord]:
    return [
        ConflictRecord(
            reviewer_id=d.reviewer_id,
            counterpart_id=d.counterpart_id,
            type=d.conflict_type,
            severity=d.severity,
            description=d.description or "Declared conflict of interest",
            evidence={"source": "declaration", "reported_by": d.reported_by},
        )
        for d in declarations
    ]


def calculate_risk_score(conflicts: list[ConflictRecord]) -> int:
    """Aggregate conflict severity into a 0-100 risk score (higher = riskier)."""
    if not conflicts:
        return 0

    score = sum(SEVERITY_WEIGHTS[c.severity] * TYPE_WEIGHTS[c.type] for c in conflicts)
    # Several conflicts compound
    score *= 1 + (len(conflicts) - 1) * 0.1
    return round(min(100.0, score))


def failed_check(reviewer_id: str, error: str) -> EligibilityResult:
    return EligibilityResult(
        reviewer_id=reviewer_id,
        is_eligible=False,
        conflicts=[],
        risk_score=100,
        check_failed=True,
        error=error,
    )


class ConflictDetector:
    def __init__(
        self,
        conflicts: ConflictRepository,
        max_workers: int = config.COI_CHECK_WORKERS,
        timeout_seconds: float = config.COI_CHECK_TIMEOUT_SECONDS,
    ):
        self.conflicts = conflicts
        self.max_workers = max_workers
        self.timeout_seconds = timeout_seconds

    def detect_conflicts(
        self,
        reviewer_id: str,
        manuscript: ManuscriptContext,
        now: datetime | None = None,
    ) -> list[ConflictRecord]:
        """Evaluate every COI rule between a reviewer and the manuscript's authors.

        Lookup errors propagate; `check_reviewer_conflicts` decides what they mean.
        """
        now = now or utc_now()
        flags = []
        # The reviewer wrote the paper
        if reviewer_id in manuscript.author_ids:
            flags.append(ConflictRecord(
                reviewer_id=reviewer_id,
                counterpart_id=reviewer_id,
                type=ConflictType.CUSTOM,
                severity=ConflictSeverity.BLOCKING,
                description="Reviewer is an author of the manuscript",
                evidence={"rule": "same_person"},
            ))

        author_ids = [a for a in manuscript.author_ids if a != reviewer_id]
        if not author_ids:
            return flags

        affiliations = self.conflicts.get_affiliations([reviewer_id, *author_ids])
        reviewer_affs = [a for a in affiliations if a.profile_id == reviewer_id]
        author_affs = [a for a in affiliations if a.profile_id != reviewer_id]

        flags += detect_institutional_conflicts(reviewer_id, reviewer_affs, author_affs, now)
        flags += detect_collaboration_conflicts(
            reviewer_id, self.conflicts.get_collaborations(reviewer_id, author_ids), now
        )
        flags += declared_conflicts(self.conflicts.get_declarations(reviewer_id, author_ids))
        return flags

    def check_reviewer_conflicts(self, reviewer_id: str, manuscript: ManuscriptContext) -> EligibilityResult:
        try:
            conflicts = self.detect_conflicts(reviewer_id, manuscript)
        except Exception as e:
            logger.error("COI check failed for reviewer %s: %s", reviewer_id, e)
            return failed_check(reviewer_id, str(e))

        return EligibilityResult(
            reviewer_id=reviewer_id,
            is_eligible=not any(c.is_blocking for c in conflicts),
            conflicts=conflicts,
            risk_score=calculate_risk_score(conflicts),
        )

    def check_multiple_reviewers(
        self,
        reviewer_ids: list[str],
        manuscript: ManuscriptContext,
    ) -> dict[str, EligibilityResult]:
        """Check reviewers concurrently. Slow or failing lookups become max-risk results."""
        if not reviewer_ids:
            return {}

        results: dict[str, EligibilityResult] = {}
        executor = ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, len(reviewer_ids))))
        try:
            futures = {
                rid: executor.submit(self.check_reviewer_conflicts, rid, manuscript)
                for rid in dict.fromkeys(reviewer_ids)
            }
            deadline = utc_now() + timedelta(seconds=self.timeout_seconds)
            for rid, future in futures.items():
                remaining = max(0.0, (deadline - utc_now()).total_seconds())
                try:
                    results[rid] = future.result(timeout=remaining)
                except FutureTimeoutError:
                    logger.error("COI check timed out for reviewer %s", rid)
                    results[rid] = failed_check(rid, "COI check timed out")
                except Exception as e:
                    logger.error("COI check failed for reviewer %s: %s", rid, e)
                    results[rid] = failed_check(rid, str(e))
        finally:
            # Do not wait on lookups that already timed out
            executor.shutdown(wait=False, cancel_futures=True)

        return results

    def declare_conflict(
        self,
        reviewer_id: str,
        counterpart_id: str,
        conflict_type: ConflictType,
        severity: ConflictSeverity,
        description: str,
        reported_by: str | None = None,
    ) -> ConflictDeclaration:
        """Record a manual COI declaration; it is picked up by every later check."""
        declaration = ConflictDeclaration(
            reviewer_id=reviewer_id,
            counterpart_id=counterpart_id,
            conflict_type=ConflictType(conflict_type),
            severity=ConflictSeverity(severity),
            description=description,
            reported_by=reported_by,
        )
        self.conflicts.add_declaration(declaration)
        logger.info("Conflict declared: reviewer %s vs %s (%s/%s)",
                    reviewer_id, counterpart_id, declaration.conflict_type.value, declaration.severity.value)
        return declaration


def summarize_conflicts(results: list[EligibilityResult]) -> dict:
    """Conflict counts by type and severity across a batch of checks."""
    by_type: Counter = Counter()
    by_severity: Counter = Counter()
    for r in results:
        for c in r.conflicts:
            by_type[c.type.value] += 1
            by_severity[c.severity.value] += 1

    return {
        "total_conflicts": sum(by_type.values()),
        "by_type": dict(by_type),
        "by_severity": dict(by_severity),
        "blocked_reviewers": sum(1 for r in results if not r.is_eligible),
        "failed_checks": sum(1 for r in results if r.check_failed),
    }
