"""
Relevance scoring for reviewer candidates.

Scores (all 0-100):
1. Expertise match: field / subfield / keyword containment + token similarity bonus
2. Citation match: candidate name variants found in the manuscript references
3. Quality: h-index, publications, responsiveness, review track record
4. Diversity: affiliation bonus (hook for institution-aware selection)
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import config
from services.models import MatchingCriteria, ReviewerCandidate

_TOKEN_SPLIT = re.compile(r"[\s,\-_]+")


@dataclass(frozen=True)
class RelevanceScores:
    expertise: float
    citation: float
    quality: float
    relevance: float
    diversity: float


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(value, high))


def _contains_either_way(terms: list[str], needle: str) -> bool:
    needle = needle.lower()
    return any(needle in t or t in needle for t in terms)


# ── Expertise ───────────────────────────────────────────────────────────────

def jaccard_similarity(a: str, b: str) -> float:
    """Jaccard similarity of the character sets of two tokens."""
    set_a, set_b = set(a.lower()), set(b.lower())
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def semantic_similarity_bonus(expertise: list[str], criteria: MatchingCriteria) -> float:
    """Award points per criteria token that closely resembles any expertise token."""
    criteria_terms = [
        t.lower()
        for t in [criteria.field_of_study, criteria.subfield, *criteria.keywords]
        if t
    ]
    candidate_tokens = [
        token
        for exp in expertise
        for token in _TOKEN_SPLIT.split(exp)
        if len(token) > 2
    ]

    points = 0
    for term in criteria_terms:
        for token in _TOKEN_SPLIT.split(term):
            if len(token) <= 2:
                continue
            if any(jaccard_similarity(token, ct) > config.JACCARD_THRESHOLD for ct in candidate_tokens):
                points += config.SEMANTIC_TOKEN_POINTS

    return min(points, config.SEMANTIC_BONUS_CAP)


def expertise_score(candidate: ReviewerCandidate, criteria: MatchingCriteria) -> float:
    expertise = [e.lower() for e in candidate.expertise if e]
    if not expertise:
        return 0.0

    score = 0.0
    if criteria.field_of_study and _contains_either_way(expertise, criteria.field_of_study):
        score += config.FIELD_MATCH_POINTS

    if criteria.subfield and _contains_either_way(expertise, criteria.subfield):
        score += config.SUBFIELD_MATCH_POINTS

    for keyword in criteria.keywords:
        if keyword and _contains_either_way(expertise, keyword):
            score += config.KEYWORD_MATCH_POINTS

    score += semantic_similarity_bonus(expertise, criteria)
    return min(score, 100.0)


# ── Citations ───────────────────────────────────────────────────────────────

def name_variations(full_name: str) -> list[str]:
    """Common citation renderings of a person's name, most specific first."""
    parts = full_name.split()
    if len(parts) < 2:
        return [full_name.strip()] if full_name.strip() else []

    first, last = parts[0], parts[-1]
    middle = parts[1:-1]

    variations = [
        " ".join(parts),
        f"{last}, {first}",
        f"{first} {last}",
        f"{first[0]}. {last}",
        f"{last}, {first[0]}.",
    ]
    if middle:
        initials = " ".join(f"{m[0]}." for m in middle)
        variations += [
            f"{first} {initials} {last}",
            f"{last}, {first} {initials}",
            f"{first[0]}. {initials} {last}",
        ]

    return list(dict.fromkeys(variations))


def citation_score(candidate: ReviewerCandidate, references: list[str]) -> float:
    if not references:
        return 0.0
    variants = [v.lower() for v in name_variations(candidate.name)]
    if not variants:
        return 0.0

    score = 0
    for reference in references:
        ref = reference.lower()
        if any(v in ref for v in variants):
            score += config.CITATION_MATCH_POINTS
    return float(min(score, 100))


# ── Quality & diversity ─────────────────────────────────────────────────────

def quality_score(candidate: ReviewerCandidate) -> float:
    score = 50.0
    if candidate.h_index:
        score += min(candidate.h_index * 2, 30)
    if candidate.publication_count:
        score += min(candidate.publication_count / 5, 15)
    if candidate.response_rate:
        score += candidate.response_rate * 0.2
    if candidate.recent_reviews:
        score += min(candidate.recent_reviews * 3, 15)
    # Slow reviewers lose up to 10 points
    if candidate.avg_review_time_days and candidate.avg_review_time_days > 45:
        score -= min((candidate.avg_review_time_days - 45) / 5, 10)
    return _clamp(score)


def diversity_score(
    candidate: ReviewerCandidate,
    selected_affiliations: set[str] | None = None,
) -> float:
    """
    Base 50, +10 for a recorded affiliation.

    `selected_affiliations` is the hook for institution-aware selection: an
    affiliation already represented in the selection earns no bonus.
    """
    score = 50.0
    affiliation = (candidate.affiliation or "").strip().lower()
    if affiliation:
        taken = {a.strip().lower() for a in (selected_affiliations or ())}
        if affiliation not in taken:
            score += 10
    return _clamp(score)


def relevance_from_parts(expertise: float, citation: float, quality: float) -> float:
    w = config.RELEVANCE_WEIGHTS
    return _clamp(expertise * w["expertise"] + citation * w["citation"] + quality * w["quality"])


def score_candidate(
    candidate: ReviewerCandidate,
    criteria: MatchingCriteria,
    selected_affiliations: set[str] | None = None,
) -> RelevanceScores:
    expertise = expertise_score(candidate, criteria)
    citation = citation_score(candidate, criteria.references)
    quality = quality_score(candidate)
    return RelevanceScores(
        expertise=expertise,
        citation=citation,
        quality=quality,
        relevance=relevance_from_parts(expertise, citation, quality),
        diversity=diversity_score(candidate, selected_affiliations),
    )
