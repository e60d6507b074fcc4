"""
Reviewer directory backed by Qdrant.

Profiles are indexed by `pipeline.seed_directory`. Coarse filters (role,
exclusions, minimum h-index / publications) run as Qdrant payload filters;
when an embedding function is supplied the pool is ordered by vector
similarity to the manuscript, otherwise it is a plain filtered scroll.
"""

from __future__ import annotations

import logging
from typing import Callable

from qdrant_client import QdrantClient
from qdrant_client.models import FieldCondition, Filter, MatchAny, MatchValue, Range

import config
from services.models import CandidateFilter, ManuscriptContext, ReviewerCandidate, parse_datetime

logger = logging.getLogger(__name__)


def build_filter(candidate_filter: CandidateFilter) -> Filter:
    must = [FieldCondition(key="role", match=MatchValue(value=candidate_filter.role))]
    if candidate_filter.min_h_index:
        must.append(FieldCondition(key="h_index", range=Range(gte=candidate_filter.min_h_index)))
    if candidate_filter.min_publications:
        must.append(FieldCondition(key="publication_count", range=Range(gte=candidate_filter.min_publications)))

    must_not = []
    if candidate_filter.exclude_ids:
        must_not.append(FieldCondition(key="reviewer_id", match=MatchAny(any=sorted(candidate_filter.exclude_ids))))

    return Filter(must=must, must_not=must_not or None)


def candidate_from_payload(payload: dict) -> ReviewerCandidate:
    """Build a candidate from a point payload written by the indexing pipeline."""
    avg_time = payload.get("avg_review_time_days")
    return ReviewerCandidate(
        id=payload["reviewer_id"],
        name=payload.get("name", ""),
        expertise=list(payload.get("expertise") or []),
        h_index=int(payload.get("h_index") or 0),
        publication_count=int(payload.get("publication_count") or 0),
        affiliation=payload.get("affiliation") or None,
        current_load=int(payload.get("current_load") or 0),
        response_rate=float(payload.get("response_rate", 1.0)),
        availability_score=float(payload.get("availability_score", 100.0)),
        recent_reviews=int(payload.get("recent_reviews") or 0),
        avg_review_time_days=float(avg_time) if avg_time is not None else None,
        last_active_date=parse_datetime(payload.get("last_active_date")),
        email=payload.get("email", ""),
        orcid=payload.get("orcid", ""),
        role=payload.get("role", "reviewer"),
    )


class QdrantCandidateRepository:
    def __init__(
        self,
        client: QdrantClient | None = None,
        collection_name: str = config.QDRANT_COLLECTION,
        embed: Callable[[ManuscriptContext], list[float]] | None = None,
    ):
        self.client = client or QdrantClient(
            host=config.QDRANT_HOST,
            port=config.QDRANT_PORT,
            check_compatibility=False,
        )
        self.collection_name = collection_name
        self.embed = embed

    @classmethod
    def with_semantic_search(
        cls,
        client: QdrantClient | None = None,
        collection_name: str = config.QDRANT_COLLECTION,
    ) -> QdrantCandidateRepository:
        """Repository that orders the pool by similarity to the manuscript embedding."""
        from services.embedding_service import embed_manuscript

        return cls(client=client, collection_name=collection_name, embed=embed_manuscript)

    def get_candidates(
        self,
        candidate_filter: CandidateFilter,
        manuscript: ManuscriptContext | None = None,
    ) -> list[ReviewerCandidate]:
        query_filter = build_filter(candidate_filter)

        if self.embed is not None and manuscript is not None:
            vector = self.embed(manuscript)
            points = self.client.query_points(
                collection_name=self.collection_name,
                query=vector,
                query_filter=query_filter,
                limit=candidate_filter.limit,
                with_payload=True,
            ).points
        else:
            points, _ = self.client.scroll(
                collection_name=self.collection_name,
                scroll_filter=query_filter,
                limit=candidate_filter.limit,
                with_payload=True,
            )

        logger.debug("Directory returned %d candidates", len(points))
        return [candidate_from_payload(p.payload) for p in points]

    def get_reviewers(self, reviewer_ids: list[str]) -> list[ReviewerCandidate]:
        if not reviewer_ids:
            return []
        points, _ = self.client.scroll(
            collection_name=self.collection_name,
            scroll_filter=Filter(must=[
                FieldCondition(key="reviewer_id", match=MatchAny(any=list(reviewer_ids))),
                FieldCondition(key="role", match=MatchValue(value="reviewer")),
            ]),
            limit=len(reviewer_ids),
            with_payload=True,
        )
        by_id = {p.payload["reviewer_id"]: candidate_from_payload(p.payload) for p in points}
        return [by_id[rid] for rid in reviewer_ids if rid in by_id]
