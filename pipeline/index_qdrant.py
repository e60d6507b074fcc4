"""
Upload reviewer embeddings and profile payloads to Qdrant.
"""

from __future__ import annotations

import uuid

import numpy as np
from qdrant_client import QdrantClient
from qdrant_client.models import Distance, PointStruct, VectorParams
from tqdm import tqdm


def create_collection(
    client: QdrantClient,
    collection_name: str,
    vector_size: int,
):
    """Create or recreate the Qdrant collection."""
    if client.collection_exists(collection_name):
        print(f"Collection '{collection_name}' already exists. Recreating...")
        client.delete_collection(collection_name)

    client.create_collection(
        collection_name=collection_name,
        vectors_config=VectorParams(
            size=vector_size,
            distance=Distance.COSINE,
        ),
    )
    print(f"Created collection '{collection_name}' (dim={vector_size}, cosine)")


def reviewer_payload(reviewer: dict) -> dict:
    """Payload stored with each point; read back by services.directory_service."""
    return {
        "reviewer_id": reviewer["id"],
        "name": reviewer.get("name", ""),
        "role": reviewer.get("role", "reviewer"),
        "expertise": reviewer.get("expertise", []),
        "h_index": reviewer.get("h_index", 0),
        "publication_count": reviewer.get("publication_count", 0),
        "affiliation": reviewer.get("affiliation", ""),
        "email": reviewer.get("email", ""),
        "orcid": reviewer.get("orcid", ""),
        "last_active_date": reviewer.get("last_active_date") or "",
    }


def upload_reviewers(
    client: QdrantClient,
    collection_name: str,
    reviewers: list[dict],
    embeddings: list,
    batch_size: int = 100,
) -> int:
    """Upload reviewer vectors + payloads to Qdrant. Profiles without a vector are skipped."""
    points = []

    for reviewer, embedding in zip(reviewers, embeddings):
        if embedding is None:
            continue

        points.append(PointStruct(
            id=str(uuid.uuid5(uuid.NAMESPACE_URL, reviewer["id"])),
            vector=np.asarray(embedding, dtype=np.float32).tolist(),
            payload=reviewer_payload(reviewer),
        ))

    for i in tqdm(range(0, len(points), batch_size), desc="Uploading reviewers"):
        client.upsert(collection_name=collection_name, points=points[i : i + batch_size])

    print(f"Done. {len(points)} reviewers indexed in Qdrant.")
    return len(points)
