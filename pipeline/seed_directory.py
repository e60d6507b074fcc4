"""
Seed the reviewer directory.

Loads reviewer profiles from a JSON file, generates embeddings and indexes
them in Qdrant for services.directory_service.

Usage:
    python -m pipeline.seed_directory [path/to/reviewers.json]
"""

from __future__ import annotations

import json
import sys

from qdrant_client import QdrantClient

import config
from pipeline.build_embeddings import generate_embeddings, load_embedding_model
from pipeline.index_qdrant import create_collection, upload_reviewers

REQUIRED_FIELDS = ("id", "name")


def load_reviewers(path: str) -> list[dict]:
    """Read reviewer profiles, dropping entries without an id or name and duplicate ids."""
    with open(path) as f:
        raw = json.load(f)

    reviewers = {}
    for entry in raw:
        if not all(entry.get(k) for k in REQUIRED_FIELDS):
            print(f"  Skipping profile without id/name: {entry!r:.80}")
            continue
        reviewers.setdefault(entry["id"], entry)
    return list(reviewers.values())


def main(argv: list[str] | None = None):
    argv = sys.argv[1:] if argv is None else argv
    path = argv[0] if argv else config.REVIEWERS_FILE

    print("=== Reviewer Directory Seeder ===")

    print(f"\nSTEP 1: Loading reviewer profiles from {path}...")
    reviewers = load_reviewers(path)
    print(f"Loaded {len(reviewers)} reviewer profiles")

    print(f"\nSTEP 2: Generating embeddings with {config.EMBEDDING_MODEL}...")
    model = load_embedding_model(config.EMBEDDING_MODEL)
    embeddings = generate_embeddings(reviewers, model)
    valid_count = sum(1 for e in embeddings if e is not None)
    print(f"Generated {valid_count} embeddings")

    print(f"\nSTEP 3: Indexing in Qdrant ({config.QDRANT_HOST}:{config.QDRANT_PORT})...")
    qdrant = QdrantClient(host=config.QDRANT_HOST, port=config.QDRANT_PORT, check_compatibility=False)
    create_collection(qdrant, config.QDRANT_COLLECTION, config.EMBEDDING_DIMENSION)
    indexed = upload_reviewers(qdrant, config.QDRANT_COLLECTION, reviewers, embeddings)

    print("\n=== SEEDING COMPLETE ===")
    print(f"  Reviewers indexed: {indexed}")
    print(f"  Qdrant collection: {config.QDRANT_COLLECTION}")


if __name__ == "__main__":
    main()
