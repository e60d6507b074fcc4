"""
Generate embeddings for reviewer profiles using sentence-transformers.

For prototype: all-MiniLM-L6-v2 (384 dims, fast, lightweight)
For production: allenai/specter2 (768 dims, trained on scientific text)
"""

from __future__ import annotations

import numpy as np
from sentence_transformers import SentenceTransformer


def load_embedding_model(model_name: str = "all-MiniLM-L6-v2") -> SentenceTransformer:
    """Load the sentence-transformer model."""
    print(f"Loading embedding model: {model_name}")
    model = SentenceTransformer(model_name)
    print(f"Model loaded. Embedding dimension: {model.get_sentence_embedding_dimension()}")
    return model


def build_reviewer_text(reviewer: dict) -> str:
    """Build a text representation of a reviewer's expertise for embedding."""
    parts = []

    if reviewer.get("affiliation"):
        parts.append(f"Researcher at {reviewer['affiliation']}.")

    # Declared expertise is the strongest signal
    if reviewer.get("expertise"):
        parts.append(f"Expertise: {', '.join(reviewer['expertise'][:10])}.")

    if reviewer.get("bio"):
        parts.append(reviewer["bio"][:2000])

    return " ".join(parts)


def generate_embeddings(
    reviewers: list[dict],
    model: SentenceTransformer,
    batch_size: int = 32,
) -> list[np.ndarray | None]:
    """Generate embeddings for a list of reviewer profiles (None where a profile has no text)."""
    texts = [build_reviewer_text(r) for r in reviewers]

    valid_indices = [i for i, t in enumerate(texts) if t.strip()]
    valid_texts = [texts[i] for i in valid_indices]

    print(f"Generating embeddings for {len(valid_texts)} reviewers (batch_size={batch_size})...")
    embeddings = model.encode(
        valid_texts,
        batch_size=batch_size,
        show_progress_bar=True,
        normalize_embeddings=True,  # Cosine similarity via dot product
    )

    result: list[np.ndarray | None] = [None] * len(reviewers)
    for idx, emb in zip(valid_indices, embeddings):
        result[idx] = np.asarray(emb, dtype=np.float32)

    return result
