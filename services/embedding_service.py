"""
Embedding service: generates query vectors for reviewer directory search.
Wraps sentence-transformers for consistent usage across the app.
"""

from __future__ import annotations

from sentence_transformers import SentenceTransformer

import config
from services.models import ManuscriptContext

_model: SentenceTransformer | None = None


def get_model() -> SentenceTransformer:
    """Lazy-load the embedding model (cached as singleton)."""
    global _model
    if _model is None:
        _model = SentenceTransformer(config.EMBEDDING_MODEL)
    return _model


def manuscript_query_text(manuscript: ManuscriptContext) -> str:
    parts = [f"Field: {manuscript.field_of_study}"]

    if manuscript.subfield:
        parts.append(f"Subfield: {manuscript.subfield}")

    if manuscript.keywords:
        parts.append(f"Keywords: {', '.join(manuscript.keywords)}")

    if manuscript.title:
        parts.append(f"Title: {manuscript.title}")

    if manuscript.abstract:
        parts.append(f"Abstract: {manuscript.abstract}")

    return "\n".join(parts)


def embed_manuscript(manuscript: ManuscriptContext) -> list[float]:
    """Generate an embedding vector for a manuscript's reviewer search."""
    model = get_model()
    vector = model.encode(manuscript_query_text(manuscript), normalize_embeddings=True)
    return vector.tolist()
