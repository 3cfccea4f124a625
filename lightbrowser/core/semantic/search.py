from __future__ import annotations

import math
from typing import Sequence

from lightbrowser.config import settings
from lightbrowser.core.errors import DimensionMismatchError
from lightbrowser.core.models.interfaces import (
    ContentChunk,
    ContentNode,
    FilterResult,
    Payload,
    SemanticMatch,
)
from lightbrowser.core.semantic.chunker import extract_chunks_from_html, extract_chunks_from_payload
from lightbrowser.services.embeddings_local import EmbeddingProvider, get_embedding_service


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


async def semantic_search(
    query: str,
    chunks: Sequence[ContentChunk],
    *,
    top_k: int | None = None,
    threshold: float | None = None,
    precomputed_embeddings: Sequence[Sequence[float]] | None = None,
    embedder: EmbeddingProvider | None = None,
) -> list[SemanticMatch]:
    """Rank ``chunks`` against ``query``; best first, at most ``top_k``, all >= ``threshold``.

    Vectors come from ``precomputed_embeddings`` when it lines up with
    ``chunks``, else from each chunk's own ``embedding``; the rest are embedded
    in one batch.
    """
    if not chunks:
        return []
    top_k = settings.semantic_top_k if top_k is None else top_k
    threshold = settings.semantic_threshold if threshold is None else threshold
    embedder = embedder or get_embedding_service()

    query_vector = await embedder.embed_text(query)

    if precomputed_embeddings is not None and len(precomputed_embeddings) == len(chunks):
        vectors: list[Sequence[float] | None] = list(precomputed_embeddings)
    else:
        vectors = [chunk.embedding for chunk in chunks]

    missing = [position for position, vector in enumerate(vectors) if vector is None]
    if missing:
        fresh = await embedder.embed_texts([chunks[position].text for position in missing])
        for position, vector in zip(missing, fresh):
            vectors[position] = vector

    matches = []
    for chunk, vector in zip(chunks, vectors):
        score = cosine_similarity(query_vector, vector)
        if score >= threshold:
            matches.append(SemanticMatch(chunk=chunk, score=score))

    # sorted() is stable, so equal scores keep document order.
    matches = sorted(matches, key=lambda match: match.score, reverse=True)
    return matches[: max(top_k, 0)]


def _assemble(chunks: list[ContentChunk], matches: list[SemanticMatch]) -> FilterResult:
    return FilterResult(
        filtered_content="\n\n".join(match.chunk.text for match in matches),
        matches=matches,
        total_chunks=len(chunks),
        matched_chunks=len(matches),
    )


async def filter_by_query(
    content: Payload | str | Sequence[ContentNode],
    query: str,
    *,
    top_k: int | None = None,
    threshold: float | None = None,
    embedder: EmbeddingProvider | None = None,
) -> FilterResult:
    """Keep only the chunks relevant to ``query``.

    Nothing relevant yields an empty ``filtered_content``, never the input.
    """
    chunks = extract_chunks_from_payload(content)
    matches = await semantic_search(query, chunks, top_k=top_k, threshold=threshold, embedder=embedder)
    return _assemble(chunks, matches)


async def filter_html_by_query(
    html: str,
    query: str,
    *,
    top_k: int | None = None,
    threshold: float | None = None,
    embedder: EmbeddingProvider | None = None,
) -> FilterResult:
    chunks = extract_chunks_from_html(html)
    matches = await semantic_search(query, chunks, top_k=top_k, threshold=threshold, embedder=embedder)
    return _assemble(chunks, matches)
