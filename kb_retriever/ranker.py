"""Cosine similarity search with heuristic re-ranking and context assembly."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import RankingConfig
from .schemas import Chunk, ScoredChunk
from .store import VectorStore

logger = logging.getLogger(__name__)


NO_CONTEXT_MESSAGE = (
    "No relevant information found in the knowledge base. "
    "Please contact the knowledge base owner for assistance."
)

MIN_TERM_LENGTH = 3

STOP_WORDS = frozenset(
    {
        "about", "above", "after", "again", "against", "also", "because", "been",
        "before", "being", "below", "between", "both", "could", "does", "doing",
        "down", "during", "each", "every", "from", "further", "have", "having",
        "here", "into", "just", "know", "like", "many", "more", "most", "much",
        "need", "only", "other", "over", "please", "same", "should", "some",
        "such", "tell", "than", "that", "their", "them", "then", "there", "these",
        "they", "this", "those", "through", "under", "until", "upon", "very",
        "want", "were", "what", "when", "where", "which", "while", "whom", "whose",
        "will", "with", "within", "would", "your", "yours",
    }
)

_WORD_RE = re.compile(r"[a-z0-9]+")


def query_terms(query: str) -> List[str]:
    """Lower-cased words longer than three characters, minus stop words, de-duplicated."""
    seen: Dict[str, None] = {}
    for word in _WORD_RE.findall(query.lower()):
        if len(word) > MIN_TERM_LENGTH and word not in STOP_WORDS:
            seen.setdefault(word, None)
    return list(seen)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """``dot / (|a| * |b|)``; 0 when either norm is 0 or the lengths differ."""
    vec_a = np.asarray(a, dtype="float64")
    vec_b = np.asarray(b, dtype="float64")
    if vec_a.shape != vec_b.shape:
        return 0.0
    norm_a = float(np.linalg.norm(vec_a))
    norm_b = float(np.linalg.norm(vec_b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    similarity = float(np.dot(vec_a, vec_b) / (norm_a * norm_b))
    return max(-1.0, min(1.0, similarity))


def _folder_matches(chunk: Chunk, query_lower: str, folder_keywords: Dict[str, List[str]]) -> bool:
    source = (chunk.source_file or chunk.path).lower()
    for category, keywords in folder_keywords.items():
        if category.lower() in source and any(keyword.lower() in query_lower for keyword in keywords):
            return True
    return False


def compute_boost(
    chunk: Chunk,
    terms: Sequence[str],
    query: str,
    config: Optional[RankingConfig] = None,
) -> float:
    """
    Multiplicative boost for one chunk, capped at ``config.boost_cap``.

    Structured and aggregate chunks get flat multipliers; query terms found in
    the chunk text and in its context add ``weight * matches`` each; a chunk
    from a configured folder gets ``folder_boost`` when the query mentions one
    of that folder's keywords.
    """
    config = config or RankingConfig()
    boost = 1.0

    if chunk.flags.is_structured:
        boost *= config.structured_boost
    if chunk.flags.is_aggregate:
        boost *= config.aggregate_boost

    text_lower = chunk.text.lower()
    context_lower = chunk.context.lower()
    text_matches = sum(1 for term in terms if term in text_lower)
    context_matches = sum(1 for term in terms if term in context_lower)
    boost *= 1 + config.text_match_weight * text_matches
    boost *= 1 + config.context_match_weight * context_matches

    if _folder_matches(chunk, query.lower(), config.folder_keywords):
        boost *= config.folder_boost

    return min(boost, config.boost_cap)


def rank(
    store: VectorStore,
    query_vector: Sequence[float],
    query: str,
    top_k: int,
    config: Optional[RankingConfig] = None,
) -> List[ScoredChunk]:
    """
    Score every chunk, sort by final score and keep the top K above the floor.

    Boosts apply only to positive similarities; a negative similarity is
    kept as the score. Ties keep chunk order.
    """
    config = config or RankingConfig()
    if len(store) == 0 or top_k <= 0:
        return []

    terms = query_terms(query)
    similarities = store.similarities(query_vector)

    scored: List[ScoredChunk] = []
    for chunk, similarity in zip(store.chunks, similarities):
        similarity = float(similarity)
        boost = compute_boost(chunk, terms, query, config)
        score = similarity * boost if similarity > 0 else similarity
        scored.append(ScoredChunk(chunk=chunk, score=score, similarity=similarity, boost=boost))

    scored.sort(key=lambda item: item.score, reverse=True)
    results = [item for item in scored if item.score > config.relevance_floor][:top_k]

    logger.debug(
        "Ranked %d chunks for %r: %d above floor %.2f",
        len(scored),
        query,
        len(results),
        config.relevance_floor,
    )
    return results


def group_by_context(results: Sequence[ScoredChunk]) -> List[Tuple[str, List[ScoredChunk]]]:
    """
    Group results by context label, sections in order of first appearance.

    Within a section, structured and aggregate chunks come before plain text;
    otherwise the incoming (score) order is kept.
    """
    sections: Dict[str, List[ScoredChunk]] = {}
    for item in results:
        sections.setdefault(item.chunk.context, []).append(item)

    def _plain(item: ScoredChunk) -> bool:
        flags = item.chunk.flags
        return not (flags.is_structured or flags.is_aggregate)

    return [(context, sorted(items, key=_plain)) for context, items in sections.items()]


def format_context(results: Sequence[ScoredChunk]) -> str:
    """Concatenate grouped results into one context string for a prompt."""
    if not results:
        return NO_CONTEXT_MESSAGE

    parts: List[str] = []
    for context, items in group_by_context(results):
        body = "\n\n".join(item.chunk.text for item in items)
        header = f"## {context}" if context else "## General"
        parts.append(f"{header}\n{body}")
    return "\n\n".join(parts)
