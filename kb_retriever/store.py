"""In-memory vector store and the immutable snapshot served to searches."""

from __future__ import annotations

import logging
import types
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence, Tuple

import faiss
import numpy as np

from .errors import CacheCorruptionError
from .schemas import Chunk, KnowledgeBase, PersistedCache
from .utils import utc_now_iso

logger = logging.getLogger(__name__)


class VectorStore:
    """
    Chunks and their embeddings, aligned by position, behind a FAISS index.

    Vectors are L2-normalized before indexing so inner product equals cosine
    similarity. Zero vectors stay zero and score 0 against every query.
    """

    def __init__(self, chunks: Sequence[Chunk], embeddings: Sequence[Sequence[float]]):
        if len(chunks) != len(embeddings):
            raise CacheCorruptionError(
                f"Chunk/embedding count mismatch: {len(chunks)} chunks, {len(embeddings)} embeddings"
            )
        self.chunks: Tuple[Chunk, ...] = tuple(chunks)
        self.dimensions = 0
        self._index: Optional[faiss.Index] = None

        if not self.chunks:
            return

        try:
            matrix = np.array(embeddings, dtype="float32")
        except ValueError as exc:
            raise CacheCorruptionError(f"Embeddings are not a rectangular matrix: {exc}") from exc
        if matrix.ndim != 2 or matrix.shape[1] == 0:
            raise CacheCorruptionError(f"Embeddings have unexpected shape {matrix.shape}")

        faiss.normalize_L2(matrix)
        self.dimensions = int(matrix.shape[1])
        self._index = faiss.IndexFlatIP(self.dimensions)
        self._index.add(matrix)

    @classmethod
    def from_cache(cls, payload: PersistedCache) -> "VectorStore":
        return cls(payload.chunks, payload.embeddings)

    def __len__(self) -> int:
        return len(self.chunks)

    def similarities(self, query_vector: Sequence[float]) -> np.ndarray:
        """
        Cosine similarity of the query against every chunk, in chunk order.

        A query of the wrong dimensionality scores 0 everywhere.
        """
        scores = np.zeros(len(self.chunks), dtype="float32")
        if self._index is None:
            return scores

        query = np.array([query_vector], dtype="float32")
        if query.ndim != 2 or query.shape[1] != self.dimensions:
            logger.warning(
                "Query embedding has %d dimensions, store has %d; skipping similarity",
                query.shape[-1] if query.ndim == 2 else 0,
                self.dimensions,
            )
            return scores

        faiss.normalize_L2(query)
        distances, ids = self._index.search(query, self._index.ntotal)
        valid = ids[0] >= 0
        scores[ids[0][valid]] = distances[0][valid]
        return np.clip(scores, -1.0, 1.0)


@dataclass(frozen=True)
class Snapshot:
    """A knowledge base and its vector store, replaced as a whole on regeneration."""
    version: int
    knowledge_base: Mapping[str, Any]
    store: VectorStore
    created_at: str = field(default_factory=utc_now_iso)

    @classmethod
    def build(cls, version: int, knowledge_base: KnowledgeBase, store: VectorStore) -> "Snapshot":
        return cls(
            version=version,
            knowledge_base=types.MappingProxyType(dict(knowledge_base)),
            store=store,
        )

    @classmethod
    def empty(cls) -> "Snapshot":
        return cls.build(0, {}, VectorStore([], []))

    @property
    def chunks(self) -> Tuple[Chunk, ...]:
        return self.store.chunks
