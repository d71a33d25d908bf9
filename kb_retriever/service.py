"""Retrieval service: the entry point used by HTTP handlers and scripts."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from .cache import CacheManager
from .config import RetrieverSettings
from .embeddings import GeminiEmbeddings
from .errors import CacheCorruptionError, EmbeddingProviderError
from .extractor import extract_chunks
from .loader import load_knowledge_base
from .ranker import format_context, rank
from .schemas import CacheInfo, CacheSignature, Chunk, KnowledgeBase, PersistedCache, ScoredChunk, SearchResponse
from .store import Snapshot, VectorStore

logger = logging.getLogger(__name__)


class RetrievalService:
    """
    Owns the current snapshot and serves searches against it.

    Searches read ``self.snapshot`` once and keep that reference, so a
    concurrent :meth:`regenerate` never exposes a half-built state: the new
    snapshot is assigned only after the cache files are written.
    """

    def __init__(
        self,
        settings: Optional[RetrieverSettings] = None,
        embeddings: Optional[GeminiEmbeddings] = None,
        cache_manager: Optional[CacheManager] = None,
    ):
        self.settings = settings or RetrieverSettings()
        self.embeddings = embeddings or GeminiEmbeddings.from_settings(self.settings)
        self.cache_manager = cache_manager or CacheManager.from_settings(self.settings)
        self.snapshot: Snapshot = Snapshot.empty()
        self._regenerate_lock = asyncio.Lock()

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "RetrievalService":
        return cls(RetrieverSettings.from_env(env_file))

    # Loading

    def load_knowledge_base(self) -> KnowledgeBase:
        return load_knowledge_base(self.settings.knowledge_base_dir)

    def extract_chunks(self, knowledge_base: KnowledgeBase) -> List[Chunk]:
        return extract_chunks(knowledge_base)

    # Cache operations

    def is_cache_valid(self) -> bool:
        return self.cache_manager.is_cache_valid()

    def get_cache_info(self) -> Optional[CacheInfo]:
        return self.cache_manager.get_cache_info()

    def clear_cache(self) -> bool:
        return self.cache_manager.clear_cache()

    def generate_cache_signature(self) -> Optional[CacheSignature]:
        return self.cache_manager.generate_cache_signature()

    def save_cache_info(self, signature: CacheSignature) -> CacheInfo:
        return self.cache_manager.save_cache_info(signature)

    # Lifecycle

    async def initialize(self, show_progress: bool = False) -> Snapshot:
        """
        Load the knowledge base and serve from cache when it is still valid.

        Falls back to :meth:`regenerate` when the cache is missing, stale or
        unreadable. An empty knowledge base yields an empty snapshot.

        Raises:
            MissingCredentialError: If regeneration is needed and no API key is set
        """
        knowledge_base = self.load_knowledge_base()
        chunks = self.extract_chunks(knowledge_base)

        if self.is_cache_valid():
            payload = self.cache_manager.load_cache(expected_chunk_count=len(chunks))
            store = self._store_from_cache(payload) if payload is not None else None
            if store is not None:
                self._install(knowledge_base, store)
                logger.info("Serving %d chunks from embeddings cache", len(store))
                return self.snapshot
        else:
            logger.info("Embeddings cache missing or outdated; regenerating")

        if not chunks:
            logger.warning("Knowledge base is empty; search will return no results")
            self._install(knowledge_base, VectorStore([], []))
            return self.snapshot

        return await self.regenerate(show_progress=show_progress)

    async def regenerate(
        self,
        cancel_event: Optional[asyncio.Event] = None,
        show_progress: bool = False,
    ) -> Snapshot:
        """
        Re-extract, re-embed and persist, then swap in the new snapshot.

        Only one regeneration runs at a time. Errors propagate to the caller
        and leave the current snapshot in place.
        """
        async with self._regenerate_lock:
            knowledge_base, payload = await self.cache_manager.regenerate(
                self.embeddings,
                cancel_event=cancel_event,
                show_progress=show_progress,
            )
            store = VectorStore.from_cache(payload)
            self._install(knowledge_base, store)
            logger.info("Regenerated snapshot v%d with %d chunks", self.snapshot.version, len(store))
            return self.snapshot

    @staticmethod
    def _store_from_cache(payload: PersistedCache) -> Optional[VectorStore]:
        try:
            return VectorStore.from_cache(payload)
        except CacheCorruptionError as exc:
            logger.warning("Discarding embeddings cache: %s", exc)
            return None

    def _install(self, knowledge_base: KnowledgeBase, store: VectorStore) -> None:
        self.snapshot = Snapshot.build(self.snapshot.version + 1, knowledge_base, store)

    # Search

    async def search(self, query: str, top_k: Optional[int] = None) -> List[ScoredChunk]:
        """
        Rank chunks against ``query``; never raises.

        Returns an empty list when the query cannot be embedded.
        """
        snapshot = self.snapshot
        top_k = top_k if top_k is not None else self.settings.top_k
        if not query or not query.strip() or len(snapshot.store) == 0:
            return []

        try:
            query_vector = await self.embeddings.aembed_query(query)
        except EmbeddingProviderError as exc:
            logger.error("Cannot embed query: %s", exc)
            return []

        results = rank(snapshot.store, query_vector, query, top_k, self.settings.ranking)
        logger.info("Search %r: %d results", query, len(results))
        if results:
            logger.debug("Top result score: %.4f", results[0].score)
        return results

    async def get_context(self, query: str, top_k: Optional[int] = None) -> str:
        """Grouped text of the top results, or the no-information message."""
        results = await self.search(query, top_k)
        context = format_context(results)
        logger.debug("Generated context length: %d characters", len(context))
        return context

    async def search_response(self, query: str, top_k: Optional[int] = None) -> SearchResponse:
        results = await self.search(query, top_k)
        return SearchResponse(
            query=query,
            context=format_context(results),
            results_count=len(results),
            max_similarity=results[0].score if results else 0.0,
        )

    def status(self) -> Dict[str, Any]:
        """Snapshot and cache summary for health checks and the status script."""
        info = self.get_cache_info()
        return {
            "ready": len(self.snapshot.store) > 0,
            "snapshot_version": self.snapshot.version,
            "documents": len(self.snapshot.knowledge_base),
            "chunks": len(self.snapshot.store),
            "cache_valid": self.is_cache_valid(),
            "cache_info": info.model_dump(by_alias=True) if info else None,
        }
