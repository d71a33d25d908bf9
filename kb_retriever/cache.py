"""Persisted embeddings cache guarded by a knowledge-base content signature."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import List, Optional, Sequence, Tuple

from pydantic import ValidationError

from .config import RetrieverSettings
from .embeddings import GeminiEmbeddings
from .errors import CacheCorruptionError, EmptyKnowledgeBaseError, RegenerationCancelled, SourceReadError
from .extractor import extract_chunks
from .loader import load_knowledge_base
from .schemas import CacheInfo, CacheSignature, Chunk, KnowledgeBase, PersistedCache
from .signature import compute_signature, is_signature_valid
from .utils import atomic_write_text, utc_now_iso

logger = logging.getLogger(__name__)


def check_alignment(chunks: Sequence[Chunk], embeddings: Sequence[Sequence[float]]) -> None:
    """
    Check that every chunk has one embedding and all embeddings share a length.

    Raises:
        CacheCorruptionError: If counts differ or the embeddings are not one
            non-empty length
    """
    if len(chunks) != len(embeddings):
        raise CacheCorruptionError(f"{len(chunks)} chunks but {len(embeddings)} embeddings")
    lengths = sorted({len(vector) for vector in embeddings})
    if len(lengths) > 1 or lengths == [0]:
        raise CacheCorruptionError(f"Embeddings have inconsistent lengths {lengths}")


class CacheManager:
    """
    Reads, validates, writes and clears the two cache artifacts.

    - payload file: ``{chunks, embeddings, timestamp}``
    - info file: the source signature the payload was generated from

    The info file is written only after the payload, so a run that fails
    midway leaves the cache invalid rather than stale-but-valid.
    """

    def __init__(
        self,
        knowledge_base_dir: str,
        cache_path: str,
        cache_info_path: str,
        hash_algorithm: str = "rolling",
    ):
        self.knowledge_base_dir = knowledge_base_dir
        self.cache_path = cache_path
        self.cache_info_path = cache_info_path
        self.hash_algorithm = hash_algorithm

    @classmethod
    def from_settings(cls, settings: RetrieverSettings) -> "CacheManager":
        return cls(
            knowledge_base_dir=settings.knowledge_base_dir,
            cache_path=settings.cache_path,
            cache_info_path=settings.cache_info_path,
            hash_algorithm=settings.signature_hash,
        )

    # Signature

    def compute_signature(self) -> CacheSignature:
        """Raises SourceReadError when the source tree cannot be scanned."""
        return compute_signature(self.knowledge_base_dir, self.hash_algorithm)

    def generate_cache_signature(self) -> Optional[CacheSignature]:
        try:
            return self.compute_signature()
        except SourceReadError as exc:
            logger.error("Error generating cache signature: %s", exc)
            return None

    # Cache info

    def read_cache_info(self) -> CacheInfo:
        """
        Raises:
            FileNotFoundError: If no info file exists
            CacheCorruptionError: If the info file is unreadable
        """
        try:
            with open(self.cache_info_path, "r", encoding="utf-8") as handle:
                text = handle.read()
        except FileNotFoundError:
            raise
        except OSError as exc:
            raise CacheCorruptionError(f"Cannot read cache info {self.cache_info_path}: {exc}") from exc
        try:
            return CacheInfo.model_validate_json(text)
        except ValidationError as exc:
            raise CacheCorruptionError(f"Invalid cache info {self.cache_info_path}: {exc}") from exc

    def get_cache_info(self) -> Optional[CacheInfo]:
        try:
            return self.read_cache_info()
        except FileNotFoundError:
            return None
        except CacheCorruptionError as exc:
            logger.error("Error reading cache info: %s", exc)
            return None

    def save_cache_info(self, signature: CacheSignature) -> CacheInfo:
        """Persist ``signature`` together with the payload's generation time and size."""
        cache_size = os.path.getsize(self.cache_path) if os.path.exists(self.cache_path) else 0
        info = CacheInfo(
            **signature.model_dump(exclude={"cache_generated", "cache_size"}),
            cache_generated=utc_now_iso(),
            cache_size=cache_size,
        )
        atomic_write_text(self.cache_info_path, info.model_dump_json(by_alias=True, indent=2))
        logger.info("Cache information saved to %s", self.cache_info_path)
        return info

    def is_cache_valid(self) -> bool:
        """True iff both files exist and the source signature is unchanged."""
        if not os.path.exists(self.cache_path) or not os.path.exists(self.cache_info_path):
            return False
        info = self.get_cache_info()
        if info is None:
            return False
        return is_signature_valid(self.knowledge_base_dir, info, self.hash_algorithm)

    # Payload

    def read_cache(self) -> PersistedCache:
        """
        Raises:
            FileNotFoundError: If no payload exists
            CacheCorruptionError: If the payload is unreadable or misaligned
        """
        try:
            with open(self.cache_path, "r", encoding="utf-8") as handle:
                text = handle.read()
        except FileNotFoundError:
            raise
        except OSError as exc:
            raise CacheCorruptionError(f"Cannot read cache {self.cache_path}: {exc}") from exc
        try:
            payload = PersistedCache.model_validate_json(text)
        except ValidationError as exc:
            raise CacheCorruptionError(f"Invalid cache payload {self.cache_path}: {exc}") from exc
        try:
            check_alignment(payload.chunks, payload.embeddings)
        except CacheCorruptionError as exc:
            raise CacheCorruptionError(f"Invalid cache payload {self.cache_path}: {exc}") from exc
        return payload

    def load_cache(self, expected_chunk_count: Optional[int] = None) -> Optional[PersistedCache]:
        """
        Load the payload, or None on any miss.

        A payload whose chunk count differs from ``expected_chunk_count`` (the
        freshly extracted count) is treated as stale.
        """
        try:
            payload = self.read_cache()
        except FileNotFoundError:
            return None
        except CacheCorruptionError as exc:
            logger.warning("Discarding embeddings cache: %s", exc)
            return None

        if expected_chunk_count is not None and len(payload.chunks) != expected_chunk_count:
            logger.warning(
                "Cache size mismatch (cached=%d, current=%d); regenerating",
                len(payload.chunks),
                expected_chunk_count,
            )
            return None

        logger.info("Loaded %d cached embeddings from %s", len(payload.embeddings), self.cache_path)
        return payload

    def save_cache(self, chunks: Sequence[Chunk], embeddings: Sequence[Sequence[float]]) -> PersistedCache:
        check_alignment(chunks, embeddings)
        payload = PersistedCache(
            chunks=list(chunks),
            embeddings=[list(vector) for vector in embeddings],
            timestamp=utc_now_iso(),
        )
        atomic_write_text(self.cache_path, payload.model_dump_json(by_alias=True))
        logger.info("Embeddings cached to %s (%d chunks)", self.cache_path, len(payload.chunks))
        return payload

    def clear_cache(self) -> bool:
        """Delete both cache files; missing files are fine."""
        try:
            for path, label in ((self.cache_path, "Embeddings cache"), (self.cache_info_path, "Cache info")):
                if os.path.exists(path):
                    os.unlink(path)
                    logger.info("%s deleted: %s", label, path)
        except OSError as exc:
            logger.error("Error clearing cache: %s", exc)
            return False
        return True

    def _invalidate_info(self) -> None:
        try:
            os.unlink(self.cache_info_path)
        except FileNotFoundError:
            pass

    # Regeneration

    async def regenerate(
        self,
        embeddings: GeminiEmbeddings,
        cancel_event: Optional[asyncio.Event] = None,
        show_progress: bool = False,
    ) -> Tuple[KnowledgeBase, PersistedCache]:
        """
        Rebuild the cache from the current source files.

        Order: capture signature, load, extract, embed, drop the old info
        file, write the payload, write the info file. The signature is taken
        before loading, so edits made during the run invalidate the result on
        the next check.

        Returns:
            The loaded knowledge base and the persisted payload

        Raises:
            SourceReadError: If the source tree cannot be scanned
            EmptyKnowledgeBaseError: If no chunks could be extracted
            MissingCredentialError: If the embedding client has no API key
            RegenerationCancelled: If ``cancel_event`` is set before persisting
            EmbeddingProviderError: If the provider returns vectors of mixed lengths
            CacheCorruptionError: If the vectors do not line up with the chunks;
                nothing is written in that case
        """
        signature = self.compute_signature()

        knowledge_base = load_knowledge_base(self.knowledge_base_dir)
        if not knowledge_base:
            raise EmptyKnowledgeBaseError(f"No knowledge base files found in {self.knowledge_base_dir}")

        chunks: List[Chunk] = extract_chunks(knowledge_base)
        if not chunks:
            raise EmptyKnowledgeBaseError("No chunks extracted from knowledge base")

        logger.info("Generating embeddings for %d chunks", len(chunks))
        vectors = await embeddings.aembed_documents(
            [chunk.text for chunk in chunks],
            cancel_event=cancel_event,
            show_progress=show_progress,
        )

        if cancel_event is not None and cancel_event.is_set():
            raise RegenerationCancelled("Regeneration cancelled before persisting")

        check_alignment(chunks, vectors)
        self._invalidate_info()
        payload = self.save_cache(chunks, vectors)
        self.save_cache_info(signature)
        return knowledge_base, payload
