"""Data schemas for the retrieval core."""

from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


KnowledgeBase = Dict[str, Any]
Embedding = List[float]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChunkFlags(_CamelModel):
    """Marks chunks synthesized from a whole object or a whole array."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    is_structured: bool = False
    is_aggregate: bool = False


class Chunk(_CamelModel):
    """A single retrievable unit of text extracted from the knowledge base."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    text: str
    path: str
    context: str = ""
    parent_context: str = ""
    flags: ChunkFlags = Field(default_factory=ChunkFlags)
    source_file: str = ""


class FileSignature(_CamelModel):
    """Size, modification time and content hash of one knowledge file."""
    size: int
    modified: str
    content_hash: str = Field(alias="hash")


class CacheSignature(_CamelModel):
    """Fingerprint of every knowledge file plus an aggregate hash over all of them."""
    timestamp: str
    files: Dict[str, FileSignature] = Field(default_factory=dict)
    total_size: int = 0
    file_count: int = 0
    signature: str


class CacheInfo(CacheSignature):
    """Persisted signature of the knowledge base the cache was generated from."""
    cache_generated: str
    cache_size: int = 0


class PersistedCache(_CamelModel):
    """On-disk payload: chunks and their embeddings, aligned by position."""
    chunks: List[Chunk]
    embeddings: List[Embedding]
    timestamp: str


class ScoredChunk(BaseModel):
    """A chunk with its raw similarity, boost multiplier and final score."""
    chunk: Chunk
    score: float
    similarity: float
    boost: float = 1.0


class SearchResponse(BaseModel):
    """Search summary handed to an HTTP layer or another collaborator."""
    query: str
    context: str
    results_count: int
    max_similarity: float = 0.0
    success: bool = True
