"""KB Retriever - retrieval and embeddings cache for JSON knowledge bases."""

from .cache import CacheManager
from .config import RankingConfig, RetrieverSettings
from .embeddings import GeminiEmbeddings
from .errors import (
    CacheCorruptionError,
    EmbeddingProviderError,
    EmptyKnowledgeBaseError,
    KnowledgeBaseError,
    KnowledgeParseError,
    MissingCredentialError,
    RegenerationCancelled,
    SourceReadError,
)
from .extractor import extract_chunks
from .loader import load_knowledge_base
from .ranker import NO_CONTEXT_MESSAGE, cosine_similarity, format_context, rank
from .schemas import CacheInfo, CacheSignature, Chunk, ChunkFlags, PersistedCache, ScoredChunk, SearchResponse
from .service import RetrievalService
from .signature import compute_signature, is_signature_valid
from .store import Snapshot, VectorStore

__version__ = "0.1.0"

__all__ = [
    "CacheCorruptionError",
    "CacheInfo",
    "CacheManager",
    "CacheSignature",
    "Chunk",
    "ChunkFlags",
    "EmbeddingProviderError",
    "EmptyKnowledgeBaseError",
    "GeminiEmbeddings",
    "KnowledgeBaseError",
    "KnowledgeParseError",
    "MissingCredentialError",
    "NO_CONTEXT_MESSAGE",
    "PersistedCache",
    "RankingConfig",
    "RegenerationCancelled",
    "RetrievalService",
    "RetrieverSettings",
    "ScoredChunk",
    "SearchResponse",
    "Snapshot",
    "SourceReadError",
    "VectorStore",
    "compute_signature",
    "cosine_similarity",
    "extract_chunks",
    "format_context",
    "is_signature_valid",
    "load_knowledge_base",
    "rank",
]
