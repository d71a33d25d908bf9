"""Exception hierarchy for the retrieval core."""

from __future__ import annotations

from typing import Optional


class KnowledgeBaseError(Exception):
    """Base class for all retrieval-core errors."""


class SourceReadError(KnowledgeBaseError):
    """Raised when the knowledge-base directory or a file cannot be read."""


class KnowledgeParseError(KnowledgeBaseError):
    """Raised when a knowledge file is not valid JSON."""

    def __init__(self, path: str, reason: Optional[str] = None):
        self.path = path
        self.reason = reason
        message = f"Invalid JSON in {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class EmbeddingProviderError(KnowledgeBaseError):
    """Raised when the embedding provider cannot serve a generation run."""


class MissingCredentialError(EmbeddingProviderError):
    """Raised when no API key is configured for the embedding provider."""


class CacheCorruptionError(KnowledgeBaseError):
    """Raised when a persisted cache file is unreadable or misaligned."""


class EmptyKnowledgeBaseError(KnowledgeBaseError):
    """Raised when regeneration finds nothing to embed."""


class RegenerationCancelled(KnowledgeBaseError):
    """Raised when a regeneration run is cancelled before it persists."""
