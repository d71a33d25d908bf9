"""
Embedding client for the Gemini ``embedContent`` REST endpoint.

Implements the langchain-core ``Embeddings`` interface. Requests run in
small concurrent batches with a delay between batches; a failed item gets a
zero vector instead of failing the run.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

import httpx
from langchain_core.embeddings import Embeddings
from pydantic import BaseModel, ConfigDict, Field, SecretStr
from tqdm import tqdm

from .config import RetrieverSettings
from .errors import EmbeddingProviderError, MissingCredentialError, RegenerationCancelled
from .utils import iter_batches, truncate_text

logger = logging.getLogger(__name__)


class GeminiEmbeddings(BaseModel, Embeddings):
    """Embeddings via ``POST {base_url}/{model}:embedContent?key=...``."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    api_key: Optional[SecretStr] = None
    model: str = "models/text-embedding-004"
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    dimensions: int = Field(default=768, ge=1)
    max_chars: int = Field(default=2000, ge=1)
    batch_size: int = Field(default=3, ge=1)
    batch_delay: float = Field(default=0.5, ge=0.0)
    timeout: float = 30.0
    transport: Optional[httpx.AsyncBaseTransport] = None

    @classmethod
    def from_settings(cls, settings: RetrieverSettings, **overrides: Any) -> "GeminiEmbeddings":
        params = dict(
            api_key=settings.api_key,
            model=settings.embed_model,
            base_url=settings.embed_base_url,
            dimensions=settings.embed_dimensions,
            max_chars=settings.embed_max_chars,
            batch_size=settings.embed_batch_size,
            batch_delay=settings.embed_batch_delay,
            timeout=settings.embed_timeout,
        )
        params.update(overrides)
        return cls(**params)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.model}:embedContent"

    def zero_vector(self, dimensions: Optional[int] = None) -> List[float]:
        return [0.0] * (dimensions or self.dimensions)

    def _require_api_key(self) -> str:
        key = self.api_key.get_secret_value() if self.api_key is not None else ""
        if not key:
            raise MissingCredentialError("GEMINI_API_KEY not set; cannot generate embeddings")
        return key

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _embed_one(self, client: httpx.AsyncClient, api_key: str, text: str) -> Optional[List[float]]:
        """One request; None when the provider gives no usable vector."""
        payload = {
            "model": self.model,
            "content": {"parts": [{"text": truncate_text(text, self.max_chars)}]},
        }
        try:
            response = await client.post(self.endpoint, params={"key": api_key}, json=payload)
        except httpx.HTTPError as exc:
            # str(exc) can carry the request URL, which holds the key
            logger.warning("Embedding request failed (%s); using zero vector", type(exc).__name__)
            return None

        if not response.is_success:
            logger.warning("Embedding API error: %s; using zero vector", response.status_code)
            return None

        try:
            values = [float(value) for value in response.json()["embedding"]["values"]]
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Malformed embedding response (%s); using zero vector", exc)
            return None
        if not values:
            logger.warning("Empty embedding in response; using zero vector")
            return None
        return values

    def _fill_failures(self, vectors: List[Optional[List[float]]]) -> List[List[float]]:
        """
        Replace failed items with zero vectors as long as the returned ones.

        Raises:
            EmbeddingProviderError: If the provider returned vectors of different lengths
        """
        lengths = sorted({len(vector) for vector in vectors if vector is not None})
        if len(lengths) > 1:
            raise EmbeddingProviderError(f"Provider returned embeddings of mixed lengths {lengths}")
        dimensions = lengths[0] if lengths else self.dimensions
        if dimensions != self.dimensions:
            logger.warning(
                "Provider returned %d-dimensional embeddings, configured %d", dimensions, self.dimensions
            )
        return [vector if vector is not None else self.zero_vector(dimensions) for vector in vectors]

    async def aembed_documents(
        self,
        texts: List[str],
        cancel_event: Optional[asyncio.Event] = None,
        show_progress: bool = False,
    ) -> List[List[float]]:
        """
        Embed texts in order, one concurrent batch at a time.

        Args:
            texts: Texts to embed; each is truncated to ``max_chars``
            cancel_event: When set, the run stops before the next batch
            show_progress: Display a tqdm progress bar

        Returns:
            One vector per input text, same order

        Raises:
            MissingCredentialError: If no API key is configured
            RegenerationCancelled: If ``cancel_event`` is set mid-run
            EmbeddingProviderError: If the returned vectors differ in length
        """
        api_key = self._require_api_key()
        vectors: List[Optional[List[float]]] = []
        batches = list(iter_batches(list(texts), self.batch_size))

        async with self._client() as client:
            with tqdm(total=len(texts), desc="Embedding chunks", disable=not show_progress) as progress:
                for position, batch in enumerate(batches):
                    if cancel_event is not None and cancel_event.is_set():
                        raise RegenerationCancelled(
                            f"Embedding cancelled after {len(vectors)}/{len(texts)} chunks"
                        )
                    batch_vectors = await asyncio.gather(
                        *(self._embed_one(client, api_key, text) for text in batch)
                    )
                    vectors.extend(batch_vectors)
                    progress.update(len(batch))
                    logger.debug("Embedded %d/%d chunks", len(vectors), len(texts))

                    if self.batch_delay and position < len(batches) - 1:
                        await asyncio.sleep(self.batch_delay)

        if len(vectors) != len(texts):
            raise EmbeddingProviderError("Embedding run returned mismatched vector count.")
        return self._fill_failures(vectors)

    async def aembed_query(self, text: str) -> List[float]:
        """
        Embed a single query.

        Raises:
            MissingCredentialError: If no API key is configured
        """
        api_key = self._require_api_key()
        async with self._client() as client:
            vector = await self._embed_one(client, api_key, text)
        return vector if vector is not None else self.zero_vector()

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        """Blocking variant of :meth:`aembed_documents`; not for use inside a running loop."""
        return asyncio.run(self.aembed_documents(texts))

    def embed_query(self, text: str) -> List[float]:
        """Blocking variant of :meth:`aembed_query`; not for use inside a running loop."""
        return asyncio.run(self.aembed_query(text))
