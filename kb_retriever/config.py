"""Runtime configuration loaded from the environment."""

from __future__ import annotations

import json
import os
from typing import Dict, List, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr


DEFAULT_FOLDER_KEYWORDS: Dict[str, List[str]] = {
    "leadership": [
        "leader",
        "leadership",
        "manager",
        "management",
        "supervisor",
        "coaching",
        "team lead",
    ],
}


class RankingConfig(BaseModel):
    """Weights for the re-ranking heuristics applied on top of cosine similarity."""
    structured_boost: float = 1.2
    aggregate_boost: float = 1.15
    text_match_weight: float = 0.1
    context_match_weight: float = 0.15
    folder_boost: float = 1.2
    boost_cap: float = Field(default=2.0, ge=1.0)
    relevance_floor: float = 0.2
    folder_keywords: Dict[str, List[str]] = Field(
        default_factory=lambda: {key: list(words) for key, words in DEFAULT_FOLDER_KEYWORDS.items()}
    )


class RetrieverSettings(BaseModel):
    """Paths, embedding provider options and ranking weights."""
    knowledge_base_dir: str = "./knowledge-base"
    cache_path: str = "./embeddings-cache.json"
    cache_info_path: str = "./cache-info.json"
    signature_hash: Literal["rolling", "sha256"] = "rolling"

    api_key: Optional[SecretStr] = None
    embed_model: str = "models/text-embedding-004"
    embed_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    embed_dimensions: int = Field(default=768, ge=1)
    embed_batch_size: int = Field(default=3, ge=1)
    embed_batch_delay: float = Field(default=0.5, ge=0.0)
    embed_max_chars: int = Field(default=2000, ge=1)
    embed_timeout: float = Field(default=30.0, gt=0.0)

    top_k: int = Field(default=12, ge=1)
    ranking: RankingConfig = Field(default_factory=RankingConfig)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "RetrieverSettings":
        """
        Build settings from environment variables.

        A ``.env`` file is loaded first (``env_file`` or the nearest one found
        by python-dotenv); variables already set in the process win.

        Raises:
            ValueError: If ``KB_FOLDER_KEYWORDS`` is not a JSON object
            pydantic.ValidationError: If a value fails validation
        """
        load_dotenv(dotenv_path=env_file)

        ranking = RankingConfig(
            boost_cap=float(os.getenv("BOOST_CAP", "2.0")),
            relevance_floor=float(os.getenv("RELEVANCE_FLOOR", "0.2")),
        )
        folder_keywords = os.getenv("KB_FOLDER_KEYWORDS")
        if folder_keywords:
            parsed = json.loads(folder_keywords)
            if not isinstance(parsed, dict):
                raise ValueError("KB_FOLDER_KEYWORDS must be a JSON object of category -> keywords")
            ranking.folder_keywords = {str(key): [str(word) for word in words] for key, words in parsed.items()}

        return cls(
            knowledge_base_dir=os.getenv("KB_SOURCE_DIR", "./knowledge-base"),
            cache_path=os.getenv("KB_CACHE_PATH", "./embeddings-cache.json"),
            cache_info_path=os.getenv("KB_CACHE_INFO_PATH", "./cache-info.json"),
            signature_hash=os.getenv("KB_SIGNATURE_HASH", "rolling"),
            api_key=os.getenv("GEMINI_API_KEY") or None,
            embed_model=os.getenv("EMBED_MODEL", "models/text-embedding-004"),
            embed_base_url=os.getenv("EMBED_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"),
            embed_dimensions=int(os.getenv("EMBED_DIMENSIONS", "768")),
            embed_batch_size=int(os.getenv("EMBED_BATCH_SIZE", "3")),
            embed_batch_delay=float(os.getenv("EMBED_BATCH_DELAY", "0.5")),
            embed_max_chars=int(os.getenv("EMBED_MAX_CHARS", "2000")),
            embed_timeout=float(os.getenv("EMBED_TIMEOUT", "30")),
            top_k=int(os.getenv("SEARCH_TOP_K", "12")),
            ranking=ranking,
        )
