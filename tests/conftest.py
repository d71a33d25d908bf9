"""Shared fixtures: a knowledge base on disk and a stubbed embedding endpoint."""

import json
import re

import httpx
import pytest

from kb_retriever.cache import CacheManager
from kb_retriever.config import RetrieverSettings
from kb_retriever.embeddings import GeminiEmbeddings
from kb_retriever.service import RetrievalService


# Each vocabulary word is one dimension of the fake embedding space.
VOCABULARY = [
    "vacation", "days", "leave", "annually", "accrue", "employees",
    "dress", "code", "casual", "business", "weekdays",
    "leader", "leadership", "coaching", "team", "feedback",
    "interview", "hiring", "candidate", "steps", "process",
]
DIMENSIONS = len(VOCABULARY)

_WORD_RE = re.compile(r"[a-z]+")


def fake_vector(text):
    """Bag-of-words vector over VOCABULARY."""
    words = _WORD_RE.findall(text.lower())
    return [float(words.count(term)) for term in VOCABULARY]


class EmbeddingEndpoint:
    """Records requests and answers like the embedContent endpoint."""

    def __init__(self, fail_on=None, status_code=500):
        self.requests = []
        self.fail_on = fail_on
        self.status_code = status_code

    def __call__(self, request):
        body = json.loads(request.content)
        text = body["content"]["parts"][0]["text"]
        self.requests.append({"url": str(request.url), "body": body, "text": text})
        if self.fail_on and self.fail_on in text:
            return httpx.Response(self.status_code, json={"error": {"message": "boom"}})
        return httpx.Response(200, json={"embedding": {"values": fake_vector(text)}})

    @property
    def texts(self):
        return [item["text"] for item in self.requests]


def make_embeddings(endpoint, **overrides):
    params = dict(
        api_key="test-key",
        dimensions=DIMENSIONS,
        batch_size=3,
        batch_delay=0.0,
        transport=httpx.MockTransport(endpoint),
    )
    params.update(overrides)
    return GeminiEmbeddings(**params)


def write_json(root, relative, data):
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.fixture
def endpoint():
    return EmbeddingEndpoint()


@pytest.fixture
def embeddings(endpoint):
    return make_embeddings(endpoint)


@pytest.fixture
def kb_dir(tmp_path):
    root = tmp_path / "knowledge-base"
    write_json(root, "policies/leave.json", {
        "vacation_policy": "Employees accrue 15 vacation days annually.",
    })
    write_json(root, "policies/dress.json", {
        "dress_code": "Business casual dress code applies on weekdays.",
    })
    write_json(root, "leadership/coaching.json", {
        "coaching_tips": "Leaders give team feedback every week during coaching.",
    })
    return root


@pytest.fixture
def settings(tmp_path, kb_dir):
    return RetrieverSettings(
        knowledge_base_dir=str(kb_dir),
        cache_path=str(tmp_path / "embeddings-cache.json"),
        cache_info_path=str(tmp_path / "cache-info.json"),
        api_key="test-key",
        embed_dimensions=DIMENSIONS,
        embed_batch_delay=0.0,
    )


@pytest.fixture
def cache_manager(settings):
    return CacheManager.from_settings(settings)


@pytest.fixture
def service(settings, embeddings, cache_manager):
    return RetrievalService(settings, embeddings=embeddings, cache_manager=cache_manager)
