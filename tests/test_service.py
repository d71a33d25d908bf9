"""End-to-end tests for the retrieval service."""

import asyncio
import json

import pytest

from kb_retriever.errors import EmptyKnowledgeBaseError
from kb_retriever.ranker import NO_CONTEXT_MESSAGE
from kb_retriever.service import RetrievalService

from conftest import EmbeddingEndpoint, make_embeddings, write_json


QUERY = "How many vacation days do I get?"


def test_initialize_regenerates_without_cache(service, endpoint):
    """A first start embeds every chunk and installs a snapshot."""
    snapshot = asyncio.run(service.initialize())

    assert snapshot.version == 1
    assert len(snapshot.chunks) == 3
    assert len(endpoint.requests) == 3
    assert service.is_cache_valid()


def test_initialize_uses_valid_cache(service, settings, cache_manager):
    """A restart with unchanged sources embeds nothing."""
    asyncio.run(service.initialize())

    endpoint = EmbeddingEndpoint()
    restarted = RetrievalService(settings, embeddings=make_embeddings(endpoint), cache_manager=cache_manager)
    snapshot = asyncio.run(restarted.initialize())

    assert len(snapshot.chunks) == 3
    assert endpoint.requests == []


def test_initialize_regenerates_after_source_change(service, settings, cache_manager, kb_dir):
    """Editing a source file forces a fresh embedding run on the next start."""
    asyncio.run(service.initialize())
    write_json(kb_dir, "policies/remote.json", {"remote_work": "Remote work is allowed twice a week."})

    endpoint = EmbeddingEndpoint()
    restarted = RetrievalService(settings, embeddings=make_embeddings(endpoint), cache_manager=cache_manager)
    snapshot = asyncio.run(restarted.initialize())

    assert len(snapshot.chunks) == 4
    assert len(endpoint.requests) == 4


def test_initialize_recovers_from_corrupted_payload(service, settings, cache_manager):
    """An unreadable payload with a valid info file is regenerated."""
    asyncio.run(service.initialize())
    with open(settings.cache_path, "w", encoding="utf-8") as handle:
        handle.write("garbage")

    endpoint = EmbeddingEndpoint()
    restarted = RetrievalService(settings, embeddings=make_embeddings(endpoint), cache_manager=cache_manager)
    snapshot = asyncio.run(restarted.initialize())

    assert len(snapshot.chunks) == 3
    assert len(endpoint.requests) == 3


def test_initialize_empty_knowledge_base(settings, tmp_path, embeddings, endpoint):
    """An empty source directory gives an empty, searchable snapshot."""
    settings = settings.model_copy(update={"knowledge_base_dir": str(tmp_path / "nothing")})
    service = RetrievalService(settings, embeddings=embeddings)

    snapshot = asyncio.run(service.initialize())

    assert snapshot.chunks == ()
    assert asyncio.run(service.search(QUERY)) == []
    assert endpoint.requests == []


def test_vacation_query(service):
    """The vacation question finds the leave policy with a term-match boost."""
    asyncio.run(service.initialize())

    results = asyncio.run(service.search(QUERY))

    assert len(results) == 1
    top = results[0]
    assert top.chunk.text == "Employees accrue 15 vacation days annually."
    assert top.chunk.context == "Policies - Leave"
    assert top.boost == pytest.approx(1.2)
    assert top.score == pytest.approx(top.similarity * 1.2)
    assert top.score > 0.2


def test_leadership_query_gets_folder_boost(service):
    """Manager questions boost documents from the leadership folder."""
    asyncio.run(service.initialize())

    results = asyncio.run(service.search("leadership coaching for a new manager"))

    assert results[0].chunk.source_file == "leadership/coaching.json"
    assert results[0].boost == pytest.approx(1.1 * 1.3 * 1.2)


def test_get_context(service):
    """Context is grouped under the chunk's label."""
    asyncio.run(service.initialize())

    context = asyncio.run(service.get_context(QUERY))

    assert context == "## Policies - Leave\nEmployees accrue 15 vacation days annually."


def test_get_context_without_matches(service):
    """A query that matches nothing gets the fixed fallback message."""
    asyncio.run(service.initialize())

    assert asyncio.run(service.get_context("quantum chromodynamics")) == NO_CONTEXT_MESSAGE
    assert asyncio.run(service.search("   ")) == []


def test_search_response(service):
    """The response carries the context, result count and best score."""
    asyncio.run(service.initialize())

    response = asyncio.run(service.search_response(QUERY))

    assert response.success
    assert response.query == QUERY
    assert response.results_count == 1
    assert response.max_similarity > 0.2
    assert response.context.startswith("## Policies - Leave")


def test_search_without_api_key(service, settings, cache_manager):
    """Searching without credentials returns no results instead of raising."""
    asyncio.run(service.initialize())

    keyless = RetrievalService(
        settings,
        embeddings=make_embeddings(EmbeddingEndpoint(), api_key=None),
        cache_manager=cache_manager,
    )
    asyncio.run(keyless.initialize())

    assert len(keyless.snapshot.chunks) == 3
    assert asyncio.run(keyless.search(QUERY)) == []


def test_search_before_initialize(service, endpoint):
    """An uninitialized service has nothing to search."""
    assert asyncio.run(service.search(QUERY)) == []
    assert endpoint.requests == []


def test_regenerate_bumps_version(service, kb_dir):
    """Each regeneration installs a new snapshot with the new content."""
    first = asyncio.run(service.initialize())
    write_json(kb_dir, "policies/remote.json", {"remote_work": "Remote work is allowed twice a week."})

    second = asyncio.run(service.regenerate())

    assert second.version == first.version + 1
    assert len(second.chunks) == 4
    assert service.snapshot is second
    assert len(first.chunks) == 3


def test_failed_regeneration_keeps_snapshot(service, kb_dir):
    """If regeneration fails the previous snapshot keeps serving."""
    snapshot = asyncio.run(service.initialize())
    for path in kb_dir.rglob("*.json"):
        path.unlink()

    with pytest.raises(EmptyKnowledgeBaseError):
        asyncio.run(service.regenerate())

    assert service.snapshot is snapshot
    assert len(asyncio.run(service.search(QUERY))) == 1


def test_concurrent_regenerations_are_serialized(service, endpoint):
    """Two overlapping regenerations both finish, one after the other."""
    async def run():
        return await asyncio.gather(service.regenerate(), service.regenerate())

    first, second = asyncio.run(run())

    assert {first.version, second.version} == {1, 2}
    assert len(endpoint.requests) == 6


def test_status(service):
    """Status reports snapshot and cache state."""
    before = service.status()
    assert before["ready"] is False
    assert before["cache_valid"] is False
    assert before["cache_info"] is None

    asyncio.run(service.initialize())
    after = service.status()

    assert after["ready"] is True
    assert after["snapshot_version"] == 1
    assert after["documents"] == 3
    assert after["chunks"] == 3
    assert after["cache_valid"] is True
    assert after["cache_info"]["fileCount"] == 3


def test_clear_cache_through_service(service):
    """Clearing the cache invalidates it without touching the live snapshot."""
    asyncio.run(service.initialize())

    assert service.clear_cache()
    assert not service.is_cache_valid()
    assert len(service.snapshot.chunks) == 3


def test_initialize_regenerates_ragged_cache(service, settings, cache_manager):
    """A cached embedding of the wrong length triggers regeneration instead of failing."""
    asyncio.run(service.initialize())
    with open(settings.cache_path, encoding="utf-8") as handle:
        raw = json.load(handle)
    raw["embeddings"][0] = raw["embeddings"][0][:5]
    with open(settings.cache_path, "w", encoding="utf-8") as handle:
        json.dump(raw, handle)

    endpoint = EmbeddingEndpoint()
    restarted = RetrievalService(settings, embeddings=make_embeddings(endpoint), cache_manager=cache_manager)
    snapshot = asyncio.run(restarted.initialize())

    assert len(snapshot.chunks) == 3
    assert len(endpoint.requests) == 3
    assert cache_manager.load_cache(expected_chunk_count=3) is not None


def test_provider_size_differs_from_configured(settings, cache_manager):
    """A failed item during a run against an unexpected vector size still yields a usable cache."""
    endpoint = EmbeddingEndpoint(fail_on="dress")
    service = RetrievalService(
        settings,
        embeddings=make_embeddings(endpoint, dimensions=768),
        cache_manager=cache_manager,
    )
    snapshot = asyncio.run(service.initialize())
    assert len(snapshot.chunks) == 3

    restart_endpoint = EmbeddingEndpoint()
    restarted = RetrievalService(
        settings,
        embeddings=make_embeddings(restart_endpoint, dimensions=768),
        cache_manager=cache_manager,
    )
    snapshot = asyncio.run(restarted.initialize())

    assert len(snapshot.chunks) == 3
    assert restart_endpoint.requests == []
    assert len(asyncio.run(restarted.search(QUERY))) == 1
