#!/usr/bin/env python3
"""Regenerate the embeddings cache from the knowledge base directory."""

import asyncio
import logging
import sys
import time

from kb_retriever import RetrievalService, RetrieverSettings


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    settings = RetrieverSettings.from_env()

    print("=" * 60)
    print("Embeddings Cache Regeneration")
    print("=" * 60)
    print(f"Knowledge base:   {settings.knowledge_base_dir}")
    print(f"Cache file:       {settings.cache_path}")
    print(f"Cache info file:  {settings.cache_info_path}")
    print(f"Embedding model:  {settings.embed_model}")
    print(f"Batch size:       {settings.embed_batch_size}")
    print(f"Batch delay:      {settings.embed_batch_delay}s")
    print("=" * 60)
    print()

    service = RetrievalService(settings)
    start_time = time.perf_counter()

    try:
        snapshot = asyncio.run(service.regenerate(show_progress=True))
    except KeyboardInterrupt:
        print("\nRegeneration interrupted; existing cache files were left as they were.", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"\nCache regeneration failed: {e}", file=sys.stderr)
        sys.exit(1)

    elapsed = time.perf_counter() - start_time
    info = service.get_cache_info()

    print()
    print("=" * 60)
    print("Cache regeneration complete!")
    print("=" * 60)
    print(f"Duration:        {elapsed:.2f} seconds")
    print(f"Documents:       {len(snapshot.knowledge_base)}")
    print(f"Chunks:          {len(snapshot.store)}")
    print(f"Dimensions:      {snapshot.store.dimensions}")
    if info:
        print(f"Files processed: {info.file_count}")
        print(f"Signature:       {info.signature}")
    print("=" * 60)


if __name__ == "__main__":
    main()
