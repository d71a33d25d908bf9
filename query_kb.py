#!/usr/bin/env python3
"""Interactive query loop against the knowledge base."""

import asyncio
import logging
import sys

from kb_retriever import RetrievalService, format_context


async def run(service: RetrievalService, top_k: int) -> None:
    print("Loading knowledge base...")
    snapshot = await service.initialize(show_progress=True)

    print("✓ Loaded successfully")
    print(f"  - Documents:  {len(snapshot.knowledge_base)}")
    print(f"  - Chunks:     {len(snapshot.store)}")
    print(f"  - Dimensions: {snapshot.store.dimensions}")
    print()

    print("=" * 60)
    print("Enter queries (or 'quit' to exit)")
    print("=" * 60)
    print()

    while True:
        query = input("Query: ").strip()
        if not query or query.lower() in ("quit", "exit", "q"):
            break

        print()
        results = await service.search(query, top_k)
        print(f"Top {len(results)} results:")
        print()

        for position, result in enumerate(results, start=1):
            chunk = result.chunk
            print(f"[{position}] Score: {result.score:.4f} (similarity {result.similarity:.4f}, boost {result.boost:.2f})")
            print(f"    File:    {chunk.source_file or '-'}")
            print(f"    Context: {chunk.context or '-'}")
            excerpt = chunk.text.replace("\n", " ")
            if len(excerpt) > 150:
                excerpt = excerpt[:150].rstrip() + "..."
            print(f"    Text:    {excerpt}")
            print()

        print("Context:")
        print(format_context(results))
        print()


def main():
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")
    service = RetrievalService.from_env()

    try:
        asyncio.run(run(service, service.settings.top_k))
    except (KeyboardInterrupt, EOFError):
        pass
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print("Goodbye!")


if __name__ == "__main__":
    main()
