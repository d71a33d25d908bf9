#!/usr/bin/env python3
"""Show whether the embeddings cache matches the knowledge base."""

from kb_retriever import CacheManager, RetrieverSettings


def main():
    settings = RetrieverSettings.from_env()
    cache_manager = CacheManager.from_settings(settings)

    is_valid = cache_manager.is_cache_valid()
    info = cache_manager.get_cache_info()

    print("Cache Status:")
    print(f"  Valid:               {is_valid}")
    if info:
        print(f"  Generated:           {info.cache_generated}")
        print(f"  Files:               {info.file_count}")
        print(f"  Cache size:          {info.cache_size} bytes")
        print(f"  Knowledge base size: {info.total_size} bytes")
        print(f"  Signature:           {info.signature}")
    else:
        print("  No cache information found")


if __name__ == "__main__":
    main()
