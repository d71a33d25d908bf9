#!/usr/bin/env python3
"""Delete the embeddings cache and its info file."""

import logging
import sys

from kb_retriever import CacheManager, RetrieverSettings


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    cache_manager = CacheManager.from_settings(RetrieverSettings.from_env())

    if cache_manager.clear_cache():
        print("Cache cleared successfully")
    else:
        print("Failed to clear cache", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
