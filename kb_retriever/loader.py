"""Load a directory tree of JSON documents into a knowledge base mapping."""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from .errors import KnowledgeParseError
from .schemas import KnowledgeBase
from .utils import JSON_SUFFIX, walk_json_files

logger = logging.getLogger(__name__)


def document_key(relative_path: str) -> str:
    """Map ``policies/leave.json`` to the knowledge-base key ``policies/leave``."""
    key = relative_path.replace(os.sep, "/")
    if key.endswith(JSON_SUFFIX):
        key = key[: -len(JSON_SUFFIX)]
    return key


def read_document(path: str) -> Any:
    """
    Parse one knowledge file.

    Raises:
        KnowledgeParseError: If the file is not valid UTF-8 JSON
        OSError: If the file cannot be read
    """
    with open(path, "r", encoding="utf-8") as handle:
        try:
            return json.load(handle)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise KnowledgeParseError(path, str(exc)) from exc


def load_knowledge_base(root: str) -> KnowledgeBase:
    """
    Load every ``.json`` file under ``root`` into a mapping keyed by relative path.

    Args:
        root: Knowledge-base directory; created when missing

    Returns:
        Mapping of document key to parsed JSON value, in traversal order.
        Two files mapping to the same key keep the later one.
    """
    knowledge_base: KnowledgeBase = {}

    if not os.path.isdir(root):
        logger.warning("Knowledge base directory %s not found; creating it", root)
        try:
            os.makedirs(root, exist_ok=True)
        except OSError as exc:
            logger.error("Cannot create knowledge base directory %s: %s", root, exc)
        return knowledge_base

    def _log_dir_error(exc: OSError) -> None:
        logger.error("Error reading directory %s: %s", exc.filename, exc.strerror or exc)

    for path, relative in walk_json_files(root, onerror=_log_dir_error):
        key = document_key(relative)
        try:
            knowledge_base[key] = read_document(path)
        except KnowledgeParseError as exc:
            logger.warning("Skipping malformed knowledge file %s: %s", relative, exc.reason)
            continue
        except OSError as exc:
            logger.error("Error loading %s: %s", relative, exc)
            continue
        logger.debug("Loaded knowledge document %s", key)

    logger.info("Loaded %d knowledge base files from %s", len(knowledge_base), root)
    return knowledge_base
