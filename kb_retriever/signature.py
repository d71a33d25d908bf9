"""Content signatures over the knowledge-base source directory."""

from __future__ import annotations

import json
import logging
import os
from typing import Dict, Optional

from .errors import SourceReadError
from .schemas import CacheSignature, FileSignature
from .utils import content_hash, format_timestamp, utc_now_iso, walk_json_files

logger = logging.getLogger(__name__)


def _serialize_files(files: Dict[str, FileSignature]) -> str:
    """Compact JSON of the per-file records, in scan order, used for the aggregate hash."""
    payload = {
        relative: {"size": record.size, "modified": record.modified, "hash": record.content_hash}
        for relative, record in files.items()
    }
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def compute_signature(root: str, hash_algorithm: str = "rolling") -> CacheSignature:
    """
    Fingerprint every ``.json`` file under ``root``.

    Files are hashed from their raw text with line endings kept, so a file
    that fails to parse still contributes. A missing root yields an empty
    signature.

    Raises:
        SourceReadError: If a directory or file cannot be read
    """
    files: Dict[str, FileSignature] = {}
    total_size = 0

    if os.path.isdir(root):
        try:
            for path, relative in walk_json_files(root):
                stats = os.stat(path)
                with open(path, "r", encoding="utf-8", errors="replace", newline="") as handle:
                    text = handle.read()
                files[relative] = FileSignature(
                    size=stats.st_size,
                    modified=format_timestamp(stats.st_mtime),
                    content_hash=content_hash(text, hash_algorithm),
                )
                total_size += stats.st_size
        except OSError as exc:
            raise SourceReadError(f"Failed to scan knowledge base {root}: {exc}") from exc

    return CacheSignature(
        timestamp=utc_now_iso(),
        files=files,
        total_size=total_size,
        file_count=len(files),
        signature=content_hash(_serialize_files(files), hash_algorithm),
    )


def is_signature_valid(
    root: str,
    persisted: Optional[CacheSignature],
    hash_algorithm: str = "rolling",
) -> bool:
    """True iff the current aggregate signature equals the persisted one."""
    if persisted is None or not persisted.signature:
        return False
    try:
        current = compute_signature(root, hash_algorithm)
    except SourceReadError as exc:
        logger.error("Error checking cache validity: %s", exc)
        return False
    return current.signature == persisted.signature
