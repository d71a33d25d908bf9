"""Utility functions shared by the loader, signature engine and cache."""

from __future__ import annotations

import hashlib
import os
import re
import tempfile
from datetime import datetime, timezone
from typing import Callable, Iterable, Iterator, List, Optional, Tuple


JSON_SUFFIX = ".json"

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"
_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def to_base36(value: int) -> str:
    """Render an integer in base 36 with lowercase digits and a leading minus sign."""
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits: List[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return sign + "".join(reversed(digits))


def rolling_hash(text: str) -> str:
    """
    32-bit polynomial hash (``h = h * 31 + c``) over UTF-16 code units.

    The accumulator wraps to a signed 32-bit integer and is rendered in
    base 36, matching the hashes stored in existing cache-info files.
    """
    value = 0
    data = text.encode("utf-16-le", errors="surrogatepass")
    for offset in range(0, len(data), 2):
        code_unit = data[offset] | (data[offset + 1] << 8)
        value = (value * 31 + code_unit) & 0xFFFFFFFF
    if value & 0x80000000:
        value -= 1 << 32
    return to_base36(value)


def sha256_text(text: str) -> str:
    """Calculate SHA-256 hex digest of a text string."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def content_hash(text: str, algorithm: str = "rolling") -> str:
    """Hash text with the configured signature algorithm."""
    if algorithm == "rolling":
        return rolling_hash(text)
    if algorithm == "sha256":
        return sha256_text(text)
    raise ValueError(f"Unknown signature hash algorithm: {algorithm}")


def humanize_key(key: str) -> str:
    """Turn ``vacation_policy`` or ``vacationPolicy`` into ``Vacation Policy``."""
    text = _CAMEL_BOUNDARY_RE.sub(" ", str(key).replace("_", " "))
    return " ".join(word[:1].upper() + word[1:] for word in text.split())


def truncate_text(text: str, limit: int) -> str:
    """Cut text to at most ``limit`` characters."""
    if len(text) <= limit:
        return text
    return text[:limit]


def iter_batches(items: List, batch_size: int) -> Iterable[List]:
    """Yield batches of items."""
    for start in range(0, len(items), batch_size):
        yield items[start : start + batch_size]


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a ``Z`` suffix."""
    return format_timestamp(datetime.now(timezone.utc).timestamp())


def format_timestamp(epoch_seconds: float) -> str:
    """Render a POSIX timestamp like ``2024-01-01T12:00:00.000Z``."""
    moment = datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def walk_json_files(
    root: str,
    onerror: Optional[Callable[[OSError], None]] = None,
) -> Iterator[Tuple[str, str]]:
    """
    Yield ``(absolute_path, relative_path)`` for every ``.json`` file under root.

    Entries are visited in sorted name order and directories are descended
    where they appear, so the sequence is stable between runs. Relative paths
    always use ``/``.

    Without ``onerror`` an unreadable directory raises ``OSError``; with it,
    the error is passed to the callback and that directory is skipped.
    """
    yield from _walk(root, "", onerror)


def _walk(
    directory: str,
    relative: str,
    onerror: Optional[Callable[[OSError], None]],
) -> Iterator[Tuple[str, str]]:
    try:
        with os.scandir(directory) as handle:
            entries = sorted(handle, key=lambda entry: entry.name)
    except OSError as exc:
        if onerror is None:
            raise
        onerror(exc)
        return

    for entry in entries:
        entry_relative = f"{relative}/{entry.name}" if relative else entry.name
        if entry.is_dir():
            yield from _walk(entry.path, entry_relative, onerror)
        elif entry.name.endswith(JSON_SUFFIX):
            yield entry.path, entry_relative


def atomic_write_text(path: str, text: str) -> None:
    """Write text to a temp file beside ``path`` and move it into place."""
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
