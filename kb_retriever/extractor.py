"""Extract retrievable text chunks from nested JSON documents."""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Mapping, Sequence

from .schemas import Chunk, ChunkFlags, KnowledgeBase
from .utils import JSON_SUFFIX, humanize_key

logger = logging.getLogger(__name__)


# Minimum lengths are exclusive: a value must be strictly longer.
STRING_MIN_LENGTH = 15
ARRAY_ITEM_MIN_LENGTH = 10
AGGREGATE_MIN_LENGTH = 50
STRUCTURED_MIN_LENGTH = 100

DISPLAY_KEYS = ("name", "title", "phase", "step", "label", "description", "question", "action")
MAX_DISPLAY_PROPERTIES = 4
FALLBACK_DISPLAY_PROPERTIES = 2

STRUCTURED_INDENT = "  "
AGGREGATE_INDENT = "   "


class ValueKind(enum.Enum):
    """Tag for a JSON value."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    NULL = "null"
    ARRAY = "array"
    OBJECT = "object"


SCALAR_KINDS = frozenset({ValueKind.STRING, ValueKind.NUMBER, ValueKind.BOOLEAN, ValueKind.NULL})
CONTAINER_KINDS = frozenset({ValueKind.ARRAY, ValueKind.OBJECT})


def kind_of(value: Any) -> ValueKind:
    """Classify a parsed JSON value."""
    # bool is a subclass of int, so it must be tested first
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if value is None:
        return ValueKind.NULL
    if isinstance(value, Mapping):
        return ValueKind.OBJECT
    if isinstance(value, (list, tuple)):
        return ValueKind.ARRAY
    raise TypeError(f"Unsupported JSON value type: {type(value).__name__}")


def format_scalar(value: Any) -> str:
    """Inline rendering of a scalar: strings verbatim, everything else as JSON."""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _path_segments(key: str) -> List[str]:
    return [segment for segment in key.split("/") if segment]


def document_label(key: str) -> str:
    """
    Human-readable label for a document key.

    ``policies/leave`` -> ``Policies - Leave``; deeper keys use the last two
    segments (folder and file); a single segment is humanized on its own.
    """
    segments = _path_segments(key)
    if len(segments) >= 2:
        return f"{humanize_key(segments[-2])} - {humanize_key(segments[-1])}"
    if segments:
        return humanize_key(segments[0])
    return humanize_key(key)


def category_label(key: str) -> str:
    """Humanized top-level folder of a document key, or its label when it has none."""
    segments = _path_segments(key)
    if len(segments) >= 2:
        return humanize_key(segments[0])
    return document_label(key)


def has_nested_structure(obj: Mapping[str, Any]) -> bool:
    """True when at least one value of the object is itself an array or object."""
    return any(kind_of(value) in CONTAINER_KINDS for value in obj.values())


def display_properties(item: Mapping[str, Any]) -> List[str]:
    """
    Keys used as the headline of an object inside an array.

    Keys named like ``name`` or ``title`` with string values are preferred (up
    to four); otherwise the first two string-valued keys are used.
    """
    preferred = [
        key for key, value in item.items()
        if str(key).lower() in DISPLAY_KEYS and isinstance(value, str)
    ]
    if preferred:
        return preferred[:MAX_DISPLAY_PROPERTIES]
    return [key for key, value in item.items() if isinstance(value, str)][:FALLBACK_DISPLAY_PROPERTIES]


def _render_array_object(position: int, item: Mapping[str, Any]) -> List[str]:
    display = display_properties(item)
    headline = " - ".join(item[key] for key in display) or f"Item {position}"
    lines = [f"{position}. {headline}"]

    for key, value in item.items():
        if key in display:
            continue
        kind = kind_of(value)
        if kind is ValueKind.STRING:
            lines.append(f"{AGGREGATE_INDENT}{humanize_key(key)}: {value}")
        elif kind is ValueKind.ARRAY:
            parts = [format_scalar(part) for part in value if kind_of(part) in SCALAR_KINDS]
            if parts:
                lines.append(f"{AGGREGATE_INDENT}{humanize_key(key)}: {', '.join(parts)}")
    return lines


def render_array(title: str, items: Sequence[Any]) -> str:
    """
    Render a whole array as a numbered list under a title line.

    Strings and numbers are listed as-is; objects are listed by their display
    properties with the remaining string/array properties indented below.
    """
    lines = [f"{title}:"]
    for position, item in enumerate(items, start=1):
        kind = kind_of(item)
        if kind is ValueKind.OBJECT:
            lines.extend(_render_array_object(position, item))
        elif kind is ValueKind.ARRAY:
            parts = [format_scalar(part) for part in item if kind_of(part) in SCALAR_KINDS]
            if parts:
                lines.append(f"{position}. {', '.join(parts)}")
        elif kind is not ValueKind.NULL:
            lines.append(f"{position}. {format_scalar(item)}")
    return "\n".join(lines)


def _render_mapping(obj: Mapping[str, Any], depth: int, lines: List[str]) -> None:
    pad = STRUCTURED_INDENT * depth
    for key, value in obj.items():
        label = humanize_key(key)
        kind = kind_of(value)
        if kind is ValueKind.OBJECT:
            lines.append(f"{pad}{label}:")
            _render_mapping(value, depth + 1, lines)
        elif kind is ValueKind.ARRAY:
            lines.append(f"{pad}{label}:")
            _render_sequence(value, depth + 1, lines)
        else:
            lines.append(f"{pad}{label}: {format_scalar(value)}")


def _render_sequence(items: Sequence[Any], depth: int, lines: List[str]) -> None:
    pad = STRUCTURED_INDENT * depth
    for item in items:
        kind = kind_of(item)
        if kind is ValueKind.OBJECT:
            lines.append(f"{pad}-")
            _render_mapping(item, depth + 1, lines)
        elif kind is ValueKind.ARRAY:
            lines.append(f"{pad}-")
            _render_sequence(item, depth + 1, lines)
        else:
            lines.append(f"{pad}- {format_scalar(item)}")


def render_structured(title: str, obj: Mapping[str, Any]) -> str:
    """Render a whole object as a title line followed by indented ``Key: value`` lines."""
    lines = [title]
    _render_mapping(obj, 1, lines)
    return "\n".join(lines)


@dataclass(frozen=True)
class _Scope:
    path: str
    context: str
    parent_context: str
    source_file: str
    document_label: str


class ChunkExtractor:
    """
    Depth-first walk over each document, dispatching on the value's kind.

    Rules per kind:
    - string: one chunk when longer than the minimum length
    - array: an aggregate chunk for the whole array, then each element
    - object: a structured chunk when it has nested structure, then each key

    Structured/aggregate chunks and the leaf chunks below them may repeat
    the same information; both are kept.
    """

    def __init__(self) -> None:
        self._handlers: Dict[ValueKind, Callable[..., None]] = {
            ValueKind.STRING: self._visit_string,
            ValueKind.ARRAY: self._visit_array,
            ValueKind.OBJECT: self._visit_object,
        }

    def extract(self, knowledge_base: KnowledgeBase) -> List[Chunk]:
        chunks: List[Chunk] = []
        for key, document in knowledge_base.items():
            label = document_label(key)
            scope = _Scope(
                path=key,
                context=label,
                parent_context=category_label(key),
                source_file=f"{key}{JSON_SUFFIX}",
                document_label=label,
            )
            before = len(chunks)
            self._visit(document, scope, label, chunks, STRING_MIN_LENGTH)
            logger.debug("Extracted %d chunks from %s", len(chunks) - before, key)

        logger.info("Extracted %d chunks from %d documents", len(chunks), len(knowledge_base))
        return chunks

    def _visit(self, value: Any, scope: _Scope, title: str, chunks: List[Chunk], min_length: int) -> None:
        handler = self._handlers.get(kind_of(value))
        if handler is not None:
            handler(value, scope, title, chunks, min_length)

    def _visit_string(self, value: str, scope: _Scope, title: str, chunks: List[Chunk], min_length: int) -> None:
        if len(value) > min_length:
            chunks.append(self._chunk(value, scope))

    def _visit_array(self, value: Sequence[Any], scope: _Scope, title: str, chunks: List[Chunk], min_length: int) -> None:
        if value:
            text = render_array(title, value)
            if len(text) > AGGREGATE_MIN_LENGTH:
                chunks.append(self._chunk(text, scope, ChunkFlags(is_aggregate=True)))

        for index, item in enumerate(value):
            item_scope = replace(scope, path=f"{scope.path}[{index}]")
            self._visit(item, item_scope, title, chunks, ARRAY_ITEM_MIN_LENGTH)

    def _visit_object(self, value: Mapping[str, Any], scope: _Scope, title: str, chunks: List[Chunk], min_length: int) -> None:
        if len(value) >= 2 and has_nested_structure(value):
            text = render_structured(title, value)
            if len(text) > STRUCTURED_MIN_LENGTH:
                chunks.append(self._chunk(text, scope, ChunkFlags(is_structured=True)))

        for key, child in value.items():
            child_scope = self._descend(scope, str(key), child)
            self._visit(child, child_scope, humanize_key(key), chunks, STRING_MIN_LENGTH)

    @staticmethod
    def _descend(scope: _Scope, key: str, child: Any) -> _Scope:
        path = f"{scope.path}.{key}"
        if kind_of(child) in CONTAINER_KINDS:
            return replace(
                scope,
                path=path,
                context=f"{scope.document_label} - {humanize_key(key)}",
                parent_context=scope.context,
            )
        return replace(scope, path=path)

    @staticmethod
    def _chunk(text: str, scope: _Scope, flags: ChunkFlags = ChunkFlags()) -> Chunk:
        return Chunk(
            text=text,
            path=scope.path,
            context=scope.context,
            parent_context=scope.parent_context,
            flags=flags,
            source_file=scope.source_file,
        )


def extract_chunks(knowledge_base: KnowledgeBase) -> List[Chunk]:
    """
    Flatten a knowledge base into an ordered chunk sequence.

    The order is reproducible for the same input: documents in mapping order,
    object keys in insertion order, array elements by index.
    """
    return ChunkExtractor().extract(knowledge_base)
