"""
Field Paths

Popup fields may map onto a nested array entry of the outbound payload with
the literal form ``name[index].prop`` (e.g. ``batches[0].batchId``). Paths are
parsed once when the descriptor is loaded; reads and writes use the parsed
form.
"""

import re
from dataclasses import dataclass
from typing import Any

_INDEXED_PATH = re.compile(r"^(?P<array>[^\[\].]+)\[(?P<index>\d+)\]\.(?P<prop>[^\[\].]+)$")


@dataclass(frozen=True)
class ScalarPath:
    """Top-level payload key."""

    key: str

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class IndexedPath:
    """Property of one entry of a payload array."""

    array: str
    index: int
    prop: str

    def __str__(self) -> str:
        return f"{self.array}[{self.index}].{self.prop}"


FieldPath = ScalarPath | IndexedPath


def parse_path(raw: str) -> FieldPath:
    """
    Parse a payload key into a path.

    Anything that is not exactly ``name[index].prop`` is a scalar key.

    Example:
        >>> parse_path("batches[0].batchId")
        IndexedPath(array='batches', index=0, prop='batchId')
        >>> parse_path("title")
        ScalarPath(key='title')
    """
    match = _INDEXED_PATH.match(raw)
    if match:
        return IndexedPath(
            array=match.group("array"),
            index=int(match.group("index")),
            prop=match.group("prop"),
        )
    return ScalarPath(key=raw)


def read_path(data: dict[str, Any] | None, path: FieldPath) -> Any:
    """
    Read the value at path, or None when any step is missing.
    """
    if not isinstance(data, dict):
        return None
    if isinstance(path, ScalarPath):
        return data.get(path.key)

    items = data.get(path.array)
    if not isinstance(items, list) or path.index >= len(items):
        return None
    entry = items[path.index]
    if not isinstance(entry, dict):
        return None
    return entry.get(path.prop)


def write_path(payload: dict[str, Any], path: FieldPath, value: Any) -> None:
    """
    Write value at path, growing the target array with empty slots as needed.

    Empty slots are None; callers drop them with compact_arrays().
    """
    if isinstance(path, ScalarPath):
        payload[path.key] = value
        return

    items = payload.get(path.array)
    if not isinstance(items, list):
        items = []
        payload[path.array] = items
    while len(items) <= path.index:
        items.append(None)
    if items[path.index] is None:
        items[path.index] = {}
    items[path.index][path.prop] = value


def compact_arrays(payload: dict[str, Any], arrays: set[str]) -> None:
    """Remove unpopulated slots from the named payload arrays."""
    for name in arrays:
        items = payload.get(name)
        if isinstance(items, list):
            payload[name] = [item for item in items if item]
