"""
Minimal path language for walking parsed JSON.

A path is a sequence of segments separated by "." or "/". Each segment is a
property name optionally followed by one or more "[n]" array indexes:

    data.items
    results/0/name
    payload.entries[2].title
    [0].id

Property lookups try an exact match first and fall back to a
case-insensitive match. A path that cannot be followed resolves to
``PathResolution(found=False)`` rather than raising, so the caller decides
whether a missing value is an error or a default.
"""

import re
from typing import Any, List, NamedTuple, Optional, Union

_INDEX_PATTERN = re.compile(r"\[(\d+)\]")
_SEGMENT_PATTERN = re.compile(r"^([^\[\]]*)((?:\[\d+\])*)$")


class PathResolution(NamedTuple):
    found: bool
    value: Any = None


Segment = Union[str, int]


def parse_path(path: Optional[str]) -> List[Segment]:
    """
    Split a path into property-name (str) and array-index (int) segments.

    Raises:
        ValueError: If a segment has unbalanced or non-numeric brackets
    """
    if path is None:
        return []

    segments: List[Segment] = []
    for raw in re.split(r"[./]", path.strip()):
        if raw == "":
            continue

        match = _SEGMENT_PATTERN.match(raw)
        if not match:
            raise ValueError(f"Invalid path segment '{raw}' in '{path}'")

        name, indexes = match.groups()
        if name:
            # Bare numbers address array elements ("results/0/name")
            segments.append(int(name) if name.isdigit() else name)
        segments.extend(int(i) for i in _INDEX_PATTERN.findall(indexes))

    return segments


def _lookup_property(node: dict, name: str) -> PathResolution:
    if name in node:
        return PathResolution(True, node[name])

    lowered = name.lower()
    for key, value in node.items():
        if isinstance(key, str) and key.lower() == lowered:
            return PathResolution(True, value)

    return PathResolution(False)


def resolve(data: Any, path: Optional[str]) -> PathResolution:
    """Walk ``data`` along ``path``; an empty path resolves to ``data`` itself."""
    try:
        segments = parse_path(path)
    except ValueError:
        return PathResolution(False)

    current = data
    for segment in segments:
        if isinstance(segment, int):
            if isinstance(current, list) and 0 <= segment < len(current):
                current = current[segment]
                continue
            if isinstance(current, dict):
                # Numeric keys are legal JSON property names
                resolution = _lookup_property(current, str(segment))
                if resolution.found:
                    current = resolution.value
                    continue
            return PathResolution(False)

        if not isinstance(current, dict):
            return PathResolution(False)

        resolution = _lookup_property(current, segment)
        if not resolution.found:
            return PathResolution(False)
        current = resolution.value

    return PathResolution(True, current)
