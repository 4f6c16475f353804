"""Dotted path helpers over plain nested dict/list data.

Paths are strings like ``"a.b.0.c"`` or pre-split segment lists. Numeric
segments address list offsets.
"""

from collections.abc import Iterable, MutableMapping, MutableSequence
from typing import Any

from docgraph.exceptions import EmptyFieldName

PathLike = str | int | Iterable[str | int]


def split_path(path: PathLike) -> list[str]:
    """Split a dotted path into its segments.

    Raises:
        EmptyFieldName: If the path is an empty string.
    """
    if isinstance(path, int):
        return [str(path)]
    if isinstance(path, str):
        if path == "":
            raise EmptyFieldName()
        return path.split(".")
    segments = [str(segment) for segment in path]
    if not segments:
        raise EmptyFieldName()
    return segments


def join_path(*parts: str | int | None) -> str:
    return ".".join(str(part) for part in parts if part is not None and part != "")


def _child(data: Any, segment: str) -> tuple[bool, Any]:
    if isinstance(data, MutableMapping):
        if segment in data:
            return True, data[segment]
        return False, None
    if isinstance(data, MutableSequence) and segment.lstrip("-").isdigit():
        index = int(segment)
        if 0 <= index < len(data):
            return True, data[index]
    return False, None


def get_path(data: Any, path: PathLike, default: Any = None) -> Any:
    current = data
    for segment in split_path(path):
        found, current = _child(current, segment)
        if not found:
            return default
    return current


def has_path(data: Any, path: PathLike) -> bool:
    current = data
    for segment in split_path(path):
        found, current = _child(current, segment)
        if not found:
            return False
    return True


def set_path(data: MutableMapping[str, Any], path: PathLike, value: Any) -> MutableMapping[str, Any]:
    """Set ``value`` at ``path``, creating intermediate dicts as needed.

    Args:
        data: Root mapping to mutate in place.
        path: Dotted path or segment list.
        value: Value to store at the leaf.

    Returns:
        The mutated root mapping.
    """
    segments = split_path(path)
    current: Any = data
    for segment in segments[:-1]:
        found, child = _child(current, segment)
        if not found or not isinstance(child, (MutableMapping, MutableSequence)):
            child = {}
            _assign(current, segment, child)
        current = child
    _assign(current, segments[-1], value)
    return data


def unset_path(data: Any, path: PathLike) -> Any:
    segments = split_path(path)
    parent = get_path(data, segments[:-1]) if len(segments) > 1 else data
    leaf = segments[-1]
    if isinstance(parent, MutableMapping):
        parent.pop(leaf, None)
    elif isinstance(parent, MutableSequence) and leaf.isdigit() and int(leaf) < len(parent):
        del parent[int(leaf)]
    return data


def _assign(container: Any, segment: str, value: Any) -> None:
    if isinstance(container, MutableSequence) and segment.isdigit():
        index = int(segment)
        if index == len(container):
            container.append(value)
        else:
            container[index] = value
        return
    container[segment] = value
