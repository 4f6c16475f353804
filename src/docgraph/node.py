"""Graph bookkeeping shared by documents and collections.

Every node keeps weak back references to the nodes holding it, labelled with
the field name (or offset) it is stored under. Nodes hash by identity so the
same child may be held by several parents at once.
"""

import asyncio
import weakref
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any

from docgraph.path import split_path

if TYPE_CHECKING:
    from docgraph.schema import Schema

WatchCallback = Callable[[list[str]], Any]
Visited = set[int]


class _NotificationQueue:
    """Defers watch callbacks until the current synchronous mutation has unwound.

    Pending notifications are keyed by ``(node, watch path, callback)`` so
    repeated mutations before delivery collapse into a single call carrying
    the last changed path. Inside a running asyncio loop they are delivered
    on the next loop iteration; otherwise they wait for ``flush()``.
    """

    def __init__(self) -> None:
        self._pending: dict[tuple[int, tuple[str, ...], WatchCallback], list[str]] = {}
        self._loop: asyncio.AbstractEventLoop | None = None

    def enqueue(self, node: "GraphNode", key: tuple[str, ...], callback: WatchCallback, path: list[str]) -> None:
        self._pending[(id(node), key, callback)] = list(path)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._loop is not loop:
            self._loop = loop
            loop.call_soon(self.flush)

    def flush(self) -> int:
        """Deliver every pending notification.

        Returns:
            The number of callbacks invoked.
        """
        pending = self._pending
        self._pending = {}
        self._loop = None
        for (_, _, callback), path in pending.items():
            callback(path)
        return len(pending)

    def clear(self) -> None:
        self._pending = {}
        self._loop = None


_notifications = _NotificationQueue()


def flush_notifications() -> int:
    """Deliver the watch notifications queued outside of a running event loop.

    Returns:
        The number of callbacks invoked.
    """
    return _notifications.flush()


def discard_notifications() -> None:
    """Drop every queued watch notification without delivering it."""
    _notifications.clear()


class GraphNode:
    """Base class of every value container in the data graph."""

    def __init__(self, *, schema: "Schema | None" = None, base_path: str | None = None) -> None:
        self._schema = schema
        self._base_path = base_path or None
        self._parents: weakref.WeakKeyDictionary[GraphNode, str | int] = weakref.WeakKeyDictionary()
        self._watches: dict[tuple[str, ...], dict[WatchCallback, None]] = {}

    @property
    def parents(self) -> "weakref.WeakKeyDictionary[GraphNode, str | int]":
        return self._parents

    @property
    def base_path(self) -> str | None:
        return self._base_path

    def set_parent(self, parent: "GraphNode", label: str | int) -> "GraphNode":
        self._parents[parent] = label
        return self

    def unset_parent(self, parent: "GraphNode") -> "GraphNode":
        self._parents.pop(parent, None)
        return self

    def iter_parents(self) -> Iterator[tuple["GraphNode", str | int]]:
        return iter(list(self._parents.items()))

    def disconnect(self) -> "GraphNode":
        """Remove this node from every parent holding it and forget those parents."""
        for parent, _ in self.iter_parents():
            parent._detach_child(self)
        self._parents.clear()
        return self

    def _detach_child(self, child: "GraphNode") -> None:
        raise NotImplementedError

    def watch(self, path: str | WatchCallback | None = None, callback: WatchCallback | None = None) -> "GraphNode":
        """Register ``callback`` for mutations at or below ``path``.

        Args:
            path: Dotted path to observe. Omit it (or pass the callback as the
                only argument) to observe the whole subtree.
            callback: Called with the changed path segments once the mutation
                completes.

        Returns:
            The node itself.
        """
        if callback is None and callable(path):
            path, callback = None, path
        if callback is None:
            raise TypeError("watch() requires a callback")
        key = tuple(split_path(path)) if path is not None else ()
        self._watches.setdefault(key, {})[callback] = None
        return self

    def unwatch(self, path: str | WatchCallback | None = None, callback: WatchCallback | None = None) -> "GraphNode":
        if callback is None and callable(path):
            path, callback = None, path
        key = tuple(split_path(path)) if path is not None else ()
        callbacks = self._watches.get(key)
        if callbacks is None:
            return self
        if callback is None:
            callbacks.clear()
        else:
            callbacks.pop(callback, None)
        if not callbacks:
            del self._watches[key]
        return self

    def _notify(self, path: list[str], seen: Visited | None = None) -> None:
        seen = set() if seen is None else seen
        if id(self) in seen:
            return
        seen.add(id(self))
        for key, callbacks in list(self._watches.items()):
            depth = min(len(key), len(path))
            if list(key[:depth]) != path[:depth]:
                continue
            for callback in list(callbacks):
                _notifications.enqueue(self, key, callback, path)
        for parent, label in self.iter_parents():
            parent._notify([str(label), *path], seen)
