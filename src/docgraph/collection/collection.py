"""Ordered, integer indexed container with document style change tracking."""

from collections.abc import Callable, Iterable, Iterator, Mapping
from typing import TYPE_CHECKING, Any

import structlog

from docgraph.document import Document, EmbedSpec
from docgraph.exceptions import InvalidIndex, InvalidPathSegment, NotAModelCollection, NotIndexable
from docgraph.node import GraphNode, Visited
from docgraph.path import PathLike, split_path

if TYPE_CHECKING:
    from docgraph.schema import Schema

_UNSET = object()


class Collection(GraphNode):
    """A list of documents or scalars.

    Items are cast through the bound schema at ``base_path`` when one is
    given. Removing an item shifts the following offsets down by one.
    """

    def __init__(
        self,
        data: Iterable[Any] | None = None,
        *,
        schema: "Schema | None" = None,
        base_path: str | None = None,
        meta: Mapping[str, Any] | None = None,
        exists: bool | str | None = False,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        super().__init__(schema=schema, base_path=base_path)
        self._logger = logger or structlog.get_logger(__name__)
        self._data: list[Any] = []
        self._original: list[Any] = []
        self._meta: dict[str, Any] = dict(meta or {})
        self._modified = False
        self._cast_exists: bool | str | None = exists
        self._load(list(data) if data is not None else [])
        self._cast_exists = False
        self._original = list(self._data)
        self._modified = False

    @property
    def schema(self) -> "Schema | None":
        return self._schema

    @property
    def meta(self) -> dict[str, Any]:
        return self._meta

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._data))

    def count(self) -> int:
        """Return the number of items."""
        return len(self._data)

    def keys(self) -> list[int]:
        """Return the item indexes."""
        return list(range(len(self._data)))

    def _index(self, segment: str, *, allow_end: bool = False) -> int:
        if not segment.isdigit():
            raise InvalidIndex(segment)
        index = int(segment)
        limit = len(self._data) + 1 if allow_end else len(self._data)
        if index >= limit:
            raise InvalidIndex(segment)
        return index

    def get(self, offset: PathLike | None = None) -> Any:
        """Return the item at ``offset``, or a copy of all items when omitted.

        Raises:
            InvalidIndex: If the offset isn't numeric or is out of range.
        """
        if offset is None:
            return list(self._data)
        head, *rest = split_path(offset)
        value = self._data[self._index(head)]
        if not rest:
            return value
        if value is None:
            return None
        if not isinstance(value, GraphNode):
            raise InvalidPathSegment(head)
        return value.get(rest)

    def first(self) -> Any:
        """Return the first item, or ``None`` when the collection is empty."""
        return self._data[0] if self._data else None

    def set(self, offset: PathLike, value: Any) -> "Collection":
        """Set the item at ``offset``, or a field of it for a dotted offset.

        Args:
            offset: Index, or index followed by a path into the item. The
                index may equal the length to append.
            value: New value, cast through the schema when there is one.

        Raises:
            InvalidIndex: If the index isn't numeric or is out of range.
            InvalidPathSegment: If the path goes through a scalar item.
        """
        head, *rest = split_path(offset)
        if rest:
            child = self.get(head)
            if not isinstance(child, GraphNode):
                raise InvalidPathSegment(head)
            child.set(rest, value)
            return self
        self._set_at(self._index(head, allow_end=True), value)
        return self

    def push(self, value: Any) -> "Collection":
        """Append ``value`` at the end."""
        self._set_at(len(self._data), value)
        return self

    def _cast(self, value: Any) -> Any:
        if self._schema is None:
            if isinstance(value, Mapping):
                return Document(value)
            if isinstance(value, (list, tuple)):
                return Collection(value)
            return value
        return self._schema.cast(
            None,
            value,
            parent=self,
            base_path=self._base_path,
            exists=self._cast_exists,
            defaults=self._cast_exists is False,
            item=True,
        )

    def _set_at(self, index: int, value: Any, notify: bool = True) -> None:
        value = self._cast(value)
        if index == len(self._data):
            self._data.append(value)
        else:
            previous = self._data[index]
            if previous is value:
                return
            self._data[index] = value
            if isinstance(previous, GraphNode):
                self._release(previous)
        if isinstance(value, GraphNode):
            value.set_parent(self, index)
        self._modified = True
        if notify:
            self._notify([str(index)])

    def _load(self, items: list[Any]) -> None:
        for index, item in enumerate(items):
            self._set_at(index, item, notify=False)
        while len(self._data) > len(items):
            value = self._data.pop()
            if isinstance(value, GraphNode):
                self._release(value)

    def _release(self, child: GraphNode) -> None:
        if not any(item is child for item in self._data):
            child.unset_parent(self)

    def _relabel(self, start: int = 0) -> None:
        for index in range(start, len(self._data)):
            item = self._data[index]
            if isinstance(item, GraphNode):
                item.set_parent(self, index)

    def has(self, offset: PathLike) -> bool:
        """Check whether ``offset`` points to an existing item or field."""
        head, *rest = split_path(offset)
        if not head.isdigit() or int(head) >= len(self._data):
            return False
        if not rest:
            return True
        value = self._data[int(head)]
        return value.has(rest) if isinstance(value, GraphNode) else False

    def unset(self, offset: PathLike) -> "Collection":
        """Remove the item at ``offset``, or a field of it for a dotted offset.

        Following items are shifted down, so indexes stay contiguous.
        """
        head, *rest = split_path(offset)
        if rest:
            value = self.get(head)
            if isinstance(value, GraphNode):
                value.unset(rest)
            return self
        index = self._index(head)
        value = self._data.pop(index)
        if isinstance(value, GraphNode):
            self._release(value)
        self._relabel(index)
        self._modified = True
        self._notify([str(index)])
        return self

    def _detach_child(self, child: GraphNode) -> None:
        positions = [index for index, item in enumerate(self._data) if item is child]
        for index in reversed(positions):
            del self._data[index]
        if positions:
            self._relabel(positions[0])
            self._modified = True
            self._notify([str(positions[0])])

    def clear(self) -> "Collection":
        """Remove every item."""
        items, self._data = self._data, []
        for item in items:
            if isinstance(item, GraphNode):
                item.unset_parent(self)
        self._modified = True
        self._notify([])
        return self

    def append(self, other: Iterable[Any]) -> "Collection":
        """Push every item of ``other``, with a single notification."""
        for item in list(other):
            self._set_at(len(self._data), item, notify=False)
        self._notify([])
        return self

    def merge(self, other: Iterable[Any]) -> "Collection":
        """Push the items of ``other`` that this collection doesn't already hold."""
        for item in list(other):
            if self.index_of(item) == -1:
                self._set_at(len(self._data), item, notify=False)
        self._notify([])
        return self

    def index_by(self, field: str, by_index: bool = False) -> dict[Any, list[Any]]:
        """Group items by the value of ``field``.

        Args:
            field: Field name to read on each item.
            by_index: Store item offsets instead of items.

        Raises:
            NotIndexable: If an item isn't a document.
        """
        indexes: dict[Any, list[Any]] = {}
        for index, document in enumerate(self._data):
            if not isinstance(document, Document):
                raise NotIndexable()
            indexes.setdefault(document.get(field), []).append(index if by_index else document)
        return indexes

    def index_of(self, item: Any, from_index: int = 0) -> int:
        """Return the first index of ``item``, compared by identity.

        Args:
            item: Item to look for.
            from_index: Index to start searching from.

        Returns:
            The index, or ``-1`` when the item isn't held.
        """
        for index in range(max(from_index, 0), len(self._data)):
            if self._data[index] is item:
                return index
        return -1

    def last_index_of(self, item: Any, from_index: int = 0) -> int:
        """Return the last index of ``item`` at or after ``from_index``, or ``-1``."""
        result = -1
        for index in range(max(from_index, 0), len(self._data)):
            if self._data[index] is item:
                result = index
        return result

    def index_of_id(self, entity_id: Any) -> int:
        """Return the index of the entity whose id is ``entity_id``, or ``-1``.

        Raises:
            NotAModelCollection: If an item isn't a model entity.
        """
        from docgraph.model import Model

        target = str(entity_id)
        for index, entity in enumerate(self._data):
            if not isinstance(entity, Model):
                raise NotAModelCollection()
            if str(entity.id) == target:
                return index
        return -1

    def invoke(self, method: str, *args: Any, **kwargs: Any) -> list[Any]:
        """Call ``method`` on every item and return the results."""
        return [getattr(item, method)(*args, **kwargs) for item in list(self._data)]

    def filter(self, predicate: Callable[[Any], bool]) -> "Collection":
        """Return a new collection with the items matching ``predicate``."""
        return Collection([item for item in self._data if predicate(item)])

    def map(self, transform: Callable[[Any], Any]) -> "Collection":
        """Return a new collection of ``transform(item)`` values."""
        return Collection([transform(item) for item in self._data])

    def reduce(self, reducer: Callable[[Any, Any], Any], initial: Any = None) -> Any:
        """Fold the items with ``reducer(accumulator, item)``, starting from ``initial``."""
        result = initial
        for item in self._data:
            result = reducer(result, item)
        return result

    def slice(self, start: int | None = None, stop: int | None = None) -> "Collection":
        """Return a new collection with the items between ``start`` and ``stop``."""
        return Collection(self._data[start:stop])

    def apply(self, transform: Callable[[Any], Any]) -> "Collection":
        """Replace every item in place with ``transform(item)``."""
        for index, item in enumerate(list(self._data)):
            self._set_at(index, transform(item), notify=False)
        self._notify([])
        return self

    def splice(self, offset: int, length: int | None = None) -> list[Any]:
        """Remove ``length`` items from ``offset``, or everything after it.

        Returns:
            The removed items.
        """
        stop = len(self._data) if length is None else offset + length
        removed = self._data[offset:stop]
        del self._data[offset:stop]
        for item in removed:
            if isinstance(item, GraphNode):
                self._release(item)
        self._relabel(offset)
        self._modified = True
        self._notify([])
        return removed

    def sort(self, key: Callable[[Any], Any] | None = None, reverse: bool = False) -> "Collection":
        """Sort the items in place, like ``list.sort``."""
        self._data.sort(key=key, reverse=reverse)
        self._relabel()
        self._modified = True
        self._notify([])
        return self

    def persisted(self) -> list[Any]:
        """Return the items as they were when the collection was last persisted."""
        return self._original

    original = persisted

    def modified(self, *, embed: EmbedSpec = None) -> bool:
        return self._is_modified(embed, set())

    def _is_modified(self, embed: EmbedSpec, seen: Visited) -> bool:
        if id(self) in seen:
            return False
        seen.add(id(self))
        if self._modified:
            return True
        return any(isinstance(item, GraphNode) and item._is_modified(embed, seen) for item in self._data)

    def amend(self, data: Iterable[Any] | None = None, *, exists: bool | str | None = None) -> "Collection":
        """Replace the items with ``data`` when given, then mark the collection unmodified."""
        self._amend(data, exists, set())
        return self

    def _amend(self, data: Iterable[Any] | None, exists: bool | str | None, seen: Visited) -> None:
        if id(self) in seen:
            return
        seen.add(id(self))
        if data is not None:
            if exists is not None:
                self._cast_exists = exists
            self._load(data.get() if isinstance(data, Collection) else list(data))
            self._cast_exists = False
        self._original = list(self._data)
        self._modified = False
        child_exists = "all" if exists == "all" else None
        for item in list(self._data):
            if isinstance(item, GraphNode):
                item._amend(None, child_exists, seen)

    def restore(self) -> "Collection":
        """Bring back the persisted items and their persisted data."""
        self._restore(set())
        return self

    def _restore(self, seen: Visited) -> None:
        if id(self) in seen:
            return
        seen.add(id(self))
        for item in self._data:
            if isinstance(item, GraphNode) and not any(item is kept for kept in self._original):
                item.unset_parent(self)
        self._data = list(self._original)
        self._relabel()
        self._modified = False
        for item in list(self._data):
            if isinstance(item, GraphNode):
                item._restore(seen)
        self._notify([])

    def hierarchy(self, prefix: str = "", ignore: Visited | None = None) -> list[str]:
        """Return the union of the loaded relation paths of the items."""
        ignore = set() if ignore is None else ignore
        result: dict[str, None] = {}
        for item in self._data:
            if not isinstance(item, GraphNode):
                continue
            for path in item.hierarchy(prefix, ignore) or []:
                result[path] = None
        return list(result)

    def to(self, format: str = "array", *, embed: EmbedSpec = True) -> list[Any]:
        """Export the items through the formatters of ``format``.

        Args:
            format: Formatter mode, ``array`` or ``datasource``.
            embed: Relations to export along with each entity.
        """
        schema = self._schema
        exported = []
        for item in self._data:
            if isinstance(item, GraphNode):
                exported.append(item.to(format, embed=embed))
            elif schema is not None and self._base_path and schema.has(self._base_path):
                exported.append(schema.format(format, self._base_path, item))
            else:
                exported.append(item)
        return exported

    def data(self, *, embed: EmbedSpec = True) -> list[Any]:
        """Shortcut for ``to("array")``."""
        return self.to("array", embed=embed)

    @staticmethod
    def to_list(
        data: Iterable[Any],
        *,
        handlers: Mapping[type, Callable[[Any], Any]] | None = None,
        format: str = "array",
        embed: EmbedSpec = True,
    ) -> list[Any]:
        """Recursively export ``data`` to plain lists and mappings.

        Args:
            data: Any iterable, usually a collection.
            handlers: Per type converters applied to matching items.
            format: Formatter mode passed to nested nodes.
            embed: Relations passed to nested nodes.
        """
        handlers = handlers or {}
        result = []
        for item in data:
            handler = next((fn for kind, fn in handlers.items() if isinstance(item, kind)), None)
            if handler is not None:
                result.append(handler(item))
            elif isinstance(item, (Collection, list, tuple)):
                result.append(Collection.to_list(item, handlers=handlers, format=format, embed=embed))
            elif hasattr(item, "to"):
                result.append(item.to(format, embed=embed))
            else:
                result.append(item)
        return result

    async def embed(self, relations: EmbedSpec, fetch_options: Mapping[str, Any] | None = None) -> "Collection":
        """Eager load ``relations`` for every entity, one query per relation."""
        await self._require_schema().embed(self, relations, fetch_options=fetch_options)
        return self

    async def validates(self, **options: Any) -> bool:
        success = True
        for entity in list(self._data):
            if not await entity.validates(**options):
                success = False
        return success

    def errors(self, *, embed: EmbedSpec = True) -> list[Any]:
        """Return the errors of every entity, or an empty list when none has any."""
        errors = [entity.errors(embed=embed) for entity in self._data]
        return errors if any(errors) else []

    async def save(self, *, validate: bool = True, embed: EmbedSpec = False) -> bool:
        """Validate then persist every entity of the collection.

        Returns:
            ``False`` when validation failed, ``True`` otherwise.
        """
        if validate and not await self.validates(embed=embed):
            return False
        return await self._require_schema().persist(self, embed=embed)

    async def delete(self) -> bool:
        """Delete the persisted entities of the collection.

        Raises:
            TypeError: If the collection isn't bound to a schema.
        """
        return await self._require_schema().delete(self)

    def _require_schema(self) -> "Schema":
        if self._schema is None:
            raise TypeError("This collection isn't bound to a schema.")
        return self._schema
