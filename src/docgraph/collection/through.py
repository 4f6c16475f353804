"""Projection of a pivot collection onto the entities the pivots point to."""

from collections.abc import Callable, Iterable, Iterator, Mapping
from typing import TYPE_CHECKING, Any

from docgraph.collection.collection import Collection
from docgraph.document import Document, EmbedSpec
from docgraph.exceptions import InvalidPathSegment, InvalidRelationConfig, NotIndexable
from docgraph.node import GraphNode, Visited
from docgraph.path import PathLike, split_path

if TYPE_CHECKING:
    from docgraph.schema import Schema


class Through(GraphNode):
    """A collection view over ``parent.get(through)[i].get(using)``.

    The view owns no items. Reads and writes go through the pivot collection
    stored on ``parent`` under ``through``; every logical item is the
    ``using`` field of one pivot entity.
    """

    def __init__(
        self,
        *,
        parent: Document | None,
        schema: "Schema | None",
        through: str | None,
        using: str | None,
        data: Iterable[Any] | None = None,
    ) -> None:
        for name, value in (("parent", parent), ("schema", schema), ("through", through), ("using", using)):
            if value is None or value == "":
                raise InvalidRelationConfig(f"Invalid through collection, `'{name}'` is empty.", option=name)
        super().__init__(schema=schema)
        self._parent: Document = parent  # type: ignore[assignment]
        self._through: str = through  # type: ignore[assignment]
        self._using: str = using  # type: ignore[assignment]
        if data is not None:
            self._merge(data)

    @property
    def schema(self) -> "Schema":
        return self._schema  # type: ignore[return-value]

    @property
    def parent(self) -> Document:
        return self._parent

    @property
    def base_path(self) -> str:
        return ""

    @property
    def meta(self) -> dict[str, Any]:
        return self._pivots().meta

    def _pivots(self) -> Collection:
        return self._parent.get(self._through)

    def __len__(self) -> int:
        return len(self._pivots())

    def __iter__(self) -> Iterator[Any]:
        return iter([pivot.get(self._using) for pivot in self._pivots()])

    def count(self) -> int:
        return len(self._pivots())

    def keys(self) -> list[int]:
        return self._pivots().keys()

    def get(self, offset: PathLike | None = None) -> Any:
        if offset is None:
            return list(self)
        head, *rest = split_path(offset)
        value = self._pivots().get(head).get(self._using)
        if not rest:
            return value
        if not isinstance(value, GraphNode):
            raise InvalidPathSegment(head)
        return value.get(rest)

    def first(self) -> Any:
        pivot = self._pivots().first()
        return pivot.get(self._using) if pivot is not None else None

    def set(self, offset: PathLike, value: Any) -> "Through":
        head, *rest = split_path(offset)
        if rest:
            target = self.get(head)
            if not isinstance(target, GraphNode):
                raise InvalidPathSegment(head)
            target.set(rest, value)
            return self
        self._pivots().set(head, self._item(value))
        return self

    def push(self, value: Any) -> "Through":
        self._pivots().push(self._item(value))
        return self

    def has(self, offset: PathLike) -> bool:
        head, *rest = split_path(offset)
        pivots = self._pivots()
        if not pivots.has(head):
            return False
        if not rest:
            return True
        value = pivots.get(head).get(self._using)
        return value.has(rest) if isinstance(value, GraphNode) else False

    def unset(self, offset: PathLike) -> "Through":
        head, *rest = split_path(offset)
        if rest:
            value = self.get(head)
            if isinstance(value, GraphNode):
                value.unset(rest)
            return self
        self._pivots().unset(head)
        return self

    def _item(self, data: Any) -> Document:
        relation = self._parent.schema.relation(self._through)
        conditions = relation.match(self._parent) if self._parent._exists is True else {}
        pivot = relation.to_model.create(conditions)
        pivot.set(self._using, data)
        return pivot

    def _merge(self, data: Iterable[Any]) -> None:
        """Reconcile the pivot rows with a new list of target items.

        Pivots pointing at an incoming item are kept (and updated when the
        item is plain data), pivots with no match are removed and the
        incoming items left over are pushed as new pivots.
        """
        pivots = self._pivots()
        remaining = list(data.get()) if isinstance(data, (Collection, Through)) else list(data)
        kept: list[Document] = []
        for pivot in list(pivots):
            position = self._match(pivot, remaining)
            if position is None:
                continue
            item = remaining.pop(position)
            current = pivot.get(self._using) if pivot.has(self._using) else None
            if isinstance(item, Mapping) and isinstance(current, Document):
                current.set(item)
            elif item is not current:
                pivot.set(self._using, item)
            kept.append(pivot)
        for pivot in list(pivots):
            if not any(pivot is other for other in kept):
                pivots.unset(pivots.index_of(pivot))
        for item in remaining:
            self.push(item)

    def _match(self, pivot: Document, candidates: list[Any]) -> int | None:
        current = pivot.get(self._using) if pivot.has(self._using) else None
        for position, candidate in enumerate(candidates):
            if current is not None and candidate is current:
                return position
        relation = pivot.schema.relation(self._using)
        key = pivot.get(relation.from_key) if pivot.has(relation.from_key) else None
        if key is None:
            return None
        for position, candidate in enumerate(candidates):
            if isinstance(candidate, Document):
                value = candidate.get(relation.to_key) if candidate.has(relation.to_key) else None
            elif isinstance(candidate, Mapping):
                value = candidate.get(relation.to_key)
            else:
                value = None
            if value is not None and str(value) == str(key):
                return position
        return None

    def _detach_child(self, child: GraphNode) -> None:
        pivots = self._pivots()
        for index, pivot in reversed(list(enumerate(pivots))):
            if pivot.has(self._using) and pivot.get(self._using) is child:
                pivots.unset(index)

    def merge(self, other: Iterable[Any]) -> "Through":
        for item in list(other):
            self.push(item)
        return self

    def index_by(self, field: str, by_index: bool = False) -> dict[Any, list[Any]]:
        indexes: dict[Any, list[Any]] = {}
        for index, document in enumerate(self):
            if not isinstance(document, Document):
                raise NotIndexable()
            indexes.setdefault(document.get(field), []).append(index if by_index else document)
        return indexes

    def index_of(self, item: Any, from_index: int = 0) -> int:
        items = list(self)
        for index in range(max(from_index, 0), len(items)):
            if items[index] is item:
                return index
        return -1

    def invoke(self, method: str, *args: Any, **kwargs: Any) -> list[Any]:
        return [getattr(item, method)(*args, **kwargs) for item in self]

    def filter(self, predicate: Callable[[Any], bool]) -> Collection:
        return Collection([item for item in self if predicate(item)])

    def map(self, transform: Callable[[Any], Any]) -> Collection:
        return Collection([transform(item) for item in self])

    def reduce(self, reducer: Callable[[Any, Any], Any], initial: Any = None) -> Any:
        result = initial
        for item in self:
            result = reducer(result, item)
        return result

    def slice(self, start: int | None = None, stop: int | None = None) -> Collection:
        return Collection(list(self)[start:stop])

    def apply(self, transform: Callable[[Any], Any]) -> "Through":
        for index, item in enumerate(list(self)):
            self.set(index, transform(item))
        return self

    def _pivot_embed(self, embed: EmbedSpec) -> dict[str, Any]:
        return {self._using: {"embed": embed} if embed else None}

    def modified(self, *, embed: EmbedSpec = None) -> bool:
        return self._is_modified(embed, set())

    def _is_modified(self, embed: EmbedSpec, seen: Visited) -> bool:
        return self._pivots()._is_modified(self._pivot_embed(embed), seen)

    def amend(self, data: Iterable[Any] | None = None, *, exists: bool | str | None = None) -> "Through":
        self._amend(data, exists, set())
        return self

    def _amend(self, data: Iterable[Any] | None, exists: bool | str | None, seen: Visited) -> None:
        if data is not None:
            self._merge(data)
        self._pivots()._amend(None, exists, seen)

    def restore(self) -> "Through":
        """Bring the pivot collection back to its last persisted state."""
        self._restore(set())
        return self

    def _restore(self, seen: Visited) -> None:
        self._pivots()._restore(seen)

    def hierarchy(self, prefix: str = "", ignore: Visited | None = None) -> list[str]:
        ignore = set() if ignore is None else ignore
        result: dict[str, None] = {}
        for item in self:
            if isinstance(item, GraphNode):
                for path in item.hierarchy(prefix, ignore) or []:
                    result[path] = None
        return list(result)

    def to(self, format: str = "array", *, embed: EmbedSpec = True) -> list[Any]:
        return [item.to(format, embed=embed) if isinstance(item, GraphNode) else item for item in self]

    def data(self, *, embed: EmbedSpec = True) -> list[Any]:
        return self.to("array", embed=embed)

    def errors(self, *, embed: EmbedSpec = True) -> list[Any]:
        errors = [entity.errors(embed=embed) for entity in self]
        return errors if any(errors) else []

    async def validates(self, **options: Any) -> bool:
        success = True
        for entity in list(self):
            if not await entity.validates(**options):
                success = False
        return success

    async def embed(self, relations: EmbedSpec, fetch_options: Mapping[str, Any] | None = None) -> "Through":
        await self.schema.embed(self, relations, fetch_options=fetch_options)
        return self
