"""Mutable, path addressable and change tracked document node."""

import warnings
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import structlog

from docgraph.exceptions import (
    EmptyFieldName,
    ExternalRelationRequiresFetch,
    InvalidPathSegment,
    MissingSchemaField,
)
from docgraph.node import GraphNode, Visited
from docgraph.path import PathLike, join_path, split_path

if TYPE_CHECKING:
    from docgraph.schema import Schema

_UNSET = object()

EmbedSpec = bool | str | list[Any] | dict[str, Any] | None


class Document(GraphNode):
    """A node holding named fields.

    Field values are scalars or other graph nodes. Values are cast through the
    bound schema on assignment, and the document keeps a snapshot of its data
    taken at the last amend point to answer ``modified()``.
    """

    _exists: bool | None = False

    def __init__(
        self,
        data: Mapping[str, Any] | None = None,
        *,
        schema: "Schema | None" = None,
        base_path: str | None = None,
        exists: bool | str | None = False,
        defaults: bool = True,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        super().__init__(schema=schema, base_path=base_path)
        self._logger = logger or structlog.get_logger(__name__)
        self._data: dict[str, Any] = {}
        self._persisted: dict[str, Any] = {}
        self._errors: dict[str, Any] = {}
        self._autoboxed: set[str] = set()
        self._cast_exists = self._children_exists(exists)

        initial = dict(data or {})
        if defaults:
            initial = {**self.schema.defaults(self._base_path), **initial}
        self.set(initial)
        self._persisted = dict(self._data)
        self._cast_exists = False

    @classmethod
    def definition(cls) -> "Schema":
        """Return a fresh unlocked schema for standalone documents."""
        from docgraph.schema import Schema

        return Schema(model=cls, locked=False)

    @classmethod
    def create(
        cls,
        data: Any = None,
        *,
        type: str = "entity",
        schema: "Schema | None" = None,
        base_path: str | None = None,
        exists: bool | str | None = False,
        defaults: bool | None = None,
        collector: Any = None,
    ) -> Any:
        """Build a document, or a collection of documents when ``type`` is ``"set"``."""
        if type == "set":
            from docgraph.collection import Collection

            return Collection(data, schema=schema or cls.definition(), exists=exists)
        if defaults is None:
            defaults = exists is False
        return cls(data, schema=schema, base_path=base_path, exists=exists, defaults=defaults)

    @staticmethod
    def _children_exists(exists: bool | str | None) -> bool | str | None:
        if exists == "all":
            return "all"
        return None if exists else False

    @property
    def schema(self) -> "Schema":
        if self._schema is None:
            self._schema = type(self).definition()
        return self._schema

    @property
    def exists(self) -> bool | None:
        return False

    def _field_path(self, name: str) -> str:
        return join_path(self._base_path, name)

    def get(self, name: PathLike | None = None) -> Any:
        """Return a field value, or the whole data mapping when ``name`` is omitted.

        Args:
            name: Dotted path (``"a.b.0"``) or list of segments.

        Returns:
            The value at ``name``. Missing fields resolve to their schema
            default, an autoboxed child node, or ``None``.

        Raises:
            EmptyFieldName: If a path segment is empty.
            InvalidPathSegment: If an intermediate value is not a node.
            MissingSchemaField: If a locked schema doesn't declare the field.
            ExternalRelationRequiresFetch: If a foreign key relation of an
                existing entity hasn't been loaded yet.
        """
        if name is None:
            return self._data
        head, *rest = split_path(name)
        if head == "":
            raise EmptyFieldName()
        if rest:
            value = self.get(head)
            if value is None:
                return None
            if not isinstance(value, GraphNode):
                raise InvalidPathSegment(head)
            return value.get(rest)
        return self._get(head)

    def _get(self, name: str) -> Any:
        schema = self.schema
        path = self._field_path(name)
        column = schema.column(path)

        if column is not None and column.getter is not None:
            value = column.getter(self, self._data.get(name), name)
            return schema.cast(name, value, parent=self, base_path=self._base_path, use_setter=False)
        if name in self._data:
            return self._data[name]

        if schema.has_relation(path):
            relation = schema.relation(path)
            if relation.external and not relation.through:
                if self._exists is True:
                    raise ExternalRelationRequiresFetch(name)
                if not relation.is_many:
                    return None
            value = schema.cast(name, None, parent=self, base_path=self._base_path)
            self._store(name, value)
            self._autoboxed.add(name)
            return value

        if column is not None:
            if column.default is None:
                return None
            value = schema.cast(name, column.default, parent=self, base_path=self._base_path)
            if not column.virtual:
                self._store(name, value)
            return value

        if schema.locked:
            raise MissingSchemaField(path)
        return None

    def set(self, name: PathLike | Mapping[str, Any], value: Any = _UNSET) -> "Document":
        """Set one field, or several at once when given a mapping.

        Missing intermediate documents are created on the way down.
        """
        if value is _UNSET:
            if not isinstance(name, Mapping):
                raise TypeError("A mapping is required to set data in bulk.")
            for key, item in name.items():
                self._set(key, item)
            return self
        self._set(name, value)
        return self

    def _set(self, name: PathLike, value: Any) -> None:
        head, *rest = split_path(name)
        if head == "":
            raise EmptyFieldName()
        if rest:
            child = self.get(head)
            if child is None:
                self._set(head, {})
                child = self._data.get(head)
            if not isinstance(child, GraphNode):
                raise InvalidPathSegment(head)
            child.set(rest, value)
            return
        self._set_field(head, value)

    def _set_field(self, name: str, value: Any) -> None:
        schema = self.schema
        path = self._field_path(name)
        column = schema.column(path)
        if column is not None and column.getter is not None and column.setter is None:
            return

        previous = self._data.get(name, _UNSET)
        cast = schema.cast(
            name,
            value,
            parent=self,
            base_path=self._base_path,
            exists=self._cast_exists,
            defaults=self._cast_exists is False,
        )
        if previous is cast:
            return
        self._store(name, cast)
        if schema.has_relation(path):
            schema.relation(path).assign(self, cast)
        self._notify([name])

    def _store(self, name: str, value: Any) -> None:
        previous = self._data.get(name)
        self._data[name] = value
        self._autoboxed.discard(name)
        if isinstance(value, GraphNode):
            value.set_parent(self, name)
        if isinstance(previous, GraphNode) and previous is not value:
            self._release(previous)

    def _release(self, child: GraphNode) -> None:
        if not any(value is child for value in self._data.values()):
            child.unset_parent(self)

    def unset(self, name: PathLike) -> "Document":
        head, *rest = split_path(name)
        if rest:
            child = self._data.get(head)
            if isinstance(child, GraphNode):
                child.unset(rest)
            return self
        if head not in self._data:
            return self
        value = self._data.pop(head)
        if isinstance(value, GraphNode):
            self._release(value)
        self._notify([head])
        return self

    def has(self, name: PathLike) -> bool:
        head, *rest = split_path(name)
        if head not in self._data:
            return False
        if not rest:
            return True
        value = self._data[head]
        return value.has(rest) if isinstance(value, GraphNode) else False

    def isset(self, name: PathLike) -> bool:
        warnings.warn("`isset()` is deprecated, use `has()` instead.", DeprecationWarning, stacklevel=2)
        return self.has(name)

    def _detach_child(self, child: GraphNode) -> None:
        for key, value in list(self._data.items()):
            if value is child:
                del self._data[key]
                self._notify([key])

    def persisted(self, field: str | None = None) -> Any:
        if field is None:
            return self._persisted
        return self._persisted.get(field)

    original = persisted

    def amend(self, data: Mapping[str, Any] | None = None, *, exists: bool | str | None = None) -> "Document":
        """Merge ``data`` and advance the persisted snapshot of this subtree."""
        self._amend(data, exists, set())
        return self

    def _amend(self, data: Mapping[str, Any] | None, exists: bool | str | None, seen: Visited) -> None:
        if id(self) in seen:
            return
        seen.add(id(self))
        if data:
            self._cast_exists = self._children_exists(exists) if exists is not None else self._cast_exists
            self.set(data)
            self._cast_exists = False
        self._persisted = dict(self._data)
        child_exists = "all" if exists == "all" else None
        for value in list(self._data.values()):
            if isinstance(value, GraphNode):
                value._amend(None, child_exists, seen)

    def restore(self) -> "Document":
        """Reset the data of this subtree to its persisted snapshot."""
        self._restore(set())
        return self

    def _restore(self, seen: Visited) -> None:
        if id(self) in seen:
            return
        seen.add(id(self))
        for key in list(self._data):
            if key not in self._persisted:
                value = self._data.pop(key)
                if isinstance(value, GraphNode):
                    self._release(value)
        for key, value in self._persisted.items():
            if self._data.get(key, _UNSET) is not value:
                self._store(key, value)
        for value in list(self._data.values()):
            if isinstance(value, GraphNode):
                value._restore(seen)
        self._notify([])

    def modified(
        self,
        field: str | None = None,
        *,
        ignore: list[str] | tuple[str, ...] = (),
        return_fields: bool = False,
        embed: EmbedSpec = None,
    ) -> bool | list[str]:
        """Check whether data differs from the persisted snapshot.

        Args:
            field: Only check this field.
            ignore: Field names to leave out of the check.
            return_fields: Return the list of modified field names instead
                of a boolean.
            embed: Foreign key relations to include in the check. They are
                skipped unless named here or passed as ``field``.

        Returns:
            ``True`` when something changed, or the changed field names.
        """
        tree = self.schema.treeify(embed) if embed else {}
        fields = self._modified_fields(field, frozenset(ignore), tree, set())
        return fields if return_fields else bool(fields)

    def _modified_fields(
        self, field: str | None, ignore: frozenset[str], tree: dict[str, Any], seen: Visited
    ) -> list[str]:
        if id(self) in seen:
            return []
        seen.add(id(self))
        schema = self.schema
        names = [field] if field is not None else list(dict.fromkeys([*self._persisted, *self._data]))
        updated = []
        for name in names:
            if name in ignore:
                continue
            path = self._field_path(name)
            relation = schema.relation(path) if schema.has_relation(path) else None
            if relation is not None and relation.external and field is None and name not in tree:
                continue
            sub_embed = (tree.get(name) or {}).get("embed")

            if name not in self._data:
                if name in self._persisted:
                    updated.append(name)
                continue
            value = self._data[name]
            if name not in self._persisted:
                if relation is None or (isinstance(value, GraphNode) and value._is_modified(sub_embed, seen)):
                    updated.append(name)
                continue
            original = self._persisted[name]
            if isinstance(value, GraphNode):
                if original is not value or value._is_modified(sub_embed, seen):
                    updated.append(name)
            elif original != value:
                updated.append(name)
        return updated

    def _is_modified(self, embed: EmbedSpec, seen: Visited) -> bool:
        tree = self.schema.treeify(embed) if embed else {}
        return bool(self._modified_fields(None, frozenset(), tree, seen))

    def hierarchy(self, prefix: str = "", ignore: Visited | None = None) -> list[str] | None:
        """List the loaded relation paths reachable from this node.

        A relation that was only created empty by reading it is left out
        until something is added to it.

        Returns:
            Dotted relation paths, or ``None`` when this node was already
            visited.
        """
        ignore = set() if ignore is None else ignore
        if id(self) in ignore:
            return None
        ignore.add(id(self))

        schema = self.schema
        result: list[str] = []
        for name in schema.relations():
            if not self.has(name):
                continue
            path = join_path(prefix, name)
            relation = schema.relation(name)
            value = self._data[name]
            if name in self._autoboxed and not len(value):
                continue
            if relation.through or not isinstance(value, GraphNode):
                result.append(path)
                continue
            children = value.hierarchy(path, ignore)
            if children:
                result.extend(children)
            elif children is not None:
                result.append(path)
        return result

    def to(self, format: str = "array", *, embed: EmbedSpec = True) -> dict[str, Any]:
        """Export this subtree to plain data using the schema's ``format`` handlers.

        Args:
            format: Formatter mode, ``"array"`` or ``"datasource"``.
            embed: Foreign key relations to export. ``True`` exports every
                loaded relation, ``False`` none of them.
        """
        if embed is True:
            embed = self.hierarchy()
        schema = self.schema
        tree = schema.treeify(embed) if embed else {}
        result: dict[str, Any] = {}
        for name, value in self._data.items():
            path = self._field_path(name)
            if schema.is_private(path):
                continue
            sub_embed: EmbedSpec = False
            if schema.has_relation(path) and schema.relation(path).external:
                if name not in tree:
                    continue
                sub_embed = (tree[name] or {}).get("embed") or False
            if isinstance(value, GraphNode):
                result[name] = value.to(format, embed=sub_embed)
            elif schema.has(path):
                result[name] = schema.format(format, path, value)
            else:
                result[name] = value
        return result

    def data(self, *, embed: EmbedSpec = True) -> dict[str, Any]:
        return self.to("array", embed=embed)

    def __str__(self) -> str:
        title = self._data.get("title")
        return str(title if title else self._data.get("name"))
