"""Schema definitions: columns, relations, casting and export formatters."""

import json
from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from functools import partial
from typing import Any

import structlog
from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from docgraph.collection import Collection, Through
from docgraph.config import get_settings
from docgraph.conventions import Conventions
from docgraph.document import Document, EmbedSpec
from docgraph.enums import FormatMode, LinkType, RelationKind
from docgraph.exceptions import (
    BackendNotImplemented,
    InvalidDate,
    InvalidFormatMode,
    InvalidRelationConfig,
    MissingSchemaDefinition,
    RelationNotFound,
)
from docgraph.node import GraphNode
from docgraph.path import join_path
from docgraph.relationship import BelongsTo, HasMany, HasManyThrough, HasOne, Relationship

Formatter = Callable[[Any, "ColumnSpec | None"], Any]

_UNSET = object()

_RELATIONSHIPS: dict[RelationKind, type[Relationship]] = {
    RelationKind.BELONGS_TO: BelongsTo,
    RelationKind.HAS_ONE: HasOne,
    RelationKind.HAS_MANY: HasMany,
}


class ColumnSpec(BaseModel):
    """Definition of a single column.

    Unknown keys are kept as extra attributes so backends can carry their own
    options (``format``, ``use``...) along with the column.
    """

    model_config = ConfigDict(frozen=True, extra="allow", arbitrary_types_allowed=True, protected_namespaces=())

    type: str = "string"
    array: bool = False
    null: bool = True
    default: Any = None
    length: int | None = None
    precision: int | None = None
    virtual: bool = False
    private: bool = False
    getter: Callable[..., Any] | None = None
    setter: Callable[..., Any] | None = None
    format: str | None = None
    model: Any = None

    @model_validator(mode="before")
    @classmethod
    def _serial_not_null(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and "null" not in data:
            return {**data, "null": data.get("type", "string") != "serial"}
        return data


class RelationConfig(BaseModel):
    """Declared options of a relation, before it is turned into a relationship."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, protected_namespaces=())

    kind: RelationKind
    name: str
    from_model: Any
    to_model: Any = None
    keys: dict[str, str] | None = None
    link: LinkType = LinkType.KEY
    through: str | None = None
    using: str | None = None
    junction: bool = False
    conditions: dict[str, Any] = Field(default_factory=dict)
    fields: bool | list[str] = True

    @property
    def embedded(self) -> bool:
        return self.link not in (LinkType.KEY, LinkType.KEY_LIST)

    @property
    def array(self) -> bool:
        return self.kind in (RelationKind.HAS_MANY, RelationKind.HAS_MANY_THROUGH)


def _cast_integer(value: Any, column: ColumnSpec | None = None) -> int | None:
    if isinstance(value, int):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


def _cast_float(value: Any, column: ColumnSpec | None = None) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _cast_decimal(value: Any, column: ColumnSpec | None = None) -> Decimal | None:
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        return None
    precision = column.precision if column is not None else None
    if precision is not None and number.is_finite():
        number = number.quantize(Decimal(1).scaleb(-precision))
    return number


def _cast_boolean(value: Any, column: ColumnSpec | None = None) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in ("", "0", "false")
    return bool(value)


def _cast_datetime(value: Any, column: ColumnSpec | None = None) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value)
    if not isinstance(value, str):
        return None
    try:
        return date_parser.parse(value)
    except (ValueError, OverflowError):
        return None


def _cast_date(value: Any, column: ColumnSpec | None = None) -> date | None:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    parsed = _cast_datetime(value, column)
    return parsed.date() if parsed is not None else None


def _cast_string(value: Any, column: ColumnSpec | None = None) -> str:
    return str(value)


def _cast_json(value: Any, column: ColumnSpec | None = None) -> Any:
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value


def _cast_object(value: Any, column: ColumnSpec | None = None) -> Any:
    if isinstance(value, Mapping):
        return Document(value)
    return value


def _export_date(value: Any, column: ColumnSpec | None = None) -> str:
    parsed = _cast_date(value, column)
    if parsed is None:
        raise InvalidDate(value)
    return parsed.strftime(get_settings().date_format)


def _export_datetime(value: Any, column: ColumnSpec | None = None) -> str:
    parsed = _cast_datetime(value, column)
    if parsed is None:
        raise InvalidDate(value)
    return parsed.strftime(get_settings().datetime_format)


def _export_decimal(value: Any, column: ColumnSpec | None = None) -> str | None:
    number = _cast_decimal(value, column)
    return str(number) if number is not None else None


def _export_json(value: Any, column: ColumnSpec | None = None) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _null(value: Any, column: ColumnSpec | None = None) -> None:
    return None


def _default_formatters() -> dict[str, dict[str, Formatter]]:
    integer = _cast_integer
    return {
        FormatMode.CAST: {
            "id": integer,
            "serial": integer,
            "integer": integer,
            "float": _cast_float,
            "decimal": _cast_decimal,
            "date": _cast_date,
            "datetime": _cast_datetime,
            "boolean": _cast_boolean,
            "null": _null,
            "string": _cast_string,
            "json": _cast_json,
            "object": _cast_object,
        },
        FormatMode.ARRAY: {
            "id": integer,
            "serial": integer,
            "integer": integer,
            "float": _cast_float,
            "decimal": _export_decimal,
            "date": _export_date,
            "datetime": _export_datetime,
            "boolean": _cast_boolean,
            "null": _null,
            "string": _cast_string,
        },
        FormatMode.DATASOURCE: {
            "decimal": _export_decimal,
            "date": _export_date,
            "datetime": _export_datetime,
            "boolean": _cast_boolean,
            "null": _null,
            "json": _export_json,
            "_default_": lambda value, column=None: str(value),
        },
    }


def _normalize(embed: EmbedSpec) -> dict[str, Any]:
    """Turn an embed option into a ``{path: options}`` mapping."""
    if not embed:
        return {}
    if isinstance(embed, str):
        return {embed: None}
    if isinstance(embed, Mapping):
        return dict(embed)
    result: dict[str, Any] = {}
    for item in embed:
        if isinstance(item, Mapping):
            result.update(item)
        else:
            result[item] = None
    return result


class Schema:
    """Describes the fields and relations of a model.

    A schema knows how to cast raw values into typed values and graph nodes,
    how to export them back, and how to orchestrate loading and saving
    relations. Backend specific schemas override ``query``, ``bulk_insert``,
    ``bulk_update``, ``truncate`` and ``remove``.

    Args:
        model: Class the schema builds entities with. Defaults to ``Document``.
        source: Name of the backing table or collection. Derived from the
            model name when omitted.
        key: Primary key field name. Derived from the ``key`` convention
            when omitted, pass ``None`` for schemas without one.
        locked: Reject undeclared fields. Defaults to the configured
            ``schema_locked`` setting.
        columns: Initial column definitions.
        meta: Free form metadata.
        conventions: Naming rules. A default set is used when omitted.
    """

    def __init__(
        self,
        model: type | None = None,
        *,
        source: str | None = None,
        key: Any = _UNSET,
        locked: bool | None = None,
        columns: Mapping[str, Any] | Iterable[Mapping[str, Any]] | None = None,
        meta: Mapping[str, Any] | None = None,
        conventions: Conventions | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._logger = logger or structlog.get_logger(__name__)
        self._model = model or Document
        self._conventions = conventions or Conventions()
        self._source = source if source is not None else self._conventions.apply("source", self._model.__name__)
        self._key = self._conventions.apply("key") if key is _UNSET else key
        self._locked = get_settings().schema_locked if locked is None else locked
        self._meta: dict[str, Any] = dict(meta or {})
        self._columns: dict[str, ColumnSpec] = {}
        self._relations: dict[str, RelationConfig] = {}
        self._relationships: dict[str, Relationship] = {}
        self._formatters = _default_formatters()
        if columns:
            self.append(columns)

    @property
    def model(self) -> type:
        return self._model

    @model.setter
    def model(self, model: type) -> None:
        self._model = model

    @property
    def source(self) -> str | None:
        return self._source

    @source.setter
    def source(self, source: str | None) -> None:
        self._source = source

    @property
    def key(self) -> str | None:
        return self._key

    @key.setter
    def key(self, key: str | None) -> None:
        self._key = key

    @property
    def locked(self) -> bool:
        return self._locked

    @locked.setter
    def locked(self, locked: bool) -> None:
        self._locked = locked

    def lock(self, locked: bool = True) -> "Schema":
        self._locked = locked
        return self

    @property
    def meta(self) -> dict[str, Any]:
        return self._meta

    @property
    def conventions(self) -> Conventions:
        return self._conventions

    # Columns

    def _match(self, path: str, names: Iterable[str]) -> str | None:
        """Return the declared name matching ``path``, honoring ``*`` segments."""
        names = list(names)
        if path in names:
            return path
        segments = path.split(".")
        for name in names:
            pattern = name.split(".")
            if "*" not in pattern or len(pattern) != len(segments):
                continue
            if all(expected in ("*", segment) for expected, segment in zip(pattern, segments, strict=True)):
                return name
        return None

    def _resolve(self, path: str) -> str | None:
        return self._match(path, [*self._columns, *self._relations])

    def column(self, name: str, spec: Any = _UNSET) -> Any:
        """Get or declare a column.

        Args:
            name: Dotted column name. ``*`` segments match any field name.
            spec: Column definition, either a mapping of ``ColumnSpec``
                options or a type name. Omit it to read the column.

        Returns:
            The ``ColumnSpec`` (or ``None``) when reading, the schema when
            declaring.

        Raises:
            InvalidRelationConfig: If the name is already used by a foreign
                key relation.
        """
        if spec is _UNSET:
            match = self._match(name, self._columns)
            return self._columns[match] if match is not None else None

        column = self._init_column(spec)
        if column.type == "object":
            self.bind(
                name,
                RelationKind.HAS_MANY if column.array else RelationKind.HAS_ONE,
                column.model or Document,
                link=LinkType.EMBEDDED,
            )
        elif name in self._relations and not self._relations[name].embedded:
            raise InvalidRelationConfig(f"The field `'{name}'` is already used by a relation.", option=name)
        elif name in self._relations:
            self.unbind(name)
        self._columns[name] = column
        return self

    set = column

    @staticmethod
    def _init_column(spec: Any) -> ColumnSpec:
        if isinstance(spec, ColumnSpec):
            return spec
        if spec is None:
            return ColumnSpec()
        if isinstance(spec, str):
            return ColumnSpec(type=spec)
        return ColumnSpec(**spec)

    def unset(self, name: str | list[str]) -> "Schema":
        """Remove one or several columns, along with their embedded relations."""
        for item in [name] if isinstance(name, str) else name:
            self._columns.pop(item, None)
            if item in self._relations and self._relations[item].embedded:
                self.unbind(item)
        return self

    remove = unset

    def has(self, name: str | list[str]) -> bool:
        names = [name] if isinstance(name, str) else name
        return all(self._match(item, self._columns) is not None for item in names)

    def append(self, fields: "Schema | Mapping[str, Any] | Iterable[Mapping[str, Any]]") -> "Schema":
        """Declare several columns at once, overwriting existing ones."""
        if isinstance(fields, Schema):
            items = list(fields.columns().items())
        elif isinstance(fields, Mapping):
            items = list(fields.items())
        else:
            items = [item for mapping in fields for item in mapping.items()]
        for name, spec in items:
            self.column(name, spec)
        return self

    def columns(self) -> dict[str, ColumnSpec]:
        return dict(self._columns)

    def names(self, base_path: str | None = None) -> list[str]:
        """Return the full names of the stored (non virtual) columns, optionally under ``base_path``."""
        prefix = f"{base_path}." if base_path else ""
        return [
            name for name, column in self._columns.items() if not column.virtual and name.startswith(prefix)
        ]

    def _children(self, base_path: str | None) -> list[str]:
        prefix = f"{base_path}." if base_path else ""
        result = []
        for name in self._columns:
            if not name.startswith(prefix):
                continue
            field = name[len(prefix):]
            if field and "." not in field and field != "*":
                result.append(field)
        return result

    def fields(self, base_path: str | None = None) -> list[str]:
        """Return the direct non virtual field names under ``base_path``."""
        return [
            name for name in self._children(base_path) if not self._columns[join_path(base_path, name)].virtual
        ]

    def defaults(self, base_path: str | None = None) -> dict[str, Any]:
        """Return the default values of the direct fields under ``base_path``."""
        result = {}
        for name in self._children(base_path):
            column = self._columns[join_path(base_path, name)]
            if column.default is not None:
                result[name] = column.default
        return result

    def type(self, name: str) -> str | None:
        column = self.column(name)
        return column.type if column is not None else None

    def virtuals(self) -> list[str]:
        return [name for name, column in self._columns.items() if column.virtual]

    def is_virtual(self, name: str | list[str]) -> bool:
        names = [name] if isinstance(name, str) else name
        return all((column := self.column(item)) is not None and column.virtual for item in names)

    def is_private(self, name: str | list[str]) -> bool:
        names = [name] if isinstance(name, str) else name
        return all((column := self.column(item)) is not None and column.private for item in names)

    # Relations

    def bind(self, name: str, kind: RelationKind | str, to: Any = None, **options: Any) -> "Schema":
        """Declare a relation named ``name``.

        Args:
            name: Field the related data is stored under.
            kind: ``belongs_to``, ``has_one``, ``has_many`` or
                ``has_many_through``.
            to: Related model class, or its registered name.
            **options: ``keys``, ``link``, ``through``, ``using``,
                ``conditions``, ``fields`` and ``from_model``.

        Raises:
            InvalidRelationConfig: If the relation is misconfigured, or if a
                foreign key relation reuses the name of a column.
        """
        try:
            kind = RelationKind(kind)
        except ValueError as exc:
            raise InvalidRelationConfig(
                f"Unexisting binding relation `{kind}` for `'{name}'`.", option="relation"
            ) from exc
        options = {option: value for option, value in options.items() if value is not None}
        from_model = options.pop("from_model", self._model)
        if not from_model:
            raise InvalidRelationConfig("Binding requires `'from'` option to be set.", option="from")
        if not to and kind is not RelationKind.HAS_MANY_THROUGH:
            raise InvalidRelationConfig("Binding requires `'to'` option to be set.", option="to")

        if kind is RelationKind.HAS_MANY_THROUGH:
            through = options.get("through")
            if not through:
                raise InvalidRelationConfig("Missing `'through'` relation name.", option="through")
            if through not in self._relations:
                raise InvalidRelationConfig(
                    "Unexisting `'through'` relation, needed to be created first.", option="through"
                )
            self._relations[through] = self._relations[through].model_copy(update={"junction": True})
            self._relationships.pop(through, None)
            options["using"] = options.get("using") or self._conventions.apply("single", name)

        try:
            config = RelationConfig(kind=kind, name=name, from_model=from_model, to_model=to, **options)
        except ValidationError as exc:
            raise InvalidRelationConfig(str(exc)) from exc
        if not config.embedded and name in self._columns:
            raise InvalidRelationConfig(f"The field `'{name}'` is already used by a column.", option=name)

        self._relations[name] = config
        self._relationships.pop(name, None)
        self._declare_keys(config)
        return self

    def _declare_keys(self, config: RelationConfig) -> None:
        if config.embedded:
            return
        if config.kind is RelationKind.BELONGS_TO:
            target = config.to_model if isinstance(config.to_model, str) else config.to_model.__name__
            field = next(iter(config.keys)) if config.keys else self._conventions.apply("reference", target)
            if not self.has(field):
                self._columns[field] = ColumnSpec(type="id", null=True)
        elif config.link is LinkType.KEY_LIST and config.keys:
            field = next(iter(config.keys))
            if not self.has(field):
                self._columns[field] = ColumnSpec(type="id", array=True)

    def belongs_to(self, name: str, to: Any, **options: Any) -> "Schema":
        return self.bind(name, RelationKind.BELONGS_TO, to, **options)

    def has_one(self, name: str, to: Any, **options: Any) -> "Schema":
        return self.bind(name, RelationKind.HAS_ONE, to, **options)

    def has_many(self, name: str, to: Any, **options: Any) -> "Schema":
        return self.bind(name, RelationKind.HAS_MANY, to, **options)

    def has_many_through(self, name: str, through: str, using: str | None = None, **options: Any) -> "Schema":
        return self.bind(name, RelationKind.HAS_MANY_THROUGH, through=through, using=using, **options)

    def unbind(self, name: str) -> "Schema":
        self._relations.pop(name, None)
        self._relationships.pop(name, None)
        return self

    def relation(self, name: str) -> Relationship:
        """Return the relationship bound under ``name``.

        Raises:
            RelationNotFound: If no relation is bound under ``name``.
        """
        if name in self._relationships:
            return self._relationships[name]
        match = self._match(name, self._relations)
        if match is None:
            raise RelationNotFound(name)
        if match in self._relationships:
            return self._relationships[match]
        config = self._relations[match]
        relationship: Relationship
        if config.kind is RelationKind.HAS_MANY_THROUGH:
            relationship = HasManyThrough(
                name=config.name,
                from_model=config.from_model,
                schema=self,
                through=config.through,
                using=config.using,
                conditions=config.conditions,
                fields=config.fields,
                conventions=self._conventions,
            )
        else:
            relationship = _RELATIONSHIPS[config.kind](
                name=config.name,
                from_model=config.from_model,
                to_model=config.to_model,
                keys=config.keys,
                link=config.link,
                junction=config.junction,
                conditions=config.conditions,
                fields=config.fields,
                conventions=self._conventions,
            )
        self._relationships[match] = relationship
        return relationship

    def relations(self, include_embedded: bool = False) -> list[str]:
        """Return the relation names, foreign key relations only by default."""
        return [name for name, config in self._relations.items() if include_embedded or not config.embedded]

    def has_relation(self, name: str, embedded: bool | None = None) -> bool:
        """Check whether a relation is bound under ``name``.

        Args:
            name: Relation name.
            embedded: Only match embedded (``True``) or foreign key
                (``False``) relations. ``None`` matches both.
        """
        match = self._match(name, self._relations)
        if match is None:
            return False
        return embedded is None or self._relations[match].embedded is embedded

    def expand(self, relations: EmbedSpec) -> dict[str, Any]:
        """Normalize ``relations`` and add the pivot paths of through relations."""
        expanded = _normalize(relations)
        for path, options in list(expanded.items()):
            head, _, rest = path.partition(".")
            config = self._relations.get(head)
            if config is None or config.kind is not RelationKind.HAS_MANY_THROUGH:
                continue
            pivot_path = join_path(config.through, config.using, rest or None)
            expanded.setdefault(pivot_path, options)
        return expanded

    def treeify(self, embed: EmbedSpec) -> dict[str, Any]:
        """Turn an embed option into a tree of ``{relation: options}``.

        Dotted paths are nested under the ``embed`` key of their first
        relation, through relations also add their pivot relation.

        Example:
            ``["gallery", "images_tags.tag"]`` becomes
            ``{"gallery": None, "images_tags": {"embed": {"tag": None}}}``.
        """
        if not embed:
            return {}
        if embed is True:
            embed = self.relations()
        tree: dict[str, Any] = {}
        for path, options in _normalize(embed).items():
            head, _, rest = path.partition(".")
            config = self._relations.get(head)
            if config is None or config.embedded:
                continue
            if rest:
                self._nest(tree, head, {rest: options})
            elif tree.get(head) is None:
                tree[head] = options
            elif isinstance(options, Mapping):
                tree[head] = {**options, **tree[head]}
            if config.kind is RelationKind.HAS_MANY_THROUGH:
                self._nest(tree, config.through, {join_path(config.using, rest or None): options})
        return tree

    @staticmethod
    def _nest(tree: dict[str, Any], name: str, embed: dict[str, Any]) -> None:
        node = dict(tree.get(name) or {})
        node["embed"] = {**_normalize(node.get("embed")), **embed}
        tree[name] = node

    async def embed(
        self,
        collection: Any,
        relations: EmbedSpec,
        *,
        fetch_options: Mapping[str, Any] | None = None,
    ) -> None:
        """Load ``relations`` for every entity of ``collection``.

        Through relations are resolved last, once their pivot relation has
        been loaded.
        """
        entities = [collection] if isinstance(collection, Document) else list(collection)
        if not entities:
            return
        tree = self.treeify(self.expand(relations))
        deferred: list[tuple[Relationship, dict[str, Any]]] = []
        for name, options in tree.items():
            relation = self.relation(name)
            options = dict(options or {})
            if relation.through:
                deferred.append((relation, options))
                continue
            sub_embed = options.pop("embed", None)
            related = await relation.embed(entities, options, fetch_options=fetch_options)
            if sub_embed and related:
                await relation.to_model.definition().embed(related, sub_embed, fetch_options=fetch_options)
            self._logger.debug("relation_embedded", relation=name, count=len(related))
        for relation, options in deferred:
            options.pop("embed", None)
            await relation.embed(entities, options, fetch_options=fetch_options)

    # Casting

    def cast(
        self,
        name: str | int | None = None,
        data: Any = None,
        *,
        parent: GraphNode | None = None,
        base_path: str | None = None,
        exists: bool | str | None = False,
        defaults: bool | None = None,
        use_setter: bool = True,
        item: bool = False,
        collector: Any = None,
    ) -> Any:
        """Cast ``data`` according to the definition of the ``name`` field.

        Args:
            name: Field name relative to ``base_path``. Omit it to cast a
                whole entity.
            data: Raw value.
            parent: Node the value is going to be stored in.
            base_path: Path of ``parent`` inside the schema.
            exists: Persistence state given to created entities.
            defaults: Whether created entities get their default values.
            use_setter: Run the column setter first.
            item: ``data`` is a single item of an array field.
            collector: Identity map shared by the created entities.

        Returns:
            A typed scalar, a document or a collection.

        Raises:
            MissingSchemaDefinition: If the schema is locked and doesn't
                declare the field.
        """
        if isinstance(name, int):
            name = None
        path = join_path(base_path, name) if name is not None else (base_path or "")
        if defaults is None:
            defaults = exists is False
        if not path:
            return self._cast_entity(data, exists=exists, defaults=defaults, collector=collector)

        match = self._resolve(path)
        if match is not None and match in self._relations:
            return self._cast_relation(
                match, data, parent=parent, exists=exists, defaults=defaults, item=item, collector=collector
            )
        if match is not None:
            column = self._columns[match]
            if use_setter and column.setter is not None and not item:
                data = column.setter(parent, data, name)
            if data is None:
                return None
            if column.array and not item:
                if isinstance(data, Collection):
                    return data
                return Collection(data, schema=self, base_path=match, exists=exists)
            return self.convert(FormatMode.CAST, column.type, data, column)

        if self._locked:
            raise MissingSchemaDefinition(path)
        if isinstance(data, GraphNode):
            return data
        if isinstance(data, Mapping):
            return Document(data, schema=self, base_path=path, exists=exists, defaults=False)
        if isinstance(data, (list, tuple)):
            return Collection(data, schema=self, base_path=path, exists=exists)
        return data

    def _cast_entity(self, data: Any, *, exists: Any, defaults: bool, collector: Any) -> Any:
        if isinstance(data, self._model):
            return data
        if isinstance(data, Document):
            data = data.get()
        return self._model.create(data or {}, schema=self, exists=exists, defaults=defaults, collector=collector)

    def _cast_relation(
        self,
        name: str,
        data: Any,
        *,
        parent: GraphNode | None,
        exists: Any,
        defaults: bool,
        item: bool,
        collector: Any,
    ) -> Any:
        config = self._relations[name]
        if config.kind is RelationKind.HAS_MANY_THROUGH:
            if isinstance(data, Through) and data.parent is parent:
                return data
            relation = self.relation(name)
            return Through(
                parent=parent,  # type: ignore[arg-type]
                schema=relation.to_model.definition(),
                through=config.through,
                using=config.using,
                data=data.get() if isinstance(data, GraphNode) else data,
            )

        target = self.relation(name).to_model
        if config.array and not item:
            if isinstance(data, Collection):
                return data
            if data is not None and not isinstance(data, (list, tuple)):
                data = list(data)
            if target is Document:
                return Collection(data, schema=self, base_path=name, exists=exists)
            return target.create(data or [], type="set", exists=exists, collector=collector)

        if target is Document:
            if isinstance(data, Document):
                return data
            return Document(data or {}, schema=self, base_path=name, exists=exists, defaults=defaults)
        if data is None:
            return target.create({}, exists=exists, defaults=defaults, collector=collector) if config.embedded else None
        if isinstance(data, target):
            return data
        if isinstance(data, Document):
            data = data.get()
        return target.create(data, exists=exists, defaults=defaults, collector=collector)

    # Formatting

    def formatter(self, mode: str, type: str, handler: Formatter | None = None) -> Any:
        """Get or register the ``handler`` of ``type`` values for ``mode``."""
        if handler is None:
            return self._formatters.get(mode, {}).get(type)
        self._formatters.setdefault(mode, {})[type] = handler
        return self

    def formatters(self) -> dict[str, dict[str, Formatter]]:
        return self._formatters

    def format(self, mode: str, name: str, value: Any) -> Any:
        """Export ``value`` of the ``name`` field using the ``mode`` formatters.

        Raises:
            InvalidFormatMode: If ``mode`` is ``"cast"``.
        """
        if mode == FormatMode.CAST:
            raise InvalidFormatMode()
        column = self.column(name)
        type_ = "null" if value is None else (column.type if column is not None else None)
        return self.convert(mode, type_, value, column)

    def convert(self, mode: str, type: str | None, value: Any, column: Any = None) -> Any:
        """Run the ``mode`` formatter registered for ``type`` on ``value``.

        Falls back to the ``_default_`` formatter of the mode, then returns
        ``value`` unchanged.
        """
        handlers = self._formatters.get(mode, {})
        handler = handlers.get(type) if type is not None else None
        if handler is None:
            handler = handlers.get("_default_")
        if handler is None:
            return value
        if isinstance(column, Mapping):
            column = self._init_column(column)
        return handler(value, column)

    # Persistence

    @staticmethod
    def _entities(instances: Any) -> list[Any]:
        if isinstance(instances, Document):
            return [instances]
        return list(instances)

    def _extract(self, entity: Document, whitelist: Iterable[str] | None = None) -> dict[str, Any]:
        """Return the stored fields of ``entity``, without foreign key relations or virtual fields."""
        allowed = set(whitelist) if whitelist is not None else None
        data = {}
        for name, value in entity.get().items():
            if self.has_relation(name, embedded=False) or self.is_virtual(name):
                continue
            if allowed is not None and name not in allowed:
                continue
            data[name] = value.to(FormatMode.ARRAY, embed=False) if isinstance(value, GraphNode) else value
        return data

    async def persist(
        self,
        instances: Any,
        *,
        embed: EmbedSpec = None,
        whitelist: Iterable[str] | None = None,
    ) -> bool:
        """Save ``instances`` together with the relations named by ``embed``.

        ``belongs_to`` relations are saved first so their keys can be copied
        onto the entities, the other relations once the entities have a key.
        """
        entities = self._entities(instances)
        if not entities:
            return True
        tree = self.treeify(embed)
        for name, options in tree.items():
            relation = self.relation(name)
            if relation.kind is RelationKind.BELONGS_TO:
                await relation.save(entities, embed=(options or {}).get("embed"))
        await self.save(entities, whitelist=whitelist)
        for name, options in tree.items():
            relation = self.relation(name)
            if relation.kind is not RelationKind.BELONGS_TO:
                await relation.save(entities, embed=(options or {}).get("embed"))
        for entity in entities:
            entity.amend(exists=True)
        return True

    async def save(self, instances: Any, *, whitelist: Iterable[str] | None = None) -> bool:
        """Insert new entities and update modified existing ones."""
        entities = self._entities(instances)
        inserts = [entity for entity in entities if not entity.exists]
        updates = [entity for entity in entities if entity.exists and entity.modified()]
        extractor = partial(self._extract, whitelist=whitelist)
        if inserts:
            await self.bulk_insert(inserts, extractor)
        if updates:
            await self.bulk_update(updates, extractor)
        self._logger.info("entities_saved", source=self._source, inserted=len(inserts), updated=len(updates))
        return True

    async def delete(self, instances: Any) -> bool:
        """Remove the persisted ``instances`` from the backend and mark them as not existing.

        New entities are skipped. Nothing is sent to the backend when none of
        the instances is persisted.
        """
        entities = [entity for entity in self._entities(instances) if entity._exists is not False]
        if not entities:
            return True
        ids = [entity.id for entity in entities]
        await self.truncate({self._key: ids})
        for entity in entities:
            entity._deleted()
        self._logger.info("entities_deleted", source=self._source, count=len(ids))
        return True

    # Backend

    def query(self, options: Mapping[str, Any] | None = None) -> Any:
        """Return a query object. Backends must override it."""
        raise BackendNotImplemented("query", self._model.__name__)

    async def bulk_insert(self, inserts: list[Any], extractor: Callable[[Any], dict[str, Any]]) -> bool:
        raise BackendNotImplemented("bulk_insert", self._model.__name__)

    async def bulk_update(self, updates: list[Any], extractor: Callable[[Any], dict[str, Any]]) -> bool:
        raise BackendNotImplemented("bulk_update", self._model.__name__)

    async def truncate(self, conditions: Mapping[str, Any] | None = None) -> bool:
        raise BackendNotImplemented("truncate", self._model.__name__)

    async def remove(self, conditions: Mapping[str, Any] | None = None) -> bool:
        raise BackendNotImplemented("remove", self._model.__name__)
