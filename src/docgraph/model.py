"""Persistable documents bound to a schema, a validator and a backend."""

from collections.abc import Mapping
from typing import Any, ClassVar

import structlog

from docgraph.collection import Collection
from docgraph.collector import Collector
from docgraph.conventions import Conventions
from docgraph.document import Document, EmbedSpec
from docgraph.exceptions import (
    MissingEntityId,
    MissingPersistenceState,
    MissingPrimaryKey,
    UnknownEntity,
)
from docgraph.node import Visited
from docgraph.registry import ModelRegistry, registry
from docgraph.schema import Schema
from docgraph.validator import Validator

_UNSET = object()


class Model(Document):
    """A document with an identity and a persistence state.

    Subclasses describe their fields and relations in ``_define`` and their
    validation rules in ``_rules``. Every subclass registers itself under
    its class name so relations can point to it by name.

    ``exists`` is ``True`` for persisted entities, ``False`` for new ones and
    ``None`` when unknown (nested data of an entity loaded with
    ``exists=True``).
    """

    schema_class: ClassVar[type[Schema]] = Schema
    _registry: ClassVar[ModelRegistry] = registry

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls._registry.register(cls.__name__, cls)

    def __init__(
        self,
        data: Mapping[str, Any] | None = None,
        *,
        schema: Schema | None = None,
        base_path: str | None = None,
        exists: bool | str | None = False,
        defaults: bool = True,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._exists = True if exists == "all" else exists
        self._errors: dict[str, Any] = {}
        super().__init__(data, schema=schema, base_path=base_path, exists=exists, defaults=defaults, logger=logger)

    @classmethod
    def _define(cls, schema: Schema) -> None:
        """Declare the columns and relations of the model."""

    @classmethod
    def _rules(cls, validator: Validator) -> None:
        """Declare the validation rules of the model."""

    # Registry

    @classmethod
    def register(cls, name: str | None = None, model: type | None = None) -> type:
        cls._registry.register(name or cls.__name__, model or cls)
        return cls

    @classmethod
    def registered(cls, name: str | None = None) -> Any:
        """Return the registered names, or the model registered under ``name``."""
        if name is None:
            return cls._registry.names()
        return cls._registry.get(name)

    @classmethod
    def conventions(cls, conventions: Conventions | None = None) -> Conventions:
        if conventions is not None:
            cls._registry.set_conventions(cls, conventions)
            return conventions
        current = cls._registry.conventions(cls)
        if current is None:
            current = Conventions()
            cls._registry.set_conventions(cls, current)
        return current

    @classmethod
    def definition(cls, schema: Schema | None = None) -> Schema:
        """Return the cached schema of the model, building it on first use.

        Args:
            schema: Replace the cached schema with this one.
        """
        if schema is not None:
            cls._registry.set_schema(cls, schema)
            return schema
        current = cls._registry.schema(cls)
        if current is not None:
            return current
        current = cls.schema_class(model=cls, conventions=cls.conventions())
        cls._registry.set_schema(cls, current)
        cls._define(current)
        return current

    @classmethod
    def validator(cls) -> Validator:
        current = cls._registry.validator(cls)
        if current is None:
            current = Validator()
            cls._registry.set_validator(cls, current)
            cls._rules(current)
        return current

    @classmethod
    def query(cls, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Get, or set when ``params`` is given, the default query options."""
        if params is not None:
            cls._registry.set_query(cls, dict(params))
        return cls._registry.query(cls)

    @classmethod
    def reset(cls) -> None:
        cls._registry.reset(cls)

    # Finders

    @classmethod
    def find(cls, **options: Any) -> Any:
        """Return the backend query object, with the default query options applied."""
        return cls.definition().query({"query": {**cls.query(), **options}})

    @classmethod
    async def all(
        cls, options: Mapping[str, Any] | None = None, fetch_options: Mapping[str, Any] | None = None
    ) -> Any:
        return await cls.find(**(options or {})).all(fetch_options)

    @classmethod
    async def first(
        cls, options: Mapping[str, Any] | None = None, fetch_options: Mapping[str, Any] | None = None
    ) -> Any:
        return await cls.find(**(options or {})).first(fetch_options)

    @classmethod
    async def load(
        cls,
        entity_id: Any,
        options: Mapping[str, Any] | None = None,
        fetch_options: Mapping[str, Any] | None = None,
    ) -> Any:
        """Return the entity whose primary key is ``entity_id``, or ``None``."""
        options = dict(options or {})
        options["conditions"] = {**options.get("conditions", {}), cls.definition().key: entity_id}
        return await cls.first(options, fetch_options)

    # Lifecycle

    @classmethod
    def create(
        cls,
        data: Any = None,
        *,
        type: str = "entity",
        schema: Schema | None = None,
        base_path: str | None = None,
        exists: bool | str | None = False,
        defaults: bool | None = None,
        collector: Collector | None = None,
    ) -> Any:
        """Build an entity, or a collection of entities when ``type`` is ``"set"``.

        Args:
            data: Field values, or a list of them for a set.
            type: ``"entity"`` or ``"set"``.
            schema: Schema to use instead of the model definition.
            exists: Persistence state. ``"all"`` also marks the nested
                entities as persisted.
            defaults: Apply the column defaults. Defaults to ``True`` for
                new entities only.
            collector: Identity map returning the already built instance
                for a known ``(source, id)`` pair.
        """
        if type == "set":
            return Collection(data, schema=schema or cls.definition(), exists=exists)
        if defaults is None:
            defaults = exists is False

        definition = schema or cls.definition()
        entity_id = data.get(definition.key) if collector is not None and isinstance(data, Mapping) else None
        if entity_id is not None and collector.has(definition.source, entity_id):
            return collector.get(definition.source, entity_id)

        entity = cls(data, schema=schema, base_path=base_path, exists=exists, defaults=defaults)
        if entity_id is not None:
            collector.set(definition.source, entity_id, entity)
        return entity

    @property
    def exists(self) -> bool:
        """Whether the entity is persisted.

        Raises:
            MissingPersistenceState: If the persistence state is unknown.
        """
        if self._exists is None:
            raise MissingPersistenceState()
        return self._exists

    @property
    def id(self) -> Any:
        """The primary key value.

        Raises:
            MissingPrimaryKey: If the schema has no primary key.
            MissingEntityId: If the entity is persisted but has no key value.
        """
        key = self.schema.key
        if not key:
            raise MissingPrimaryKey(type(self).__name__)
        value = self._data.get(key)
        if value is None and self._exists is True:
            raise MissingEntityId()
        return value

    def _amend(self, data: Mapping[str, Any] | None, exists: bool | str | None, seen: Visited) -> None:
        if exists is not None and id(self) not in seen:
            self._exists = True if exists == "all" else exists
        super()._amend(data, exists, seen)

    def sync(
        self, entity_id: Any = None, data: Mapping[str, Any] | None = None, *, exists: bool | None = None
    ) -> "Model":
        """Apply backend generated values and mark them as persisted."""
        if exists is not None:
            self._exists = exists
        data = dict(data or {})
        key = self.schema.key
        if entity_id is not None and key:
            data[key] = entity_id
        self.set(data)
        self._persisted = dict(self._data)
        return self

    async def save(
        self, *, validate: bool = True, embed: EmbedSpec = True, whitelist: list[str] | None = None
    ) -> bool:
        """Validate then persist the entity and the relations named by ``embed``.

        Args:
            validate: Run the validation first.
            embed: Relations to save along. ``True`` saves every loaded
                relation.
            whitelist: Only persist these fields.

        Returns:
            ``False`` when the validation failed, ``True`` otherwise.
        """
        if embed is True:
            embed = self.hierarchy()
        if validate and not await self.validates(embed=embed):
            return False
        return await self.schema.persist(self, embed=embed, whitelist=whitelist)

    async def persist(self, *, validate: bool = True, whitelist: list[str] | None = None) -> bool:
        return await self.save(validate=validate, embed=False, whitelist=whitelist)

    async def broadcast(self, *, embed: EmbedSpec = True, whitelist: list[str] | None = None) -> bool:
        return await self.save(validate=False, embed=embed, whitelist=whitelist)

    async def delete(self) -> bool:
        schema = self.schema
        if not schema.key or self._exists is False:
            return False
        return await schema.delete(self)

    def _deleted(self) -> None:
        self._exists = False
        self._persisted = {}

    async def reload(self) -> "Model":
        """Reload the entity data from the backend.

        Raises:
            MissingEntityId: If the entity has no key value.
            UnknownEntity: If the backend doesn't know the entity anymore.
        """
        entity_id = self.id
        if entity_id is None:
            raise MissingEntityId()
        entity = await type(self).load(entity_id)
        if entity is None:
            raise UnknownEntity(entity_id)
        self._exists = True
        self.set(entity.get())
        self._persisted = dict(self._data)
        return self

    async def fetch(
        self,
        name: str,
        options: Mapping[str, Any] | None = None,
        fetch_options: Mapping[str, Any] | None = None,
    ) -> Any:
        """Return the ``name`` relation, loading it from the backend when needed."""
        if self.has(name):
            return self.get(name)
        return await self.schema.relation(name).fetch(self, options, fetch_options)

    # Validation

    async def validates(
        self,
        *,
        embed: EmbedSpec = True,
        events: str | list[str] | None = None,
        required: bool | None = None,
    ) -> bool:
        """Validate the entity and the relations named by ``embed``.

        Args:
            embed: Relations to validate along. ``True`` validates every
                loaded relation.
            events: Validation events, ``"create"`` or ``"update"`` by
                default depending on the persistence state.
            required: Report missing fields. Defaults to ``True`` for new
                entities.
        """
        persisted = self._exists is not False
        events = events or ("update" if persisted else "create")
        required = (not persisted) if required is None else required
        if embed is True:
            embed = self.hierarchy()

        success = True
        schema = self.schema
        for name, options in schema.treeify(embed).items():
            sub_embed = (options or {}).get("embed")
            if not await schema.relation(name).validates(self, embed=sub_embed):
                success = False

        validator = type(self).validator()
        valid = await validator.validates(self.get(), events=events, required=required, entity=self)
        self._errors = validator.errors()
        if not (valid and success):
            self._logger.debug("validation_failed", model=type(self).__name__, fields=list(self._errors))
        return valid and success

    def errors(self, *, embed: EmbedSpec = True) -> dict[str, Any]:
        """Return the field errors, with the errors of the relations named by ``embed``."""
        if embed is True:
            embed = self.hierarchy()
        errors = dict(self._errors)
        for name, options in self.schema.treeify(embed).items():
            value = self._data.get(name)
            if value is None:
                continue
            nested = value.errors(embed=(options or {}).get("embed"))
            if nested:
                errors[name] = nested
        return errors

    def invalidate(self, field: str | Mapping[str, Any], message: str | list[str] | None = None) -> "Model":
        """Add error messages to a field, or to several fields given as a mapping."""
        if isinstance(field, Mapping):
            for name, messages in field.items():
                self.invalidate(name, messages)
            return self
        messages = message if isinstance(message, list) else [message]
        self._errors.setdefault(field, []).extend(item for item in messages if item is not None)
        return self

    def errored(self, field: str | None = None) -> bool:
        if field is None:
            return bool(self._errors)
        return bool(self._errors.get(field))

    def error(self, field: str) -> str:
        """Return the first error message of ``field``, or an empty string."""
        messages = self._errors.get(field) or []
        return messages[0] if messages else ""
