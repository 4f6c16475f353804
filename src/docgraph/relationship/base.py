"""Base relationship shared by every relation kind."""

from collections.abc import Iterable, Mapping
from typing import Any, ClassVar

import structlog

from docgraph.collection import Collection
from docgraph.conventions import Conventions
from docgraph.document import Document
from docgraph.enums import LinkType, RelationKind
from docgraph.exceptions import (
    ExternalRelationRequiresFetch,
    InvalidRelationConfig,
    MissingKeyForMatch,
    RelationNotFound,
)
from docgraph.registry import registry


def entities_of(instances: Any) -> list[Any]:
    if isinstance(instances, (Document, Mapping)):
        return [instances]
    return list(instances)


def value_of(entity: Any, name: str) -> Any:
    """Read ``name`` on a document or on a plain mapping row."""
    if isinstance(entity, Document):
        return entity.get(name) if entity.has(name) else None
    return entity.get(name)


def plain(value: Any) -> Any:
    if isinstance(value, Collection):
        return value.get()
    return value


def first_of(related: Any) -> Any:
    if isinstance(related, Collection):
        return related.first()
    return related[0] if related else None


class Relationship:
    """A relation between two models.

    ``keys`` maps the local field to the related field, e.g.
    ``{"id": "gallery_id"}`` for a gallery having many images. ``link`` tells
    how the related data is stored: foreign key (``key``), list of foreign
    keys (``keylist``), embedded in the entity (``embedded``) or holding the
    entity itself (``contained``).
    """

    kind: ClassVar[RelationKind]

    def __init__(
        self,
        *,
        name: str = "",
        from_model: Any = None,
        to_model: Any = None,
        keys: Mapping[str, str] | None = None,
        link: LinkType | str = LinkType.KEY,
        fields: bool | list[str] = True,
        conditions: Mapping[str, Any] | None = None,
        junction: bool = False,
        conventions: Conventions | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        if not from_model:
            raise InvalidRelationConfig("The relationship `'from'` option can't be empty.", option="from")
        if not to_model:
            raise InvalidRelationConfig("The relationship `'to'` option can't be empty.", option="to")
        self._logger = logger or structlog.get_logger(__name__)
        self._conventions = conventions or Conventions()
        self._from = from_model
        self._to = to_model
        self._keys = dict(keys) if keys else self._default_keys()
        self._name = name or self._conventions.apply("field", self._model_name(to_model))
        self._link = LinkType(link)
        self._fields = fields
        self._conditions = dict(conditions or {})
        self._junction = junction

    @staticmethod
    def _model_name(model: Any) -> str:
        return model if isinstance(model, str) else model.__name__

    def _default_keys(self) -> dict[str, str]:
        return {self._conventions.apply("key"): self._conventions.apply("reference", self._model_name(self._from))}

    @property
    def name(self) -> str:
        return self._name

    @property
    def conventions(self) -> Conventions:
        return self._conventions

    @property
    def from_model(self) -> Any:
        return self._from

    @property
    def to_model(self) -> Any:
        """The related model, resolved from the registry when given by name."""
        if isinstance(self._to, str):
            self._to = registry.get(self._to)
        return self._to

    @property
    def keys(self) -> dict[str, str]:
        return dict(self._keys)

    @property
    def from_key(self) -> str:
        return next(iter(self._keys))

    @property
    def to_key(self) -> str:
        return self._keys[self.from_key]

    @property
    def link(self) -> LinkType:
        return self._link

    @property
    def fields(self) -> bool | list[str]:
        return self._fields

    @property
    def conditions(self) -> dict[str, Any]:
        return dict(self._conditions)

    @property
    def junction(self) -> bool:
        return self._junction

    @junction.setter
    def junction(self, junction: bool) -> None:
        self._junction = junction

    @property
    def is_many(self) -> bool:
        return self.kind in (RelationKind.HAS_MANY, RelationKind.HAS_MANY_THROUGH)

    @property
    def external(self) -> bool:
        return self._link in (LinkType.KEY, LinkType.KEY_LIST)

    @property
    def embedded(self) -> bool:
        return not self.external

    @property
    def through(self) -> str | None:
        return None

    @property
    def using(self) -> str | None:
        return None

    def counterpart(self) -> "Relationship":
        """Return the relation of the related model pointing back to ``from_model``.

        Raises:
            RelationNotFound: If the related model has no such relation.
            InvalidRelationConfig: If it has more than one.
        """
        schema = self.to_model.definition()
        candidates = [
            schema.relation(name) for name in schema.relations() if schema.relation(name).to_model is self._from
        ]
        if len(candidates) > 1:
            raise InvalidRelationConfig(
                f"Ambiguous `{self.kind}` counterpart relationship for `{self._model_name(self._from)}`."
            )
        if not candidates:
            raise RelationNotFound(f"{self.kind} counterpart", self._model_name(self.to_model))
        return candidates[0]

    def match(self, entity: Document) -> dict[str, Any]:
        """Build the conditions selecting the entities related to ``entity``.

        Raises:
            MissingKeyForMatch: If ``entity`` doesn't hold the local key.
        """
        if not entity.has(self.from_key):
            raise MissingKeyForMatch(self.from_key)
        return {self.to_key: plain(entity.get(self.from_key))}

    def get(self, entity: Document) -> Any:
        """Return the related data without doing any I/O.

        Raises:
            ExternalRelationRequiresFetch: If the data of a foreign key
                relation of an existing entity isn't loaded.
        """
        if self._link is LinkType.CONTAINED:
            parent = next(iter(entity.parents.keys()), None)
            if self.is_many and parent is not None:
                parent = next(iter(parent.parents.keys()), None)
            return parent
        if self.embedded or entity.has(self._name) or entity._exists is not True:
            return entity.get(self._name)
        raise ExternalRelationRequiresFetch(self._name)

    def assign(self, entity: Document, value: Any) -> None:
        """Hook called once ``value`` has been stored on ``entity``."""

    async def fetch(
        self,
        entity: Document,
        options: Mapping[str, Any] | None = None,
        fetch_options: Mapping[str, Any] | None = None,
    ) -> Any:
        """Load the related data of ``entity`` and store it under the relation name."""
        if self.embedded:
            return self.get(entity)
        key = value_of(entity, self.from_key)
        related = await self._find(plain(key), options, fetch_options)
        value = related if self.is_many else first_of(related)
        if value is not None:
            entity.set(self._name, value)
        return value

    async def embed(
        self,
        collection: Iterable[Any],
        options: Mapping[str, Any] | None = None,
        fetch_options: Mapping[str, Any] | None = None,
    ) -> Any:
        raise NotImplementedError

    async def save(self, entities: Any, *, embed: Any = None) -> bool:
        return True

    async def validates(self, entity: Document, **options: Any) -> bool:
        if not entity.has(self._name):
            return True
        value = entity.get(self._name)
        if value is None:
            return True
        return await value.validates(**options)

    async def _find(
        self,
        ids: Any,
        options: Mapping[str, Any] | None = None,
        fetch_options: Mapping[str, Any] | None = None,
    ) -> Any:
        """Fetch the related entities whose ``to_key`` is in ``ids``.

        A single query is issued whatever the number of ids.
        """
        fetch_options = dict(fetch_options or {})
        if ids is None or (isinstance(ids, list) and not ids):
            return self.to_model.create([], type="set", collector=fetch_options.get("collector"))
        query = dict(options or {})
        query["conditions"] = {**self._conditions, **query.get("conditions", {}), self.to_key: ids}
        return await self.to_model.all(query, fetch_options)

    def _index(self, entities: Iterable[Any], name: str) -> dict[str, list[Any]]:
        """Group ``entities`` by the string form of their ``name`` value."""
        indexes: dict[str, list[Any]] = {}
        for entity in entities:
            value = plain(value_of(entity, name))
            for key in value if isinstance(value, list) else [value]:
                if key is not None:
                    indexes.setdefault(str(key), []).append(entity)
        return indexes

    def _ids(self, entities: Iterable[Any], name: str) -> list[Any]:
        ids: dict[str, Any] = {}
        for entity in entities:
            value = plain(value_of(entity, name))
            for key in value if isinstance(value, list) else [value]:
                if key is not None:
                    ids.setdefault(str(key), key)
        return list(ids.values())

    def _attach(self, entity: Any, value: Any) -> None:
        if isinstance(entity, Document):
            entity.set(self._name, value)
        else:
            entity[self._name] = value

    def _detach(self, entity: Any) -> None:
        if isinstance(entity, Document):
            entity.unset(self._name)
        else:
            entity.pop(self._name, None)
