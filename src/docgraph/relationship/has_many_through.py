from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

import structlog

from docgraph.conventions import Conventions
from docgraph.document import Document
from docgraph.enums import LinkType, RelationKind
from docgraph.exceptions import InvalidRelationConfig
from docgraph.relationship.base import Relationship

if TYPE_CHECKING:
    from docgraph.schema import Schema


class HasManyThrough(Relationship):
    """Many to many relation going through a pivot relation.

    ``image.tags`` goes through ``image.images_tags`` (a ``has_many`` to the
    pivot model) then through the ``tag`` relation of each pivot. The target
    model and the keys are borrowed from the pivot's ``using`` relation. The
    relation doesn't fetch anything on its own: it exposes the pivot
    targets once the pivot relation has been loaded.
    """

    kind = RelationKind.HAS_MANY_THROUGH

    def __init__(
        self,
        *,
        name: str = "",
        from_model: Any = None,
        schema: "Schema | None" = None,
        through: str | None = None,
        using: str | None = None,
        fields: bool | list[str] = True,
        conditions: Mapping[str, Any] | None = None,
        conventions: Conventions | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        if not from_model:
            raise InvalidRelationConfig("The relationship `'from'` option can't be empty.", option="from")
        if not through:
            raise InvalidRelationConfig("The relationship `'through'` option can't be empty.", option="through")
        if not using:
            raise InvalidRelationConfig("The relationship `'using'` option can't be empty.", option="using")
        self._logger = logger or structlog.get_logger(__name__)
        self._conventions = conventions or Conventions()
        self._from = from_model
        self._schema = schema
        self._through = through
        self._using = using
        self._link = LinkType.KEY
        self._fields = fields
        self._conditions = dict(conditions or {})
        self._junction = False
        self._name = name

    @property
    def name(self) -> str:
        if not self._name:
            self._name = self._conventions.apply("field", self.to_model.__name__)
        return self._name

    @property
    def through(self) -> str:
        return self._through

    @property
    def using(self) -> str:
        return self._using

    def _through_relation(self) -> Relationship:
        schema = self._schema if self._schema is not None else self._from.definition()
        return schema.relation(self._through)

    def _using_relation(self) -> Relationship:
        return self._through_relation().to_model.definition().relation(self._using)

    @property
    def to_model(self) -> Any:
        return self._using_relation().to_model

    @property
    def _keys(self) -> dict[str, str]:  # type: ignore[override]
        return self._using_relation().keys

    async def fetch(
        self,
        entity: Document,
        options: Mapping[str, Any] | None = None,
        fetch_options: Mapping[str, Any] | None = None,
    ) -> Any:
        schema = self._schema if self._schema is not None else self._from.definition()
        await schema.embed([entity], {self.name: options}, fetch_options=fetch_options)
        return entity.get(self.name)

    async def embed(
        self,
        collection: Iterable[Any],
        options: Mapping[str, Any] | None = None,
        fetch_options: Mapping[str, Any] | None = None,
    ) -> list[Any]:
        """Expose the targets of the already loaded pivots on every entity."""
        related: list[Any] = []
        for entity in collection:
            if isinstance(entity, Document):
                if entity.has(self._through):
                    related.extend(entity.get(self.name))
                continue
            items = [
                pivot[self._using]
                for pivot in entity.get(self._through) or []
                if isinstance(pivot, Mapping) and pivot.get(self._using) is not None
            ]
            entity[self.name] = items
            related.extend(items)
        return related

    async def save(self, entities: Any, *, embed: Any = None) -> bool:
        return True

    async def validates(self, entity: Document, **options: Any) -> bool:
        return True
