from collections.abc import Iterable, Mapping
from typing import Any

from docgraph.document import Document
from docgraph.enums import LinkType, RelationKind
from docgraph.exceptions import MissingRelatedKey
from docgraph.relationship.base import Relationship, entities_of, value_of


class BelongsTo(Relationship):
    """The entity holds the key of the related entity, e.g. ``image.gallery_id``."""

    kind = RelationKind.BELONGS_TO

    def _default_keys(self) -> dict[str, str]:
        return {self._conventions.apply("reference", self._model_name(self._to)): self._conventions.apply("key")}

    def assign(self, entity: Document, value: Any) -> None:
        """Copy the key of the related entity onto the local foreign key."""
        if self._link is not LinkType.KEY:
            return
        key = value_of(value, self.to_key) if isinstance(value, Document) else None
        if key is not None:
            entity.set(self.from_key, key)
        elif value is None or not entity.has(self.from_key):
            entity.set(self.from_key, None)

    async def embed(
        self,
        collection: Iterable[Any],
        options: Mapping[str, Any] | None = None,
        fetch_options: Mapping[str, Any] | None = None,
    ) -> Any:
        entities = list(collection)
        related = await self._find(self._ids(entities, self.from_key), options, fetch_options)
        indexes = {key: items[0] for key, items in self._index(related, self.to_key).items()}
        for entity in entities:
            self._detach(entity)
            value = value_of(entity, self.from_key)
            if value is not None and str(value) in indexes:
                self._attach(entity, indexes[str(value)])
        return related

    async def save(self, entities: Any, *, embed: Any = None) -> bool:
        """Save the related entities first and copy their keys onto ``entities``.

        Raises:
            MissingRelatedKey: If a related entity has no key once saved.
        """
        if self._link is not LinkType.KEY:
            return True
        for entity in entities_of(entities):
            if not entity.has(self._name):
                continue
            related = entity.get(self._name)
            if related is None:
                continue
            await related.save(validate=False, embed=embed)
            key = value_of(related, self.to_key)
            if key is None:
                raise MissingRelatedKey(self.to_key)
            entity.set(self.from_key, key)
        return True
