from collections.abc import Iterable, Mapping
from typing import Any

from docgraph.enums import LinkType, RelationKind
from docgraph.relationship.base import Relationship, entities_of, value_of


class HasOne(Relationship):
    """The related entity holds the key of the entity, e.g. ``detail.gallery_id``."""

    kind = RelationKind.HAS_ONE

    async def embed(
        self,
        collection: Iterable[Any],
        options: Mapping[str, Any] | None = None,
        fetch_options: Mapping[str, Any] | None = None,
    ) -> Any:
        entities = list(collection)
        indexes = self._index(entities, self.from_key)
        related = await self._find(self._ids(entities, self.from_key), options, fetch_options)
        for entity in entities:
            self._detach(entity)
        for item in related:
            for owner in indexes.get(str(value_of(item, self.to_key)), []):
                self._attach(owner, item)
        return related

    async def save(self, entities: Any, *, embed: Any = None) -> bool:
        """Copy the entity key onto the related entities and save them."""
        if self._link is not LinkType.KEY:
            return True
        for entity in entities_of(entities):
            if not entity.has(self._name):
                continue
            related = entity.get(self._name)
            if related is None:
                continue
            related.set(self.match(entity))
            await related.save(validate=False, embed=embed)
        return True
