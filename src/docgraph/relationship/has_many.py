from collections.abc import Iterable, Mapping
from typing import Any

from docgraph.document import Document
from docgraph.enums import LinkType, RelationKind
from docgraph.relationship.base import Relationship, entities_of, value_of


class HasMany(Relationship):
    """Related entities hold the key of the entity, e.g. ``image.gallery_id``.

    With a ``keylist`` link the entity holds the list of related keys
    instead, e.g. ``gallery.tag_ids``. A junction relation owns its related
    rows: rows detached from the entity are deleted on save instead of being
    unlinked.
    """

    kind = RelationKind.HAS_MANY

    async def embed(
        self,
        collection: Iterable[Any],
        options: Mapping[str, Any] | None = None,
        fetch_options: Mapping[str, Any] | None = None,
    ) -> Any:
        entities = list(collection)
        indexes = self._index(entities, self.from_key)
        related = await self._find(self._ids(entities, self.from_key), options, fetch_options)

        buckets: dict[int, list[Any]] = {id(entity): [] for entity in entities}
        for item in related:
            for owner in indexes.get(str(value_of(item, self.to_key)), []):
                buckets[id(owner)].append(item)
        for entity in entities:
            self._fill(entity, buckets[id(entity)])
        return related

    def _fill(self, entity: Any, items: list[Any]) -> None:
        if not isinstance(entity, Document):
            entity[self._name] = items
            return
        if not entity.has(self._name):
            entity.set(self._name, [])
        entity.get(self._name).amend(items)

    async def save(self, entities: Any, *, embed: Any = None) -> bool:
        """Save the related entities and unlink the ones no longer related.

        Previously related entities missing from the current collection get
        their foreign key cleared, or are deleted for junction relations.
        """
        if self._link is not LinkType.KEY:
            return True
        for entity in entities_of(entities):
            if not entity.has(self._name):
                continue
            conditions = self.match(entity)
            previous = await self.to_model.all({"conditions": {**self._conditions, **conditions}})
            key = self.to_model.definition().key
            indexes = {str(item.get(key)): item for item in previous if item.has(key)}

            for item in entity.get(self._name):
                if item.exists and str(item.id) in indexes:
                    del indexes[str(item.id)]
                item.set(conditions)
                await item.save(validate=False, embed=embed)

            for item in indexes.values():
                if self._junction:
                    await item.delete()
                else:
                    item.set(self.to_key, None)
                    await item.save(validate=False)
            if indexes:
                self._logger.info(
                    "relation_detached", relation=self._name, count=len(indexes), deleted=self._junction
                )
        return True
