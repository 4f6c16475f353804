"""Identity map resolving one (source, id) pair to one entity instance."""

from typing import Any

from docgraph.exceptions import MissingCollectedData


class Collector:
    """Entities already built during a load, keyed by source and id.

    Ids are compared by their string form, so ``1`` and ``"1"`` resolve to
    the same entity.
    """

    def __init__(self) -> None:
        self._data: dict[tuple[str, str], Any] = {}

    def set(self, uuid: str, entity_id: Any, data: Any) -> "Collector":
        """Collect ``data`` under the pair.

        Args:
            uuid: Source the entity comes from.
            entity_id: Primary key of the entity.
            data: The entity, replacing anything collected for the pair.

        Returns:
            The collector, for chaining.
        """
        self._data[(uuid, str(entity_id))] = data
        return self

    def get(self, uuid: str, entity_id: Any) -> Any:
        """Return the collected value.

        Raises:
            MissingCollectedData: If nothing was collected for the pair.
        """
        key = (uuid, str(entity_id))
        if key not in self._data:
            raise MissingCollectedData(uuid, entity_id)
        return self._data[key]

    def has(self, uuid: str, entity_id: Any) -> bool:
        """Check whether something was collected for the pair."""
        return (uuid, str(entity_id)) in self._data

    def remove(self, uuid: str, entity_id: Any) -> "Collector":
        """Forget the pair. Unknown pairs are ignored."""
        self._data.pop((uuid, str(entity_id)), None)
        return self
