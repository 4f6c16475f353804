"""In-memory query object returning a preloaded result set."""

from collections.abc import Mapping
from typing import Any


class Buffer:
    """Query object over data that is already loaded.

    Exposes the same ``all``/``first``/``count`` coroutines a backend query
    does, which makes it useful for tests and for precomputed results.
    """

    def __init__(self, collection: Any = None) -> None:
        self._collection = collection if collection is not None else []

    async def get(self, fetch_options: Mapping[str, Any] | None = None) -> Any:
        return self._collection

    async def all(self, fetch_options: Mapping[str, Any] | None = None) -> Any:
        return await self.get(fetch_options)

    async def first(self, fetch_options: Mapping[str, Any] | None = None) -> Any:
        result = await self.get(fetch_options)
        if len(result) == 0:
            return None
        return result[0] if isinstance(result, list) else result.get(0)

    async def count(self) -> int:
        return len(self._collection)
