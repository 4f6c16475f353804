"""Unit tests for the in-memory Buffer query."""

from docgraph.buffer import Buffer
from docgraph.collection import Collection


class TestBuffer:
    """Tests for the query coroutines."""

    async def test_all_returns_the_data(self) -> None:
        buffer = Buffer([{"id": 1}, {"id": 2}])
        assert await buffer.all() == [{"id": 1}, {"id": 2}]
        assert await buffer.get() == [{"id": 1}, {"id": 2}]

    async def test_first(self) -> None:
        assert await Buffer([1, 2]).first() == 1
        assert await Buffer(Collection([3, 4])).first() == 3

    async def test_first_of_empty_buffer(self) -> None:
        assert await Buffer().first() is None

    async def test_count(self) -> None:
        assert await Buffer([1, 2, 3]).count() == 3
