"""Unit tests for the Cursor iterator."""

import pytest

from docgraph.cursor import Cursor
from docgraph.exceptions import BackendNotImplemented


class TestCursorIteration:
    """Tests for stateful iteration."""

    def test_current_loads_first_item(self) -> None:
        cursor = Cursor([1, 2, 5])

        assert cursor.current() == 1
        assert cursor.key() == 0

    def test_next_advances(self) -> None:
        cursor = Cursor([1, 2, 5])

        assert cursor.next() == 1
        assert cursor.next() == 2
        assert cursor.key() == 1
        assert cursor.next() == 5
        assert not cursor.valid()
        assert cursor.next() is None

    def test_empty_cursor_is_invalid(self) -> None:
        cursor = Cursor()
        assert cursor.current() is None
        assert not cursor.valid()

    def test_rewind_restarts(self) -> None:
        cursor = Cursor([1, 2])
        cursor.next()
        cursor.next()

        cursor.rewind()

        assert cursor.current() == 1
        assert cursor.valid()

    def test_iteration_protocol(self) -> None:
        cursor = Cursor([1, 2, 5])
        assert list(cursor) == [1, 2, 5]
        assert list(cursor) == [1, 2, 5]

    def test_close_drops_data(self) -> None:
        cursor = Cursor([1, 2])
        cursor.close()
        assert cursor.data == []


class TestCursorState:
    """Tests for error state and resources."""

    def test_error_attributes(self) -> None:
        cursor = Cursor(error=True, errno=500, errmsg="Server error")

        assert cursor.error
        assert cursor.errno == 500
        assert cursor.errmsg == "Server error"

    def test_resource_requires_backend(self) -> None:
        cursor = Cursor(resource=object())
        with pytest.raises(BackendNotImplemented, match="_fetch_resource"):
            cursor.current()
