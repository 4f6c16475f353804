"""Restartable forward iterator over a list or a backend resource."""

from collections.abc import Iterator, Sequence
from typing import Any

from docgraph.exceptions import BackendNotImplemented


class Cursor:
    """Stateful cursor.

    ``current()`` and ``key()`` lazily load the first item, ``next()``
    advances and returns the new current item, and iterating past the end
    makes ``valid()`` return ``False``. Resource backed cursors must be
    provided by a backend by overriding ``_fetch_resource``.
    """

    def __init__(
        self,
        data: Sequence[Any] | None = None,
        *,
        resource: Any = None,
        error: bool = False,
        errno: int = 0,
        errmsg: str = "",
    ) -> None:
        self._data = list(data or [])
        self._resource = resource
        self._error = error
        self._errno = errno
        self._errmsg = errmsg
        self.rewind()

    @property
    def data(self) -> list[Any]:
        return self._data

    @property
    def resource(self) -> Any:
        return self._resource

    @property
    def error(self) -> bool:
        return self._error

    @property
    def errno(self) -> int:
        return self._errno

    @property
    def errmsg(self) -> str:
        return self._errmsg

    def valid(self) -> bool:
        if not self._init:
            self._fetch()
        return self._valid

    def rewind(self) -> None:
        self._started = False
        self._init = False
        self._valid = True
        self._key: int | None = None
        self._current: Any = None
        self._index = 0

    def current(self) -> Any:
        if not self._init:
            self._fetch()
        self._started = True
        return self._current

    def key(self) -> int | None:
        if not self._init:
            self._fetch()
        self._started = True
        return self._key

    def next(self) -> Any:
        if not self._started:
            return self.current()
        self._fetch()
        return self.current()

    def close(self) -> None:
        self._resource = None
        self._data = []
        self._index = 0

    def _fetch(self) -> bool:
        self._init = True
        if self._resource is not None:
            return self._fetch_resource()
        return self._fetch_array()

    def _fetch_array(self) -> bool:
        if self._index >= len(self._data):
            self._key = None
            self._current = None
            self._valid = False
            return False
        self._key = self._index
        self._current = self._data[self._index]
        self._index += 1
        if self._index >= len(self._data):
            self._valid = False
        return True

    def _fetch_resource(self) -> bool:
        raise BackendNotImplemented("_fetch_resource", type(self).__name__)

    def __iter__(self) -> Iterator[Any]:
        self.rewind()
        while self._fetch():
            self._started = True
            yield self._current
