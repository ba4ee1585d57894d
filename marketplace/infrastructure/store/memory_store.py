from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Generic, Iterator, TypeVar


T = TypeVar("T")


class ChangeTrackingDict(dict):
    """A dict that counts writes, so a batch can tell whether it changed anything."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.writes = 0

    def __setitem__(self, key, value) -> None:
        self.writes += 1
        super().__setitem__(key, value)

    def __delitem__(self, key) -> None:
        self.writes += 1
        super().__delitem__(key)

    def pop(self, key, *default):
        if key in self:
            self.writes += 1
        return super().pop(key, *default)


class MemoryCollection(Generic[T]):
    """
    Keyed documents held in process memory.

    Every read and write happens under one re-entrant lock, so a repository can
    wrap a check-then-write sequence in `batch()` and have it applied atomically.
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._items: ChangeTrackingDict = ChangeTrackingDict()
        self._lock = threading.RLock()
        self._depth = 0
        self._writes_at_start = 0

    def get(self, key: str) -> T | None:
        with self._lock:
            return self._items.get(key)

    def values(self) -> list[T]:
        with self._lock:
            return list(self._items.values())

    def put(self, key: str, value: T) -> None:
        with self.batch() as items:
            items[key] = value

    def delete(self, key: str) -> bool:
        with self.batch() as items:
            return items.pop(key, None) is not None

    @contextmanager
    def batch(self) -> Iterator[dict[str, T]]:
        """
        Hold the lock and expose the live mapping. A batch that wrote something
        is flushed once, when the outermost batch exits without an error.
        """
        with self._lock:
            if self._depth == 0:
                self._writes_at_start = self._items.writes
            self._depth += 1
            try:
                yield self._items
            finally:
                self._depth -= 1
            if self._depth == 0 and self._items.writes != self._writes_at_start:
                self._flush()

    def _flush(self) -> None:
        pass
