"""Per-entity exclusive locks keyed by id."""

from __future__ import annotations

import contextlib
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.users = 0


class KeyedLocks:
    """Hands out one lock per entity id.

    An entry exists only while some caller holds or waits on it; the last
    one out removes it, so lookups of unknown ids leave nothing behind.
    Acquiring several ids at once always takes them in sorted order so that
    two callers locking overlapping sets cannot deadlock.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def _checkout(self, key: str) -> threading.RLock:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1
            return entry.lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            entry = self._entries[key]
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    @contextlib.contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self._checkout(key)
        try:
            with lock:
                yield
        finally:
            self._checkin(key)

    @contextlib.contextmanager
    def hold_many(self, keys: Iterable[str]) -> Iterator[None]:
        with contextlib.ExitStack() as stack:
            for key in sorted(set(keys)):
                stack.enter_context(self.hold(key))
            yield
