"""Thread-safe in-memory AppID to PackageID index.

This is the only component allowed to mutate index entries. Package sets
only ever grow: the index is an enrichment cache, not a mirror.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator, Mapping


class ConcurrentIdSet:
    """Set of integer IDs safe under concurrent insertion and iteration.

    Iteration walks a snapshot taken under the lock, so concurrent
    inserts never invalidate an iterator.
    """

    __slots__ = ("_items", "_lock")

    def __init__(self, items: Iterable[int] = ()) -> None:
        self._lock = threading.Lock()
        self._items: set[int] = set(items)

    def add(self, item: int) -> bool:
        """Add *item*; return ``True`` if it was not present."""
        with self._lock:
            if item in self._items:
                return False
            self._items.add(item)
            return True

    def update(self, items: Iterable[int]) -> int:
        """Add all *items*; return how many were new."""
        with self._lock:
            before = len(self._items)
            self._items.update(items)
            return len(self._items) - before

    def snapshot(self) -> frozenset[int]:
        with self._lock:
            return frozenset(self._items)

    def __contains__(self, item: object) -> bool:
        with self._lock:
            return item in self._items

    def __iter__(self) -> Iterator[int]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __repr__(self) -> str:
        return f"ConcurrentIdSet({sorted(self.snapshot())!r})"


class EntryStore:
    """Concurrent mapping from AppID to the set of PackageIDs granting it.

    Reads and writes may come from any thread or task without an external
    lock; a completed write is visible to every later read.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[int, ConcurrentIdSet] = {}

    @classmethod
    def from_mapping(cls, entries: Mapping[int, Iterable[int]]) -> EntryStore:
        store = cls()
        store.merge(entries)
        return store

    def _packages(self, app_id: int) -> ConcurrentIdSet:
        with self._lock:
            packages = self._entries.get(app_id)
            if packages is None:
                packages = ConcurrentIdSet()
                self._entries[app_id] = packages
            return packages

    def _package_sets(self) -> list[ConcurrentIdSet]:
        with self._lock:
            return list(self._entries.values())

    def get(self, app_id: int) -> frozenset[int]:
        """Package IDs granting *app_id* (empty when unknown)."""
        with self._lock:
            packages = self._entries.get(app_id)
        if packages is None:
            return frozenset()
        return packages.snapshot()

    def contains_package(self, package_id: int) -> bool:
        """Whether any app's package set contains *package_id*."""
        return any(package_id in packages for packages in self._package_sets())

    def merge(self, additions: Mapping[int, Iterable[int]]) -> int:
        """Union *additions* into the index.

        Creates the set for unknown apps first. Idempotent: merging the
        same data again changes nothing.

        Returns
        -------
        int
            Number of (app, package) pairs that were not present before.
        """
        added = 0
        for app_id, package_ids in additions.items():
            added += self._packages(app_id).update(package_ids)
        return added

    def app_ids(self) -> frozenset[int]:
        with self._lock:
            return frozenset(self._entries)

    def snapshot(self) -> dict[int, frozenset[int]]:
        """Point-in-time copy of every entry, used for serialization."""
        return {app_id: packages.snapshot() for app_id, packages in self._items()}

    def _items(self) -> list[tuple[int, ConcurrentIdSet]]:
        with self._lock:
            return list(self._entries.items())

    def __contains__(self, app_id: object) -> bool:
        with self._lock:
            return app_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
