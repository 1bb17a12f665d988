"""In-memory subscription registry: entity key → rooms that want to hear about it."""

from __future__ import annotations

import threading
from typing import Generic, Hashable, TypeVar

K = TypeVar("K", bound=Hashable)


class SubscriptionRegistry(Generic[K]):
    """
    Ordered room lists per key, guarded by one lock.

    A key exists only once a room subscribed to it. Lists are append-only
    through ``subscribe``; a room subscribing twice is notified twice unless
    the registry was created with ``dedupe=True``. Nothing is persisted.
    """

    def __init__(self, *, dedupe: bool = False) -> None:
        self._lock = threading.Lock()
        self._rooms: dict[K, list[str]] = {}
        self._dedupe = dedupe

    def subscribe(self, key: K, room_id: str) -> None:
        with self._lock:
            rooms = self._rooms.setdefault(key, [])
            if self._dedupe and room_id in rooms:
                return
            rooms.append(room_id)

    def lookup(self, key: K) -> list[str]:
        """Copy of the rooms subscribed to ``key``; empty if none."""
        with self._lock:
            return list(self._rooms.get(key, ()))

    def unsubscribe(self, key: K, room_id: str) -> int:
        """Remove every subscription of ``room_id`` to ``key``; return how many."""
        with self._lock:
            rooms = self._rooms.get(key)
            if not rooms:
                return 0
            kept = [r for r in rooms if r != room_id]
            removed = len(rooms) - len(kept)
            if kept:
                self._rooms[key] = kept
            else:
                del self._rooms[key]
            return removed

    def snapshot(self) -> dict[K, list[str]]:
        with self._lock:
            return {key: list(rooms) for key, rooms in self._rooms.items()}

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)
