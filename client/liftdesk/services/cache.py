from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Generic, Hashable, List, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: Optional[T]
    pending: bool = False


@dataclass(frozen=True)
class CacheSnapshot(Generic[T]):
    key: Hashable
    previous: Optional[CacheEntry[T]]


class ReconcilingCache(Generic[T]):
    """Keyed cache where local edits stay tentative until the server confirms them.

    ``apply_pending`` records a tentative value (``None`` marks a pending
    removal) and hands back the prior state. The caller then either
    ``confirm``s the server entity or ``rollback``s to that snapshot.
    """

    def __init__(self) -> None:
        self._entries: Dict[Hashable, CacheEntry[T]] = {}

    def __contains__(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.value is not None

    def __len__(self) -> int:
        return len(self.values())

    def get(self, key: Hashable) -> Optional[T]:
        entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def is_pending(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.pending

    def values(self) -> List[T]:
        return [entry.value for entry in self._entries.values() if entry.value is not None]

    def set(self, key: Hashable, value: T) -> None:
        self._entries[key] = CacheEntry(value)

    def discard(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def apply_pending(self, key: Hashable, value: Optional[T]) -> CacheSnapshot[T]:
        snapshot = CacheSnapshot(key, self._entries.get(key))
        self._entries[key] = CacheEntry(value, pending=True)
        return snapshot

    def confirm(self, key: Hashable, entity: Optional[T], *, replaces: Optional[Hashable] = None) -> None:
        if replaces is not None and replaces != key:
            self._entries.pop(replaces, None)
        if entity is None:
            self._entries.pop(key, None)
        else:
            self._entries[key] = CacheEntry(entity)

    def rollback(self, snapshot: CacheSnapshot[T]) -> None:
        if snapshot.previous is None:
            self._entries.pop(snapshot.key, None)
        else:
            self._entries[snapshot.key] = snapshot.previous
