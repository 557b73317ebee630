"""
In-memory result cache with in-flight de-duplication.

The pending task is stored before it is awaited, so concurrent identical
requests share one load. Success replaces the entry with the value; failure
removes it so the next call retries cleanly. With max_entries set, inserting
past the cap evicts the oldest-inserted key (FIFO, not LRU).
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Hashable, List, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Pending:
    task: "asyncio.Future[Any]"


@dataclass
class Ready(Generic[T]):
    value: T


CacheEntry = Union[Pending, Ready]


class ResultCache(Generic[T]):
    """Key -> pending task or ready value. One instance per dataset."""

    def __init__(self, name: str = "", max_entries: Optional[int] = None) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.name = name
        self.max_entries = max_entries
        self._entries: Dict[Hashable, CacheEntry] = {}

    async def get_or_load(self, key: Hashable, loader: Callable[[], Awaitable[T]]) -> T:
        entry = self._entries.get(key)
        if isinstance(entry, Ready):
            return entry.value
        if isinstance(entry, Pending):
            return await asyncio.shield(entry.task)

        task = asyncio.ensure_future(loader())
        pending = Pending(task)
        self._insert(key, pending)
        task.add_done_callback(lambda t: self._settle(key, pending, t))
        return await asyncio.shield(task)

    def _settle(self, key: Hashable, pending: Pending, task: "asyncio.Future[Any]") -> None:
        # runs before any waiter resumes, so callers observe the final entry state
        failed = task.cancelled() or task.exception() is not None
        if self._entries.get(key) is not pending:
            return
        if failed:
            del self._entries[key]
        else:
            self._entries[key] = Ready(task.result())

    def _insert(self, key: Hashable, entry: CacheEntry) -> None:
        self._entries[key] = entry
        if self.max_entries is None:
            return
        while len(self._entries) > self.max_entries:
            oldest = next(iter(self._entries))
            self._entries.pop(oldest)
            logger.debug("Cache %s evicted %r (cap=%d)", self.name, oldest, self.max_entries)

    def peek(self, key: Hashable) -> Optional[T]:
        """Ready value for key, or None when absent or still pending."""
        entry = self._entries.get(key)
        return entry.value if isinstance(entry, Ready) else None

    def is_pending(self, key: Hashable) -> bool:
        return isinstance(self._entries.get(key), Pending)

    def discard(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> List[Hashable]:
        return list(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
