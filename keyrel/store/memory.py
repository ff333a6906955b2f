"""
keyrel store — In-process memory backend.

Keeps scalars, counters and sets in a single keyspace so that type
clashes behave like they do on a real server (a primitive applied to a
key of another kind raises :class:`StoreTypeFault`).

Each primitive runs under an asyncio.Lock. An uncontended lock does not
yield to the event loop, so a primitive may complete without suspending;
interleavings between primitives can therefore differ from those against
a networked store.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set, Union

from .core import KVStore
from ..faults import StoreTypeFault

logger = logging.getLogger("keyrel.store.memory")


_Value = Union[str, Set[str]]


class MemoryStore(KVStore):
    """
    In-memory key-value store.

    Scalars and counters are held as strings (counters as decimal
    strings, like Redis), sets as Python sets of strings.
    """

    def __init__(self, key_prefix: str = ""):
        self._key_prefix = key_prefix
        self._data: Dict[str, _Value] = {}
        self._lock = asyncio.Lock()
        super().__init__()

    @property
    def name(self) -> str:
        return "memory"

    async def initialize(self) -> None:
        """Nothing to connect; the keyspace lives in this process."""

    async def shutdown(self) -> None:
        async with self._lock:
            self._data.clear()

    async def flush(self) -> int:
        async with self._lock:
            count = len(self._data)
            self._data.clear()
        logger.debug(f"Flushed {count} keys")
        return count

    def _full_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    def _scalar(self, key: str, operation: str) -> Optional[str]:
        value = self._data.get(key)
        if isinstance(value, set):
            self._stats.errors += 1
            raise StoreTypeFault(key, operation, "set")
        return value

    def _set(self, key: str, operation: str) -> Optional[Set[str]]:
        value = self._data.get(key)
        if value is not None and not isinstance(value, set):
            self._stats.errors += 1
            raise StoreTypeFault(key, operation, "scalar")
        return value

    # -- scalars ---------------------------------------------------------

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            self._stats.reads += 1
            return self._scalar(self._full_key(key), "get")

    async def put(self, key: str, value: Any) -> None:
        full_key = self._full_key(key)
        async with self._lock:
            self._scalar(full_key, "put")
            self._data[full_key] = str(value)
            self._stats.writes += 1

    async def delete(self, key: str) -> bool:
        full_key = self._full_key(key)
        async with self._lock:
            self._scalar(full_key, "delete")
            self._stats.deletes += 1
            return self._data.pop(full_key, None) is not None

    # -- counters --------------------------------------------------------

    async def counter_get(self, key: str) -> int:
        async with self._lock:
            self._stats.counter_ops += 1
            raw = self._scalar(self._full_key(key), "counter_get")
            return int(raw) if raw is not None else 0

    async def counter_set(self, key: str, value: int) -> None:
        full_key = self._full_key(key)
        async with self._lock:
            self._scalar(full_key, "counter_set")
            self._data[full_key] = str(int(value))
            self._stats.counter_ops += 1

    async def counter_increment(self, key: str, delta: int = 1) -> int:
        full_key = self._full_key(key)
        async with self._lock:
            raw = self._scalar(full_key, "counter_increment")
            new_value = (int(raw) if raw is not None else 0) + delta
            self._data[full_key] = str(new_value)
            self._stats.counter_ops += 1
            return new_value

    async def counter_delete(self, key: str) -> bool:
        full_key = self._full_key(key)
        async with self._lock:
            self._scalar(full_key, "counter_delete")
            self._stats.deletes += 1
            return self._data.pop(full_key, None) is not None

    # -- sets ------------------------------------------------------------

    async def set_add(self, key: str, *members: Any) -> int:
        full_key = self._full_key(key)
        async with self._lock:
            current = self._set(full_key, "set_add")
            if not members:
                return 0
            if current is None:
                current = set()
                self._data[full_key] = current
            before = len(current)
            current.update(str(m) for m in members)
            self._stats.set_ops += 1
            return len(current) - before

    async def set_remove(self, key: str, *members: Any) -> int:
        full_key = self._full_key(key)
        async with self._lock:
            current = self._set(full_key, "set_remove")
            self._stats.set_ops += 1
            if not current:
                return 0
            before = len(current)
            current.difference_update(str(m) for m in members)
            removed = before - len(current)
            # Empty sets do not exist, as on Redis
            if not current:
                del self._data[full_key]
            return removed

    async def set_members(self, key: str) -> List[str]:
        async with self._lock:
            self._stats.set_ops += 1
            current = self._set(self._full_key(key), "set_members")
            return list(current) if current else []

    async def set_is_member(self, key: str, member: Any) -> bool:
        async with self._lock:
            self._stats.set_ops += 1
            current = self._set(self._full_key(key), "set_is_member")
            return bool(current) and str(member) in current

    async def set_delete(self, key: str) -> bool:
        full_key = self._full_key(key)
        async with self._lock:
            self._set(full_key, "set_delete")
            self._stats.deletes += 1
            return self._data.pop(full_key, None) is not None

    # -- diagnostics -----------------------------------------------------

    async def stats(self):
        stats = await super().stats()
        stats.size = len(self._data)
        return stats

    def keys(self) -> List[str]:
        """Snapshot of stored keys (prefix stripped), for debugging and tests."""
        prefix_len = len(self._key_prefix)
        return sorted(k[prefix_len:] for k in self._data)
