"""
keyrel store — Core types and the key-value primitive contract.

The mapping layer only ever talks to a store through the primitives
declared on :class:`KVStore`: scalar get/put/delete, atomic counters,
and unordered string sets.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# ============================================================================
# Store Stats
# ============================================================================

@dataclass
class StoreStats:
    """Aggregate store statistics for observability."""
    reads: int = 0
    writes: int = 0
    deletes: int = 0
    counter_ops: int = 0
    set_ops: int = 0
    errors: int = 0
    size: int = 0               # Current number of keys (when known)
    backend: str = "unknown"
    uptime_seconds: float = 0.0

    @property
    def total_operations(self) -> int:
        """Total number of operations."""
        return self.reads + self.writes + self.deletes + self.counter_ops + self.set_ops

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for diagnostics."""
        return {
            "reads": self.reads,
            "writes": self.writes,
            "deletes": self.deletes,
            "counter_ops": self.counter_ops,
            "set_ops": self.set_ops,
            "errors": self.errors,
            "size": self.size,
            "backend": self.backend,
            "uptime_seconds": round(self.uptime_seconds, 2),
            "total_operations": self.total_operations,
        }


# ============================================================================
# Store Backend Protocol
# ============================================================================

class KVStore(ABC):
    """
    Abstract key-value store. Defines the primitive surface.

    Values cross this boundary as strings (scalars and set members) or
    ints (counters). Backends own their consistency and durability; the
    mapping layer never assumes multi-key atomicity.
    """

    def __init__(self) -> None:
        self._stats = StoreStats(backend=self.name)
        self._start_time = time.monotonic()

    # -- lifecycle -------------------------------------------------------

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize backend resources (connection pools, etc.)."""
        ...

    @abstractmethod
    async def shutdown(self) -> None:
        """Clean up backend resources."""
        ...

    @abstractmethod
    async def flush(self) -> int:
        """
        Remove every key owned by this store.

        Returns:
            Number of keys removed.
        """
        ...

    # -- scalars ---------------------------------------------------------

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the scalar at ``key`` or None."""
        ...

    @abstractmethod
    async def put(self, key: str, value: Any) -> None:
        """Store ``str(value)`` at ``key``."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Delete a scalar key.

        Returns True if the key existed.
        """
        ...

    # -- counters --------------------------------------------------------

    @abstractmethod
    async def counter_get(self, key: str) -> int:
        """Return the counter at ``key``; absent counters read as 0."""
        ...

    @abstractmethod
    async def counter_set(self, key: str, value: int) -> None:
        ...

    @abstractmethod
    async def counter_increment(self, key: str, delta: int = 1) -> int:
        """Atomically add ``delta`` and return the new value."""
        ...

    @abstractmethod
    async def counter_delete(self, key: str) -> bool:
        ...

    # -- sets ------------------------------------------------------------

    @abstractmethod
    async def set_add(self, key: str, *members: Any) -> int:
        """
        Add members to the set at ``key``.

        Returns the number of members that were not already present.
        """
        ...

    @abstractmethod
    async def set_remove(self, key: str, *members: Any) -> int:
        """
        Remove members from the set at ``key``.

        Returns the number of members actually removed.
        """
        ...

    @abstractmethod
    async def set_members(self, key: str) -> List[str]:
        """Return the members of the set at ``key`` (empty if absent)."""
        ...

    @abstractmethod
    async def set_is_member(self, key: str, member: Any) -> bool:
        ...

    @abstractmethod
    async def set_delete(self, key: str) -> bool:
        ...

    # -- diagnostics -----------------------------------------------------

    async def stats(self) -> StoreStats:
        """Get backend statistics."""
        self._stats.uptime_seconds = time.monotonic() - self._start_time
        return self._stats

    async def health_check(self) -> bool:
        """Whether the backend is reachable."""
        return True

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name for diagnostics."""
        ...

    @property
    def is_distributed(self) -> bool:
        """Whether this backend is shared between processes."""
        return False
