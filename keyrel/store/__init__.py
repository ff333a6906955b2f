"""
keyrel store — key-value backends.
"""

from .core import KVStore, StoreStats
from .memory import MemoryStore
from .redis import RedisStore

__all__ = [
    "KVStore",
    "StoreStats",
    "MemoryStore",
    "RedisStore",
]
