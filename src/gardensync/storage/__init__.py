"""
On-device persistence: key/value backends, the serialized local store and
the offline operation queue.
"""

from .kv_store import KeyValueStore, MemoryKeyValueStore, SqliteKeyValueStore
from .local_store import SerializedLocalStore
from .offline_queue import OfflineQueue, ReplayResult

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
    "SerializedLocalStore",
    "OfflineQueue",
    "ReplayResult",
]
