"""
Key/value persistence backends.

The serialized local store sits in front of one of these; nothing else in
the package talks to a backend directly.
"""

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from ..core.exceptions import StorageError


logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """
    Abstract string key/value persistence.

    Implementations raise StorageError on I/O failure.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """
        Read the raw string stored under a key.

        Args:
            key: Storage key

        Returns:
            Stored string, or None if the key is absent
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Store a raw string under a key, replacing any existing value.

        Args:
            key: Storage key
            value: String to store
        """
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete a key. Removing an absent key is not an error."""
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        """List all stored keys."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Delete every key."""
        pass

    def close(self) -> None:
        """Release any held resources."""
        pass


class MemoryKeyValueStore(KeyValueStore):
    """In-memory key/value store, used for tests and throwaway sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data.keys())

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


class SqliteKeyValueStore(KeyValueStore):
    """
    SQLite-backed key/value store.

    A single ``kv`` table holds one row per key. The connection is shared
    across threads; the serialized local store guarantees only one operation
    runs at a time.
    """

    def __init__(self, db_path: Path, auto_init: bool = True):
        """
        Initialize the SQLite key/value store.

        Args:
            db_path: Path to the SQLite database file
            auto_init: Whether to create tables automatically
        """
        self.db_path = Path(db_path)
        self.conn = None
        self._connect()

        if auto_init:
            self._init_schema()

    def _connect(self) -> None:
        """Establish database connection."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Cannot open key/value database {self.db_path}: {e}") from e
        self.conn.row_factory = sqlite3.Row
        logger.debug(f"Connected to SQLite key/value store: {self.db_path}")

    def _init_schema(self) -> None:
        """Initialize database schema."""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
            )
        """)
        self.conn.commit()
        logger.debug("Initialized key/value schema")

    def get(self, key: str) -> Optional[str]:
        try:
            row = self.conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read {key}: {e}") from e
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        try:
            self.conn.execute(
                """
                INSERT INTO kv (key, value, updated_at)
                VALUES (?, ?, strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, value),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise StorageError(f"Failed to write {key}: {e}") from e

    def remove(self, key: str) -> None:
        try:
            self.conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            self.conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to remove {key}: {e}") from e

    def keys(self) -> List[str]:
        try:
            rows = self.conn.execute("SELECT key FROM kv ORDER BY key").fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list keys: {e}") from e
        return [row["key"] for row in rows]

    def clear(self) -> None:
        try:
            self.conn.execute("DELETE FROM kv")
            self.conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to clear key/value store: {e}") from e

    def close(self) -> None:
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.debug("Closed SQLite key/value store")
