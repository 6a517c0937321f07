"""Durable key-value stores backing the palette caches."""
import copy
import json
import aiosqlite
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Protocol


# Default database location
DEFAULT_DB_PATH = Path.home() / ".sitepalette" / "storage.db"


class KVStore(Protocol):
    """Last-write-wins key-value store with no transactions."""

    async def get(self, key: str, default: Any = None) -> Any:
        ...

    async def set(self, key: str, value: Any) -> None:
        ...


class MemoryKVStore:
    """In-process store for tests and throwaway sessions.

    Values are deep-copied on the way in and out so callers never share
    state with the store.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return copy.deepcopy(default)
        return copy.deepcopy(self._data[key])

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def keys(self) -> list:
        return sorted(self._data)


class SQLiteKVStore:
    """Async SQLite store holding JSON-encoded values."""

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database. Defaults to ~/.sitepalette/storage.db
        """
        self.db_path = db_path or DEFAULT_DB_PATH
        self._connection: Optional[aiosqlite.Connection] = None

    async def initialize(self) -> None:
        """Initialize the database, creating tables if needed."""
        # Ensure parent directory exists
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(self.db_path)
        self._connection.row_factory = aiosqlite.Row

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                last_updated TIMESTAMP
            )
        """)

        await self._connection.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    def _require_connection(self) -> aiosqlite.Connection:
        if not self._connection:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._connection

    async def get(self, key: str, default: Any = None) -> Any:
        """Get the value stored under a key.

        Args:
            key: Storage key
            default: Value returned when the key is absent or unreadable

        Returns:
            Decoded value or default
        """
        connection = self._require_connection()

        cursor = await connection.execute(
            "SELECT value FROM kv_store WHERE key = ?",
            (key,)
        )
        row = await cursor.fetchone()

        if row is None:
            return default

        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            return default

    async def set(self, key: str, value: Any) -> None:
        """Insert or replace the value under a key.

        Args:
            key: Storage key
            value: JSON-serializable value
        """
        connection = self._require_connection()

        now = datetime.utcnow().isoformat()

        await connection.execute("""
            INSERT INTO kv_store (key, value, last_updated)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                last_updated = excluded.last_updated
        """, (key, json.dumps(value), now))

        await connection.commit()

    async def delete(self, key: str) -> bool:
        """Delete a key.

        Returns:
            True if deleted, False if not found
        """
        connection = self._require_connection()

        cursor = await connection.execute(
            "DELETE FROM kv_store WHERE key = ?",
            (key,)
        )
        await connection.commit()

        return cursor.rowcount > 0

    async def keys(self) -> list:
        """List stored keys."""
        connection = self._require_connection()

        cursor = await connection.execute("SELECT key FROM kv_store ORDER BY key")
        rows = await cursor.fetchall()

        return [row["key"] for row in rows]
