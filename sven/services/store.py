"""SQLite-backed storage for encrypted secrets.

The store only ever sees ciphertext. Keys are kept in plain text so they can
be listed without unlocking anything.
"""

import logging
import sqlite3
from pathlib import Path
from types import TracebackType

from sven.exceptions import PersistenceError

logger = logging.getLogger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS variables (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS meta (
        name TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
)


class SecretStore:
    """Durable key -> ciphertext table.

    A store is bound to the thread that opened it (sqlite3's default), which
    suits the daemon: the persistence worker opens its own store.
    """

    def __init__(self, db_path: Path) -> None:
        """Open (and create if needed) the store.

        Args:
            db_path: Path to the SQLite database file.

        Raises:
            PersistenceError: If the database cannot be opened.
        """
        self._db_path = db_path
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(db_path))
            with self._conn:
                for statement in SCHEMA:
                    self._conn.execute(statement)
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"Cannot open secret store {db_path}: {e}") from e

    @property
    def db_path(self) -> Path:
        """Get the database path."""
        return self._db_path

    def put_encrypted(self, key: str, ciphertext: str) -> None:
        """Insert or replace the record for key."""
        try:
            with self._conn:
                self._conn.execute(
                    "INSERT OR REPLACE INTO variables (key, value) VALUES (?, ?)",
                    (key, ciphertext),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to store {key}: {e}") from e

    def delete(self, key: str) -> None:
        """Delete the record for key. Missing keys are ignored."""
        try:
            with self._conn:
                self._conn.execute("DELETE FROM variables WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to delete {key}: {e}") from e

    def list_keys(self) -> list[str]:
        """List all keys in key order."""
        try:
            rows = self._conn.execute("SELECT key FROM variables ORDER BY key").fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to list keys: {e}") from e
        return [row[0] for row in rows]

    def list_all(self) -> list[tuple[str, str]]:
        """List all (key, ciphertext) pairs in key order."""
        try:
            rows = self._conn.execute(
                "SELECT key, value FROM variables ORDER BY key"
            ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to read secrets: {e}") from e
        return [(row[0], row[1]) for row in rows]

    def get_meta(self, name: str) -> str | None:
        """Get a metadata value, or None if unset."""
        try:
            row = self._conn.execute(
                "SELECT value FROM meta WHERE name = ?", (name,)
            ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to read metadata {name}: {e}") from e
        return row[0] if row else None

    def set_meta(self, name: str, value: str) -> None:
        """Set a metadata value."""
        try:
            with self._conn:
                self._conn.execute(
                    "INSERT OR REPLACE INTO meta (name, value) VALUES (?, ?)",
                    (name, value),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to write metadata {name}: {e}") from e

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> "SecretStore":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
