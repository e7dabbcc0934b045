"""SQLite storage backend.

Keeps all keys in a single SQLite database file, which is convenient when the
cache is shared by several processes on one host.
"""

import contextlib
import sqlite3
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Optional

from license_auditor.storages.base import FileStorage, validate_path


class SQLiteStorage(FileStorage):
    """SQLite backed key/blob storage.

    Attributes:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: Optional[Path] = None) -> None:
        """Initialize the storage.

        Args:
            db_path: Path to SQLite database. If None, uses
                ~/.cache/license_auditor/storage.db.
        """
        if db_path is None:
            cache_dir = Path.home() / ".cache" / "license_auditor"
            cache_dir.mkdir(parents=True, exist_ok=True)
            db_path = cache_dir / "storage.db"
        else:
            db_path.parent.mkdir(parents=True, exist_ok=True)

        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._init_database()

    def __enter__(self) -> "SQLiteStorage":
        """Enter context manager, keeping connection open."""
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager, closing connection."""
        self.close()

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    @contextlib.contextmanager
    def _connect(self):
        """Get a database connection.

        If used as a context manager (with statement), reuses the existing
        connection. Otherwise, creates a new one and closes it after use.
        SQLite operational errors (locked or unreadable database) are raised
        as OSError.
        """
        try:
            if self._conn:
                with self._lock:
                    yield self._conn
            else:
                conn = sqlite3.connect(self.db_path)
                try:
                    yield conn
                finally:
                    conn.close()
        except sqlite3.OperationalError as e:
            raise OSError(f"SQLite storage '{self.db_path}' failed: {e}") from e

    def _init_database(self) -> None:
        """Initialize the database schema if it doesn't exist."""
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS storage (
                    path TEXT PRIMARY KEY,
                    data BLOB NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.commit()

    def read(self, path: str) -> bytes:
        validate_path(path)
        with self._connect() as conn:
            row = conn.execute("SELECT data FROM storage WHERE path = ?", (path,)).fetchone()

        if row is None:
            raise FileNotFoundError(f"No entry stored at '{path}'")
        return bytes(row[0])

    def write(self, path: str, data: bytes) -> None:
        validate_path(path)
        with self._connect() as conn:
            # REPLACE handles both insert and update in one statement
            conn.execute(
                "REPLACE INTO storage (path, data, updated_at) VALUES (?, ?, ?)",
                (path, sqlite3.Binary(data), datetime.now(UTC).isoformat()),
            )
            conn.commit()

    def exists(self, path: str) -> bool:
        validate_path(path)
        with self._connect() as conn:
            row = conn.execute("SELECT 1 FROM storage WHERE path = ?", (path,)).fetchone()
        return row is not None

    def delete(self, path: str) -> bool:
        validate_path(path)
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM storage WHERE path = ?", (path,))
            conn.commit()
            return cursor.rowcount > 0

    def list_paths(self, prefix: Optional[str] = None) -> list[str]:
        with self._connect() as conn:
            if prefix:
                rows = conn.execute(
                    "SELECT path FROM storage WHERE substr(path, 1, ?) = ? ORDER BY path",
                    (len(prefix), prefix),
                ).fetchall()
            else:
                rows = conn.execute("SELECT path FROM storage ORDER BY path").fetchall()
        return [row[0] for row in rows]

    def info(self) -> dict:
        """Get storage statistics.

        Returns:
            Dictionary with the database path, entry count and file size in bytes.
        """
        with self._connect() as conn:
            count = conn.execute("SELECT COUNT(*) FROM storage").fetchone()[0]

        size_bytes = self.db_path.stat().st_size if self.db_path.exists() else 0

        return {
            "path": str(self.db_path),
            "count": count,
            "size_bytes": size_bytes,
        }
