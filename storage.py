import datetime
import logging
import os
import sqlite3
from contextlib import contextmanager, suppress
from typing import Optional

from errors import PersistenceError

logger = logging.getLogger(__name__)

DEFAULT_KEY = "health-diary-storage"


class BaseStorage:
    """Key-value blob store holding the serialized application state."""

    def __init__(self, key: str = DEFAULT_KEY) -> None:
        self.key = key

    def load(self) -> Optional[str]:
        raise NotImplementedError

    def save(self, blob: str) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class MemoryStorage(BaseStorage):
    """In-process store, used for tests and throwaway sessions."""

    def __init__(self, key: str = DEFAULT_KEY, initial: Optional[str] = None) -> None:
        super().__init__(key)
        self.blobs: dict[str, str] = {}
        if initial is not None:
            self.blobs[key] = initial

    def load(self) -> Optional[str]:
        return self.blobs.get(self.key)

    def save(self, blob: str) -> None:
        self.blobs[self.key] = blob

    def clear(self) -> None:
        self.blobs.pop(self.key, None)


class JsonFileStorage(BaseStorage):
    """Stores the blob as ``<directory>/<key>.json``."""

    def __init__(self, directory: str = ".", key: str = DEFAULT_KEY) -> None:
        super().__init__(key)
        self.directory = directory

    @property
    def path(self) -> str:
        return os.path.join(self.directory, f"{self.key}.json")

    def load(self) -> Optional[str]:
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return f.read()
        except OSError as exc:
            raise PersistenceError(f"could not read {self.path}: {exc}") from exc

    def save(self, blob: str) -> None:
        tmp_path = self.path + ".tmp"
        try:
            os.makedirs(self.directory, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(blob)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            with suppress(OSError):
                os.remove(tmp_path)
            raise PersistenceError(f"could not write {self.path}: {exc}") from exc

    def clear(self) -> None:
        try:
            if os.path.exists(self.path):
                os.remove(self.path)
        except OSError as exc:
            raise PersistenceError(f"could not remove {self.path}: {exc}") from exc


class SqliteStorage(BaseStorage):
    """Stores blobs in a single SQLite key-value table."""

    _TABLE_SQL = """CREATE TABLE IF NOT EXISTS documents (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    );"""

    def __init__(self, db_path: str = "health_diary.db", key: str = DEFAULT_KEY) -> None:
        super().__init__(key)
        self._db_path = db_path
        self._ensure_schema()

    @contextmanager
    def _connection(self):
        try:
            connection = sqlite3.connect(self._db_path)
        except sqlite3.Error as exc:
            raise PersistenceError(f"could not open {self._db_path}: {exc}") from exc
        try:
            yield connection
            connection.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            conn.execute(self._TABLE_SQL)

    def load(self) -> Optional[str]:
        with self._connection() as conn:
            cur = conn.execute("SELECT value FROM documents WHERE key = ?;", (self.key,))
            row = cur.fetchone()
        return row[0] if row else None

    def save(self, blob: str) -> None:
        now = datetime.datetime.now().isoformat(timespec="seconds")
        with self._connection() as conn:
            conn.execute(
                "INSERT INTO documents (key, value, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
                "updated_at = excluded.updated_at;",
                (self.key, blob, now),
            )
        logger.debug("saved %d bytes under %s", len(blob), self.key)

    def clear(self) -> None:
        with self._connection() as conn:
            conn.execute("DELETE FROM documents WHERE key = ?;", (self.key,))

    def updated_at(self) -> Optional[str]:
        with self._connection() as conn:
            cur = conn.execute(
                "SELECT updated_at FROM documents WHERE key = ?;", (self.key,)
            )
            row = cur.fetchone()
        return row[0] if row else None


def open_storage(backend: str, path: str, key: str = DEFAULT_KEY) -> BaseStorage:
    if backend == "sqlite":
        return SqliteStorage(path, key)
    if backend == "json":
        return JsonFileStorage(path, key)
    if backend == "memory":
        return MemoryStorage(key)
    raise ValueError(f"unknown storage backend: {backend}")
