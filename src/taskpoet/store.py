"""
Ordered, transactional key-value storage.

Keys and values are strings. Data is grouped in named buckets; every read
happens inside `view()` and every write inside `update()`, each of which
yields a Transaction bound to one bucket. An update that raises is rolled
back as a whole.
"""
from __future__ import annotations

import logging
import os
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from threading import RLock
from typing import Dict, Generator, Iterator, List, Optional, Tuple

from .errors import NotFoundError, TaskPoetError
from .settings import Settings

logger = logging.getLogger(__name__)


class ReadOnlyTransactionError(TaskPoetError):
    """A write was attempted through a view transaction."""


# PUBLIC_INTERFACE
class Transaction(ABC):
    """Operations available on one bucket inside a view or update."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value stored at key, or None."""

    @abstractmethod
    def put(self, key: str, value: str) -> None:
        """Insert or replace the value at key."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove key. Return True if it existed."""

    @abstractmethod
    def scan(self, prefix: str = "") -> List[Tuple[str, str]]:
        """Return (key, value) pairs whose key starts with prefix, ordered by key."""

    def keys(self, prefix: str = "") -> List[str]:
        return [k for k, _ in self.scan(prefix)]


# PUBLIC_INTERFACE
class KVStore(ABC):
    """Abstract storage engine contract."""

    @abstractmethod
    def ensure_bucket(self, name: str) -> None:
        """Create the bucket if it does not exist yet."""

    @abstractmethod
    def view(self, bucket: str) -> Iterator[Transaction]:
        """Context manager yielding a read-only transaction."""

    @abstractmethod
    def update(self, bucket: str) -> Iterator[Transaction]:
        """Context manager yielding a read-write transaction, committed on clean exit."""

    def close(self) -> None:
        """Release engine resources."""


class _MemoryTransaction(Transaction):
    def __init__(self, data: Dict[str, str], writable: bool) -> None:
        self._data = data
        self._writable = writable

    def _check_writable(self) -> None:
        if not self._writable:
            raise ReadOnlyTransactionError("cannot write in a read-only transaction")

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        self._check_writable()
        self._data[key] = value

    def delete(self, key: str) -> bool:
        self._check_writable()
        return self._data.pop(key, None) is not None

    def scan(self, prefix: str = "") -> List[Tuple[str, str]]:
        return sorted((k, v) for k, v in self._data.items() if k.startswith(prefix))


# PUBLIC_INTERFACE
class MemoryKVStore(KVStore):
    """
    Thread-safe in-memory engine suitable for testing.

    Views work on a snapshot of the bucket. Updates work on a copy that
    replaces the bucket only when the block exits cleanly.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._buckets: Dict[str, Dict[str, str]] = {}

    def _bucket(self, name: str) -> Dict[str, str]:
        try:
            return self._buckets[name]
        except KeyError:
            raise NotFoundError(f"bucket not found: {name}") from None

    def ensure_bucket(self, name: str) -> None:
        with self._lock:
            self._buckets.setdefault(name, {})

    @contextmanager
    def view(self, bucket: str) -> Generator[Transaction, None, None]:
        with self._lock:
            snapshot = dict(self._bucket(bucket))
        yield _MemoryTransaction(snapshot, writable=False)

    @contextmanager
    def update(self, bucket: str) -> Generator[Transaction, None, None]:
        with self._lock:
            working = dict(self._bucket(bucket))
            yield _MemoryTransaction(working, writable=True)
            self._buckets[bucket] = working


class _SQLiteTransaction(Transaction):
    def __init__(self, conn: sqlite3.Connection, bucket: str, writable: bool) -> None:
        self._conn = conn
        self._bucket = bucket
        self._writable = writable

    def _check_writable(self) -> None:
        if not self._writable:
            raise ReadOnlyTransactionError("cannot write in a read-only transaction")

    def get(self, key: str) -> Optional[str]:
        row = self._conn.execute(
            "SELECT value FROM kv WHERE bucket = ? AND key = ?", (self._bucket, key)
        ).fetchone()
        return None if row is None else str(row[0])

    def put(self, key: str, value: str) -> None:
        self._check_writable()
        self._conn.execute(
            "INSERT OR REPLACE INTO kv (bucket, key, value) VALUES (?, ?, ?)",
            (self._bucket, key, value),
        )

    def delete(self, key: str) -> bool:
        self._check_writable()
        cur = self._conn.execute("DELETE FROM kv WHERE bucket = ? AND key = ?", (self._bucket, key))
        return cur.rowcount > 0

    def scan(self, prefix: str = "") -> List[Tuple[str, str]]:
        rows = self._conn.execute(
            """
            SELECT key, value FROM kv
            WHERE bucket = ? AND substr(key, 1, ?) = ?
            ORDER BY key
            """,
            (self._bucket, len(prefix), prefix),
        ).fetchall()
        return [(str(k), str(v)) for k, v in rows]


# PUBLIC_INTERFACE
class SQLiteKVStore(KVStore):
    """
    Single-file engine on sqlite3.

    Each view or update runs on its own connection. Writes take the database
    lock up front (BEGIN IMMEDIATE), so there is one writer at a time while
    readers keep seeing the last committed state.
    """

    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._init_db()

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path, isolation_level=None)
        try:
            yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("CREATE TABLE IF NOT EXISTS buckets (name TEXT PRIMARY KEY)")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    bucket TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    PRIMARY KEY (bucket, key)
                )
                """
            )
        logger.debug("opened sqlite store at %s", self._db_path)

    @staticmethod
    def _require_bucket(conn: sqlite3.Connection, name: str) -> None:
        row = conn.execute("SELECT 1 FROM buckets WHERE name = ?", (name,)).fetchone()
        if row is None:
            raise NotFoundError(f"bucket not found: {name}")

    def ensure_bucket(self, name: str) -> None:
        with self._conn() as conn:
            conn.execute("INSERT OR IGNORE INTO buckets (name) VALUES (?)", (name,))

    @contextmanager
    def view(self, bucket: str) -> Generator[Transaction, None, None]:
        with self._conn() as conn:
            conn.execute("BEGIN")
            try:
                self._require_bucket(conn, bucket)
                yield _SQLiteTransaction(conn, bucket, writable=False)
            finally:
                conn.execute("ROLLBACK")

    @contextmanager
    def update(self, bucket: str) -> Generator[Transaction, None, None]:
        with self._conn() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                self._require_bucket(conn, bucket)
                yield _SQLiteTransaction(conn, bucket, writable=True)
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")


# PUBLIC_INTERFACE
def open_store(settings: Settings) -> KVStore:
    """
    Build the storage engine selected by settings.
    - memory: MemoryKVStore
    - sqlite: SQLiteKVStore at settings.db_path
    """
    if settings.store_backend == "memory":
        logger.info("using in-memory store")
        return MemoryKVStore()
    logger.info("using sqlite store at %s", settings.db_path)
    return SQLiteKVStore(settings.db_path)
