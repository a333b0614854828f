"""A chain state store kept in SQLite, with snapshots and rollback."""

from __future__ import annotations

import os
import sqlite3
import threading
import time
from typing import Optional

from flowemu.errors import EmulatorError, EntityNotFoundError
from flowemu.store import (
    BLOCK_INDEX_STORE_NAME,
    BLOCK_STORE_NAME,
    COLLECTION_STORE_NAME,
    EVENT_STORE_NAME,
    GLOBAL_STORE_NAME,
    LEDGER_STORE_NAME,
    TRANSACTION_RESULT_STORE_NAME,
    TRANSACTION_STORE_NAME,
    DefaultKeyGenerator,
    DefaultStore,
    RollbackProvider,
    SnapshotProvider,
)

IN_MEMORY = ":memory:"
SNAPSHOT_PREFIX = "snapshot_"
DATABASE_FILE_NAME = "emulator.sqlite"

_TABLES = (
    GLOBAL_STORE_NAME,
    BLOCK_INDEX_STORE_NAME,
    BLOCK_STORE_NAME,
    COLLECTION_STORE_NAME,
    TRANSACTION_STORE_NAME,
    TRANSACTION_RESULT_STORE_NAME,
    EVENT_STORE_NAME,
    LEDGER_STORE_NAME,
)

_ROLLBACK_TABLES = (
    LEDGER_STORE_NAME,
    BLOCK_STORE_NAME,
    BLOCK_INDEX_STORE_NAME,
    EVENT_STORE_NAME,
    TRANSACTION_STORE_NAME,
    COLLECTION_STORE_NAME,
    TRANSACTION_RESULT_STORE_NAME,
)

_UNSUPPORTED = "snapshot is not supported with current configuration"


def _quote(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _connect(target: str) -> sqlite3.Connection:
    return sqlite3.connect(target, uri=True, check_same_thread=False, isolation_level=None)


def _init_db(conn: sqlite3.Connection) -> None:
    conn.execute("BEGIN")
    try:
        for table in _TABLES:
            conn.execute(
                f"CREATE TABLE IF NOT EXISTS {_quote(table)} ("
                "key TEXT NOT NULL, version INTEGER NOT NULL, value TEXT, "
                "height INTEGER NOT NULL, UNIQUE(key, version, height))"
            )
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def _table_count(conn: sqlite3.Connection) -> int:
    row = conn.execute("SELECT count(name) FROM sqlite_master WHERE type='table'").fetchone()
    return int(row[0])


class SqliteStore(DefaultStore, SnapshotProvider, RollbackProvider):
    """Stores hex-encoded values in SQLite tables keyed by key, version and height.

    ``url`` is ``":memory:"``, a database file, or a directory that holds
    ``emulator.sqlite`` and the snapshot files.
    """

    def __init__(self, url: str) -> None:
        super().__init__(DefaultKeyGenerator())
        db_url = url
        if url != IN_MEMORY:
            try:
                is_dir = os.path.isdir(os.stat(url) and url)
            except OSError as exc:
                reason = (exc.strerror or str(exc)).lower()
                raise FileNotFoundError(
                    f"unable to find database file: stat {url}: {reason}"
                ) from exc
            if is_dir:
                db_url = os.path.join(url, DATABASE_FILE_NAME)

        db = _connect(db_url)
        try:
            _init_db(db)
        except BaseException:
            db.close()
            raise

        self.url = url
        self._db = db
        self._lock = threading.RLock()
        self._snapshot_names: list[str] = []
        self._memory_snapshots: dict[str, sqlite3.Connection] = {}
        self._id = time.time_ns()

    @property
    def db(self) -> sqlite3.Connection:
        """The open database connection."""
        return self._db

    def __enter__(self) -> "SqliteStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def rollback_to_block_height(self, height: int) -> None:
        if self.current_height <= height:
            raise ValueError("rollback height should be less then current height")
        with self._lock:
            self._db.execute("BEGIN")
            try:
                for table in _ROLLBACK_TABLES:
                    self._db.execute(f"DELETE FROM {_quote(table)} WHERE height > ?", (height,))
            except BaseException:
                self._db.execute("ROLLBACK")
                raise
            self._db.execute("COMMIT")
            self.set_block_height(height)

    def _memory_uri(self, name: str) -> str:
        return f"file:{name}{self._id}?mode=memory&cache=shared"

    def snapshots(self) -> list[str]:
        if not self.supports_snapshots_with_current_config():
            raise EmulatorError(_UNSUPPORTED)
        if self.url == IN_MEMORY:
            return list(self._snapshot_names)
        return [
            entry.name[len(SNAPSHOT_PREFIX):]
            for entry in os.scandir(self.url)
            if not entry.is_dir() and entry.name.startswith(SNAPSHOT_PREFIX)
        ]

    def load_snapshot(self, name: str) -> None:
        if not self.supports_snapshots_with_current_config():
            raise EmulatorError(_UNSUPPORTED)

        with self._lock:
            if self.url == IN_MEMORY:
                db = _connect(self._memory_uri(name))
                # an in-memory database springs into being empty when opened
                if _table_count(db) == 0:
                    db.close()
                    raise EntityNotFoundError(f"snapshot {name} does not exist")
            else:
                path = os.path.join(self.url, SNAPSHOT_PREFIX + name)
                if not os.path.exists(path):
                    raise EntityNotFoundError(f"snapshot {name} does not exist")
                db = _connect(path)

            self._db.close()
            self._db = db

    def create_snapshot(self, name: str) -> None:
        if not self.supports_snapshots_with_current_config():
            raise EmulatorError(_UNSUPPORTED)

        with self._lock:
            if self.url == IN_MEMORY:
                target = self._memory_uri(name)
                if name not in self._memory_snapshots:
                    # holding a connection keeps the shared in-memory database alive
                    self._memory_snapshots[name] = _connect(target)
            else:
                target = os.path.join(self.url, SNAPSHOT_PREFIX + name)

            escaped = target.replace("'", "''")
            self._db.execute(f"VACUUM main INTO '{escaped}'")
            self._snapshot_names.append(name)

    def supports_snapshots_with_current_config(self) -> bool:
        if self.url == IN_MEMORY:
            return True
        return os.path.isdir(self.url)

    def get_bytes(self, store: str, key: bytes) -> bytes:
        return self.get_bytes_at_version(store, key, 0)

    def set_bytes(self, store: str, key: bytes, value: bytes) -> None:
        self.set_bytes_with_version(store, key, value, 0)

    def set_bytes_with_version(self, store: str, key: bytes, value: bytes, version: int) -> None:
        # the global table is not tied to any block height
        height = 0 if store == GLOBAL_STORE_NAME else self.current_height
        self.set_bytes_with_version_and_height(store, key, value, version, height)

    def get_bytes_at_version(self, store: str, key: bytes, version: int) -> bytes:
        with self._lock:
            row = self._db.execute(
                f"SELECT value FROM {_quote(store)} WHERE key = ? AND version <= ? "
                "ORDER BY version DESC LIMIT 1",
                (bytes(key).hex(), version),
            ).fetchone()
        if row is None:
            raise EntityNotFoundError()
        return bytes.fromhex(row[0] or "")

    def set_bytes_with_version_and_height(
        self, store: str, key: bytes, value: bytes, version: int, height: int
    ) -> None:
        with self._lock:
            self._db.execute(
                f"INSERT INTO {_quote(store)} (key, version, value, height) VALUES (?, ?, ?, ?) "
                "ON CONFLICT(key, version, height) DO UPDATE SET value=excluded.value",
                (bytes(key).hex(), version, bytes(value).hex(), height),
            )

    def close(self) -> None:
        with self._lock:
            self._db.close()
            for conn in self._memory_snapshots.values():
                conn.close()
            self._memory_snapshots.clear()


def _optional_url(url: Optional[str]) -> str:
    return IN_MEMORY if url is None else url