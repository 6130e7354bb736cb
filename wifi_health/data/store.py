"""Memory store — key/value blob storage at ~/.wifi-health/memory.db."""

from __future__ import annotations

import os
import sqlite3
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional


ReadCallback = Callable[[Optional[bytes]], None]

_DEFAULT_DB_PATH = os.path.join(
    str(Path.home()), ".wifi-health", "memory.db"
)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS blobs (
    l2_key TEXT NOT NULL,
    name TEXT NOT NULL,
    data BLOB NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (l2_key, name)
);

CREATE TABLE IF NOT EXISTS config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


class MemoryStore(ABC):
    """Blob storage addressed by (l2_key, name).

    ``read`` delivers the stored bytes, or None when nothing is stored, to
    ``callback`` at most once. Callers must not assume the callback has run
    when ``read`` returns. ``write`` is fire-and-forget.
    """

    @abstractmethod
    def read(self, l2_key: str, name: str, callback: ReadCallback) -> None: ...

    @abstractmethod
    def write(self, l2_key: str, name: str, data: bytes) -> None: ...


class SqliteMemoryStore(MemoryStore):
    """Local SQLite memory store."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or _DEFAULT_DB_PATH
        os.makedirs(os.path.dirname(self.db_path), exist_ok=True)
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_db(self) -> None:
        conn = self._get_conn()
        conn.executescript(_SCHEMA)
        # Seed for the device-global storage key, fixed for the life of the db.
        conn.execute(
            "INSERT OR IGNORE INTO config (key, value) VALUES (?, ?)",
            ("l2-key-seed", uuid.uuid4().hex),
        )
        conn.commit()

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    # ── Blobs ────────────────────────────────────────────────────────

    def read(self, l2_key: str, name: str, callback: ReadCallback) -> None:
        callback(self.read_blob(l2_key, name))

    def read_blob(self, l2_key: str, name: str) -> Optional[bytes]:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT data FROM blobs WHERE l2_key = ? AND name = ?",
            (l2_key, name),
        ).fetchone()
        return bytes(row["data"]) if row else None

    def write(self, l2_key: str, name: str, data: bytes) -> None:
        conn = self._get_conn()
        conn.execute(
            """INSERT OR REPLACE INTO blobs (l2_key, name, data, updated_at)
               VALUES (?, ?, ?, ?)""",
            (l2_key, name, sqlite3.Binary(data), datetime.now().isoformat()),
        )
        conn.commit()

    def last_updated(self, l2_key: str, name: str) -> Optional[str]:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT updated_at FROM blobs WHERE l2_key = ? AND name = ?",
            (l2_key, name),
        ).fetchone()
        return row["updated_at"] if row else None

    # ── Config ───────────────────────────────────────────────────────

    def get_config(self, key: str) -> Optional[str]:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT value FROM config WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    def set_config(self, key: str, value: str) -> None:
        conn = self._get_conn()
        conn.execute(
            "INSERT OR REPLACE INTO config (key, value) VALUES (?, ?)",
            (key, value),
        )
        conn.commit()
