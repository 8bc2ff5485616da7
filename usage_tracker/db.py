from __future__ import annotations

import sqlite3
import threading
from pathlib import Path


class Database:
    """Thin SQLite access layer for persisted records, alarms and bot markers."""

    def __init__(self, db_path: str | Path) -> None:
        # Calls arrive from asyncio.to_thread workers, so the connection is shared under a lock.
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._closed = False

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._conn.close()
            self._closed = True

    def initialize(self) -> None:
        # kv: JSON documents keyed like the extension's storage area.
        # alarms: pending scheduler wake-ups, epoch milliseconds.
        # meta: small key/value store for scheduler and cooldown markers.
        with self._lock:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS kv (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS alarms (
                  name TEXT PRIMARY KEY,
                  fire_at INTEGER NOT NULL
                );

                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )
            self._conn.commit()

    def get_value(self, key: str) -> str | None:
        with self._lock:
            row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return str(row["value"])

    def set_value(self, key: str, value: str) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO kv (key, value)
                VALUES (?, ?)
                ON CONFLICT(key)
                DO UPDATE SET value=excluded.value
                """,
                (key, value),
            )
            self._conn.commit()

    def delete_values(self, keys: list[str]) -> None:
        if not keys:
            return
        with self._lock:
            self._conn.executemany("DELETE FROM kv WHERE key = ?", [(key,) for key in keys])
            self._conn.commit()

    def list_keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT key FROM kv WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                (_escape_like(prefix) + "%",),
            ).fetchall()
        return [str(row["key"]) for row in rows]

    def dump_values(self) -> dict[str, str]:
        with self._lock:
            rows = self._conn.execute("SELECT key, value FROM kv ORDER BY key").fetchall()
        return {str(row["key"]): str(row["value"]) for row in rows}

    def clear_values(self) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM kv")
            self._conn.commit()

    def set_alarm(self, name: str, fire_at: int) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO alarms (name, fire_at)
                VALUES (?, ?)
                ON CONFLICT(name)
                DO UPDATE SET fire_at=excluded.fire_at
                """,
                (name, fire_at),
            )
            self._conn.commit()

    def delete_alarm(self, name: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM alarms WHERE name = ?", (name,))
            self._conn.commit()

    def list_alarms(self) -> list[tuple[str, int]]:
        with self._lock:
            rows = self._conn.execute("SELECT name, fire_at FROM alarms ORDER BY fire_at").fetchall()
        return [(str(row["name"]), int(row["fire_at"])) for row in rows]

    def get_meta(self, key: str) -> str | None:
        with self._lock:
            row = self._conn.execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return str(row["value"])

    def set_meta(self, key: str, value: str) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO meta (key, value)
                VALUES (?, ?)
                ON CONFLICT(key)
                DO UPDATE SET value=excluded.value
                """,
                (key, value),
            )
            self._conn.commit()


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so key prefixes match literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
