from __future__ import annotations

import asyncio
import json
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from .exceptions import StoreError
from .sqlite_utils import connect_sqlite, immediate_transaction
from .store import append_to_record
from .time_utils import now_iso

HOLE_STATE_SCHEMA_VERSION = 1
SESSIONS_TABLE = "user_sessions"
HOLES_TABLE = "holes"
_TABLES = (SESSIONS_TABLE, HOLES_TABLE)


class SqliteCollection:
    """``KeyValueStore`` view over one table of a ``HoleStateStore``."""

    def __init__(self, store: "HoleStateStore", table: str) -> None:
        if table not in _TABLES:
            raise ValueError(f"unknown table: {table}")
        self._store = store
        self._table = table

    @property
    def table(self) -> str:
        return self._table

    async def get(self, key: str) -> Optional[dict[str, Any]]:
        return await self._store._run(self._store._get_sync, self._table, key)

    async def upsert(self, key: str, fields: Mapping[str, Any]) -> dict[str, Any]:
        return await self._store._run(
            self._store._upsert_sync, self._table, key, dict(fields)
        )

    async def append_if_absent(self, key: str, list_field: str, value: Any) -> int:
        return await self._store._run(
            self._store._append_if_absent_sync, self._table, key, list_field, value
        )

    async def count(self) -> int:
        return await self._store._run(self._store._count_sync, self._table)


class HoleStateStore:
    """Durable sqlite store for user sessions and holes.

    All sqlite work runs on a single worker thread, and each read-modify-write
    holds the database write lock, so every collection call is atomic even
    with other processes sharing the file.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="telehole-state"
        )
        self._connection: Optional[sqlite3.Connection] = None
        self.sessions = SqliteCollection(self, SESSIONS_TABLE)
        self.holes = SqliteCollection(self, HOLES_TABLE)

    @property
    def path(self) -> Path:
        return self._db_path

    async def initialize(self) -> None:
        await self._run(self._ensure_initialized_sync)

    async def close(self) -> None:
        await self._run(self._close_sync)
        self._executor.shutdown(wait=True)

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, func, *args)
        except sqlite3.Error as exc:
            raise StoreError(f"sqlite store failure: {exc}") from exc

    def _connection_sync(self) -> sqlite3.Connection:
        if self._connection is None:
            self._connection = connect_sqlite(self._db_path)
            self._ensure_schema(self._connection)
        return self._connection

    def _ensure_initialized_sync(self) -> None:
        self._connection_sync()

    def _close_sync(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        with immediate_transaction(conn):
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_info (
                    version INTEGER NOT NULL
                )
                """
            )
            row = conn.execute(
                "SELECT version FROM schema_info ORDER BY version DESC LIMIT 1"
            ).fetchone()
            if row is None:
                conn.execute(
                    "INSERT INTO schema_info(version) VALUES (?)",
                    (HOLE_STATE_SCHEMA_VERSION,),
                )
            for table in _TABLES:
                conn.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        key TEXT PRIMARY KEY,
                        value_json TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )

    def _read_record(
        self, conn: sqlite3.Connection, table: str, key: str
    ) -> Optional[dict[str, Any]]:
        row = conn.execute(
            f"SELECT value_json FROM {table} WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return None
        raw = row["value_json"]
        try:
            data = json.loads(raw) if isinstance(raw, str) and raw else {}
        except json.JSONDecodeError:
            data = {}
        return data if isinstance(data, dict) else {}

    def _write_record(
        self,
        conn: sqlite3.Connection,
        table: str,
        key: str,
        record: dict[str, Any],
    ) -> None:
        conn.execute(
            f"""
            INSERT INTO {table} (key, value_json, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value_json=excluded.value_json,
                updated_at=excluded.updated_at
            """,
            (key, json.dumps(record, sort_keys=True), now_iso()),
        )

    def _get_sync(self, table: str, key: str) -> Optional[dict[str, Any]]:
        conn = self._connection_sync()
        return self._read_record(conn, table, key)

    def _upsert_sync(
        self, table: str, key: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        conn = self._connection_sync()
        with immediate_transaction(conn):
            record = self._read_record(conn, table, key) or {}
            record.update(fields)
            self._write_record(conn, table, key, record)
        return record

    def _append_if_absent_sync(
        self, table: str, key: str, list_field: str, value: Any
    ) -> int:
        conn = self._connection_sync()
        with immediate_transaction(conn):
            record = self._read_record(conn, table, key) or {}
            index = append_to_record(record, list_field, value)
            self._write_record(conn, table, key, record)
        return index

    def _count_sync(self, table: str) -> int:
        conn = self._connection_sync()
        row = conn.execute(f"SELECT COUNT(*) AS total FROM {table}").fetchone()
        return int(row["total"] or 0) if row is not None else 0
