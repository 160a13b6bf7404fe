"""Key/value persistence port and its backends.

The Endpoint Manager only needs ``get``/``set``/``delete`` on JSON-compatible
values; ``keys`` lets the state store enumerate endpoints.

- InMemoryPersistence: thread-safe dict, for tests and single-process use
- SQLitePersistence: file-backed via aiosqlite, survives restarts

Factory:
- create_persistence() builds a backend from WAYPOST_STORAGE_BACKEND
  and WAYPOST_STORAGE_PATH (default: memory, waypost_state.db).
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import copy
import json
import os
import threading
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol, cast, runtime_checkable

import aiosqlite

WAYPOST_STORAGE_BACKEND_ENV = "WAYPOST_STORAGE_BACKEND"
WAYPOST_STORAGE_PATH_ENV = "WAYPOST_STORAGE_PATH"
DEFAULT_DB_PATH = "waypost_state.db"
OPTIONS_TABLE = "options"


@runtime_checkable
class PersistencePort(Protocol):
    """Minimal option storage the host platform provides.

    Values must be JSON-compatible (dicts, lists, strings, numbers, booleans).
    """

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under ``key``, or ``default``."""
        ...

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        ...

    def delete(self, key: str) -> bool:
        """Remove ``key``; True if something was deleted."""
        ...

    def keys(self, prefix: str = "") -> list[str]:
        """Stored keys starting with ``prefix``, sorted."""
        ...


class InMemoryPersistence:
    """In-memory PersistencePort.

    Values are deep-copied on the way in and out so callers never share
    mutable state with the store. Thread-safe using an RLock.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._lock = threading.RLock()
        self._data: dict[str, Any] = copy.deepcopy(dict(initial or {}))

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            if key not in self._data:
                return default
            return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> bool:
        with self._lock:
            if key not in self._data:
                return False
            del self._data[key]
            return True

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


def _run_sync(coro: Any) -> Any:
    """Run an async coroutine from sync code (creates new loop or uses existing)."""
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(asyncio.run, coro)
        return future.result()


class SQLitePersistence:
    """SQLite-backed PersistencePort; values are stored as JSON text.

    Uses aiosqlite; sync methods wrap async calls so the backend conforms to
    the sync PersistencePort protocol. Call from sync code only (or from a
    dedicated thread when an event loop is running).
    """

    def __init__(self, db_path: str | Path = DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    @property
    def db_path(self) -> Path:
        return self._db_path

    async def _ensure_table(self, conn: aiosqlite.Connection) -> None:
        await conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {OPTIONS_TABLE} (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        await conn.commit()

    async def _get_impl(self, key: str) -> tuple[bool, Any]:
        async with aiosqlite.connect(self._db_path) as conn:
            await self._ensure_table(conn)
            cursor = await conn.execute(
                f"SELECT value FROM {OPTIONS_TABLE} WHERE key = ?", (key,)
            )
            row = await cursor.fetchone()
            if row is None:
                return False, None
            return True, json.loads(row[0])

    async def _set_impl(self, key: str, value: Any) -> None:
        payload = json.dumps(value, sort_keys=True)
        updated_at = datetime.now(timezone.utc).isoformat()
        async with aiosqlite.connect(self._db_path) as conn:
            await self._ensure_table(conn)
            await conn.execute(
                f"""
                INSERT OR REPLACE INTO {OPTIONS_TABLE} (key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                (key, payload, updated_at),
            )
            await conn.commit()

    async def _delete_impl(self, key: str) -> bool:
        async with aiosqlite.connect(self._db_path) as conn:
            await self._ensure_table(conn)
            cursor = await conn.execute(f"DELETE FROM {OPTIONS_TABLE} WHERE key = ?", (key,))
            await conn.commit()
            return bool(cursor.rowcount) if cursor.rowcount is not None else False

    async def _keys_impl(self, prefix: str) -> list[str]:
        async with aiosqlite.connect(self._db_path) as conn:
            await self._ensure_table(conn)
            cursor = await conn.execute(f"SELECT key FROM {OPTIONS_TABLE} ORDER BY key")
            rows = await cursor.fetchall()
            return [r[0] for r in rows if r[0].startswith(prefix)]

    def get(self, key: str, default: Any = None) -> Any:
        """Get the value for ``key`` (sync wrapper)."""
        found, value = cast(tuple[bool, Any], _run_sync(self._get_impl(key)))
        return value if found else default

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key`` (sync wrapper)."""
        _run_sync(self._set_impl(key, value))

    def delete(self, key: str) -> bool:
        """Delete ``key`` (sync wrapper)."""
        return cast(bool, _run_sync(self._delete_impl(key)))

    def keys(self, prefix: str = "") -> list[str]:
        """List keys with ``prefix`` (sync wrapper)."""
        return cast(list[str], _run_sync(self._keys_impl(prefix)))


def create_persistence(environ: Mapping[str, str] | None = None) -> PersistencePort:
    """Create a PersistencePort from the environment.

    Reads WAYPOST_STORAGE_BACKEND (default "memory") and WAYPOST_STORAGE_PATH
    (default "waypost_state.db" for sqlite).

    Raises:
        ValueError: If WAYPOST_STORAGE_BACKEND is not "memory" or "sqlite".
    """
    env = os.environ if environ is None else environ
    backend = env.get(WAYPOST_STORAGE_BACKEND_ENV, "memory").strip().lower()
    path = env.get(WAYPOST_STORAGE_PATH_ENV, DEFAULT_DB_PATH).strip()

    if backend == "memory":
        return InMemoryPersistence()
    if backend == "sqlite":
        return SQLitePersistence(db_path=Path(path))
    raise ValueError(
        f"Unknown {WAYPOST_STORAGE_BACKEND_ENV}={backend!r}. Use 'memory' or 'sqlite'."
    )


__all__ = [
    "DEFAULT_DB_PATH",
    "InMemoryPersistence",
    "PersistencePort",
    "SQLitePersistence",
    "create_persistence",
]
