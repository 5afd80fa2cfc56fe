"""
Store access for the moderation engine: one aiosqlite connection per engine.

Every ledger mutation, audit log write and confirmation update goes through
``ConnectionManager.transaction()``, which holds a single-slot write
semaphore for its whole body.  Two coroutines therefore never interleave
statements of different transactions on the shared connection, and a
warning is never visible without the log entry written next to it.

The semaphore is not reentrant.  Code already inside ``transaction()`` keeps
using the connection it was handed (``within_transaction`` hooks receive it
as their argument) instead of opening a nested transaction.

``read()`` waits for the same semaphore, so a read never observes the
uncommitted rows of a transaction open on the shared connection.  Never call
``read()`` inside ``transaction()`` or a ``within_transaction`` hook.

Example::

    db = ConnectionManager()
    await db.open(":memory:")

    async with db.transaction() as conn:
        await WarningRepo.insert_record(conn, record)
        await ModLogRepo.insert(conn, entry)

    await db.close()
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from fairguard.util.logger import get_logger

logger = get_logger("database_connection")

MEMORY_PATH = ":memory:"

_PRAGMAS = [
    "PRAGMA foreign_keys = ON",
    "PRAGMA temp_store = MEMORY",
]

# File-backed databases only; WAL is meaningless for ":memory:"
_FILE_PRAGMAS = [
    "PRAGMA journal_mode = WAL",
    "PRAGMA synchronous = NORMAL",    # safe with WAL; faster than FULL
    "PRAGMA cache_size = -65536",     # 64 MB page cache
    "PRAGMA wal_autocheckpoint = 1000",
]


class ConnectionManager:
    """Owns the engine's connection and the semaphore serializing access to it.

    Constructor-injected into every component that touches the store.
    """

    def __init__(self) -> None:
        self._conn: aiosqlite.Connection | None = None
        self._write_sem = asyncio.Semaphore(1)   # one transaction or read at a time
        self._path: str | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def is_memory(self) -> bool:
        return self._path == MEMORY_PATH

    async def open(self, path: str | Path) -> None:
        """
        Open the database and apply pragmas.

        Args:
            path: Path to the SQLite database file, or ``":memory:"``.
        """
        if self._conn is not None:
            logger.warning("[DB CONNECTION] open() called but connection already exists, ignoring")
            return

        self._path = str(path)
        if not self.is_memory:
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(self._path)
        self._conn.row_factory = aiosqlite.Row  # rows are dict-like

        pragmas = _PRAGMAS if self.is_memory else _PRAGMAS + _FILE_PRAGMAS
        for pragma in pragmas:
            await self._conn.execute(pragma)
        await self._conn.commit()

        logger.info("[DB CONNECTION] Opened connection to %s", self._path)

    async def close(self) -> None:
        """Flush WAL and close the connection."""
        if self._conn is None:
            return

        try:
            if not self.is_memory:
                await self._conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
                await self._conn.commit()
        except Exception:
            logger.exception("[DB CONNECTION] WAL checkpoint failed during close")
        finally:
            await self._conn.close()
            self._conn = None
            logger.info("[DB CONNECTION] Connection closed")

    # ------------------------------------------------------------------
    # Connection access
    # ------------------------------------------------------------------

    @property
    def connection(self) -> aiosqlite.Connection:
        """
        The raw aiosqlite connection.

        Raises:
            RuntimeError: If the connection has not been opened yet.
        """
        if self._conn is None:
            raise RuntimeError("store is not open; call ModerationEngine.start() first")
        return self._conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Commit on clean exit; roll back and re-raise on any exception, cancellation included."""
        conn = self.connection

        async with self._write_sem:
            try:
                yield conn
                await conn.commit()
            except BaseException:
                await conn.rollback()
                raise

    @asynccontextmanager
    async def read(self) -> AsyncIterator[aiosqlite.Connection]:
        """Read access to committed state; raises RuntimeError when the store is closed."""
        conn = self.connection

        async with self._write_sem:
            yield conn
