"""
Per-user command throttle backed by the store.

Fixed window anchored at the first command of the window: within
``window_seconds`` of that command the first ``max_commands`` calls are
allowed and the rest denied; the first call after the window starts a new one.
Bursts straddling a window boundary can therefore reach up to twice the limit.
"""

from __future__ import annotations

import sqlite3

from fairguard.database.db_connection import ConnectionManager
from fairguard.database.repositories.rate_limit_repo import RateLimitRepo
from fairguard.errors import StorageError
from fairguard.util.logger import get_logger
from fairguard.util.time_utils import Clock, now_ms, seconds_to_ms

logger = get_logger("rate_limiter")


class RateLimiter:
    def __init__(
        self,
        db: ConnectionManager,
        max_commands: int = 5,
        window_seconds: float = 60,
        clock: Clock = now_ms,
    ) -> None:
        self.db = db
        self.max_commands = max_commands
        self.window_ms = seconds_to_ms(window_seconds)
        self.clock = clock

    async def allow(self, user_id: str) -> bool:
        """Count one command for ``user_id`` and report whether it may run."""
        now = self.clock()
        try:
            async with self.db.transaction() as conn:
                current = await RateLimitRepo.get(conn, user_id)
                if current is None or now - current[0] >= self.window_ms:
                    await RateLimitRepo.start_window(conn, user_id, now)
                    return True
                _, count = current
                if count >= self.max_commands:
                    logger.info("[RATE LIMIT] Denied command for user %s (%d in window)", user_id, count)
                    return False
                await RateLimitRepo.increment(conn, user_id)
                return True
        except sqlite3.Error as exc:
            logger.error("[RATE LIMIT] Check failed for user %s: %s", user_id, exc)
            raise StorageError("rate_limit", exc) from exc

    async def prune(self) -> int:
        """Drop counters whose window ended; they would be reset on next use anyway."""
        async with self.db.transaction() as conn:
            return await RateLimitRepo.prune(conn, self.clock() - self.window_ms)
